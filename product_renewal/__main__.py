"""Command line for queueing and running product data renewals."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from product_renewal.factory import ServiceContainer

logger = logging.getLogger(__name__)


def _open_services(args: argparse.Namespace) -> ServiceContainer:
    """Configure logging and wire services from the current settings."""
    from product_renewal.config import get_settings
    from product_renewal.core.logging import configure_logging
    from product_renewal.factory import ServiceFactory

    settings = get_settings()
    configure_logging(
        level="DEBUG" if getattr(args, "verbose", False) else settings.log_level,
        json_format=settings.log_json,
    )
    return ServiceFactory(settings).create_all()


def run_queue_product_renewal(args: argparse.Namespace) -> int:
    """Queue products for renewal.

    Queues the keys given on the command line, or every known product.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    services = _open_services(args)
    try:
        keys = list(args.keys) if args.keys else services.products.all_keys()
        if not keys:
            print("There are no products to queue.")
            return 0

        try:
            count = services.coordinator.queue_renewal_sweep(keys)
        except Exception as e:
            logger.error(f"Queueing products failed: {e}", exc_info=args.verbose)
            print("An unrecoverable error has occurred:")
            print(e)
            return 1

        print(f"{count} products have been queued for renewal.")
        return 0
    finally:
        services.close()


def run_product_renewal(args: argparse.Namespace) -> int:
    """Sweep stale products into the queue and drain it.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    services = _open_services(args)
    try:
        products = services.products
        if not products.has_stale_data():
            print("There is nothing to update.")
            return 0

        try:
            services.coordinator.queue_renewal_sweep()
            result = services.coordinator.drain_queue()
        except Exception as e:
            logger.error(f"Product renewal failed: {e}", exc_info=args.verbose)
            print("An unrecoverable error has occurred:")
            print(e)
            return 1

        if args.verbose:
            for error in result.errors:
                print(f"  - {error}")
        if result.suspended:
            reason = result.suspend_reason or "no reason given"
            print(f"Processing was suspended by the product data source: {reason}")

        if products.has_stale_data():
            print(f"There are {products.count_stale()} products still remaining.")
        else:
            print("All items have been processed.")
        return 0
    finally:
        services.close()


def run_stale(args: argparse.Namespace) -> int:
    """Print the number of products due for renewal."""
    services = _open_services(args)
    try:
        print(f"There are {services.products.count_stale()} products waiting for renewal.")
        return 0
    finally:
        services.close()


def run_overrides(args: argparse.Namespace) -> int:
    """Print the overrides configured for a single product.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    services = _open_services(args)
    try:
        try:
            overrides = services.products.get_overrides(args.key)
        except Exception as e:
            logger.error(f"Override lookup failed: {e}", exc_info=args.verbose)
            print("An unexpected error has occurred:")
            print(e)
            return 1

        if overrides is None:
            print(f"No product with ASIN {args.key} has been found.")
            return 0

        print(f"The following overrides were found for: {args.key}")
        print(json.dumps(overrides, indent=2, sort_keys=True, default=str))
        return 0
    finally:
        services.close()


def run_reset_all_renewals(args: argparse.Namespace) -> int:
    """Mark every product as never renewed."""
    services = _open_services(args)
    try:
        services.products.reset_all()
        print("All products have been marked for renewal.")
        return 0
    finally:
        services.close()


def run_track(args: argparse.Namespace) -> int:
    """Register product keys with the freshness store."""
    services = _open_services(args)
    try:
        try:
            added = services.products.track(args.keys)
        except Exception as e:
            logger.error(f"Tracking products failed: {e}", exc_info=args.verbose)
            print(f"Error: {e}")
            return 1
        print(f"{added} new products are now tracked.")
        return 0
    finally:
        services.close()


def run_status(args: argparse.Namespace) -> int:
    """Print outstanding renewal work."""
    services = _open_services(args)
    try:
        total, claimed = services.products.queue_depth()
        print(f"Stale products: {services.products.count_stale()}")
        print(f"Queued items:   {total} ({claimed} claimed)")
        return 0
    finally:
        services.close()


def _add_verbose(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="product-renewal",
        description="Queue and run renewals of cached product data.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )
    subparsers = parser.add_subparsers(dest="command")

    queue_parser = subparsers.add_parser(
        "queue-product-renewal",
        help="Queue all products (or the given ones) for renewal",
    )
    queue_parser.add_argument(
        "keys",
        nargs="*",
        help="Product keys to queue (default: every known product)",
    )
    _add_verbose(queue_parser)

    run_parser = subparsers.add_parser(
        "run-product-renewal",
        help="Queue stale products and process the renewal queue",
    )
    _add_verbose(run_parser)

    stale_parser = subparsers.add_parser(
        "stale",
        help="Show the number of products due for renewal",
    )
    _add_verbose(stale_parser)

    overrides_parser = subparsers.add_parser(
        "overrides",
        help="Show the overrides of a product",
        description="Example: product-renewal overrides AE91ECBUDA",
    )
    overrides_parser.add_argument("key", help="Product key (ASIN)")
    _add_verbose(overrides_parser)

    reset_parser = subparsers.add_parser(
        "reset-all-renewals",
        help="Reset all renewal times so every product is stale",
    )
    _add_verbose(reset_parser)

    track_parser = subparsers.add_parser(
        "track",
        help="Register product keys for renewal tracking",
    )
    track_parser.add_argument("keys", nargs="+", help="Product keys to track")
    _add_verbose(track_parser)

    status_parser = subparsers.add_parser(
        "status",
        help="Show stale product count and queue depth",
    )
    _add_verbose(status_parser)

    return parser


COMMANDS = {
    "queue-product-renewal": run_queue_product_renewal,
    "run-product-renewal": run_product_renewal,
    "stale": run_stale,
    "overrides": run_overrides,
    "reset-all-renewals": run_reset_all_renewals,
    "track": run_track,
    "status": run_status,
}


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and dispatch to a command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from product_renewal import __version__

        print(f"product-renewal {__version__}")
        sys.exit(0)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)

    from product_renewal.core.errors import ProductRenewalError

    try:
        sys.exit(command(args))
    except ProductRenewalError as e:
        logger.error(f"{args.command} failed: {e}", exc_info=args.verbose)
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
