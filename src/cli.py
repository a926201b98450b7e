#!/usr/bin/env python3
"""
RSS Settlement Command Line Interface.

Provides commands for running and inspecting revenue-sharing settlements:
    - settle: Launch a settlement job
    - reports: List generated sharing reports as JSON
    - pay: Mark a sharing report paid (or unpaid)
    - info: Display configuration and storage information

settle, reports and pay need a persistent backend (STORAGE_BACKEND=postgresql
and DATABASE_URL, from the environment or a .env file); with the default
memory backend every run starts from an empty store.

Usage:
    rss-settlement settle --callback-url URL [--aggregator ID] [--provider ID]
                          [--product-class CLASS] [--wait]
    rss-settlement reports [--aggregator ID] [--provider ID] [--product-class CLASS]
                           [--only-paid] [--offset N] [--size N]
    rss-settlement pay REPORT_ID [--unpaid]
    rss-settlement info
    rss-settlement --version
"""

import argparse
import json
import os
import sys
import threading

# Ensure src is in path when running from source
if os.path.exists(os.path.join(os.path.dirname(__file__), "settlement_manager.py")):
    sys.path.insert(0, os.path.dirname(__file__))

__version__ = "0.1.0"


def _build_manager():
    from dotenv import load_dotenv

    load_dotenv()

    from callbacks import CallbackNotifier
    from config import SettlementConfig
    from monitoring import configure_logging
    from settlement_manager import SettlementManager

    config = SettlementConfig.from_env()
    configure_logging(config.log_level, json_output=config.log_format == "json")
    notifier = CallbackNotifier(timeout=config.callback_timeout, retry_config=config.callback_retry)
    return config, notifier, SettlementManager.from_config(config, notifier=notifier)


def _warn_if_ephemeral(config):
    """The memory backend starts empty, so data commands have nothing to work on."""
    if config.storage_backend == "memory":
        print(
            "Warning: STORAGE_BACKEND=memory starts empty on every run; "
            "set STORAGE_BACKEND=postgresql and DATABASE_URL to use stored data",
            file=sys.stderr,
        )



def cmd_settle(args):
    """Launch a settlement job."""
    from rss_errors import RSSError
    from rss_models import SettlementJob
    from storage import StorageError

    config, notifier, manager = _build_manager()
    _warn_if_ephemeral(config)

    done = threading.Event()
    completion = {}
    if args.wait:
        # Report completion here instead of calling the callback URL
        def sink(result):
            completion.update(result.to_dict())
            done.set()

        notifier.register(args.callback_url, sink)

    job = SettlementJob(
        callback_url=args.callback_url,
        aggregator_id=args.aggregator,
        provider_id=args.provider,
        product_class=args.product_class,
    )

    try:
        manager.run_settlement(job)
    except (RSSError, StorageError) as e:
        print(f"Error: {e}", file=sys.stderr)
        manager.close()
        return 1

    print(f"Settlement launched for {args.callback_url}")
    if args.wait:
        done.wait()
        print(json.dumps(completion, indent=2))
        manager.close()
        return 0 if completion.get("failed") == 0 else 2

    manager.close()
    return 0


def cmd_reports(args):
    """List sharing reports."""
    from rss_errors import RSSError

    config, _, manager = _build_manager()
    _warn_if_ephemeral(config)
    try:
        reports = manager.get_sharing_reports(
            aggregator_id=args.aggregator,
            provider_id=args.provider,
            product_class=args.product_class,
            only_paid=args.only_paid,
            offset=args.offset,
            size=args.size,
        )
    except RSSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        manager.close()

    print(json.dumps([r.to_dict() for r in reports], indent=2))
    return 0


def cmd_pay(args):
    """Set the paid flag of a report."""
    config, _, manager = _build_manager()
    _warn_if_ephemeral(config)
    try:
        success, result = manager.set_pay_report(args.report_id, not args.unpaid)
    finally:
        manager.close()

    if not success:
        print(f"Error: {result['error']}", file=sys.stderr)
        return 1
    print(json.dumps(result))
    return 0


def cmd_info(args):
    """Display system information."""
    import platform

    print("RSS Settlement System Information")
    print("=" * 40)
    print(f"Version: {__version__}")
    print(f"Python: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")

    config, _, manager = _build_manager()

    print()
    print("Configuration:")
    for key, value in config.to_dict().items():
        print(f"  {key}: {value}")

    print()
    print("Storage:")
    try:
        for key, value in manager.storage.get_info().items():
            print(f"  {key}: {value}")
    finally:
        manager.close()

    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="rss-settlement",
        description="RSS Settlement - Revenue sharing settlement engine",
        epilog="settle, reports and pay work on stored data and need "
        "STORAGE_BACKEND=postgresql (the memory backend starts empty on every run).",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # settle command
    settle_parser = subparsers.add_parser("settle", help="Launch a settlement job")
    settle_parser.add_argument("--callback-url", required=True, help="Callback notified on completion")
    settle_parser.add_argument("--aggregator", help="Aggregator to settle (default: all)")
    settle_parser.add_argument("--provider", help="Provider to settle (default: all)")
    settle_parser.add_argument("--product-class", help="Product class to settle (default: all)")
    settle_parser.add_argument(
        "--wait", action="store_true", help="Wait for completion and print the result"
    )

    # reports command
    reports_parser = subparsers.add_parser("reports", help="List sharing reports")
    reports_parser.add_argument("--aggregator", help="Filter by aggregator")
    reports_parser.add_argument("--provider", help="Filter by owner provider")
    reports_parser.add_argument("--product-class", help="Filter by product class")
    reports_parser.add_argument("--only-paid", action="store_true", help="Only paid reports")
    reports_parser.add_argument("--offset", type=int, default=0, help="Reports to skip")
    reports_parser.add_argument("--size", type=int, default=100, help="Maximum reports to list")

    # pay command
    pay_parser = subparsers.add_parser("pay", help="Mark a report paid")
    pay_parser.add_argument("report_id", type=int, help="Report identifier")
    pay_parser.add_argument("--unpaid", action="store_true", help="Clear the paid flag instead")

    # info command
    subparsers.add_parser("info", help="Display system information")

    args = parser.parse_args()

    if args.command == "settle":
        sys.exit(cmd_settle(args))
    elif args.command == "reports":
        sys.exit(cmd_reports(args))
    elif args.command == "pay":
        sys.exit(cmd_pay(args))
    elif args.command == "info":
        sys.exit(cmd_info(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
