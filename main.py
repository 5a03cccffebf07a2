# main.py

"""Entry point for the trackerman price tracker CLI."""

import argparse
import logging
import sys

from trackerman.cli import runner
from trackerman.config.logging_config import setup_logging
from trackerman.models.exterior import Exterior

logger = logging.getLogger("trackerman.main")

_EXTERIORS = [e.value for e in Exterior]


def _add_item_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("name", help="Item base name, e.g. 'AK-47 | Redline'.")
    parser.add_argument("exterior", help=f"One of: {', '.join(_EXTERIORS)}.")


def _add_threshold_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--high", type=float, default=None,
                        help="Alert when the price reaches this value.")
    parser.add_argument("--low", type=float, default=None,
                        help="Alert when the price drops to this value.")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="trackerman",
        description="Steam Community Market price tracker.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Track the item behind a market URL.")
    add.add_argument("url", help="Market search or listing URL.")
    add.add_argument("-e", "--exterior", default=None,
                     help="Override the detected exterior.")
    _add_threshold_args(add)
    add.set_defaults(handler=runner.cmd_add)

    remove = sub.add_parser("remove", help="Stop tracking an item.")
    _add_item_args(remove)
    remove.set_defaults(handler=runner.cmd_remove)

    listing = sub.add_parser("list", help="Show items and current prices.")
    listing.set_defaults(handler=runner.cmd_list)

    history = sub.add_parser("history", help="Show the full price history.")
    history.add_argument("name", nargs="?", default=None)
    history.add_argument("exterior", nargs="?", default=None)
    history.add_argument("--json", action="store_true", default=False,
                         help="Print JSON instead of a table.")
    history.set_defaults(handler=runner.cmd_history)

    thresholds = sub.add_parser(
        "thresholds", help="Replace an item's alert thresholds.",
    )
    _add_item_args(thresholds)
    _add_threshold_args(thresholds)
    thresholds.set_defaults(handler=runner.cmd_thresholds)

    fetch = sub.add_parser("fetch", help="Fetch prices now.")
    fetch.add_argument("--item", nargs=2, metavar=("NAME", "EXTERIOR"),
                       default=None, help="Fetch a single item.")
    fetch.add_argument("--price-type", choices=["lowest", "highest"],
                       default="lowest", dest="price_type")
    fetch.add_argument("--count", type=int, default=1)
    fetch.add_argument("--exterior-filter", choices=_EXTERIORS,
                       default=None, dest="exterior_filter")
    fetch.set_defaults(handler=runner.cmd_fetch)

    settings = sub.add_parser("settings", help="Show or update settings.")
    settings.add_argument("--set", action="append", default=[],
                          dest="assignments", metavar="KEY=VALUE",
                          help="Dotted key, JSON value; repeatable.")
    settings.set_defaults(handler=runner.cmd_settings)

    trigger = sub.add_parser("trigger", help="Run one scheduler cycle now.")
    trigger.set_defaults(handler=runner.cmd_trigger)

    status = sub.add_parser("status", help="Show scheduler status.")
    status.set_defaults(handler=runner.cmd_status)

    run = sub.add_parser("run", help="Run the scheduler until interrupted.")
    run.set_defaults(handler=runner.cmd_run)

    test_webhook = sub.add_parser(
        "test-webhook", help="Send a Discord test message.",
    )
    test_webhook.set_defaults(handler=runner.cmd_test_webhook)

    legacy = sub.add_parser(
        "import-legacy", help="Import a legacy data.json history file.",
    )
    legacy.add_argument("path")
    legacy.set_defaults(handler=runner.cmd_import_legacy)

    return parser


def main() -> None:
    """Parse arguments and dispatch to the matching command handler."""
    log_file = setup_logging()
    logger.info("trackerman starting, log file: %s", log_file)

    args = build_parser().parse_args()
    sys.exit(runner.run_command(args))


if __name__ == "__main__":
    main()
