# main.py

"""Entry point for the chempal headless supplier search."""

import argparse
import asyncio
import logging
import sys

from chempal.config.logging_config import setup_logging
from chempal.config.settings import Settings

logger = logging.getLogger("chempal.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(s["id"] for s in Settings.AVAILABLE_SOURCES)

    parser = argparse.ArgumentParser(
        prog="chempal",
        description="Search chemical suppliers and compare prices.",
        epilog=f"Available suppliers: {valid_ids}",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Chemical name, formula or CAS number to search for.",
    )
    parser.add_argument(
        "-s",
        "--suppliers",
        default=None,
        help="Comma-separated supplier IDs (default: all).",
    )
    parser.add_argument(
        "-l",
        "--limit",
        type=int,
        default=None,
        help=(
            "Max products per supplier "
            f"(default: {Settings.DEFAULT_RESULT_LIMIT})."
        ),
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="table",
        dest="output_format",
        help="Output format (default: table).",
    )
    parser.add_argument(
        "--no-save",
        action="store_false",
        dest="save",
        help="Do not write results to results/.",
    )
    parser.add_argument(
        "--list-suppliers",
        action="store_true",
        default=False,
        dest="list_suppliers",
        help="List the configured suppliers and exit.",
    )
    return parser


def _run_cli(args: argparse.Namespace) -> None:
    """Run headless search and exit."""
    from chempal.cli.runner import cli_search

    exit_code = asyncio.run(
        cli_search(
            query=args.query,
            source_csv=args.suppliers,
            limit=args.limit,
            output_format=args.output_format,
            save=args.save,
        )
    )
    sys.exit(exit_code)


def main(argv: list[str] | None = None) -> None:
    """Route to the supplier listing or a search."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_file = setup_logging()
    logger.info("chempal starting, log file: %s", log_file)

    if args.list_suppliers:
        from chempal.cli.runner import list_suppliers

        sys.exit(list_suppliers())
    if not args.query:
        parser.error("a search query is required")
    _run_cli(args)


if __name__ == "__main__":
    main()
