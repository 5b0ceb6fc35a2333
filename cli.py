import argparse
import sys
from typing import List, Optional

import structlog

from config import get_settings_for_environment
from csv_io import TransactionReader, write_accounts
from logging_config import configure_logging
from services import get_ledger_service

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="payments-ledger",
        description="Apply a CSV of transactions and print the final account balances as CSV",
    )
    parser.add_argument("input", help="Path to the transactions CSV file")
    parser.add_argument(
        "--env",
        default="production",
        choices=["development", "production", "testing"],
        help="Settings profile (default: production)",
    )
    parser.add_argument("--log-level", default=None, help="Override the profile's log level")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings_for_environment(args.env)
    if args.log_level:
        settings.log_level = args.log_level
    configure_logging(settings)

    service = get_ledger_service(settings)

    try:
        with open(args.input, newline="", encoding="utf-8") as f:
            reader = TransactionReader(f)
            service.process(reader)
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Cannot read input", path=args.input, error=str(e))
        print(f"Error: cannot read '{args.input}': {e}", file=sys.stderr)
        return 1

    if reader.dropped:
        logger.warning("Malformed rows dropped", dropped=reader.dropped, path=args.input)

    write_accounts(service.snapshot(), sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
