"""
AC Trading Client — command line entry point.
Loads credentials from the environment (.env supported) and runs one command.
"""

from __future__ import annotations
import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional
import logging

from dotenv import load_dotenv

from config import ClientConfig
from exchange.auth_client import AuthenticatedClient
from exchange.exceptions import ExchangeError

logger = logging.getLogger(__name__)


def setup_logging(level: str, log_file: Optional[str] = None):
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Authenticated exchange REST client.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("accounts", help="List accounts")

    orders = sub.add_parser("orders", help="List orders")
    orders.add_argument("--status", action="append", help="Filter by status (repeatable)")
    orders.add_argument("--product-id")

    fills = sub.add_parser("fills", help="List fills")
    fills.add_argument("--order-id")
    fills.add_argument("--product-id")

    cancel_all = sub.add_parser("cancel-all", help="Cancel every open order")
    cancel_all.add_argument("--product-id")

    report = sub.add_parser("report-status", help="Show a report's status")
    report.add_argument("report_id")
    return parser


def _filters(**kwargs: Any) -> dict:
    return {k: v for k, v in kwargs.items() if v is not None}


async def run(args: argparse.Namespace, config: ClientConfig) -> Any:
    async with AuthenticatedClient.from_config(config) as client:
        if args.command == "accounts":
            return await client.get_accounts()
        if args.command == "orders":
            return await client.get_orders(_filters(status=args.status, product_id=args.product_id))
        if args.command == "fills":
            return await client.get_fills(_filters(order_id=args.order_id, product_id=args.product_id))
        if args.command == "cancel-all":
            return await client.cancel_all_orders(_filters(product_id=args.product_id))
        if args.command == "report-status":
            return await client.get_report_status(args.report_id)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = ClientConfig.from_env()
    except ValueError as e:
        setup_logging("INFO")
        logger.critical(str(e))
        return 1
    setup_logging(config.log_level, config.log_file)

    try:
        config.exchange.validate()
    except ValueError as e:
        logger.critical(str(e))
        return 1

    logger.info(f"[BOOT] {args.command} against {config.exchange.base_url}")
    try:
        result = asyncio.run(run(args, config))
    except ExchangeError as e:
        logger.error(f"[{args.command.upper()}] {type(e).__name__}: {e}")
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
