"""Command-line interface for the lending risk engine."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import load_config
from .errors import Error, OracleError
from .logging_setup import configure_logging
from .services import RiskReport
from .services.risk_report import format_usd


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lending-risk",
        description="Solvency checks for a collateralized lending deployment",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--no-refresh",
        dest="refresh",
        action="store_false",
        help="Skip fetching probabilistic prices from Hermes",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("check", help="Report health of every configured account")

    price_parser = sub.add_parser("price", help="Print a market's oracle price")
    price_parser.add_argument("market", help="Market address")

    liquidity_parser = sub.add_parser("liquidity", help="Print one account's liquidity")
    liquidity_parser.add_argument("account", help="Account address")

    return parser


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command. Returns the process exit code."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    report = RiskReport(config)
    await report.prepare(refresh=args.refresh)

    if args.command == "check":
        results = await report.check_accounts(refresh=False)
        return 0 if all(h.healthy for h in results) else 2

    if args.command == "price":
        try:
            price = report.deployment.oracle.get_underlying_price(args.market)
        except OracleError as e:
            print(f"{args.market}: {e}")
            return 1
        print(f"{args.market}: {price}")
        return 0

    if args.command == "liquidity":
        account = next(
            (a for a in config.accounts if a.address == args.account), None
        )
        if account is None:
            print(f"Unknown account: {args.account}")
            return 1
        health = report.evaluate_account(account)
        if health.error != Error.NO_ERROR:
            print(f"{args.account}: {health.error.name}")
            return 1
        if health.buckets is None:
            print(
                f"liquidity={format_usd(health.liquidity)} "
                f"shortfall={format_usd(health.shortfall)}"
            )
        else:
            b = health.buckets
            print(
                f"A: liquidity={format_usd(b.liquidity_a)} shortfall={format_usd(b.shortfall_a)}\n"
                f"B: liquidity={format_usd(b.liquidity_b)} shortfall={format_usd(b.shortfall_b)}"
            )
        return 0

    build_parser().print_help()
    return 1


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))
