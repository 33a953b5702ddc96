"""Command-line interface for inspecting prices and conversions."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from decimal import Decimal
from typing import Callable

from .config import AppConfig, load_config
from .errors import EngineError, InvalidPrice, StalePrice
from .logging_setup import configure_logging
from .oracles import PythOracle
from .services import ValuationService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="synthdollar",
        description="Collateral-backed synthetic dollar engine tools",
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

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("prices", help="Fetch oracle prices and report their freshness")

    convert_parser = sub.add_parser("convert", help="Convert between USD and an asset")
    convert_parser.add_argument("asset", help="Collateral asset symbol")
    group = convert_parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--usd", type=Decimal, help="USD amount to express in the asset")
    group.add_argument("--amount", type=Decimal, help="Asset amount to value in USD")

    return parser


def _scale(value: Decimal, decimals: int) -> int:
    return int(value.scaleb(decimals).to_integral_value())


def _fmt(value: int, decimals: int) -> str:
    return format(Decimal(value).scaleb(-decimals).normalize(), "f")


def _valuation(
    config: AppConfig, oracle: PythOracle, clock: Callable[[], float] = time.time
) -> ValuationService:
    return ValuationService(
        config.assets,
        {a.symbol: oracle for a in config.assets},
        config.risk.price_timeout_seconds,
        clock,
    )


async def report_prices(
    config: AppConfig, oracle: PythOracle, now: float | None = None
) -> int:
    """Refresh every configured feed and log each quote; return how many are unusable."""
    await oracle.refresh()
    now = time.time() if now is None else now
    valuation = _valuation(config, oracle, clock=lambda: now)
    rejected = 0
    for symbol in valuation.assets:
        quote = oracle.latest_price(symbol)
        marker = ""
        try:
            valuation.fresh_quote(symbol)
        except StalePrice:
            marker = " STALE"
        except InvalidPrice:
            marker = " INVALID"
        rejected += bool(marker)
        logger.info(
            "%s: %s (age %.0fs)%s",
            symbol,
            _fmt(quote.price, quote.decimals),
            max(now - quote.updated_at, 0.0),
            marker,
        )
    return rejected


async def convert(args: argparse.Namespace, config: AppConfig, oracle: PythOracle) -> None:
    await oracle.refresh([args.asset])
    valuation = _valuation(config, oracle)
    decimals = valuation.decimals(args.asset)
    if args.usd is not None:
        amount = valuation.asset_amount_for_usd(args.asset, _scale(args.usd, 18))
        logger.info("$%s = %s %s", args.usd, _fmt(amount, decimals), args.asset)
    else:
        usd = valuation.usd_value(args.asset, _scale(args.amount, decimals))
        logger.info("%s %s = $%s", args.amount, args.asset, _fmt(usd, 18))


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    oracle = PythOracle(config.price_oracle.pyth, config.feeds())

    try:
        if args.command == "prices":
            return 1 if await report_prices(config, oracle) else 0
        if args.command == "convert":
            await convert(args, config, oracle)
            return 0
    except EngineError as e:
        logger.error("%s", e)
        return 1

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
