"""
Market Resolver: Main Entry Point
Serves the resolution engine over HTTP, or resolves a single pair from the
command line and prints the result as JSON on stdout.
"""
import argparse
import asyncio
import sys
from typing import List, Optional

import uvicorn
from market_resolver.config.settings import get_settings
from market_resolver.data.errors import MarketDataError
from market_resolver.data.models import CandleInterval
from market_resolver.data.resolver import MarketDataResolver
from market_resolver.utils.logger import setup_logging, get_logger

logger = get_logger("main")


def run_api():
    """Run the FastAPI application."""
    settings = get_settings()
    setup_logging()
    logger.info("starting_market_resolver", version=settings.version, port=settings.port)
    uvicorn.run(
        "market_resolver.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="market-resolver", description=__doc__)
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="run the HTTP API (default)")

    for name, help_text in (
        ("price", "first provider in preference order that answers"),
        ("consensus", "median/min/max/spread across every provider"),
        ("candles", "OHLCV candles with provider fallback"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("base")
        cmd.add_argument("quote")
        cmd.add_argument("--provider", "-p", action="append", dest="providers",
                         help="provider id; repeat to set the preference order")
        if name == "candles":
            cmd.add_argument("--interval", default=CandleInterval.H1.value,
                             choices=[i.value for i in CandleInterval])
            cmd.add_argument("--limit", type=int, default=200)
    return parser


async def resolve_once(args: argparse.Namespace, resolver: MarketDataResolver) -> str:
    """Run one resolution and return its JSON rendering."""
    if args.command == "price":
        result = await resolver.resolve_spot_price(args.base, args.quote, providers=args.providers)
    elif args.command == "consensus":
        result = await resolver.resolve_consensus(args.base, args.quote, providers=args.providers)
    else:
        result = await resolver.resolve_candles(
            args.base, args.quote, interval=args.interval, limit=args.limit, providers=args.providers
        )
    return result.model_dump_json(indent=2)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command in (None, "serve"):
        run_api()
        return 0

    setup_logging()
    try:
        output = asyncio.run(resolve_once(args, MarketDataResolver()))
    except MarketDataError as e:
        logger.error("resolution_failed", command=args.command, error=str(e))
        print(str(e), file=sys.stderr)
        return 1
    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
