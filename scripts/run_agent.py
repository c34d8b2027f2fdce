#!/usr/bin/env python3
"""
Operator entry point for the Market Farmer agent.

Usage:
    python scripts/run_agent.py scan
    python scripts/run_agent.py poly-scan --live
    python scripts/run_agent.py resolve
    python scripts/run_agent.py stats
    python scripts/run_agent.py monitor
    python scripts/run_agent.py sell
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from loguru import logger

from core.config import get_settings
from core.errors import FarmerError
from farmer.services.pipeline import Farmer


COMMANDS = ("scan", "poly-scan", "resolve", "stats", "monitor", "sell")


async def run(command: str, settings):
    """Per-item failures are logged and counted; only a batch-level error escapes."""
    async with Farmer(settings) as farmer:
        if command == "scan":
            await farmer.scan()
        elif command == "poly-scan":
            await farmer.poly_scan()
        elif command == "resolve":
            await farmer.resolve()
        elif command == "stats":
            print(farmer.stats())
        elif command == "monitor":
            await farmer.monitor()
        else:
            await farmer.sell()


def main():
    parser = argparse.ArgumentParser(description="Prediction-market forecasting agent")
    parser.add_argument("command", choices=COMMANDS, help="Operation to run")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--live", action="store_true", help="Place real orders (overrides DRY_RUN)")
    mode.add_argument("--dry-run", action="store_true", help="Journal decisions without placing orders")
    parser.add_argument("--data-dir", type=str, default=None, help="Journal directory")

    args = parser.parse_args()

    settings = get_settings()
    overrides = {}
    if args.live:
        overrides["dry_run"] = False
    elif args.dry_run:
        overrides["dry_run"] = True
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    if overrides:
        settings = settings.model_copy(update=overrides)

    try:
        asyncio.run(run(args.command, settings))
        code = 0
    except FarmerError as e:
        logger.error(f"{args.command} failed: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
