#!/usr/bin/env python3
"""
pressure_book - live order book with pressure zone analytics.

Usage:
    python -m pressure_book.main --symbol BTCUSDT --depth 50

    Or directly:
    python pressure_book/main.py ETHUSDT

Falls back to simulated data (demo mode) when Binance is unreachable.
Ctrl+C to quit.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from typing import Optional

from .config import FeedConfig
from .types import OrderBookState


def format_qty(qty: float) -> str:
    """Format quantity for display."""
    if qty >= 1000:
        return f"{qty/1000:.1f}K"
    elif qty >= 1:
        return f"{qty:.1f}"
    elif qty > 0:
        return f"{qty:.4f}"
    return "0"


async def main(symbol: str, depth: int, config: FeedConfig, duration: Optional[float], print_interval: float) -> None:
    """Main entry point - runs the orchestrator and prints a status line."""

    # Import here to avoid slow startup for --help
    from .orchestrator import ConnectionOrchestrator

    print(f"Starting pressure_book for {symbol}...")
    print(f"  Depth: {depth}")
    print(f"  Connect timeout: {config.connect_timeout_sec}s")
    print()

    orch = ConnectionOrchestrator(config=config)
    last_print = 0.0

    def on_data(book: OrderBookState) -> None:
        nonlocal last_print
        now = time.perf_counter()
        if now - last_print < print_interval:
            return
        last_print = now

        zone_stats = orch.zone_statistics
        strongest = zone_stats.strongest_zone
        strongest_txt = (
            f"{strongest.kind.value}@{strongest.center_price:.2f} ({strongest.intensity:.0%})"
            if strongest else "-"
        )
        print(
            f"[{orch.state.value}] bid {book.best_bid:.2f} / ask {book.best_ask:.2f} "
            f"spread {book.spread:.4f} vol {format_qty(book.total_volume)} "
            f"zones {zone_stats.total_zones} strongest {strongest_txt}",
            flush=True,
        )

    orch.on_data(on_data)
    orch.on_error(lambda message: print(f"Error: {message}", flush=True))

    try:
        state = await orch.connect(symbol, depth)
        if orch.status_message:
            print(f"Status: {state.value} - {orch.status_message}")

        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        await orch.close()
        stats = orch.stats
        print(
            f"\nConnections: {stats.total_connections}, fallbacks: {stats.fallbacks}, reconnects: {stats.reconnects}, "
            f"diffs applied: {stats.diffs_applied}, processing errors: {stats.processing_errors}"
        )


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="pressure_book - order book pressure zones for Binance spot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m pressure_book.main BTCUSDT
    python -m pressure_book.main ETHUSDT --depth 100 --timeout 3
    python -m pressure_book.main ADAUSDT --duration 60 --no-zones
        """
    )

    parser.add_argument(
        "symbol",
        nargs="?",
        default="BTCUSDT",
        help="Trading symbol (default: BTCUSDT)"
    )

    parser.add_argument(
        "--depth",
        type=int,
        default=50,
        help="Snapshot depth per side (default: 50)"
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Seconds to wait for the first live message before demo mode (default: 5)"
    )

    parser.add_argument(
        "--interval",
        type=float,
        default=0.5,
        help="Simulated diff interval in seconds (default: 0.5)"
    )

    parser.add_argument(
        "--reconnect-attempts",
        type=int,
        default=5,
        help="Live reconnect attempts after falling back to demo mode (default: 5)"
    )

    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until Ctrl+C)"
    )

    parser.add_argument(
        "--print-interval",
        type=float,
        default=1.0,
        help="Seconds between status lines (default: 1)"
    )

    parser.add_argument(
        "--no-zones",
        action="store_true",
        help="Disable pressure zone analysis"
    )

    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = FeedConfig(
            connect_timeout_sec=args.timeout,
            simulator_interval_sec=args.interval,
            reconnect_attempts=args.reconnect_attempts,
            analyze_zones=not args.no_zones,
            default_depth=args.depth,
        ).validate()
    except ValueError as exc:
        parser.error(str(exc))

    # Run
    try:
        asyncio.run(main(args.symbol.upper(), args.depth, config, args.duration, args.print_interval))
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
