#!/usr/bin/env python3
"""
Micro-benchmark for pressure_book performance.

Tests:
1. Diff merge throughput
2. Pressure zone analysis speed
3. Full diff -> analysis cycle (what the orchestrator does per update)

Usage:
    python -m pressure_book.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

from .datafeed.orderbook import OrderBookProcessor
from .engine.zones import PressureZoneAnalyzer
from .types import DiffRecord, SnapshotRecord


def generate_mock_snapshot(base_price: float = 600.0, levels: int = 100) -> SnapshotRecord:
    """Generate a mock order book snapshot."""
    tick_size = 0.01

    bids = []
    asks = []

    for i in range(levels):
        bid_price = base_price - (i + 1) * tick_size
        ask_price = base_price + (i + 1) * tick_size

        bids.append([f"{bid_price:.2f}", str(random.uniform(1, 100))])
        asks.append([f"{ask_price:.2f}", str(random.uniform(1, 100))])

    return SnapshotRecord(
        bids=bids,
        asks=asks,
        last_update_id=1000000,
        symbol='BNBUSDT',
        timestamp=int(time.time() * 1000),
    )


def generate_mock_diff(base_price: float, update_id: int, changes: int = 10) -> DiffRecord:
    """Generate a mock depth diff."""
    tick_size = 0.01

    bids = []
    asks = []

    for _ in range(changes // 2):
        offset = random.randint(1, 150)
        bid_price = base_price - offset * tick_size
        ask_price = base_price + offset * tick_size

        # Random qty (0 = remove level)
        bid_qty = random.uniform(0, 100) if random.random() > 0.2 else 0
        ask_qty = random.uniform(0, 100) if random.random() > 0.2 else 0

        bids.append([f"{bid_price:.2f}", str(bid_qty)])
        asks.append([f"{ask_price:.2f}", str(ask_qty)])

    return DiffRecord(
        event_type='depthUpdate',
        event_time=update_id,
        symbol='BNBUSDT',
        first_update_id=update_id,
        final_update_id=update_id,
        bids=bids,
        asks=asks,
    )


def benchmark_diff_merge(iterations: int = 10000) -> float:
    """Benchmark diff merge throughput. Returns diffs/sec."""
    print("\n=== Diff Merge Benchmark ===")

    processor = OrderBookProcessor()
    state = processor.apply_snapshot(generate_mock_snapshot())

    # Pre-generate diffs
    diffs = [generate_mock_diff(600.0, i + 1) for i in range(iterations)]

    start = time.perf_counter()
    for d in diffs:
        state = processor.apply_diff(state, d)
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Diffs applied: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} diffs/sec")
    print(f"  Per diff: {elapsed/iterations*1_000_000:.1f}µs")
    return rate


def benchmark_zone_analysis(iterations: int = 1000) -> float:
    """Benchmark zone analysis. Returns average ms per call."""
    print("\n=== Zone Analysis Benchmark ===")

    state = OrderBookProcessor().apply_snapshot(generate_mock_snapshot())
    analyzer = PressureZoneAnalyzer()

    # Warm up
    for _ in range(10):
        analyzer.analyze(state)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        analyzer.analyze(state)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000
    std_time = stdev(times) * 1000 if len(times) > 1 else 0.0

    print(f"  Iterations: {iterations}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Std dev: {std_time:.3f}ms")
    print(f"  Rate: {1000/avg_time:,.0f} calls/sec")
    return avg_time


def benchmark_full_cycle(iterations: int = 500) -> float:
    """Benchmark diff + analysis, the per-update cost. Returns average ms."""
    print("\n=== Full Update Cycle Benchmark ===")

    processor = OrderBookProcessor()
    state = processor.apply_snapshot(generate_mock_snapshot())
    analyzer = PressureZoneAnalyzer()
    diffs = [generate_mock_diff(600.0, i + 1) for i in range(iterations)]

    times = []
    for d in diffs:
        start = time.perf_counter()
        state = processor.apply_diff(state, d)
        analyzer.analyze(state)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000
    std_time = stdev(times) * 1000 if len(times) > 1 else 0.0

    print(f"  Iterations: {iterations}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Std dev: {std_time:.3f}ms")
    print(f"  Max updates/sec: {1000/avg_time:,.0f}")
    return avg_time


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("pressure_book Performance Benchmark")
    print("=" * 60)

    benchmark_diff_merge()
    benchmark_zone_analysis()
    benchmark_full_cycle()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
