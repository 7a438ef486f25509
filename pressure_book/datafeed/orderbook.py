"""
Incremental order book merge engine.

HOT PATH: apply_diff() is called for every depth update, live or simulated.

Performance strategy:
1. Sides are kept sorted at all times, so a level is located with a binary
   search instead of a linear scan
2. New levels are inserted at their sorted position (no full re-sort)
3. Aggregates (max quantity, price range) are recomputed once per diff,
   after all levels are applied

Every call returns a brand new OrderBookState; the input state is never
touched, so readers holding the previous value are unaffected.
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from typing import Iterable, Optional

from .history import HistoryBuffer
from .levels import is_directive, is_resting, parse_level
from ..types import (
    EMPTY_MAX_QUANTITY,
    EMPTY_PRICE_RANGE,
    BookStats,
    DiffRecord,
    OrderBookState,
    PriceLevel,
    PriceRange,
    RawLevel,
    SnapshotRecord,
)

logger = logging.getLogger(__name__)


def _bid_key(level: PriceLevel) -> float:
    return -level.price


def _ask_key(level: PriceLevel) -> float:
    return level.price


def build_state(bids: Iterable[PriceLevel], asks: Iterable[PriceLevel]) -> OrderBookState:
    """
    Wrap two already-sorted sides into an OrderBookState with fresh aggregates.

    Empty book: max_quantity = 1, price_range = (0, 1).
    """
    bids = tuple(bids)
    asks = tuple(asks)

    if not bids and not asks:
        return OrderBookState(bids, asks, EMPTY_MAX_QUANTITY, EMPTY_PRICE_RANGE)

    max_qty = max(level.quantity for side in (bids, asks) for level in side)

    # Sorted sides: extremes sit at the ends
    prices = [side[i].price for side in (bids, asks) if side for i in (0, -1)]
    return OrderBookState(bids, asks, max_qty, PriceRange(min(prices), max(prices)))


def _merge_side(
    levels: list[PriceLevel],
    changes: Iterable[RawLevel],
    event_time: int,
    descending: bool,
) -> int:
    """
    Apply raw level changes to one side in place. Returns the number of
    skipped (malformed) directives.

    HOT PATH.
    """
    key = _bid_key if descending else _ask_key
    skipped = 0

    for raw in changes:
        level = parse_level(raw, event_time)
        if not is_directive(level):
            skipped += 1
            continue

        target = key(level)
        idx = bisect_left(levels, target, key=key)
        found = idx < len(levels) and levels[idx].price == level.price

        if level.quantity == 0:
            if found:
                del levels[idx]
        elif found:
            levels[idx] = level
        else:
            levels.insert(idx, level)

    return skipped


class OrderBookProcessor:
    """
    Applies snapshots and diffs to produce new OrderBookState values.

    Every produced state is recorded in the owned HistoryBuffer.

    Thread-safety: NOT thread-safe. One processor per book, driven by a single
    writer (the orchestrator's event loop).
    """

    __slots__ = ('history', '_snapshot_count', '_diff_count', '_skipped_count')

    def __init__(self, history: Optional[HistoryBuffer] = None) -> None:
        self.history = history if history is not None else HistoryBuffer()

        # Performance tracking
        self._snapshot_count: int = 0
        self._diff_count: int = 0
        self._skipped_count: int = 0

    def apply_snapshot(self, snapshot: SnapshotRecord) -> OrderBookState:
        """
        Build a state from a full snapshot.

        Invalid levels (non-positive price or quantity) are dropped. A price
        repeated within one side keeps its last quantity.
        """
        ts = snapshot.timestamp

        bids: dict[float, PriceLevel] = {}
        for raw in snapshot.bids:
            level = parse_level(raw, ts)
            if is_resting(level):
                bids[level.price] = level

        asks: dict[float, PriceLevel] = {}
        for raw in snapshot.asks:
            level = parse_level(raw, ts)
            if is_resting(level):
                asks[level.price] = level

        state = build_state(
            sorted(bids.values(), key=_bid_key),
            sorted(asks.values(), key=_ask_key),
        )

        self._snapshot_count += 1
        self.history.add(ts, state)
        logger.debug(
            "Snapshot %s applied: %d bids, %d asks",
            snapshot.last_update_id, len(state.bids), len(state.asks),
        )
        return state

    def apply_diff(
        self,
        state: OrderBookState,
        diff: Optional[DiffRecord] = None,
        *,
        bids: Iterable[RawLevel] = (),
        asks: Iterable[RawLevel] = (),
        event_time: int = 0,
    ) -> OrderBookState:
        """
        Merge a diff into `state` and return the new state.

        Accepts either a DiffRecord or explicit bids/asks/event_time.
        Per level: quantity 0 deletes, any other quantity sets the level with
        timestamp = event_time. Levels with price <= 0 or quantity < 0 are
        skipped. Diffs are applied as received (no sequence checks).

        HOT PATH.
        """
        if diff is not None:
            bids, asks, event_time = diff.bids, diff.asks, diff.event_time

        new_bids = list(state.bids)
        new_asks = list(state.asks)

        skipped = _merge_side(new_bids, bids, event_time, descending=True)
        skipped += _merge_side(new_asks, asks, event_time, descending=False)

        new_state = build_state(new_bids, new_asks)

        self._diff_count += 1
        self._skipped_count += skipped
        self.history.add(event_time, new_state)
        return new_state

    def clear_history(self) -> None:
        self.history.clear()

    @property
    def snapshot_count(self) -> int:
        return self._snapshot_count

    @property
    def diff_count(self) -> int:
        return self._diff_count

    @property
    def skipped_count(self) -> int:
        """Malformed diff directives skipped so far."""
        return self._skipped_count

    def reset_perf_counters(self) -> None:
        self._snapshot_count = 0
        self._diff_count = 0
        self._skipped_count = 0


def book_stats(state: OrderBookState, symbol: str, last_update: int) -> BookStats:
    """Headline numbers for UI collaborators."""
    return BookStats(
        symbol=symbol,
        bid_count=len(state.bids),
        ask_count=len(state.asks),
        spread=state.spread,
        mid_price=state.mid_price,
        total_volume=state.total_volume,
        last_update=last_update,
    )
