"""Unit tests for HistoryBuffer."""
from __future__ import annotations

import pytest

from pressure_book.datafeed.history import DEFAULT_HISTORY_SIZE, HistoryBuffer
from pressure_book.types import EMPTY_BOOK, OrderBookState, PriceLevel, PriceRange


def _state(qty: float) -> OrderBookState:
    level = PriceLevel(100.0, qty, 0)
    return OrderBookState((level,), (), qty, PriceRange(100.0, 100.0))


class TestHistoryBuffer:

    def test_default_size(self):
        assert HistoryBuffer().max_size == DEFAULT_HISTORY_SIZE == 100

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            HistoryBuffer(0)

    def test_evicts_smallest_timestamp(self):
        history = HistoryBuffer(max_size=3)
        for ts in (30, 10, 20):
            history.add(ts, _state(ts))
        history.add(5, _state(5))

        # 5 is the smallest, so it goes immediately
        assert history.timestamps() == [10, 20, 30]

        history.add(40, _state(40))
        assert history.timestamps() == [20, 30, 40]
        assert 10 not in history
        assert len(history) == 3

    def test_same_timestamp_replaces(self):
        history = HistoryBuffer(max_size=2)
        history.add(1, _state(1))
        history.add(1, _state(2))
        assert len(history) == 1
        assert history.get(1).max_quantity == 2

    def test_latest_and_items(self):
        history = HistoryBuffer()
        assert history.latest() is None

        history.add(2, _state(2))
        history.add(1, EMPTY_BOOK)
        ts, state = history.latest()
        assert ts == 2
        assert state.max_quantity == 2
        assert [ts for ts, _ in history.items()] == [1, 2]
        assert list(history) == [1, 2]

    def test_clear(self):
        history = HistoryBuffer()
        history.add(1, EMPTY_BOOK)
        history.clear()
        assert len(history) == 0
        assert history.get(1) is None
