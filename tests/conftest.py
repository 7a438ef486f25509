from __future__ import annotations

import pytest

from pressure_book.types import DiffRecord, SnapshotRecord


def _levels(pairs):
    return [[str(price), str(qty)] for price, qty in pairs]


@pytest.fixture
def make_snapshot():
    """Factory: make_snapshot(bids=[(price, qty), ...], asks=[...], timestamp=...)."""
    def _make(bids=(), asks=(), timestamp=1_000, symbol="BTCUSDT", last_update_id=1):
        return SnapshotRecord(
            bids=_levels(bids),
            asks=_levels(asks),
            last_update_id=last_update_id,
            symbol=symbol,
            timestamp=timestamp,
        )
    return _make


@pytest.fixture
def make_diff():
    """Factory: make_diff(bids=[(price, qty), ...], asks=[...], event_time=...)."""
    def _make(bids=(), asks=(), event_time=2_000, symbol="BTCUSDT", update_id=2):
        return DiffRecord(
            event_type="depthUpdate",
            event_time=event_time,
            symbol=symbol,
            first_update_id=update_id,
            final_update_id=update_id,
            bids=_levels(bids),
            asks=_levels(asks),
        )
    return _make


@pytest.fixture
def sample_snapshot(make_snapshot):
    """Small book with one oversized bid level."""
    return make_snapshot(
        bids=[(100, 1), (99, 1), (98, 50)],
        asks=[(101, 1), (102, 1)],
    )
