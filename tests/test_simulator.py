"""Unit tests for the synthetic order book generator."""
from __future__ import annotations

import random

import pytest

from pressure_book.datafeed.orderbook import OrderBookProcessor
from pressure_book.datafeed.simulator import BASE_PRICES, DEFAULT_BASE_PRICE, OrderBookSimulator


@pytest.fixture
def simulator():
    return OrderBookSimulator("btcusdt", rng=random.Random(7))


class TestOrderBookSimulator:

    def test_symbol_base_price(self, simulator):
        assert simulator.symbol == "BTCUSDT"
        assert simulator.base_price == BASE_PRICES["BTCUSDT"]
        assert OrderBookSimulator("XYZUSDT").base_price == DEFAULT_BASE_PRICE

    def test_snapshot_shape(self, simulator):
        snapshot = simulator.generate_snapshot(depth=20)

        assert snapshot.symbol == "BTCUSDT"
        assert len(snapshot.bids) == 20
        assert len(snapshot.asks) == 20
        bid_prices = [float(p) for p, _ in snapshot.bids]
        ask_prices = [float(p) for p, _ in snapshot.asks]
        assert max(bid_prices) < simulator.base_price < min(ask_prices)
        assert all(float(q) > 0 for _, q in snapshot.bids + snapshot.asks)

    def test_snapshot_feeds_processor(self, simulator):
        state = OrderBookProcessor().apply_snapshot(simulator.generate_snapshot(depth=50))
        assert len(state.bids) == 50
        assert len(state.asks) == 50
        assert state.best_bid < state.best_ask

    def test_diff_shape(self, simulator):
        diff = simulator.generate_diff()
        assert diff.event_type == "depthUpdate"
        assert 1 <= len(diff.bids) <= 3
        assert 1 <= len(diff.asks) <= 3
        assert diff.final_update_id == diff.first_update_id + 1

        next_diff = simulator.generate_diff()
        assert next_diff.first_update_id == diff.final_update_id

    def test_diff_prices_near_base(self, simulator):
        for _ in range(50):
            base = simulator.base_price
            diff = simulator.generate_diff()
            for price, qty in diff.bids + diff.asks:
                assert abs(float(price) - base) <= base * 0.011
                assert float(qty) >= 0

    def test_seeded_output_is_reproducible(self):
        a = OrderBookSimulator("ETHUSDT", rng=random.Random(3))
        b = OrderBookSimulator("ETHUSDT", rng=random.Random(3))
        assert a.generate_snapshot(10).bids == b.generate_snapshot(10).bids
        assert a.generate_diff().asks == b.generate_diff().asks

    def test_anchor(self, simulator):
        simulator.anchor(123.0)
        assert simulator.base_price == 123.0
        simulator.anchor(0.0)
        assert simulator.base_price == 123.0

    def test_set_symbol(self, simulator):
        simulator.set_symbol("ethusdt")
        assert simulator.symbol == "ETHUSDT"
        assert abs(simulator.base_price - BASE_PRICES["ETHUSDT"]) <= BASE_PRICES["ETHUSDT"] * 0.01
