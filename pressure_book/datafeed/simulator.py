"""
Synthetic order book generator used when the live feed is unavailable.

Produces records in exactly the shape the live client hands over
(SnapshotRecord / DiffRecord with text levels), so everything downstream of
the merge engine is unaware of which source is active.
"""

from __future__ import annotations

import random
import time
from typing import NamedTuple, Optional

from ..types import DiffRecord, RawLevel, Side, SnapshotRecord

BASE_PRICES = {
    'BTCUSDT': 65000.0,
    'ETHUSDT': 3500.0,
    'ADAUSDT': 0.45,
}
DEFAULT_BASE_PRICE = 100.0

# Snapshot grid step, relative to base price
PRICE_STEP = 0.001
# Diffs touch levels up to this far from base
DIFF_RANGE = 0.01
DELETE_PROBABILITY = 0.1
# Max base price move per diff, relative
DRIFT = 0.0001


class _Band(NamedTuple):
    """Price band where the generator piles up extra size."""
    side: Side
    min_price: float
    max_price: float
    intensity: float  # 0.2 - 1.0


def _fmt(value: float) -> str:
    return f"{value:.8f}"


class OrderBookSimulator:
    """
    Random-walk book generator for a single symbol.

    Pass a seeded random.Random for reproducible output.
    """

    def __init__(self, symbol: str = 'BTCUSDT', rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()
        self.symbol = symbol.upper()
        self.base_price = BASE_PRICES.get(self.symbol, DEFAULT_BASE_PRICE)
        self.update_id = 1000
        self._bands: list[_Band] = []

    def set_symbol(self, symbol: str) -> None:
        """Switch symbol; base price is jittered around the symbol's default."""
        self.symbol = symbol.upper()
        base = BASE_PRICES.get(self.symbol, DEFAULT_BASE_PRICE)
        self.base_price = base + (self._rng.random() - 0.5) * base * 0.015

    def anchor(self, price: float) -> None:
        """Re-centre the generator on an observed price (e.g. the live mid)."""
        if price > 0:
            self.base_price = price

    def generate_snapshot(self, depth: int = 50) -> SnapshotRecord:
        """Full book with `depth` levels per side on a 0.1% grid."""
        self._generate_bands()

        bids: list[RawLevel] = []
        asks: list[RawLevel] = []
        step = self.base_price * PRICE_STEP

        for i in range(depth):
            offset = (i + 1) * step

            bid_price = self.base_price - offset
            bid_qty = self._amplify(bid_price, self._quantity(), Side.BID)
            bids.append([_fmt(bid_price), _fmt(bid_qty)])

            ask_price = self.base_price + offset
            ask_qty = self._amplify(ask_price, self._quantity(), Side.ASK)
            asks.append([_fmt(ask_price), _fmt(ask_qty)])

        snapshot = SnapshotRecord(
            bids=bids,
            asks=asks,
            last_update_id=self.update_id,
            symbol=self.symbol,
            timestamp=int(time.time() * 1000),
        )
        self.update_id += 1
        return snapshot

    def generate_diff(self) -> DiffRecord:
        """1-3 level changes per side near the base price, then a small drift."""
        bids = [self._diff_level(-1) for _ in range(self._rng.randint(1, 3))]
        asks = [self._diff_level(+1) for _ in range(self._rng.randint(1, 3))]

        self.base_price += (self._rng.random() - 0.5) * self.base_price * DRIFT

        first_id = self.update_id
        self.update_id += 1
        return DiffRecord(
            event_type='depthUpdate',
            event_time=int(time.time() * 1000),
            symbol=self.symbol,
            first_update_id=first_id,
            final_update_id=self.update_id,
            bids=bids,
            asks=asks,
        )

    def _diff_level(self, direction: int) -> RawLevel:
        price = self.base_price + direction * self._rng.random() * self.base_price * DIFF_RANGE
        qty = 0.0 if self._rng.random() < DELETE_PROBABILITY else self._quantity()
        return [_fmt(price), _fmt(qty)]

    def _quantity(self) -> float:
        """Mostly small orders with the occasional large one."""
        r = self._rng.random()
        if r < 0.1:
            return self._rng.random() * 50 + 10
        if r < 0.3:
            return self._rng.random() * 10 + 1
        return self._rng.random() + 0.1

    def _generate_bands(self) -> None:
        self._bands = []
        for _ in range(self._rng.randint(2, 4)):
            side = Side.BID if self._rng.random() < 0.5 else Side.ASK
            offset = abs((self._rng.random() - 0.5) * self.base_price * 0.02) + self.base_price * 0.005
            center = self.base_price - offset if side is Side.BID else self.base_price + offset
            half_width = self.base_price * 0.002
            self._bands.append(_Band(
                side=side,
                min_price=center - half_width,
                max_price=center + half_width,
                intensity=self._rng.random() * 0.8 + 0.2,
            ))

    def _amplify(self, price: float, qty: float, side: Side) -> float:
        for band in self._bands:
            if band.side is side and band.min_price <= price <= band.max_price:
                return qty * (1 + band.intensity * 3)
        return qty
