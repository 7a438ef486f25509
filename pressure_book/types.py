"""
Data types for pressure_book.

Performance notes:
- Using NamedTuple for immutable, memory-efficient structures
- OrderBookState holds tuples, so a published state can be shared freely
  between the merge engine, the analyzer and the history buffer
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, Optional, Sequence

# Raw [price_text, qty_text] pair as delivered by the exchange
RawLevel = Sequence[object]


class PriceLevel(NamedTuple):
    """Single resting price level on one side of the book."""
    price: float
    quantity: float
    timestamp: int  # ms


class PriceRange(NamedTuple):
    min: float
    max: float


EMPTY_PRICE_RANGE = PriceRange(0.0, 1.0)
EMPTY_MAX_QUANTITY = 1.0


class OrderBookState(NamedTuple):
    """
    Immutable view of both sides of the book.

    bids: price strictly descending (best bid first)
    asks: price strictly ascending (best ask first)
    """
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]
    max_quantity: float
    price_range: PriceRange

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks

    @property
    def best_bid(self) -> float:
        """Best bid price. Returns 0.0 if no bids."""
        return self.bids[0].price if self.bids else 0.0

    @property
    def best_ask(self) -> float:
        """Best ask price. Returns 0.0 if no asks."""
        return self.asks[0].price if self.asks else 0.0

    @property
    def mid_price(self) -> float:
        """Mid price. Returns 0.0 if no book."""
        bb, ba = self.best_bid, self.best_ask
        if bb > 0 and ba > 0:
            return (bb + ba) / 2.0
        return bb or ba

    @property
    def spread(self) -> float:
        bb, ba = self.best_bid, self.best_ask
        if bb > 0 and ba > 0:
            return ba - bb
        return 0.0

    @property
    def total_volume(self) -> float:
        return sum(level.quantity for level in self.bids) + sum(level.quantity for level in self.asks)


EMPTY_BOOK = OrderBookState((), (), EMPTY_MAX_QUANTITY, EMPTY_PRICE_RANGE)


class SnapshotRecord(NamedTuple):
    """Full replacement view of both sides, levels still in raw text form."""
    bids: list[RawLevel]
    asks: list[RawLevel]
    last_update_id: int
    symbol: str
    timestamp: int  # ms


class DiffRecord(NamedTuple):
    """Incremental depth update, levels still in raw text form."""
    event_type: str
    event_time: int  # ms
    symbol: str
    first_update_id: int
    final_update_id: int
    bids: list[RawLevel]
    asks: list[RawLevel]


class Side(str, Enum):
    BID = "bid"
    ASK = "ask"


class ZoneKind(str, Enum):
    SUPPORT = "support"
    RESISTANCE = "resistance"
    ACCUMULATION = "accumulation"
    DISTRIBUTION = "distribution"


class PressureZone(NamedTuple):
    """
    Liquidity zone derived from a single OrderBookState.

    Zones are recomputed from scratch on every analysis and carry no identity
    beyond that call.
    """
    id: str
    side: Side
    kind: ZoneKind
    center_price: float
    min_price: float
    max_price: float
    strength: float
    intensity: float          # strength clamped to [0, 1]
    volume: float
    order_count: int
    average_quantity: float
    timestamp: int            # ms
    is_active: bool = True


class ZoneStatistics(NamedTuple):
    """Summary aggregation over one zone sequence."""
    total_zones: int
    support_zones: int
    resistance_zones: int
    average_intensity: float
    strongest_zone: Optional[PressureZone]
    critical_levels: list[float]
    total_volume: float
    average_volume: float
    volume_spikes: int
    total_clusters: int
    average_cluster_size: float
    largest_cluster: int


class BookStats(NamedTuple):
    """Headline numbers for the UI header."""
    symbol: str
    bid_count: int
    ask_count: int
    spread: float
    mid_price: float
    total_volume: float
    last_update: int  # ms


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    LIVE_CONNECTED = "live_connected"
    SIMULATED_FALLBACK = "simulated_fallback"
    ERROR = "error"


class ConnectionStats(NamedTuple):
    state: ConnectionState
    total_connections: int
    fallbacks: int
    reconnects: int
    snapshots_applied: int
    diffs_applied: int
    processing_errors: int
    last_update_ms: int
