"""
Pressure zone analytics.

Called after every snapshot/diff when zone analysis is enabled, so the work
is bounded by book depth (~100 levels per side).

Two independent detectors:
1. Clustering per side: nearby resting levels (within 1% of price) are
   grouped; groups holding a meaningful share of the side become
   support (bids) or resistance (asks) zones
2. Volume spikes across both sides: any single level larger than 2.5x the
   average level size becomes an accumulation (bid) or distribution (ask) zone

Zones are recomputed from scratch on each call. Nothing is remembered
between calls.
"""

from __future__ import annotations

import time
from typing import Optional, Sequence

import numpy as np

from ..types import OrderBookState, PressureZone, PriceLevel, Side, ZoneKind, ZoneStatistics

# Relative distance at which a level joins an existing cluster
CLUSTER_PRICE_RANGE = 0.01
# Clusters with strength at or below this are discarded
MIN_CLUSTER_STRENGTH = 0.1
# Half-width of a cluster zone band, relative to its centre
CLUSTER_BAND = 0.001

SPIKE_MULTIPLIER = 2.5
SPIKE_BAND = 0.0005

# Zones above this intensity are reported as critical levels
CRITICAL_INTENSITY = 0.7

_CLUSTER_KINDS = {Side.BID: ZoneKind.SUPPORT, Side.ASK: ZoneKind.RESISTANCE}
_SPIKE_KINDS = {Side.BID: ZoneKind.ACCUMULATION, Side.ASK: ZoneKind.DISTRIBUTION}


class _Cluster:
    __slots__ = ('price', 'strength', 'volume', 'order_count')

    def __init__(self, price: float, strength: float, volume: float) -> None:
        self.price = price
        self.strength = strength
        self.volume = volume
        self.order_count = 1


def find_clusters(levels: Sequence[PriceLevel]) -> list[_Cluster]:
    """
    Group levels of one side into price clusters.

    Levels are visited in stored order and join the first cluster whose
    price is within CLUSTER_PRICE_RANGE of theirs. The cluster price is moved
    halfway towards each joining level: (price + new) / 2, not a
    volume-weighted mean. Strength is cluster volume over the number of
    levels on the side.
    """
    clusters: list[_Cluster] = []
    total_orders = len(levels)

    for level in levels:
        price = level.price
        existing = next(
            (c for c in clusters if abs(c.price - price) / price < CLUSTER_PRICE_RANGE),
            None,
        )
        if existing is not None:
            existing.volume += level.quantity
            existing.order_count += 1
            existing.strength = existing.volume / total_orders
            existing.price = (existing.price + price) / 2
        else:
            clusters.append(_Cluster(price, level.quantity / total_orders, level.quantity))

    return [c for c in clusters if c.strength > MIN_CLUSTER_STRENGTH]


class PressureZoneAnalyzer:
    """
    Derives PressureZones from an OrderBookState.

    Stateless: the analyzer never keeps a reference to the book it was given.
    """

    def __init__(self, clock_ms=None) -> None:
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    def analyze(self, state: OrderBookState) -> list[PressureZone]:
        """Return cluster and spike zones sorted by strength, strongest first."""
        now_ms = self._clock_ms()

        zones = self._cluster_zones(state.bids, Side.BID, now_ms)
        zones.extend(self._cluster_zones(state.asks, Side.ASK, now_ms))
        zones.extend(self._spike_zones(state, now_ms))

        zones.sort(key=lambda z: z.strength, reverse=True)
        return zones

    def _cluster_zones(self, levels: Sequence[PriceLevel], side: Side, now_ms: int) -> list[PressureZone]:
        kind = _CLUSTER_KINDS[side]
        zones = []
        for index, cluster in enumerate(find_clusters(levels)):
            center = cluster.price
            zones.append(PressureZone(
                id=f"{kind.value}_{center}_{now_ms}_{index}",
                side=side,
                kind=kind,
                center_price=center,
                min_price=center - center * CLUSTER_BAND,
                max_price=center + center * CLUSTER_BAND,
                strength=cluster.strength,
                intensity=min(cluster.strength, 1.0),
                volume=cluster.volume,
                order_count=cluster.order_count,
                average_quantity=cluster.volume / cluster.order_count,
                timestamp=now_ms,
            ))
        return zones

    def _spike_zones(self, state: OrderBookState, now_ms: int) -> list[PressureZone]:
        level_count = len(state.bids) + len(state.asks)
        if level_count == 0:
            return []

        quantities = np.fromiter(
            (level.quantity for side in (state.bids, state.asks) for level in side),
            dtype=np.float64,
            count=level_count,
        )
        threshold = float(quantities.sum()) / level_count * SPIKE_MULTIPLIER

        spikes = []
        for side, levels in ((Side.BID, state.bids), (Side.ASK, state.asks)):
            kind = _SPIKE_KINDS[side]
            for index, level in enumerate(levels):
                if level.quantity <= threshold:
                    continue
                price = level.price
                spikes.append(PressureZone(
                    id=f"spike_{side.value}_{price}_{now_ms}_{index}",
                    side=side,
                    kind=kind,
                    center_price=price,
                    min_price=price - price * SPIKE_BAND,
                    max_price=price + price * SPIKE_BAND,
                    strength=min(level.quantity / threshold, 1.0),
                    intensity=min(level.quantity / (threshold * 2), 1.0),
                    volume=level.quantity,
                    order_count=1,
                    average_quantity=level.quantity,
                    timestamp=level.timestamp,
                ))
        return spikes


def summarize(zones: Sequence[PressureZone], state: Optional[OrderBookState] = None) -> ZoneStatistics:
    """
    Aggregate a zone sequence into headline statistics.

    Volume figures come from `state` when given (all resting levels), else
    they are zero.
    """
    intensities = np.array([z.intensity for z in zones], dtype=np.float64)
    average_intensity = float(intensities.mean()) if zones else 0.0

    strongest: Optional[PressureZone] = None
    for zone in zones:
        if strongest is None or zone.intensity > strongest.intensity:
            strongest = zone

    clusters = [z for z in zones if z.kind in (ZoneKind.SUPPORT, ZoneKind.RESISTANCE)]
    cluster_sizes = [z.order_count for z in clusters]

    total_volume = 0.0
    average_volume = 0.0
    if state is not None and not state.is_empty:
        quantities = np.array(
            [level.quantity for side in (state.bids, state.asks) for level in side],
            dtype=np.float64,
        )
        total_volume = float(quantities.sum())
        average_volume = total_volume / len(quantities)

    return ZoneStatistics(
        total_zones=len(zones),
        support_zones=sum(1 for z in zones if z.side is Side.BID),
        resistance_zones=sum(1 for z in zones if z.side is Side.ASK),
        average_intensity=average_intensity,
        strongest_zone=strongest,
        critical_levels=sorted(z.center_price for z in zones if z.intensity > CRITICAL_INTENSITY),
        total_volume=total_volume,
        average_volume=average_volume,
        volume_spikes=sum(1 for z in zones if z.kind in (ZoneKind.ACCUMULATION, ZoneKind.DISTRIBUTION)),
        total_clusters=len(clusters),
        average_cluster_size=sum(cluster_sizes) / len(cluster_sizes) if cluster_sizes else 0.0,
        largest_cluster=max(cluster_sizes, default=0),
    )
