"""
Bounded history of processed book states, keyed by timestamp (ms).

Entries are immutable OrderBookState values; the buffer only ever inserts
and evicts, so readers never observe a partially written entry.
"""

from __future__ import annotations

from typing import Iterator, Optional

from ..types import OrderBookState

DEFAULT_HISTORY_SIZE = 100


class HistoryBuffer:
    """
    Size-bounded mapping timestamp -> OrderBookState.

    On overflow the entry with the smallest timestamp is evicted. Writing an
    existing timestamp replaces that entry.
    """

    __slots__ = ('max_size', '_entries')

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self._entries: dict[int, OrderBookState] = {}

    def add(self, timestamp: int, state: OrderBookState) -> None:
        self._entries[timestamp] = state
        while len(self._entries) > self.max_size:
            del self._entries[min(self._entries)]

    def get(self, timestamp: int) -> Optional[OrderBookState]:
        return self._entries.get(timestamp)

    def latest(self) -> Optional[tuple[int, OrderBookState]]:
        """Most recent (timestamp, state) pair, or None when empty."""
        if not self._entries:
            return None
        ts = max(self._entries)
        return ts, self._entries[ts]

    def timestamps(self) -> list[int]:
        return sorted(self._entries)

    def items(self) -> list[tuple[int, OrderBookState]]:
        """Snapshot of the entries, oldest first."""
        return sorted(self._entries.items())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, timestamp: object) -> bool:
        return timestamp in self._entries

    def __iter__(self) -> Iterator[int]:
        return iter(self.timestamps())
