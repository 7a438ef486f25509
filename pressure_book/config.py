"""Runtime configuration for the feed orchestrator.

One frozen dataclass, built from defaults and overridden by CLI flags.
Values are validated up front so a bad timeout fails at startup rather than
inside the event loop.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Optional

# Binance spot endpoints
REST_BASE = "https://api.binance.com"
WS_BASE = "wss://stream.binance.com:9443"


@dataclass(frozen=True)
class FeedConfig:
    """Connection, fallback and analysis settings."""

    rest_base: str = REST_BASE
    ws_base: str = WS_BASE

    connect_timeout_sec: float = 5.0
    """Window for the live subscription to deliver its first message."""

    snapshot_timeout_sec: float = 10.0
    simulator_interval_sec: float = 0.5

    stale_feed_sec: Optional[float] = 10.0
    """Live feed silence that counts as a failure. None disables the watchdog."""

    reconnect_attempts: int = 5
    """Live re-subscribe attempts made from simulated fallback. 0 stays simulated."""

    reconnect_delay_sec: float = 1.0
    """Attempt n starts n * reconnect_delay_sec after the previous one ends."""

    history_size: int = 100
    max_processing_errors: int = 3
    analyze_zones: bool = True
    default_depth: int = 50

    simulator_seed: Optional[int] = None

    def validate(self) -> "FeedConfig":
        for name in ("connect_timeout_sec", "snapshot_timeout_sec", "simulator_interval_sec", "reconnect_delay_sec"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")
        if self.stale_feed_sec is not None and self.stale_feed_sec <= 0:
            raise ValueError(f"stale_feed_sec must be > 0 or None, got {self.stale_feed_sec}")
        for name in ("history_size", "max_processing_errors", "default_depth"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.reconnect_attempts < 0:
            raise ValueError(f"reconnect_attempts must be >= 0, got {self.reconnect_attempts}")
        return self

    def replace(self, **changes) -> "FeedConfig":
        return dataclasses.replace(self, **changes).validate()


DEFAULT_CONFIG = FeedConfig()
