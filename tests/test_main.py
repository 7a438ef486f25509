"""Tests for configuration and the CLI entry point."""
from __future__ import annotations

import aiohttp
import pytest

from pressure_book import main as cli_main
from pressure_book import orchestrator
from pressure_book.config import DEFAULT_CONFIG, FeedConfig


class TestFeedConfig:

    def test_defaults(self):
        assert DEFAULT_CONFIG.connect_timeout_sec == 5.0
        assert DEFAULT_CONFIG.history_size == 100
        assert DEFAULT_CONFIG.stale_feed_sec == 10.0
        assert DEFAULT_CONFIG.reconnect_attempts == 5
        assert DEFAULT_CONFIG.reconnect_delay_sec == 1.0
        assert DEFAULT_CONFIG.validate() is DEFAULT_CONFIG

    def test_replace_validates(self):
        assert DEFAULT_CONFIG.replace(connect_timeout_sec=1.5).connect_timeout_sec == 1.5
        assert DEFAULT_CONFIG.replace(stale_feed_sec=None).stale_feed_sec is None
        with pytest.raises(ValueError):
            DEFAULT_CONFIG.replace(history_size=0)
        with pytest.raises(ValueError):
            DEFAULT_CONFIG.replace(stale_feed_sec=-1)

    @pytest.mark.parametrize("field", ["connect_timeout_sec", "snapshot_timeout_sec", "simulator_interval_sec", "reconnect_delay_sec"])
    def test_non_positive_durations_rejected(self, field):
        with pytest.raises(ValueError):
            FeedConfig(**{field: 0}).validate()


class TestCli:

    @pytest.mark.parametrize("qty, text", [
        (2500.0, "2.5K"),
        (12.34, "12.3"),
        (0.5, "0.5000"),
        (0.0, "0"),
    ])
    def test_format_qty(self, qty, text):
        assert cli_main.format_qty(qty) == text

    @pytest.mark.asyncio
    async def test_runs_in_demo_mode_when_offline(self, monkeypatch, capsys):
        class OfflineClient:
            def __init__(self, config):
                pass

            async def fetch_snapshot(self, symbol, depth):
                raise aiohttp.ClientConnectionError("offline")

            async def stream_diffs(self, symbol):
                raise AssertionError("stream must not open without a snapshot")
                yield

        monkeypatch.setattr(orchestrator, "BinanceClient", OfflineClient)
        config = FeedConfig(simulator_interval_sec=0.01, simulator_seed=1)

        await cli_main.main("BTCUSDT", 10, config, duration=0.05, print_interval=0.0)

        out = capsys.readouterr().out
        assert "Starting pressure_book for BTCUSDT" in out
        assert "simulated_fallback" in out
        assert "Demo mode" in out
        assert "fallbacks: 1" in out
        assert "reconnects: 0" in out
