"""
Connection orchestration: live feed first, simulated data as the fallback.

State machine:

    DISCONNECTED -> CONNECTING -> LIVE_CONNECTED | SIMULATED_FALLBACK -> ERROR | DISCONNECTED
                                  LIVE_CONNECTED <-> SIMULATED_FALLBACK

connect() fetches a REST snapshot, then opens the live diff stream and races
its first message against the connect timer. Any live failure (snapshot
failure, timer expiry, stream error at any point, stale stream) degrades to
the simulator, which keeps the book moving. ERROR is only entered after
repeated processing failures; the last good book stays readable.

While simulated, the live source is retried in the background with linear
backoff (reconnect_attempts x reconnect_delay_sec). The simulator keeps
running during an attempt; a fresh snapshot plus a first live diff swap the
book back to live data.

All sources, timers and callbacks run on one event loop, which makes it the
single writer of the book. Every timer and task captures the generation it was
started in; teardown bumps the generation, so anything still in flight from
an older generation becomes a no-op.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from contextlib import aclosing
from typing import AsyncIterator, Callable, Optional, Protocol

import aiohttp

from .config import DEFAULT_CONFIG, FeedConfig
from .datafeed.binance_client import BinanceClient
from .datafeed.history import HistoryBuffer
from .datafeed.orderbook import OrderBookProcessor, book_stats
from .datafeed.simulator import OrderBookSimulator
from .engine.zones import PressureZoneAnalyzer, summarize
from .types import (
    BookStats,
    ConnectionState,
    ConnectionStats,
    DiffRecord,
    OrderBookState,
    PressureZone,
    SnapshotRecord,
    ZoneStatistics,
)

logger = logging.getLogger(__name__)

# Failures of the live source. All of them lead to the simulator, never to ERROR.
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError)

DEMO_MODE_MESSAGE = "Demo mode: using simulated order book data"


class DepthSource(Protocol):
    """Live market data source. BinanceClient is the production implementation."""

    async def fetch_snapshot(self, symbol: str, depth: int) -> SnapshotRecord: ...

    def stream_diffs(self, symbol: str) -> AsyncIterator[DiffRecord]: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


async def _first_diff(stream: AsyncIterator[DiffRecord]) -> DiffRecord:
    # Leaves the stream open on success
    async for diff in stream:
        return diff
    raise ConnectionError("Depth stream ended before its first update")


class ConnectionOrchestrator:
    """
    Owns the order book for one symbol and decides what feeds it.

    Usage:
        orch = ConnectionOrchestrator()
        orch.on_data(lambda book: ...)
        await orch.connect("BTCUSDT", 50)
        ...
        orch.disconnect()

    Thread-safety: NOT thread-safe. All methods must be called from the
    event loop that runs connect().
    """

    def __init__(
        self,
        source: Optional[DepthSource] = None,
        config: FeedConfig = DEFAULT_CONFIG,
        analyzer: Optional[PressureZoneAnalyzer] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config.validate()
        self._source: DepthSource = source if source is not None else BinanceClient(config)
        self._processor = OrderBookProcessor(HistoryBuffer(config.history_size))
        self._analyzer = analyzer or PressureZoneAnalyzer()
        self._rng = rng or random.Random(config.simulator_seed)

        self.symbol = "BTCUSDT"
        self.depth = config.default_depth
        self.status_message: Optional[str] = None
        self.error: Optional[str] = None

        self._state = ConnectionState.DISCONNECTED
        self._book: Optional[OrderBookState] = None
        self._zones: list[PressureZone] = []

        self._generation = 0
        self._settled: Optional[asyncio.Event] = None
        self._connect_timer: Optional[asyncio.TimerHandle] = None
        self._stale_timer: Optional[asyncio.TimerHandle] = None
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None
        self._live_task: Optional[asyncio.Task] = None
        self._sim_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._simulator: Optional[OrderBookSimulator] = None
        self._cancelled_tasks: set[asyncio.Task] = set()

        # Counters
        self._consecutive_errors = 0
        self._reconnect_attempts = 0
        self._total_connections = 0
        self._fallbacks = 0
        self._reconnects = 0
        self._snapshots_applied = 0
        self._diffs_applied = 0
        self._processing_errors = 0
        self._last_update_ms = 0

        self._on_data: Optional[Callable[[OrderBookState], None]] = None
        self._on_error: Optional[Callable[[str], None]] = None
        self._on_status: Optional[Callable[[ConnectionState, Optional[str]], None]] = None

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    def on_data(self, callback: Callable[[OrderBookState], None]) -> None:
        self._on_data = callback

    def on_error(self, callback: Callable[[str], None]) -> None:
        self._on_error = callback

    def on_status(self, callback: Callable[[ConnectionState, Optional[str]], None]) -> None:
        self._on_status = callback

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def book(self) -> Optional[OrderBookState]:
        """Last published book. None only before the first snapshot."""
        return self._book

    @property
    def zones(self) -> list[PressureZone]:
        return list(self._zones)

    @property
    def history(self) -> HistoryBuffer:
        return self._processor.history

    @property
    def is_connected(self) -> bool:
        return self._state in (ConnectionState.LIVE_CONNECTED, ConnectionState.SIMULATED_FALLBACK)

    @property
    def zone_statistics(self) -> ZoneStatistics:
        return summarize(self._zones, self._book)

    @property
    def book_stats(self) -> Optional[BookStats]:
        if self._book is None:
            return None
        return book_stats(self._book, self.symbol, self._last_update_ms)

    @property
    def stats(self) -> ConnectionStats:
        return ConnectionStats(
            state=self._state,
            total_connections=self._total_connections,
            fallbacks=self._fallbacks,
            reconnects=self._reconnects,
            snapshots_applied=self._snapshots_applied,
            diffs_applied=self._diffs_applied,
            processing_errors=self._processing_errors,
            last_update_ms=self._last_update_ms,
        )

    async def connect(self, symbol: Optional[str] = None, depth: Optional[int] = None) -> ConnectionState:
        """
        Run the full connect sequence and return once it settles on
        LIVE_CONNECTED or SIMULATED_FALLBACK (or is torn down meanwhile).
        """
        if symbol is not None and symbol.upper() != self.symbol:
            self._discard_book()
            self.symbol = symbol.upper()
        if depth is not None:
            self.depth = depth

        self._teardown()
        generation = self._generation
        settled = self._settled = asyncio.Event()

        self.error = None
        self.status_message = None
        self._reconnect_attempts = 0
        self._total_connections += 1
        self._set_state(ConnectionState.CONNECTING)

        # 1. One-shot snapshot
        try:
            snapshot = await asyncio.wait_for(
                self._source.fetch_snapshot(self.symbol, self.depth),
                timeout=self.config.snapshot_timeout_sec,
            )
            if generation != self._generation:
                return self._state
            self._apply_snapshot(snapshot)
        except TRANSPORT_ERRORS + (TypeError, KeyError) as exc:
            if generation != self._generation:
                return self._state
            logger.warning("Snapshot for %s unavailable (%r), switching to simulated data", self.symbol, exc)
            self._start_simulated(generation, fresh_snapshot=True)
            return self._state

        # 2. Live stream raced against the connect timer
        loop = asyncio.get_running_loop()
        self._connect_timer = loop.call_later(
            self.config.connect_timeout_sec, self._on_connect_timeout, generation,
        )
        self._live_task = loop.create_task(self._run_live(generation))

        await settled.wait()
        return self._state

    def disconnect(self) -> None:
        """Stop every source and timer. Idempotent; the last book stays readable."""
        if self._state is ConnectionState.DISCONNECTED and not self._has_activity():
            return
        self._teardown()
        self.error = None
        self.status_message = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def set_symbol(self, symbol: str) -> ConnectionState:
        """Switch symbol. Reconnects when a source is active, discarding the old book."""
        symbol = symbol.upper()
        if symbol == self.symbol:
            return self._state

        if self._state is ConnectionState.DISCONNECTED or self._state is ConnectionState.ERROR:
            self._discard_book()
            self.symbol = symbol
            return self._state

        self._teardown()
        self._discard_book()
        return await self.connect(symbol)

    async def close(self) -> None:
        """Disconnect and wait for cancelled tasks to unwind."""
        self.disconnect()
        pending, self._cancelled_tasks = self._cancelled_tasks, set()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def _run_live(
        self,
        generation: int,
        stream: Optional[AsyncIterator[DiffRecord]] = None,
        first: Optional[DiffRecord] = None,
    ) -> None:
        """Consume the live stream. A reconnect hands over an open stream and its first diff."""
        try:
            if stream is None:
                stream = self._source.stream_diffs(self.symbol)
            async with aclosing(stream):
                if first is not None and not self._on_live_diff(first, generation):
                    return
                async for diff in stream:
                    if not self._on_live_diff(diff, generation):
                        return
            raise ConnectionError(f"Depth stream for {self.symbol} ended")
        except asyncio.CancelledError:
            raise
        except TRANSPORT_ERRORS as exc:
            if generation != self._generation:
                return
            logger.warning("Live feed for %s failed (%r), switching to simulated data", self.symbol, exc)
            self._fall_back(generation)
        except Exception as exc:
            if generation != self._generation:
                return
            logger.error("Live feed for %s crashed, switching to simulated data", self.symbol, exc_info=exc)
            self._fall_back(generation)

    def _on_live_diff(self, diff: DiffRecord, generation: int) -> bool:
        """Apply one live diff. Returns False once this generation is gone."""
        if generation != self._generation:
            return False
        if self._state is ConnectionState.CONNECTING:
            self._cancel_timer('_connect_timer')
            self._go_live()
        self._arm_stale_timer(generation)
        self._apply_diff(diff, generation)
        # Repeated processing failures tear down from inside the live task
        return generation == self._generation

    def _go_live(self) -> None:
        self.status_message = "Live data"
        self._set_state(ConnectionState.LIVE_CONNECTED, self.status_message)
        self._settle()

    async def _run_simulator(self, generation: int) -> None:
        interval = self.config.simulator_interval_sec
        while generation == self._generation:
            await asyncio.sleep(interval)
            if generation != self._generation or self._simulator is None:
                return
            self._apply_diff(self._simulator.generate_diff(), generation)

    def _start_simulated(self, generation: int, fresh_snapshot: bool) -> None:
        simulator = OrderBookSimulator(self.symbol, rng=self._rng)
        if fresh_snapshot or self._book is None or self._book.is_empty:
            self._apply_snapshot(simulator.generate_snapshot(self.depth))
        else:
            # Keep the live book and continue from where it stood
            simulator.anchor(self._book.mid_price)

        self._simulator = simulator
        self._fallbacks += 1
        self._sim_task = asyncio.get_running_loop().create_task(self._run_simulator(generation))

        self.status_message = DEMO_MODE_MESSAGE
        self._set_state(ConnectionState.SIMULATED_FALLBACK, DEMO_MODE_MESSAGE)
        self._settle()
        self._schedule_reconnect(generation)

    def _fall_back(self, generation: int) -> None:
        if generation != self._generation:
            return
        if self._state not in (ConnectionState.CONNECTING, ConnectionState.LIVE_CONNECTED):
            return
        self._cancel_timer('_connect_timer')
        self._cancel_timer('_stale_timer')
        self._cancel_task('_live_task')
        self._start_simulated(generation, fresh_snapshot=False)

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _schedule_reconnect(self, generation: int) -> None:
        limit = self.config.reconnect_attempts
        if self._reconnect_attempts >= limit:
            if limit:
                message = f"Failed to reconnect to live data for {self.symbol} after {limit} attempts"
                logger.warning(message)
                self._notify_error(message)
            return
        delay = self.config.reconnect_delay_sec * (self._reconnect_attempts + 1)
        self._reconnect_timer = asyncio.get_running_loop().call_later(
            delay, self._on_reconnect_timer, generation,
        )

    def _on_reconnect_timer(self, generation: int) -> None:
        if generation != self._generation or self._state is not ConnectionState.SIMULATED_FALLBACK:
            return
        self._reconnect_timer = None
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect(generation))

    async def _reconnect(self, generation: int) -> None:
        """One live attempt: fresh snapshot, then the first diff within the connect timeout."""
        self._reconnect_attempts += 1
        logger.info(
            "Reconnecting %s to live data (attempt %d/%d)",
            self.symbol, self._reconnect_attempts, self.config.reconnect_attempts,
        )
        stream: Optional[AsyncIterator[DiffRecord]] = None
        try:
            snapshot = await asyncio.wait_for(
                self._source.fetch_snapshot(self.symbol, self.depth),
                timeout=self.config.snapshot_timeout_sec,
            )
            stream = self._source.stream_diffs(self.symbol)
            first = await asyncio.wait_for(_first_diff(stream), timeout=self.config.connect_timeout_sec)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if stream is not None:
                await stream.aclose()
            if generation != self._generation:
                return
            logger.warning("Reconnect attempt for %s failed (%r)", self.symbol, exc)
            self._schedule_reconnect(generation)
            return

        if generation != self._generation or self._state is not ConnectionState.SIMULATED_FALLBACK:
            await stream.aclose()
            return

        try:
            self._apply_snapshot(snapshot)
        except Exception as exc:
            # Nothing was committed; the simulator keeps running
            logger.warning("Reconnect snapshot for %s rejected (%r)", self.symbol, exc)
            await stream.aclose()
            if generation == self._generation:
                self._schedule_reconnect(generation)
            return

        self._cancel_task('_sim_task')
        self._simulator = None
        self._reconnect_attempts = 0
        self._reconnects += 1
        logger.info("%s back on live data", self.symbol)
        self._go_live()
        self._live_task = asyncio.get_running_loop().create_task(
            self._run_live(generation, stream, first),
        )

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _on_connect_timeout(self, generation: int) -> None:
        # Stale timers from an earlier generation, or one that lost the race
        # against the first live message, do nothing.
        if generation != self._generation or self._state is not ConnectionState.CONNECTING:
            return
        self._connect_timer = None
        logger.warning(
            "No live data for %s within %.1fs, switching to simulated data",
            self.symbol, self.config.connect_timeout_sec,
        )
        self._fall_back(generation)

    def _arm_stale_timer(self, generation: int) -> None:
        if self.config.stale_feed_sec is None:
            return
        self._cancel_timer('_stale_timer')
        self._stale_timer = asyncio.get_running_loop().call_later(
            self.config.stale_feed_sec, self._on_stale_feed, generation,
        )

    def _on_stale_feed(self, generation: int) -> None:
        if generation != self._generation or self._state is not ConnectionState.LIVE_CONNECTED:
            return
        self._stale_timer = None
        logger.warning("Live feed for %s silent for %.1fs", self.symbol, self.config.stale_feed_sec)
        self._fall_back(generation)

    def _cancel_timer(self, attr: str) -> None:
        timer = getattr(self, attr)
        if timer is not None:
            timer.cancel()
            setattr(self, attr, None)

    def _cancel_task(self, attr: str) -> None:
        task = getattr(self, attr)
        setattr(self, attr, None)
        if task is None or task.done():
            return
        # A task tearing itself down just returns after this call
        if task is not asyncio.current_task():
            task.cancel()
            self._cancelled_tasks.add(task)
            task.add_done_callback(self._cancelled_tasks.discard)

    # ------------------------------------------------------------------
    # Book updates
    # ------------------------------------------------------------------

    def _apply_snapshot(self, snapshot: SnapshotRecord) -> None:
        book = self._processor.apply_snapshot(snapshot)
        zones = self._analyzer.analyze(book) if self.config.analyze_zones else []
        self._snapshots_applied += 1
        self._commit(book, zones)

    def _apply_diff(self, diff: DiffRecord, generation: int) -> None:
        if generation != self._generation or self._book is None:
            return
        try:
            book = self._processor.apply_diff(self._book, diff)
            zones = self._analyzer.analyze(book) if self.config.analyze_zones else []
        except Exception as exc:
            self._on_processing_error(exc)
            return
        self._consecutive_errors = 0
        self._diffs_applied += 1
        self._commit(book, zones)

    def _commit(self, book: OrderBookState, zones: list[PressureZone]) -> None:
        # Whole-value swap: readers see the old book or the new one, nothing in between
        self._book = book
        self._zones = zones
        self._last_update_ms = _now_ms()
        if self._on_data is not None:
            try:
                self._on_data(book)
            except Exception:
                logger.exception("on_data callback failed")

    def _on_processing_error(self, exc: Exception) -> None:
        self._processing_errors += 1
        self._consecutive_errors += 1
        message = f"Failed to process order book update: {exc}"
        logger.error(message, exc_info=exc)

        self.error = message
        self._notify_error(message)

        if self._consecutive_errors >= self.config.max_processing_errors:
            self._teardown()
            self._set_state(ConnectionState.ERROR, message)

    def _discard_book(self) -> None:
        self._book = None
        self._zones = []
        self._processor.clear_history()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _has_activity(self) -> bool:
        return any((
            self._connect_timer, self._stale_timer, self._reconnect_timer,
            self._live_task, self._sim_task, self._reconnect_task,
        ))

    def _teardown(self) -> None:
        """Invalidate the current generation and release every source."""
        self._generation += 1
        self._cancel_timer('_connect_timer')
        self._cancel_timer('_stale_timer')
        self._cancel_timer('_reconnect_timer')
        self._cancel_task('_live_task')
        self._cancel_task('_sim_task')
        self._cancel_task('_reconnect_task')
        self._simulator = None
        self._consecutive_errors = 0
        self._settle()

    def _settle(self) -> None:
        if self._settled is not None:
            self._settled.set()
            self._settled = None

    def _set_state(self, state: ConnectionState, message: Optional[str] = None) -> None:
        if state is not self._state:
            logger.info("%s: %s -> %s", self.symbol, self._state.value, state.value)
        self._state = state
        if self._on_status is not None:
            try:
                self._on_status(state, message)
            except Exception:
                logger.exception("on_status callback failed")

    def _notify_error(self, message: str) -> None:
        if self._on_error is not None:
            try:
                self._on_error(message)
            except Exception:
                logger.exception("on_error callback failed")
