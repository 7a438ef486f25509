"""
Binance spot depth client.

Handles:
1. REST snapshot for the initial order book state
2. Raw `<symbol>@depth` WebSocket stream for incremental updates

The client only fetches and parses. It does not keep a book and does not
retry: every failure is raised to the caller, which decides whether to fall
back to simulated data.

Performance notes:
- Uses orjson for fast JSON parsing
- Minimal logging in hot path
- All I/O is non-blocking (pure asyncio)
"""

from __future__ import annotations

import logging
import time
from typing import AsyncIterator, Optional

import aiohttp
import orjson

from ..config import DEFAULT_CONFIG, FeedConfig
from ..types import DiffRecord, SnapshotRecord

logger = logging.getLogger(__name__)


def json_loads(data: bytes | str) -> dict:
    return orjson.loads(data)


def snapshot_from_rest(payload: dict, symbol: str, timestamp: Optional[int] = None) -> SnapshotRecord:
    """
    Convert a REST depth payload into a SnapshotRecord.

    Expected format: {lastUpdateId, bids: [[price, qty], ...], asks: [[price, qty], ...]}
    Raises ValueError if the payload is not shaped like a depth snapshot.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Snapshot payload must be an object, got {type(payload).__name__}")
    try:
        bids = payload['bids']
        asks = payload['asks']
        last_update_id = int(payload['lastUpdateId'])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Malformed depth snapshot for {symbol}: {exc!r}") from exc
    if not isinstance(bids, list) or not isinstance(asks, list):
        raise ValueError(f"Malformed depth snapshot for {symbol}: bids/asks must be lists")

    return SnapshotRecord(
        bids=bids,
        asks=asks,
        last_update_id=last_update_id,
        symbol=symbol.upper(),
        timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
    )


def parse_depth_message(raw: bytes | str) -> Optional[DiffRecord]:
    """
    Parse one WebSocket message into a DiffRecord.

    Accepts the raw stream format {e, E, s, U, u, b, a} and the combined
    stream wrapper {stream, data: {...}}. Returns None for anything that is
    not a depthUpdate event. Raises ValueError on invalid JSON or a
    non-numeric event time or update id.

    HOT PATH - called for every message.
    """
    data = json_loads(raw)
    if not isinstance(data, dict):
        return None

    # Combined stream format: {stream: "...", data: {...}}
    if 'stream' in data and isinstance(data.get('data'), dict):
        data = data['data']

    if data.get('e') != 'depthUpdate':
        return None

    try:
        return DiffRecord(
            event_type=data['e'],
            event_time=int(data.get('E', 0)),
            symbol=str(data.get('s', '')),
            first_update_id=int(data.get('U', 0)),
            final_update_id=int(data.get('u', 0)),
            bids=data.get('b') or [],
            asks=data.get('a') or [],
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Malformed depthUpdate header: {exc!r}") from exc


class BinanceClient:
    """
    Async Binance spot client for depth snapshots + depth diffs.

    Usage:
        client = BinanceClient()
        snapshot = await client.fetch_snapshot("BTCUSDT", 50)
        async for diff in client.stream_diffs("BTCUSDT"):
            ...
    """

    def __init__(self, config: FeedConfig = DEFAULT_CONFIG) -> None:
        self.rest_base = config.rest_base
        self.ws_base = config.ws_base
        self.snapshot_timeout_sec = config.snapshot_timeout_sec

    def _build_snapshot_url(self, symbol: str, depth: int) -> str:
        return f"{self.rest_base}/api/v3/depth?symbol={symbol.upper()}&limit={depth}"

    def _build_ws_url(self, symbol: str) -> str:
        """Raw depth stream URL. No interval suffix = fastest update speed."""
        return f"{self.ws_base}/ws/{symbol.lower()}@depth"

    async def fetch_snapshot(self, symbol: str, depth: int) -> SnapshotRecord:
        """Fetch the order book snapshot via REST."""
        url = self._build_snapshot_url(symbol, depth)
        timeout = aiohttp.ClientTimeout(total=self.snapshot_timeout_sec)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as resp:
                resp.raise_for_status()
                data = await resp.read()
        return snapshot_from_rest(json_loads(data), symbol)

    async def stream_diffs(self, symbol: str) -> AsyncIterator[DiffRecord]:
        """
        Yield depth diffs until the stream fails.

        Raises ConnectionError when the socket reports an error or closes.
        Cancelling the consumer closes the socket.
        """
        ws_url = self._build_ws_url(symbol)
        logger.info("Opening depth stream %s", ws_url)

        async with aiohttp.ClientSession() as session:
            async with session.ws_connect(ws_url, heartbeat=30.0) as ws:
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        diff = parse_depth_message(msg.data)
                        if diff is not None:
                            yield diff
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise ConnectionError(f"Depth stream error for {symbol}: {ws.exception()!r}")

        raise ConnectionError(f"Depth stream for {symbol} closed")
