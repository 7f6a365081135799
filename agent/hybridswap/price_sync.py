"""OHLCV price feed polling with incremental series updates."""

import asyncio
import bisect
import enum
import logging
import time
from typing import Callable

import httpx

from .errors import PriceFeedError
from .types import Candle

logger = logging.getLogger(__name__)

# timeframe -> (feed bucket, aggregate)
TIMEFRAMES = {
    "5m": ("minute", 5),
    "15m": ("minute", 15),
    "1h": ("hour", 1),
    "4h": ("hour", 4),
    "1d": ("day", 1),
}

BUCKET_SECONDS = {"minute": 60, "hour": 3600, "day": 86400}


def bucket_seconds(timeframe: str) -> int:
    bucket, aggregate = TIMEFRAMES[timeframe]
    return BUCKET_SECONDS[bucket] * aggregate


class PriceFeedClient:
    """GeckoTerminal-style OHLCV client."""

    timeout_s = 15

    def __init__(self, base_url: str, network: str, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.network = network
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s, headers={"Accept": "application/json"})
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch_ohlcv(
        self,
        pool_address: str,
        timeframe: str = "1h",
        limit: int = 300,
        before_timestamp: int | None = None,
    ) -> list[Candle]:
        """Fetch one page of candles, returned oldest first."""
        if timeframe not in TIMEFRAMES:
            raise ValueError(f"Unsupported timeframe: {timeframe}")
        bucket, aggregate = TIMEFRAMES[timeframe]

        params = {"aggregate": aggregate, "limit": limit, "currency": "usd"}
        if before_timestamp is not None:
            params["before_timestamp"] = before_timestamp

        client = await self._get_client()
        url = f"{self.base_url}/networks/{self.network}/pools/{pool_address}/ohlcv/{bucket}"
        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PriceFeedError(f"Failed to fetch chart data: {e}") from e

        rows = ((data or {}).get("data") or {}).get("attributes", {}).get("ohlcv_list") or []
        candles = [
            Candle(
                time=int(row[0]),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]) if len(row) > 5 else 0.0,
            )
            for row in rows
        ]
        # Feed is newest first
        candles.reverse()
        return candles

    async def fetch_history(self, pool_address: str, timeframe: str = "1h", pages: int = 2, limit: int = 300) -> list[Candle]:
        """Walk back `pages` pages and return the merged series, oldest first."""
        merged: list[Candle] = []
        before = None
        for _ in range(pages):
            page = await self.fetch_ohlcv(pool_address, timeframe, limit, before)
            if not page:
                break
            merged = page + merged
            before = page[0].time
            if len(page) < limit:
                break
        return merged


class PriceSeries:
    """In-memory presentation series with append/update semantics."""

    def __init__(self):
        self.candles: list[Candle] = []
        self._index: dict[int, int] = {}

    def replace(self, candles: list[Candle]):
        self.candles = list(candles)
        self._index = {c.time: i for i, c in enumerate(self.candles)}

    def append(self, candle: Candle):
        self._index[candle.time] = len(self.candles)
        self.candles.append(candle)

    def update(self, candle: Candle):
        i = self._index.get(candle.time)
        if i is None:
            self.append(candle)
        else:
            self.candles[i] = candle

    def insert(self, candle: Candle):
        """Place a candle at its chronological position."""
        if candle.time in self._index:
            self.candles[self._index[candle.time]] = candle
            return
        pos = bisect.bisect_left([c.time for c in self.candles], candle.time)
        self.candles.insert(pos, candle)
        self._reindex()

    def remove(self, time_: int) -> bool:
        i = self._index.get(time_)
        if i is None:
            return False
        del self.candles[i]
        self._reindex()
        return True

    def _reindex(self):
        self._index = {c.time: i for i, c in enumerate(self.candles)}

    def get(self, time_: int) -> Candle | None:
        i = self._index.get(time_)
        return self.candles[i] if i is not None else None

    @property
    def last(self) -> Candle | None:
        return self.candles[-1] if self.candles else None

    def price_change(self) -> tuple[float, float] | None:
        """(absolute, percent) change from first open to last close."""
        if len(self.candles) < 2 or self.candles[0].open == 0:
            return None
        first, last = self.candles[0].open, self.candles[-1].close
        return last - first, (last - first) / first * 100


class SyncState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LIVE = "live"
    ERROR = "error"


class PriceSyncController:
    """Keeps a price series in sync with the feed for one active pair.

    Idle -> Loading -> Live. While Live the feed is polled every
    `poll_interval` seconds, or `fast_poll_interval` during the window after
    a locally confirmed swap, and only changed or new candles are pushed.
    """

    def __init__(
        self,
        feed: PriceFeedClient,
        series: PriceSeries | None = None,
        timeframe: str = "1h",
        limit: int = 300,
        poll_interval: float = 5.0,
        fast_poll_interval: float = 2.0,
        fast_window: float = 30.0,
        clock: Callable[[], float] = time.time,
    ):
        self.feed = feed
        self.series = series or PriceSeries()
        self.timeframe = timeframe
        self.limit = limit
        self.poll_interval = poll_interval
        self.fast_poll_interval = fast_poll_interval
        self.fast_window = fast_window
        self.clock = clock

        self.state = SyncState.IDLE
        self.pool_address: str | None = None
        self.last_error: str | None = None
        self._known: dict[int, Candle] = {}
        # optimistic bucket -> real candle it covers, None for a synthetic bucket
        self._shadowed: dict[int, Candle | None] = {}
        self._fast_until = 0.0
        self._task: asyncio.Task | None = None

    async def enter(self, pool_address: str) -> bool:
        """Full load for a pair. Returns True once Live."""
        self.stop()
        self.pool_address = pool_address
        self.state = SyncState.LOADING
        self.last_error = None
        try:
            candles = await self.feed.fetch_ohlcv(pool_address, self.timeframe, self.limit)
        except PriceFeedError as e:
            logger.error(f"Price feed load failed for {pool_address}: {e}")
            self.state = SyncState.ERROR
            self.last_error = str(e)
            return False

        if not candles:
            self.state = SyncState.ERROR
            self.last_error = "No data available"
            return False

        self.series.replace(candles)
        self._known = {c.time: c for c in candles}
        self._shadowed = {}
        self.state = SyncState.LIVE
        logger.info(f"Price feed live for {pool_address} ({len(candles)} candles)")
        return True

    def reset(self):
        """Stop polling and clear the series; back to Idle."""
        self.stop()
        self.series.replace([])
        self._known = {}
        self._shadowed = {}
        self._fast_until = 0.0
        self.pool_address = None
        self.last_error = None
        self.state = SyncState.IDLE

    async def retry(self) -> bool:
        if self.pool_address is None:
            return False
        return await self.enter(self.pool_address)

    def current_interval(self) -> float:
        return self.fast_poll_interval if self.clock() < self._fast_until else self.poll_interval

    async def poll_once(self) -> tuple[int, int]:
        """Fetch the latest snapshot and apply the differences. Returns (appended, updated)."""
        if self.state != SyncState.LIVE:
            return 0, 0
        try:
            candles = await self.feed.fetch_ohlcv(self.pool_address, self.timeframe, self.limit)
        except PriceFeedError as e:
            # Keep showing the last good series
            logger.warning(f"Price feed poll failed: {e}")
            self.last_error = str(e)
            return 0, 0
        self.last_error = None
        return self.apply_snapshot(candles)

    def apply_snapshot(self, candles: list[Candle]) -> tuple[int, int]:
        """Push only new or changed candles; optimistic points never outlive a fetch."""
        appended = updated = 0
        last_time = self.series.last.time if self.series.last else None

        for candle in candles:
            known = self._known.get(candle.time)
            if known is not None:
                if known.optimistic or not known.same_values(candle):
                    self.series.update(candle)
                    updated += 1
            elif last_time is None or candle.time > last_time:
                self.series.append(candle)
                last_time = candle.time
                appended += 1
            else:
                # Backfilled bucket; older than what is displayed
                self.series.insert(candle)
                updated += 1
            self._known[candle.time] = candle
            self._shadowed.pop(candle.time, None)

        # Roll back optimistic points the feed has not caught up with yet
        for bucket, real in list(self._shadowed.items()):
            if real is not None:
                self.series.update(real)
                self._known[bucket] = real
                updated += 1
            else:
                self.series.remove(bucket)
                self._known.pop(bucket, None)
        self._shadowed.clear()

        return appended, updated

    def apply_optimistic(self, price: float | None = None) -> Candle | None:
        """Show a synthetic point at the current bucket until the next real fetch."""
        last = self.series.last
        if last is None:
            return None
        price = last.close if price is None else price
        step = bucket_seconds(self.timeframe)
        bucket = int(self.clock()) // step * step

        existing = self._known.get(bucket)
        if existing is not None:
            candle = Candle(
                time=bucket,
                open=existing.open,
                high=max(existing.high, price),
                low=min(existing.low, price),
                close=price,
                volume=existing.volume,
                optimistic=True,
            )
            self.series.update(candle)
            if bucket not in self._shadowed:
                self._shadowed[bucket] = existing
        elif bucket > last.time:
            candle = Candle(time=bucket, open=price, high=price, low=price, close=price, optimistic=True)
            self.series.append(candle)
            self._shadowed[bucket] = None
        else:
            # Unknown bucket older than the displayed series
            return None
        self._known[bucket] = candle
        return candle

    def notify_swap_confirmed(self, price: float | None = None):
        """Apply the optimistic point and speed up polling for the fast window."""
        self._fast_until = self.clock() + self.fast_window
        self.apply_optimistic(price)

    async def run(self):
        """Poll until stopped."""
        while self.state == SyncState.LIVE:
            await asyncio.sleep(self.current_interval())
            await self.poll_once()

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run())
        return self._task

    def stop(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
