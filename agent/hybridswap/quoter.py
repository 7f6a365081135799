"""Quote estimation across AMM and hybrid OTC liquidity."""

import asyncio
import logging
from decimal import Decimal
from typing import Awaitable, Callable

from .errors import QuoteSimulationReverted, SwapError
from .types import Confidence, Direction, PoolKey, Quote, QuoteSource, SourcePortion, TradeIntent

logger = logging.getLogger(__name__)

BPS = 10_000


class QuoteEngine:
    """Computes trade estimates from on-chain simulations.

    Direct pairs are quoted with a single simulation. Indirect buys blend the
    hybrid source's OTC fill with the AMM and estimate the second hop from an
    inverted reverse quote, scaled by `inverted_hop_correction`.
    """

    def __init__(self, reader, inverted_hop_correction: float = 0.77):
        self.reader = reader
        self.inverted_hop_correction = inverted_hop_correction

    async def quote(self, intent: TradeIntent, route: list[PoolKey], target_unit: int = 10**18) -> Quote:
        if intent.input_amount <= 0:
            raise ValueError("Input amount must be positive")

        if len(route) == 1:
            return await self._quote_direct(intent, route[0])
        if intent.direction == Direction.BUY:
            return await self._quote_indirect_buy(intent, route[0], route[1], target_unit)
        return await self._quote_indirect_sell(intent, route[0], route[1])

    async def _simulate(self, key: PoolKey, input_currency: str, amount: int) -> int:
        return await self.reader.quote_exact_input_single(key, key.zero_for_one(input_currency), amount)

    async def _quote_direct(self, intent: TradeIntent, key: PoolKey) -> Quote:
        amount_out = await self._simulate(key, intent.input_asset, intent.input_amount)
        return Quote(
            estimated_output_amount=amount_out,
            source_breakdown=[SourcePortion(QuoteSource.AMM, intent.input_amount, amount_out)],
            confidence=Confidence.EXACT,
        )

    async def _first_leg_with_hybrid(self, key: PoolKey, native: str, amount: int) -> tuple[int, list[SourcePortion]]:
        """Intermediate amount for `amount` of native, split across OTC and AMM."""
        full_out = await self._simulate(key, native, amount)

        try:
            split = await self.reader.hybrid_quote(amount)
        except QuoteSimulationReverted as e:
            logger.warning(f"Hybrid quote reverted, pricing first leg on AMM only: {e}")
            return full_out, [SourcePortion(QuoteSource.AMM, amount, full_out)]

        if not split.has_otc or split.otc_portion <= 0:
            return full_out, [SourcePortion(QuoteSource.AMM, amount, full_out)]

        otc_portion = min(split.otc_portion, amount)
        swap_portion = amount - otc_portion

        # Price impact is only paid on the part actually routed to the AMM
        swap_out = await self._simulate(key, native, swap_portion) if swap_portion > 0 else 0

        # OTC fill at the un-split average rate, less the hybrid fee
        otc_gross = full_out * otc_portion // amount
        otc_out = otc_gross - otc_gross * split.otc_fee_bps // BPS

        breakdown = [
            SourcePortion(QuoteSource.OTC, otc_portion, otc_out),
            SourcePortion(QuoteSource.AMM, swap_portion, swap_out),
        ]
        return swap_out + otc_out, breakdown

    async def _quote_indirect_buy(self, intent: TradeIntent, first: PoolKey, second: PoolKey, target_unit: int) -> Quote:
        native = intent.input_asset
        intermediate = first.other(native)
        target = second.other(intermediate)

        intermediate_amount, breakdown = await self._first_leg_with_hybrid(first, native, intent.input_amount)

        # intermediate -> target is not independently quotable; quote one unit
        # of target -> intermediate and invert.
        reverse_out = await self._simulate(second, target, target_unit)
        if reverse_out <= 0:
            raise QuoteSimulationReverted("Reverse quote returned zero")

        inverted = intermediate_amount * target_unit // reverse_out
        estimated = int(Decimal(inverted) * Decimal(str(self.inverted_hop_correction)))

        return Quote(
            estimated_output_amount=estimated,
            source_breakdown=breakdown,
            confidence=Confidence.ESTIMATED,
            intermediate_amount=intermediate_amount,
        )

    async def _quote_indirect_sell(self, intent: TradeIntent, first: PoolKey, second: PoolKey) -> Quote:
        target = intent.input_asset
        intermediate = second.other(target)
        confidence = Confidence.EXACT

        try:
            mid = await self._simulate(second, target, intent.input_amount)
        except QuoteSimulationReverted as e:
            logger.warning(f"Sell quote reverted, falling back to 1:1 estimate: {e}")
            mid = intent.input_amount
            confidence = Confidence.ESTIMATED

        if intent.output_asset.lower() == intermediate.lower():
            return Quote(
                estimated_output_amount=mid,
                source_breakdown=[SourcePortion(QuoteSource.AMM, intent.input_amount, mid)],
                confidence=confidence,
            )

        try:
            amount_out = await self._simulate(first, intermediate, mid)
        except QuoteSimulationReverted as e:
            logger.warning(f"Second sell hop reverted, falling back to 1:1 estimate: {e}")
            amount_out = mid
            confidence = Confidence.ESTIMATED

        return Quote(
            estimated_output_amount=amount_out,
            source_breakdown=[SourcePortion(QuoteSource.AMM, intent.input_amount, amount_out)],
            confidence=confidence,
            intermediate_amount=mid,
        )


class QuoteDebouncer:
    """Debounces quote requests; only the most recently issued request may apply.

    Requests still in their quiet period are cancelled outright. Requests
    already in flight run to completion and their result is dropped unless
    they are still the latest.
    """

    def __init__(
        self,
        quote_fn: Callable[..., Awaitable[Quote]],
        delay: float = 0.3,
        on_result: Callable[[Quote], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ):
        self.quote_fn = quote_fn
        self.delay = delay
        self.on_result = on_result
        self.on_error = on_error
        self.latest: Quote | None = None
        self._seq = 0
        self._waiting: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def sequence(self) -> int:
        return self._seq

    def request(self, *args) -> int:
        """Schedule a quote; supersedes every earlier request."""
        self._seq += 1
        if self._waiting is not None and not self._waiting.done():
            self._waiting.cancel()
        task = asyncio.create_task(self._run(self._seq, args))
        self._waiting = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return self._seq

    def invalidate(self):
        """Drop pending and in-flight requests without issuing a new one."""
        self._seq += 1
        self.latest = None
        if self._waiting is not None and not self._waiting.done():
            self._waiting.cancel()

    async def wait(self):
        """Wait until every outstanding request has finished or been cancelled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, seq: int, args: tuple):
        await asyncio.sleep(self.delay)
        if seq != self._seq:
            return
        # Past the quiet period: no longer cancellable by a newer request
        if self._waiting is asyncio.current_task():
            self._waiting = None

        try:
            result = await self.quote_fn(*args)
        except (SwapError, ValueError) as e:
            if seq == self._seq:
                logger.warning(f"Quote request {seq} failed: {e}")
                if self.on_error:
                    self.on_error(e)
            return

        if seq != self._seq:
            logger.debug(f"Discarding stale quote {seq} (latest {self._seq})")
            return

        self.latest = result
        if self.on_result:
            self.on_result(result)
