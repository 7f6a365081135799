"""Swap session: the interface the trade form talks to."""

import logging
import time
from typing import Callable

from .approvals import ApprovalChecker
from .cache import SessionCache
from .calldata import CalldataBuilder
from .config import NATIVE_ADDRESS, Config, PairConfig
from .errors import PoolKeyUnavailable, QuoteUnavailable, SwapError, UserRejectedSignature
from .executor import SwapExecutor
from .planner import BatchPlanner, supports_atomic_batch
from .pool_keys import PoolKeyResolver
from .price_sync import PriceSyncController
from .quoter import QuoteDebouncer, QuoteEngine
from .types import ApprovalState, Direction, PendingSubmission, PoolKey, Quote, SubmissionStatus, TradeIntent

logger = logging.getLogger(__name__)


class SwapSession:
    """Event-driven glue between the form, the quote engine and submission.

    Every form edit creates a fresh TradeIntent, re-issues a debounced quote
    and re-derives the approval state. Changing pair drops in-flight quotes.
    """

    def __init__(
        self,
        config: Config,
        reader,
        signer=None,
        executor: SwapExecutor | None = None,
        price_sync: PriceSyncController | None = None,
        cache: SessionCache | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.reader = reader
        self.signer = signer
        self.executor = executor
        self.price_sync = price_sync
        self.cache = cache or SessionCache()
        self.clock = clock

        self.resolver = PoolKeyResolver(reader, self.cache)
        self.engine = QuoteEngine(reader, config.inverted_hop_correction)
        self.builder = CalldataBuilder(NATIVE_ADDRESS)
        self.approvals = ApprovalChecker(reader, config.permit2_address, config.router_address)
        self.planner = BatchPlanner(config.router_address, config.permit2_address, config.permit2_approval_seconds)
        self.debouncer = QuoteDebouncer(
            self._quote_for,
            delay=config.quote_debounce_seconds,
            on_result=self._on_quote,
            on_error=self._on_quote_error,
        )

        self.pair: PairConfig = config.default_pair
        self.route: list[PoolKey] | None = None
        self.intent: TradeIntent | None = None
        self.current_quote: Quote | None = None
        self.approval_state: ApprovalState = ApprovalState.NOT_REQUIRED
        self.last_error: str | None = None
        self.submissions: list[PendingSubmission] = []

    @property
    def quoting_enabled(self) -> bool:
        return self.route is not None

    @property
    def price_series(self):
        return self.price_sync.series if self.price_sync else None

    async def select_pair(self, pair_id: str) -> bool:
        """Switch the traded pair. Returns whether quoting is enabled for it."""
        self.pair = self.config.get_pair(pair_id)
        self.debouncer.invalidate()
        self.cache.invalidate_pair(pair_id)
        self.route = None
        self.intent = None
        self.current_quote = None
        self.approval_state = ApprovalState.NOT_REQUIRED
        self.last_error = None

        try:
            self.route = await self.resolver.resolve_route(self.pair)
        except PoolKeyUnavailable as e:
            self.last_error = str(e)
            logger.error(f"Quoting disabled for {pair_id}: {e}")

        if self.price_sync:
            self.price_sync.reset()
        if self.price_sync and self.pair.feed_pool_address:
            if await self.price_sync.enter(self.pair.feed_pool_address):
                self.price_sync.start()
            else:
                self.last_error = self.last_error or self.price_sync.last_error

        return self.quoting_enabled

    def _assets(self, direction: Direction) -> tuple[str, str]:
        if direction == Direction.BUY:
            return NATIVE_ADDRESS, self.pair.token
        if self.pair.is_indirect:
            return self.pair.token, self.pair.intermediate
        return self.pair.token, NATIVE_ADDRESS

    def make_intent(self, direction: Direction, amount: int, slippage_bps: int | None = None) -> TradeIntent:
        input_asset, output_asset = self._assets(direction)
        return TradeIntent(
            direction=direction,
            input_asset=input_asset,
            output_asset=output_asset,
            input_amount=amount,
            slippage_bps=self.config.slippage_bps if slippage_bps is None else slippage_bps,
            deadline=int(self.clock()) + self.config.deadline_seconds,
        )

    async def set_input(self, direction: Direction, amount: int, slippage_bps: int | None = None) -> TradeIntent:
        """Handle a form edit: new intent, debounced quote, fresh approval state."""
        self.intent = self.make_intent(direction, amount, slippage_bps)
        self.current_quote = None

        if amount <= 0:
            self.debouncer.invalidate()
            self.approval_state = ApprovalState.NOT_REQUIRED
            return self.intent

        if self.quoting_enabled:
            self.debouncer.request(self.intent, self.route, 10**self.pair.token_decimals)
        else:
            self.last_error = f"Quoting disabled for {self.pair.pair_id}"

        await self.refresh_approval()
        return self.intent

    async def _quote_for(self, intent: TradeIntent, route: list[PoolKey], unit: int) -> Quote:
        return await self.engine.quote(intent, route, unit)

    def _on_quote(self, quote: Quote):
        self.current_quote = quote
        self.last_error = None

    def _on_quote_error(self, error: Exception):
        self.current_quote = None
        self.last_error = "Unable to get quote"

    async def refresh_approval(self) -> ApprovalState:
        """Re-derive the approval state for the current intent."""
        intent = self.intent
        if intent is None or self.signer is None:
            self.approval_state = ApprovalState.NOT_REQUIRED
            return self.approval_state
        spends_token = intent.input_asset.lower() != NATIVE_ADDRESS
        self.approval_state = await self.approvals.check(
            intent.input_asset,
            self.signer.address,
            intent.input_amount,
            int(self.clock()),
            spends_token=spends_token,
        )
        return self.approval_state

    async def balance_of(self, asset: str) -> int:
        if self.signer is None:
            return 0
        return await self.reader.balance_of(asset, self.signer.address)

    async def submit(self) -> PendingSubmission:
        """Approve as needed and swap. Signer and submission errors are raised."""
        if self.signer is None or self.executor is None:
            raise SwapError("No signer connected")
        if self.intent is None or self.intent.input_amount <= 0:
            raise SwapError("Invalid input amount")
        if not self.quoting_enabled:
            raise QuoteUnavailable(f"Quoting disabled for {self.pair.pair_id}")

        await self.debouncer.wait()
        quote = self.current_quote
        if quote is None:
            quote = await self.engine.quote(self.intent, self.route, 10**self.pair.token_decimals)
            self.current_quote = quote

        intent = self.intent
        router_call = self.builder.build(intent, quote, self.route)

        try:
            state = await self.refresh_approval()
            atomic_capable = self.signer.supports_batch_calls and await supports_atomic_batch(
                self.reader, self.cache, self.signer.address
            )
            plan = self.planner.plan(state, intent, router_call, atomic_capable, int(self.clock()))

            if plan.atomic:
                submission = await self.executor.submit_atomic(plan)
            else:
                submission = await self._submit_sequential(intent, router_call)
        except UserRejectedSignature as e:
            # Form stays editable; nothing is retried
            logger.info(f"Signature rejected: {e}")
            self.last_error = "Transaction rejected"
            raise
        except SwapError as e:
            self.last_error = str(e)
            raise

        self.submissions.append(submission)
        return submission

    async def _submit_sequential(self, intent: TradeIntent, router_call) -> PendingSubmission:
        """One transaction per step, re-deriving the approval state before each."""
        attempted = set()
        while True:
            state = await self.refresh_approval()
            steps = self.planner.approval_calls(state, intent.input_asset, int(self.clock()))
            if not steps:
                break
            if state in attempted:
                raise SwapError(f"Approval confirmed but state is still {state.value}")
            attempted.add(state)
            submission = await self.executor.submit_call(steps[0])
            self.submissions.append(submission)
            await self.executor.confirm_or_raise(submission)

        return await self.executor.submit_call(self.planner.swap_call(intent, router_call))

    async def track(self, submission: PendingSubmission) -> PendingSubmission:
        """Wait for a swap submission; on success refresh state and the chart."""
        await self.executor.tracker.wait_for_confirmation(submission)
        if submission.status == SubmissionStatus.SUCCESS:
            self.intent = None
            self.current_quote = None
            self.approval_state = ApprovalState.NOT_REQUIRED
            if self.price_sync:
                self.price_sync.notify_swap_confirmed()
        else:
            self.last_error = submission.error
        return submission
