"""Approval + swap call planning for atomic or sequential submission."""

import logging

from web3 import Web3

from .approvals import build_router_approval, build_token_approval
from .cache import SessionCache
from .calldata import encode_execute
from .types import ApprovalState, BatchCall, BatchPlan, Direction, RouterCall, TradeIntent

logger = logging.getLogger(__name__)


async def supports_atomic_batch(reader, cache: SessionCache, address: str) -> bool:
    """Whether the signer can submit multi-call batches, detected once per session.

    A signer whose address carries code is treated as a smart wallet.
    """
    key = address.lower()
    if key not in cache.atomic_batch_support:
        cache.atomic_batch_support[key] = await reader.has_code(address)
        logger.info(f"Signer {address[:10]}... atomic batch support: {cache.atomic_batch_support[key]}")
    return cache.atomic_batch_support[key]


class BatchPlanner:
    """Builds the minimal ordered call list for a swap."""

    def __init__(self, router_address: str, permit2_address: str, approval_seconds: int = 60 * 60 * 24 * 365):
        self.router_address = Web3.to_checksum_address(router_address)
        self.permit2_address = Web3.to_checksum_address(permit2_address)
        self.approval_seconds = approval_seconds

    def approval_calls(self, state: ApprovalState, token: str, now: int) -> list[BatchCall]:
        """Outstanding approval calls for `state`, in dependency order."""
        calls = []
        if state == ApprovalState.NEEDS_SPENDER_APPROVAL:
            calls.append(build_token_approval(token, self.permit2_address))
        if state in (ApprovalState.NEEDS_SPENDER_APPROVAL, ApprovalState.NEEDS_ROUTER_APPROVAL):
            calls.append(
                build_router_approval(token, self.permit2_address, self.router_address, now + self.approval_seconds)
            )
        return calls

    def swap_call(self, intent: TradeIntent, router_call: RouterCall) -> BatchCall:
        label = "Buying" if intent.direction == Direction.BUY else "Selling"
        return BatchCall(
            target=self.router_address,
            data=encode_execute(router_call),
            value=router_call.native_value,
            label=label,
        )

    def plan(
        self,
        state: ApprovalState,
        intent: TradeIntent,
        router_call: RouterCall,
        atomic_capable: bool,
        now: int,
    ) -> BatchPlan:
        approvals = self.approval_calls(state, intent.input_asset, now)
        calls = _dedupe(approvals) + [self.swap_call(intent, router_call)]
        atomic = atomic_capable and state.needs_approval
        return BatchPlan(calls=calls, atomic=atomic)


def _dedupe(calls: list[BatchCall]) -> list[BatchCall]:
    seen = set()
    result = []
    for call in calls:
        key = (call.target.lower(), call.data)
        if key in seen:
            continue
        seen.add(key)
        result.append(call)
    return result
