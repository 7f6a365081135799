"""Two-step Permit2 approval state and approval calls."""

import logging
from dataclasses import dataclass

from web3 import Web3

from .calldata import encode_function_call
from .types import ApprovalState, BatchCall

logger = logging.getLogger(__name__)

MAX_UINT160 = 2**160 - 1

ERC20_APPROVE_SIGNATURE = "approve(address,uint256)"
ERC20_APPROVE_TYPES = ["address", "uint256"]
PERMIT2_APPROVE_SIGNATURE = "approve(address,address,uint160,uint48)"
PERMIT2_APPROVE_TYPES = ["address", "address", "uint160", "uint48"]


def derive_state(
    token_allowance: int,
    proxy_allowance: int,
    required_amount: int,
    proxy_expiry: int,
    now: int,
    spends_token: bool = True,
) -> ApprovalState:
    """Derive the approval state for spending `required_amount` of a token.

    `token_allowance` is the token's allowance to the spender proxy (Permit2),
    `proxy_allowance`/`proxy_expiry` the proxy's allowance to the router.
    """
    if not spends_token:
        return ApprovalState.NOT_REQUIRED
    if required_amount <= 0:
        return ApprovalState.READY
    if token_allowance < required_amount:
        return ApprovalState.NEEDS_SPENDER_APPROVAL
    if proxy_allowance < required_amount or proxy_expiry < now:
        return ApprovalState.NEEDS_ROUTER_APPROVAL
    return ApprovalState.READY


@dataclass(frozen=True)
class AllowanceSnapshot:
    token: str
    owner: str
    token_allowance: int
    proxy_allowance: int
    proxy_expiry: int


class ApprovalChecker:
    """Reads both allowances and derives the current state. Never caches."""

    def __init__(self, reader, permit2_address: str, router_address: str):
        self.reader = reader
        self.permit2_address = permit2_address
        self.router_address = router_address

    async def snapshot(self, token: str, owner: str) -> AllowanceSnapshot:
        token_allowance = await self.reader.token_allowance(token, owner, self.permit2_address)
        proxy_allowance, proxy_expiry = await self.reader.permit2_allowance(owner, token, self.router_address)
        return AllowanceSnapshot(token, owner, token_allowance, proxy_allowance, proxy_expiry)

    async def check(self, token: str, owner: str, required_amount: int, now: int, spends_token: bool = True) -> ApprovalState:
        if not spends_token:
            return ApprovalState.NOT_REQUIRED
        snap = await self.snapshot(token, owner)
        state = derive_state(
            snap.token_allowance,
            snap.proxy_allowance,
            required_amount,
            snap.proxy_expiry,
            now,
        )
        logger.info(f"Approval state for {token[:10]}... amount={required_amount}: {state.value}")
        return state


def build_token_approval(token: str, permit2_address: str) -> BatchCall:
    """ERC-20 approve(Permit2, maxUint160)."""
    return BatchCall(
        target=Web3.to_checksum_address(token),
        data=encode_function_call(
            ERC20_APPROVE_SIGNATURE,
            ERC20_APPROVE_TYPES,
            [Web3.to_checksum_address(permit2_address), MAX_UINT160],
        ),
        label="Approving Permit2",
    )


def build_router_approval(token: str, permit2_address: str, router_address: str, expiration: int) -> BatchCall:
    """Permit2 approve(token, router, maxUint160, expiration)."""
    return BatchCall(
        target=Web3.to_checksum_address(permit2_address),
        data=encode_function_call(
            PERMIT2_APPROVE_SIGNATURE,
            PERMIT2_APPROVE_TYPES,
            [
                Web3.to_checksum_address(token),
                Web3.to_checksum_address(router_address),
                MAX_UINT160,
                expiration,
            ],
        ),
        label="Approving Router",
    )
