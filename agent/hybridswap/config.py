"""Configuration for the hybrid swap agent."""

import os
from dataclasses import dataclass, field

from .types import PoolKey

NATIVE_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class PairConfig:
    """A tradable pair.

    Direct pairs trade the native asset against `token` through one pool.
    Indirect pairs route native -> `intermediate` -> `token`; `pool` is the
    native/intermediate pool and `second_pool` the intermediate/token pool.
    A `pool` of None marks the dynamically registered default pair.
    """

    pair_id: str
    token: str
    kind: str = "direct"  # direct | indirect
    intermediate: str | None = None
    pool: PoolKey | None = None
    second_pool: PoolKey | None = None
    feed_pool_address: str = ""
    token_decimals: int = 18

    @property
    def is_dynamic(self) -> bool:
        return self.pool is None

    @property
    def is_indirect(self) -> bool:
        return self.kind == "indirect"


WASS_ADDRESS = "0xcc3440d13e1A7805e45b1Bde3376DA5d90d95d55"


def _default_pairs() -> list[PairConfig]:
    wass = os.getenv("TOKEN_ADDRESS", WASS_ADDRESS)
    pairs = [
        PairConfig(
            pair_id="wass-eth",
            token=wass,
            feed_pool_address=os.getenv(
                "FEED_POOL_ADDRESS",
                "0xa113103448f7b09199e019656f377988c87f8f312ddcebc6fea9e78bcd6ec2af",
            ),
        )
    ]

    # Optional indirect pair routed through the default pair's token
    target = os.getenv("INDIRECT_TOKEN_ADDRESS", "")
    if target:
        first = PoolKey.from_pair(
            NATIVE_ADDRESS,
            wass,
            int(os.getenv("POOL_FEE", "3000")),
            int(os.getenv("POOL_TICK_SPACING", "60")),
            os.getenv("HOOK_ADDRESS", NATIVE_ADDRESS),
        )
        second = PoolKey.from_pair(
            wass,
            target,
            int(os.getenv("INDIRECT_POOL_FEE", "10000")),
            int(os.getenv("INDIRECT_POOL_TICK_SPACING", "200")),
            os.getenv("INDIRECT_HOOK_ADDRESS", NATIVE_ADDRESS),
        )
        pairs.append(
            PairConfig(
                pair_id=os.getenv("INDIRECT_PAIR_ID", "token-wass"),
                token=target,
                kind="indirect",
                intermediate=wass,
                pool=first,
                second_pool=second,
                feed_pool_address=os.getenv("INDIRECT_FEED_POOL_ADDRESS", ""),
            )
        )
    return pairs


@dataclass
class Config:
    """Agent configuration."""

    # RPC
    rpc_url: str = field(default_factory=lambda: os.getenv("RPC_URL", "http://127.0.0.1:8545"))

    # Chain (8453 = Base, 84532 = Base Sepolia)
    chain_id: int = field(default_factory=lambda: int(os.getenv("CHAIN_ID", "8453")))

    # Contract addresses
    quoter_address: str = field(
        default_factory=lambda: os.getenv("QUOTER_ADDRESS", "0x0d5e0f971ed27fbff6c2837bf31316121532048d")
    )
    router_address: str = field(
        default_factory=lambda: os.getenv("ROUTER_ADDRESS", "0x6fF5693b99212Da76ad316178A184AB56D299b43")
    )
    permit2_address: str = field(
        default_factory=lambda: os.getenv("PERMIT2_ADDRESS", "0x000000000022D473030F116dDEE9F6B43aC78BA3")
    )
    registry_address: str = field(
        default_factory=lambda: os.getenv("NFT_ADDRESS", "0xDAaBc7Ff7874cC80275950372F4b34fFB93CF18F")
    )
    otc_address: str = field(default_factory=lambda: os.getenv("OTC_ADDRESS", ""))

    # Signer key (optional; wallet-backed providers sign remotely)
    private_key: str = field(default_factory=lambda: os.getenv("PRIVATE_KEY", ""))
    wallet_address: str = field(default_factory=lambda: os.getenv("WALLET_ADDRESS", ""))

    pairs: list[PairConfig] = field(default_factory=_default_pairs)

    # Trade parameters
    slippage_bps: int = 500
    deadline_seconds: int = 1800
    quote_debounce_seconds: float = 0.3
    # Empirical multiplier for the inverted second-hop rate. Re-calibrate if
    # pool fee tiers or liquidity depth change materially.
    inverted_hop_correction: float = field(
        default_factory=lambda: float(os.getenv("INVERTED_HOP_CORRECTION", "0.77"))
    )
    permit2_approval_seconds: int = 60 * 60 * 24 * 365

    # Submission tracking
    submission_timeout_seconds: int = 60
    confirmation_poll_seconds: float = 1.0
    notification_display_seconds: float = 5.0
    explorer_url: str = "https://basescan.org"

    # Price feed
    feed_base_url: str = field(
        default_factory=lambda: os.getenv("FEED_BASE_URL", "https://api.geckoterminal.com/api/v2")
    )
    feed_network: str = "base"
    feed_timeframe: str = "1h"
    feed_limit: int = 300
    poll_interval_seconds: float = 5.0
    fast_poll_interval_seconds: float = 2.0
    fast_poll_window_seconds: float = 30.0

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    def get_pair(self, pair_id: str) -> PairConfig:
        for pair in self.pairs:
            if pair.pair_id == pair_id:
                return pair
        raise KeyError(f"Unknown pair: {pair_id}")

    @property
    def default_pair(self) -> PairConfig:
        return self.pairs[0]
