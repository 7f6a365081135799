"""Shared in-memory chain and signer fakes."""

import time

import pytest

from hybridswap.config import NATIVE_ADDRESS, Config, PairConfig
from hybridswap.errors import UserRejectedSignature
from hybridswap.types import HybridSplit, PoolKey

TOKEN = "0x00000000000000000000000000000000000000aa"
PERMIT2 = "0x000000000022D473030F116dDEE9F6B43aC78BA3"
ROUTER = "0x0000000000000000000000000000000000000b0b"
HOOK = "0x0000000000000000000000000000000000000000"


class FakeChain:
    """In-memory stand-in for ChainReader."""

    def __init__(self, rate: int = 2):
        self.rate = rate
        self.token_allowances: dict[tuple[str, str, str], int] = {}
        self.permit2_allowances: dict[tuple[str, str, str], tuple[int, int]] = {}
        self.receipts: dict[str, dict] = {}
        self.code: dict[str, bool] = {}
        self.quote_calls: list[tuple[PoolKey, bool, int]] = []

    async def quote_exact_input_single(self, key, zero_for_one, amount):
        self.quote_calls.append((key, zero_for_one, amount))
        return amount * self.rate

    async def hybrid_quote(self, amount):
        return HybridSplit(amount, 0, 0, 0, 0, False)

    async def token_allowance(self, token, owner, spender):
        return self.token_allowances.get((token.lower(), owner.lower(), spender.lower()), 0)

    async def permit2_allowance(self, owner, token, spender):
        return self.permit2_allowances.get((owner.lower(), token.lower(), spender.lower()), (0, 0))

    async def balance_of(self, asset, owner):
        return 10**18

    async def has_code(self, address):
        return self.code.get(address.lower(), False)

    async def get_receipt(self, tx_hash):
        return self.receipts.get(tx_hash)


class FakeSigner:
    """Records submitted calls and applies approval effects to a FakeChain."""

    def __init__(self, chain: FakeChain, address: str = "0x00000000000000000000000000000000000000c1", batch: bool = False):
        self.chain = chain
        self.address = address
        self.supports_batch_calls = batch
        self.sent: list = []
        self.batches: list[list] = []
        self.reject = False

    def _apply(self, call):
        owner = self.address.lower()
        if call.label == "Approving Permit2":
            self.chain.token_allowances[(TOKEN.lower(), owner, PERMIT2.lower())] = 2**160 - 1
        elif call.label == "Approving Router":
            self.chain.permit2_allowances[(owner, TOKEN.lower(), ROUTER.lower())] = (
                2**160 - 1,
                int(time.time()) + 3600,
            )

    async def send_call(self, call):
        if self.reject:
            raise UserRejectedSignature("User rejected the request.")
        self.sent.append(call)
        self._apply(call)
        tx_hash = f"0x{len(self.sent):064x}"
        self.chain.receipts[tx_hash] = {"status": 1}
        return tx_hash

    async def send_calls(self, calls):
        self.batches.append(list(calls))
        for call in calls:
            self._apply(call)
        return f"bundle-{len(self.batches)}"

    async def get_calls_status(self, bundle_id):
        return "success"


def make_config(**overrides) -> Config:
    pair = PairConfig(
        pair_id="token-eth",
        token=TOKEN,
        pool=PoolKey.from_pair(NATIVE_ADDRESS, TOKEN, 3000, 60, HOOK),
    )
    values = dict(
        pairs=[pair],
        router_address=ROUTER,
        permit2_address=PERMIT2,
        quote_debounce_seconds=0.01,
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def signer(chain):
    return FakeSigner(chain)


@pytest.fixture
def config():
    return make_config()
