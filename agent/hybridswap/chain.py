"""Read-only chain access via web3."""

import logging

from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound, Web3Exception

from .abis import ERC20_ABI, HOOK_ABI, OTC_ABI, PERMIT2_ABI, QUOTER_ABI, REGISTRY_ABI
from .config import NATIVE_ADDRESS, Config
from .errors import QuoteSimulationReverted
from .types import HybridSplit, PoolKey

logger = logging.getLogger(__name__)


def _checksum(address: str) -> str:
    return Web3.to_checksum_address(address)


class ChainReader:
    """Contract reads used by the swap subsystem."""

    def __init__(self, w3: AsyncWeb3, config: Config):
        self.w3 = w3
        self.config = config
        self.quoter = w3.eth.contract(address=_checksum(config.quoter_address), abi=QUOTER_ABI)
        self.permit2 = w3.eth.contract(address=_checksum(config.permit2_address), abi=PERMIT2_ABI)
        self.registry = w3.eth.contract(address=_checksum(config.registry_address), abi=REGISTRY_ABI)
        self.otc = (
            w3.eth.contract(address=_checksum(config.otc_address), abi=OTC_ABI)
            if config.otc_address
            else None
        )

    async def quote_exact_input_single(self, key: PoolKey, zero_for_one: bool, amount: int) -> int:
        """Simulate an exact-input swap against the v4 quoter. Returns amountOut."""
        pool_tuple = tuple(
            _checksum(v) if i in (0, 1, 4) else v for i, v in enumerate(key.as_tuple())
        )
        try:
            amount_out, _gas = await self.quoter.functions.quoteExactInputSingle(
                (pool_tuple, zero_for_one, amount, b"")
            ).call()
        except (Web3Exception, ValueError) as e:
            raise QuoteSimulationReverted(str(e)) from e
        return amount_out

    async def hybrid_quote(self, amount: int) -> HybridSplit:
        """Ask the hybrid source how it would split `amount`."""
        if self.otc is None:
            return HybridSplit(amount, 0, 0, 0, 0, False)
        try:
            swap, otc, available, otc_bps, fee_bps, has_otc = await self.otc.functions.quote(amount).call()
        except (Web3Exception, ValueError) as e:
            raise QuoteSimulationReverted(str(e)) from e
        return HybridSplit(swap, otc, available, otc_bps, fee_bps, has_otc)

    async def pool_id_raw(self) -> bytes:
        return await self.registry.functions.poolIdRaw().call()

    async def hook_address(self) -> str:
        return await self.registry.functions.hook().call()

    async def get_pool_key(self, hook_address: str, pool_id: bytes) -> PoolKey:
        hook = self.w3.eth.contract(address=_checksum(hook_address), abi=HOOK_ABI)
        currency0, currency1, fee, tick_spacing, hooks = await hook.functions.getPoolKey(pool_id).call()
        return PoolKey(currency0, currency1, fee, tick_spacing, hooks)

    async def token_allowance(self, token: str, owner: str, spender: str) -> int:
        erc20 = self.w3.eth.contract(address=_checksum(token), abi=ERC20_ABI)
        return await erc20.functions.allowance(_checksum(owner), _checksum(spender)).call()

    async def permit2_allowance(self, owner: str, token: str, spender: str) -> tuple[int, int]:
        """Returns (amount, expiration) of the Permit2 allowance."""
        amount, expiration, _nonce = await self.permit2.functions.allowance(
            _checksum(owner), _checksum(token), _checksum(spender)
        ).call()
        return amount, expiration

    async def balance_of(self, asset: str, owner: str) -> int:
        if asset.lower() == NATIVE_ADDRESS:
            return await self.w3.eth.get_balance(_checksum(owner))
        erc20 = self.w3.eth.contract(address=_checksum(asset), abi=ERC20_ABI)
        return await erc20.functions.balanceOf(_checksum(owner)).call()

    async def has_code(self, address: str) -> bool:
        code = await self.w3.eth.get_code(_checksum(address))
        return len(code) > 0

    async def get_receipt(self, tx_hash: str) -> dict | None:
        """Receipt for a mined transaction, or None while pending."""
        try:
            return await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
