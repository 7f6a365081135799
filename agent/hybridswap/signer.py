"""Transaction signers: a local key, or a wallet behind the provider."""

import logging

from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, Web3Exception

from .errors import SwapError, TransactionReverted, UserRejectedSignature
from .types import BatchCall

logger = logging.getLogger(__name__)

USER_REJECTED_CODE = 4001


def _call_dict(call: BatchCall) -> dict:
    return {
        "to": Web3.to_checksum_address(call.target),
        "data": Web3.to_hex(call.data),
        "value": Web3.to_hex(call.value),
    }


class LocalAccountSigner:
    """Signs and broadcasts raw transactions with a local private key."""

    supports_batch_calls = False

    def __init__(self, w3: AsyncWeb3, private_key: str):
        self.w3 = w3
        self.account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self.account.address

    async def build_tx(self, call: BatchCall) -> dict:
        label = call.label or "call"
        try:
            tx = {
                "from": self.account.address,
                "to": Web3.to_checksum_address(call.target),
                "data": Web3.to_hex(call.data),
                "value": call.value,
                "nonce": await self.w3.eth.get_transaction_count(self.account.address),
                "chainId": await self.w3.eth.chain_id,
                "gasPrice": await self.w3.eth.gas_price,
            }
            tx["gas"] = await self.w3.eth.estimate_gas(tx)
        except ContractLogicError as e:
            raise TransactionReverted("", f"{label} would revert: {e}") from e
        except (Web3Exception, ValueError) as e:
            raise TransactionReverted("", f"{label} failed: {e}") from e
        return tx

    async def send_call(self, call: BatchCall) -> str:
        """Build, sign, and submit one call. Returns tx hash."""
        tx = await self.build_tx(call)
        signed_tx = self.account.sign_transaction(tx)
        try:
            tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except (Web3Exception, ValueError) as e:
            logger.error(f"Broadcast failed: {e}")
            raise TransactionReverted("", f"{call.label or 'call'} failed: {e}") from e
        return Web3.to_hex(tx_hash)

    async def send_calls(self, calls: list[BatchCall]) -> str:
        raise SwapError("Local key signer cannot submit atomic batches")

    async def get_calls_status(self, bundle_id: str) -> str:
        raise SwapError("Local key signer cannot submit atomic batches")


class WalletRpcSigner:
    """Delegates signing to a wallet exposed through the provider (EIP-1193/EIP-5792)."""

    supports_batch_calls = True

    def __init__(self, w3: AsyncWeb3, address: str, chain_id: int):
        self.w3 = w3
        self._address = Web3.to_checksum_address(address)
        self.chain_id = chain_id

    @property
    def address(self) -> str:
        return self._address

    async def _request(self, method: str, params: list):
        response = await self.w3.provider.make_request(method, params)
        error = response.get("error")
        if error:
            message = error.get("message", str(error))
            if error.get("code") == USER_REJECTED_CODE:
                raise UserRejectedSignature(message)
            raise SwapError(f"{method} failed: {message}")
        return response.get("result")

    async def send_call(self, call: BatchCall) -> str:
        return await self._request("eth_sendTransaction", [{"from": self._address, **_call_dict(call)}])

    async def send_calls(self, calls: list[BatchCall]) -> str:
        """Submit calls atomically via wallet_sendCalls. Returns the bundle id."""
        result = await self._request(
            "wallet_sendCalls",
            [
                {
                    "version": "2.0.0",
                    "chainId": Web3.to_hex(self.chain_id),
                    "from": self._address,
                    "atomicRequired": True,
                    "calls": [_call_dict(c) for c in calls],
                }
            ],
        )
        # Older wallets return the id directly
        bundle_id = result if isinstance(result, str) else (result or {}).get("id")
        if not bundle_id:
            raise SwapError("wallet_sendCalls returned no bundle id")
        return bundle_id

    async def get_calls_status(self, bundle_id: str) -> str:
        """Returns "pending", "success" or "failure"."""
        result = await self._request("wallet_getCallsStatus", [bundle_id]) or {}
        status = result.get("status")
        if status in (200, "CONFIRMED", "success"):
            receipts = result.get("receipts") or []
            if any(int(r.get("status", "0x1"), 16) == 0 for r in receipts if isinstance(r.get("status"), str)):
                return "failure"
            return "success"
        if status in (100, "PENDING", "pending", None):
            return "pending"
        return "failure"
