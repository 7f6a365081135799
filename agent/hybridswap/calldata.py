"""Universal Router v4 swap calldata encoding."""

from eth_abi import encode
from web3 import Web3

from .types import Direction, PoolKey, Quote, RouterCall, TradeIntent

# Router command
V4_SWAP = 0x10

# V4 router actions
SWAP_EXACT_IN_SINGLE = 0x06
SETTLE_ALL = 0x0C
TAKE_ALL = 0x0F

POOL_KEY_TYPE = "(address,address,uint24,int24,address)"
EXACT_INPUT_SINGLE_TYPE = f"({POOL_KEY_TYPE},bool,uint128,uint128,bytes)"

# ABI types of each router action's parameters
SWAP_EXACT_IN_SINGLE_TYPES = [EXACT_INPUT_SINGLE_TYPE]
SETTLE_ALL_TYPES = ["address", "uint256"]
TAKE_ALL_TYPES = ["address", "uint256"]
V4_SWAP_TYPES = ["bytes", "bytes[]"]

EXECUTE_SIGNATURE = "execute(bytes,bytes[],uint256)"
EXECUTE_TYPES = ["bytes", "bytes[]", "uint256"]

# amountIn of zero tells the router to consume the previous swap's output
OPEN_DELTA = 0


def encode_function_call(signature: str, types: list[str], args: list) -> bytes:
    """ABI-encode a call: 4-byte selector followed by the encoded arguments."""
    selector = Web3.keccak(text=signature)[:4]
    return bytes(selector) + encode(types, args)


def _pool_tuple(key: PoolKey) -> tuple:
    return (
        Web3.to_checksum_address(key.currency0),
        Web3.to_checksum_address(key.currency1),
        key.fee,
        key.tick_spacing,
        Web3.to_checksum_address(key.hooks),
    )


def encode_swap_exact_in_single(key: PoolKey, zero_for_one: bool, amount_in: int, amount_out_min: int) -> bytes:
    return encode(
        SWAP_EXACT_IN_SINGLE_TYPES,
        [(_pool_tuple(key), zero_for_one, amount_in, amount_out_min, b"")],
    )


def encode_settle_all(currency: str, max_amount: int) -> bytes:
    return encode(SETTLE_ALL_TYPES, [Web3.to_checksum_address(currency), max_amount])


def encode_take_all(currency: str, min_amount: int) -> bytes:
    return encode(TAKE_ALL_TYPES, [Web3.to_checksum_address(currency), min_amount])


def encode_v4_envelope(actions: bytes, params: list[bytes]) -> bytes:
    if len(actions) != len(params):
        raise ValueError(f"{len(actions)} actions but {len(params)} param blobs")
    return encode(V4_SWAP_TYPES, [actions, params])


def encode_execute(call: RouterCall) -> bytes:
    """Calldata for UniversalRouter.execute(commands, inputs, deadline)."""
    return encode_function_call(EXECUTE_SIGNATURE, EXECUTE_TYPES, [call.commands, call.inputs, call.deadline])


class CalldataBuilder:
    """Turns a trade intent and its quote into a router call."""

    def __init__(self, native_address: str = "0x0000000000000000000000000000000000000000"):
        self.native_address = native_address

    def build(self, intent: TradeIntent, quote: Quote, route: list[PoolKey]) -> RouterCall:
        min_out = quote.min_output(intent.slippage_bps)
        hops = self._hops(intent, route)

        actions = bytearray()
        params: list[bytes] = []

        for i, (key, input_currency) in enumerate(hops):
            last = i == len(hops) - 1
            actions.append(SWAP_EXACT_IN_SINGLE)
            params.append(
                encode_swap_exact_in_single(
                    key,
                    key.zero_for_one(input_currency),
                    intent.input_amount if i == 0 else OPEN_DELTA,
                    min_out if last else 0,
                )
            )

        actions.append(SETTLE_ALL)
        params.append(encode_settle_all(intent.input_asset, intent.input_amount))
        actions.append(TAKE_ALL)
        params.append(encode_take_all(intent.output_asset, min_out))

        envelope = encode_v4_envelope(bytes(actions), params)
        native_value = intent.input_amount if intent.input_asset.lower() == self.native_address.lower() else 0

        return RouterCall(
            commands=bytes([V4_SWAP]),
            inputs=[envelope],
            deadline=intent.deadline,
            native_value=native_value,
        )

    def _hops(self, intent: TradeIntent, route: list[PoolKey]) -> list[tuple[PoolKey, str]]:
        """Ordered (pool, input currency) pairs from input asset to output asset."""
        pools = list(route) if intent.direction == Direction.BUY else list(reversed(route))
        hops = []
        currency = intent.input_asset
        for key in pools:
            if not key.has_currency(currency):
                raise ValueError(f"Route does not connect {currency}")
            hops.append((key, currency))
            currency = key.other(currency)
            if currency.lower() == intent.output_asset.lower():
                break
        if currency.lower() != intent.output_asset.lower():
            raise ValueError(f"Route does not reach {intent.output_asset}")
        return hops
