"""Tests for router calldata encoding."""

import pytest
from eth_abi import decode
from web3 import Web3

from hybridswap.calldata import (
    EXACT_INPUT_SINGLE_TYPE,
    SETTLE_ALL,
    SWAP_EXACT_IN_SINGLE,
    TAKE_ALL,
    V4_SWAP,
    CalldataBuilder,
    encode_execute,
    encode_function_call,
)
from hybridswap.types import Confidence, Direction, PoolKey, Quote, QuoteSource, SourcePortion, TradeIntent

NATIVE = "0x0000000000000000000000000000000000000000"
LOW = "0x0000000000000000000000000000000000001111"
HIGH = "0x0000000000000000000000000000000000002222"
TARGET = "0x0000000000000000000000000000000000003333"
HOOK = "0x0000000000000000000000000000000000000000"


def _make_intent(direction, input_asset, output_asset, amount=10**18, slippage_bps=500) -> TradeIntent:
    return TradeIntent(
        direction=direction,
        input_asset=input_asset,
        output_asset=output_asset,
        input_amount=amount,
        slippage_bps=slippage_bps,
        deadline=99999999999,
    )


def _make_quote(amount_out: int) -> Quote:
    return Quote(amount_out, [SourcePortion(QuoteSource.AMM, 10**18, amount_out)], Confidence.EXACT)


def _unpack(call):
    """Decode a RouterCall into (actions, [param blobs])."""
    assert call.commands == bytes([V4_SWAP])
    assert len(call.inputs) == 1
    actions, params = decode(["bytes", "bytes[]"], call.inputs[0])
    return actions, params


def _decode_swap(blob):
    (params,) = decode([EXACT_INPUT_SINGLE_TYPE], blob)
    pool, zero_for_one, amount_in, amount_out_min, hook_data = params
    return pool, zero_for_one, amount_in, amount_out_min


def test_single_hop_action_sequence():
    """Single hop encodes swap, settle, take in that order."""
    key = PoolKey.from_pair(NATIVE, LOW, 3000, 60, HOOK)
    call = CalldataBuilder().build(_make_intent(Direction.BUY, NATIVE, LOW), _make_quote(2000 * 10**18), [key])

    actions, params = _unpack(call)
    assert actions == bytes([SWAP_EXACT_IN_SINGLE, SETTLE_ALL, TAKE_ALL])
    assert len(params) == 3


def test_params_line_up_with_actions():
    """Each param blob decodes as the action at the same position."""
    key = PoolKey.from_pair(NATIVE, LOW, 3000, 60, HOOK)
    intent = _make_intent(Direction.BUY, NATIVE, LOW, amount=10**18, slippage_bps=100)
    call = CalldataBuilder().build(intent, _make_quote(1000), [key])
    _, params = _unpack(call)

    pool, zero_for_one, amount_in, amount_out_min = _decode_swap(params[0])
    assert pool[0].lower() == NATIVE and pool[1].lower() == LOW
    assert pool[2:4] == (3000, 60)
    assert amount_in == 10**18
    assert amount_out_min == 990

    settle_currency, settle_max = decode(["address", "uint256"], params[1])
    assert settle_currency.lower() == NATIVE
    assert settle_max == 10**18

    take_currency, take_min = decode(["address", "uint256"], params[2])
    assert take_currency.lower() == LOW
    assert take_min == 990


def test_zero_for_one_follows_canonical_order():
    """zeroForOne depends on which pool currency is paid in, not on buy/sell."""
    key = PoolKey.from_pair(HIGH, LOW, 3000, 60, HOOK)
    assert key.currency0 == LOW

    builder = CalldataBuilder()
    quote = _make_quote(10**18)

    pay_low = builder.build(_make_intent(Direction.SELL, LOW, HIGH), quote, [key])
    pay_high = builder.build(_make_intent(Direction.SELL, HIGH, LOW), quote, [key])

    assert _decode_swap(_unpack(pay_low)[1][0])[1] is True
    assert _decode_swap(_unpack(pay_high)[1][0])[1] is False

    # Same currency paid in, different direction label: same flag
    buy_low = builder.build(_make_intent(Direction.BUY, LOW, HIGH), quote, [key])
    assert _decode_swap(_unpack(buy_low)[1][0])[1] is True


def test_build_is_deterministic():
    """Identical inputs give byte-identical calls."""
    key = PoolKey.from_pair(NATIVE, LOW, 3000, 60, HOOK)
    intent = _make_intent(Direction.BUY, NATIVE, LOW)
    quote = _make_quote(123456789)

    call1 = CalldataBuilder().build(intent, quote, [key])
    call2 = CalldataBuilder().build(intent, quote, [key])
    assert call1 == call2
    assert encode_execute(call1) == encode_execute(call2)


def test_multi_hop_second_amount_in_is_zero():
    """Second swap consumes the first swap's output, whatever the quote says."""
    first = PoolKey.from_pair(NATIVE, LOW, 3000, 60, HOOK)
    second = PoolKey.from_pair(LOW, TARGET, 10000, 200, HOOK)
    intent = _make_intent(Direction.BUY, NATIVE, TARGET)
    quote = Quote(5 * 10**18, [], Confidence.ESTIMATED, intermediate_amount=777 * 10**18)

    call = CalldataBuilder().build(intent, quote, [first, second])
    actions, params = _unpack(call)

    assert actions == bytes([SWAP_EXACT_IN_SINGLE, SWAP_EXACT_IN_SINGLE, SETTLE_ALL, TAKE_ALL])
    _, zfo1, amount_in1, min1 = _decode_swap(params[0])
    pool2, zfo2, amount_in2, min2 = _decode_swap(params[1])

    assert amount_in1 == 10**18
    assert amount_in2 == 0
    assert min1 == 0
    assert min2 == quote.min_output(intent.slippage_bps)
    assert zfo1 is True  # native is always currency0
    assert zfo2 is True  # LOW < TARGET
    assert pool2[4].lower() == HOOK

    settle_currency, _ = decode(["address", "uint256"], params[2])
    take_currency, _ = decode(["address", "uint256"], params[3])
    assert settle_currency.lower() == NATIVE
    assert take_currency.lower() == TARGET


def test_multi_hop_sell_walks_route_backwards():
    """Selling the target through two pools starts at the target's pool."""
    first = PoolKey.from_pair(NATIVE, LOW, 3000, 60, HOOK)
    second = PoolKey.from_pair(LOW, TARGET, 10000, 200, HOOK)
    intent = _make_intent(Direction.SELL, TARGET, NATIVE)

    call = CalldataBuilder().build(intent, _make_quote(10**15), [first, second])
    actions, params = _unpack(call)

    assert actions == bytes([SWAP_EXACT_IN_SINGLE, SWAP_EXACT_IN_SINGLE, SETTLE_ALL, TAKE_ALL])
    pool1, zfo1, amount_in1, _ = _decode_swap(params[0])
    pool2, zfo2, amount_in2, _ = _decode_swap(params[1])
    assert pool1[2] == 10000 and zfo1 is False
    assert pool2[2] == 3000 and zfo2 is False
    assert amount_in2 == 0
    assert call.native_value == 0


def test_sell_to_intermediate_is_single_hop():
    """Selling the target for the intermediate uses only the second pool."""
    first = PoolKey.from_pair(NATIVE, LOW, 3000, 60, HOOK)
    second = PoolKey.from_pair(LOW, TARGET, 10000, 200, HOOK)
    intent = _make_intent(Direction.SELL, TARGET, LOW)

    actions, _ = _unpack(CalldataBuilder().build(intent, _make_quote(10**18), [first, second]))
    assert actions == bytes([SWAP_EXACT_IN_SINGLE, SETTLE_ALL, TAKE_ALL])


def test_native_input_carries_value():
    key = PoolKey.from_pair(NATIVE, LOW, 3000, 60, HOOK)
    buy = CalldataBuilder().build(_make_intent(Direction.BUY, NATIVE, LOW, amount=5), _make_quote(10), [key])
    sell = CalldataBuilder().build(_make_intent(Direction.SELL, LOW, NATIVE, amount=5), _make_quote(10), [key])
    assert buy.native_value == 5
    assert sell.native_value == 0


def test_route_must_reach_output():
    key = PoolKey.from_pair(NATIVE, LOW, 3000, 60, HOOK)
    with pytest.raises(ValueError):
        CalldataBuilder().build(_make_intent(Direction.BUY, NATIVE, TARGET), _make_quote(1), [key])


def test_encode_function_call_selector():
    """Selector is the keccak prefix of the signature."""
    data = encode_function_call("approve(address,uint256)", ["address", "uint256"], [LOW, 1])
    assert data[:4] == bytes(Web3.keccak(text="approve(address,uint256)")[:4])
    assert data[:4].hex() == "095ea7b3"
    assert len(data) == 4 + 64


def test_execute_calldata_decodes():
    key = PoolKey.from_pair(NATIVE, LOW, 3000, 60, HOOK)
    call = CalldataBuilder().build(_make_intent(Direction.BUY, NATIVE, LOW), _make_quote(1000), [key])
    data = encode_execute(call)

    assert data[:4].hex() == "3593564c"
    commands, inputs, deadline = decode(["bytes", "bytes[]", "uint256"], data[4:])
    assert commands == bytes([V4_SWAP])
    assert list(inputs) == call.inputs
    assert deadline == 99999999999
