"""Tests for quote estimation and debouncing."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from hybridswap.errors import QuoteSimulationReverted
from hybridswap.quoter import QuoteDebouncer, QuoteEngine
from hybridswap.types import Confidence, Direction, HybridSplit, PoolKey, QuoteSource, TradeIntent

NATIVE = "0x0000000000000000000000000000000000000000"
MID = "0x0000000000000000000000000000000000001111"
TARGET = "0x0000000000000000000000000000000000003333"
HOOK = "0x0000000000000000000000000000000000000000"

FIRST = PoolKey.from_pair(NATIVE, MID, 3000, 60, HOOK)
SECOND = PoolKey.from_pair(MID, TARGET, 10000, 200, HOOK)
ONE = 10**18


def _make_intent(direction, input_asset, output_asset, amount=ONE) -> TradeIntent:
    return TradeIntent(direction, input_asset, output_asset, amount, 500, 99999999999)


def _amm_first_leg(amount: int) -> int:
    """Constant-product-ish curve: ~1000 MID per native with price impact."""
    return amount * 1000 * ONE // (100 * ONE + amount)


class FakeReader:
    def __init__(self, split: HybridSplit | None = None, reverse_out: int = 50 * ONE):
        self.split = split
        self.reverse_out = reverse_out
        self.quote_exact_input_single = AsyncMock(side_effect=self._quote)
        self.hybrid_quote = AsyncMock(side_effect=self._hybrid)

    async def _quote(self, key, zero_for_one, amount):
        if key == FIRST:
            return _amm_first_leg(amount)
        # target -> MID, one unit
        return self.reverse_out

    async def _hybrid(self, amount):
        return self.split or HybridSplit(amount, 0, 0, 0, 0, False)


@pytest.mark.asyncio
async def test_direct_buy_returns_simulated_output():
    """1 native at 1:2000 with a 0.3% fee quotes ~1994 tokens (1.994k)."""
    reader = AsyncMock()
    reader.quote_exact_input_single.side_effect = lambda key, zfo, amount: amount * 2000 * 997 // 1000
    engine = QuoteEngine(reader)

    quote = await engine.quote(_make_intent(Direction.BUY, NATIVE, MID), [FIRST])

    assert quote.confidence == Confidence.EXACT
    assert quote.estimated_output_amount / ONE == pytest.approx(1994.0)
    reader.quote_exact_input_single.assert_awaited_once_with(FIRST, True, ONE)


@pytest.mark.asyncio
async def test_direct_sell_uses_canonical_flag():
    reader = AsyncMock()
    reader.quote_exact_input_single.return_value = 42
    engine = QuoteEngine(reader)

    await engine.quote(_make_intent(Direction.SELL, MID, NATIVE), [FIRST])
    reader.quote_exact_input_single.assert_awaited_once_with(FIRST, False, ONE)


@pytest.mark.asyncio
async def test_indirect_buy_blends_otc_and_amm():
    """70% OTC / 30% AMM with a 50 bps OTC fee follows the two-step estimate."""
    split = HybridSplit(
        swap_portion=3 * ONE // 10,
        otc_portion=7 * ONE // 10,
        otc_available=100 * ONE,
        otc_bps=7000,
        otc_fee_bps=50,
        has_otc=True,
    )
    reader = FakeReader(split=split, reverse_out=50 * ONE)
    engine = QuoteEngine(reader, inverted_hop_correction=0.77)

    quote = await engine.quote(_make_intent(Direction.BUY, NATIVE, TARGET), [FIRST, SECOND])

    # Breakdown covers the whole input
    assert sum(p.input_portion for p in quote.source_breakdown) == ONE
    otc = next(p for p in quote.source_breakdown if p.source == QuoteSource.OTC)
    amm = next(p for p in quote.source_breakdown if p.source == QuoteSource.AMM)
    assert otc.input_portion == 7 * ONE // 10
    assert amm.input_portion == 3 * ONE // 10

    # Expected: AMM part at its own impacted rate, OTC part at the full-amount rate less fee
    full = _amm_first_leg(ONE)
    swap_out = _amm_first_leg(3 * ONE // 10)
    otc_out = full * 0.7 * (1 - 0.005)
    intermediate = swap_out + otc_out
    expected = intermediate / 50 * 0.77

    assert quote.estimated_output_amount == pytest.approx(expected, rel=1e-4)
    assert quote.confidence == Confidence.ESTIMATED
    assert quote.intermediate_amount == pytest.approx(intermediate, rel=1e-4)


@pytest.mark.asyncio
async def test_otc_portion_not_priced_at_marginal_rate():
    """Blending beats pricing the whole trade through the impacted AMM."""
    split = HybridSplit(3 * ONE // 10, 7 * ONE // 10, 100 * ONE, 7000, 0, True)
    engine = QuoteEngine(FakeReader(split=split))
    quote = await engine.quote(_make_intent(Direction.BUY, NATIVE, TARGET), [FIRST, SECOND])
    assert quote.intermediate_amount > _amm_first_leg(ONE)


@pytest.mark.asyncio
async def test_indirect_buy_without_otc_uses_amm_only():
    engine = QuoteEngine(FakeReader(split=None), inverted_hop_correction=1.0)
    quote = await engine.quote(_make_intent(Direction.BUY, NATIVE, TARGET), [FIRST, SECOND])

    assert [p.source for p in quote.source_breakdown] == [QuoteSource.AMM]
    assert quote.intermediate_amount == _amm_first_leg(ONE)
    assert quote.estimated_output_amount == _amm_first_leg(ONE) * ONE // (50 * ONE)


@pytest.mark.asyncio
async def test_second_leg_quoted_in_reverse_for_one_unit():
    reader = FakeReader()
    engine = QuoteEngine(reader)
    await engine.quote(_make_intent(Direction.BUY, NATIVE, TARGET), [FIRST, SECOND])

    key, zero_for_one, amount = reader.quote_exact_input_single.await_args_list[-1].args
    assert key == SECOND
    assert zero_for_one is False  # TARGET is currency1, paying it in
    assert amount == ONE


@pytest.mark.asyncio
async def test_correction_factor_is_configurable():
    base = await QuoteEngine(FakeReader(), 1.0).quote(_make_intent(Direction.BUY, NATIVE, TARGET), [FIRST, SECOND])
    tuned = await QuoteEngine(FakeReader(), 0.5).quote(_make_intent(Direction.BUY, NATIVE, TARGET), [FIRST, SECOND])
    assert tuned.estimated_output_amount == int(Decimal(base.estimated_output_amount) * Decimal("0.5"))


@pytest.mark.asyncio
async def test_hybrid_revert_falls_back_to_amm():
    reader = FakeReader()
    reader.hybrid_quote.side_effect = QuoteSimulationReverted("boom")
    quote = await QuoteEngine(reader).quote(_make_intent(Direction.BUY, NATIVE, TARGET), [FIRST, SECOND])
    assert [p.source for p in quote.source_breakdown] == [QuoteSource.AMM]


@pytest.mark.asyncio
async def test_indirect_sell_reverted_falls_back_one_to_one():
    """A reverted sell simulation yields a 1:1 estimate, not an error."""
    reader = AsyncMock()
    reader.quote_exact_input_single.side_effect = QuoteSimulationReverted("execution reverted")
    engine = QuoteEngine(reader)

    quote = await engine.quote(_make_intent(Direction.SELL, TARGET, MID, amount=123), [FIRST, SECOND])
    assert quote.estimated_output_amount == 123
    assert quote.confidence == Confidence.ESTIMATED


@pytest.mark.asyncio
async def test_indirect_sell_single_hop_is_exact():
    reader = AsyncMock()
    reader.quote_exact_input_single.return_value = 99
    quote = await QuoteEngine(reader).quote(_make_intent(Direction.SELL, TARGET, MID), [FIRST, SECOND])

    assert quote.estimated_output_amount == 99
    assert quote.confidence == Confidence.EXACT
    reader.quote_exact_input_single.assert_awaited_once_with(SECOND, False, ONE)


@pytest.mark.asyncio
async def test_indirect_sell_to_native_chains_two_hops():
    reader = AsyncMock()
    reader.quote_exact_input_single.side_effect = [500, 7]
    quote = await QuoteEngine(reader).quote(_make_intent(Direction.SELL, TARGET, NATIVE), [FIRST, SECOND])

    assert quote.estimated_output_amount == 7
    assert quote.intermediate_amount == 500
    assert reader.quote_exact_input_single.await_args_list[1].args == (FIRST, False, 500)


@pytest.mark.asyncio
async def test_direct_revert_propagates():
    reader = AsyncMock()
    reader.quote_exact_input_single.side_effect = QuoteSimulationReverted("no liquidity")
    with pytest.raises(QuoteSimulationReverted):
        await QuoteEngine(reader).quote(_make_intent(Direction.BUY, NATIVE, MID), [FIRST])


@pytest.mark.asyncio
async def test_zero_amount_rejected():
    with pytest.raises(ValueError):
        await QuoteEngine(AsyncMock()).quote(_make_intent(Direction.BUY, NATIVE, MID, amount=0), [FIRST])


@pytest.mark.asyncio
async def test_debounce_three_edits_one_request():
    """Three edits inside the quiet period evaluate only the last one."""
    quote_fn = AsyncMock(return_value="quote")
    results = []
    debouncer = QuoteDebouncer(quote_fn, delay=0.3, on_result=results.append)

    debouncer.request("edit-1")
    await asyncio.sleep(0.05)
    debouncer.request("edit-2")
    await asyncio.sleep(0.05)
    debouncer.request("edit-3")
    await debouncer.wait()

    quote_fn.assert_awaited_once_with("edit-3")
    assert results == ["quote"]


@pytest.mark.asyncio
async def test_stale_in_flight_result_discarded():
    """A slow earlier response arriving after a newer one is never applied."""
    gate = asyncio.Event()

    async def quote_fn(arg):
        if arg == "old":
            await gate.wait()
            return "OLD"
        return "NEW"

    results = []
    debouncer = QuoteDebouncer(quote_fn, delay=0.01, on_result=results.append)

    debouncer.request("old")
    await asyncio.sleep(0.05)  # old is now in flight
    debouncer.request("new")
    await asyncio.sleep(0.05)
    assert debouncer.latest == "NEW"

    gate.set()
    await debouncer.wait()
    assert debouncer.latest == "NEW"
    assert results == ["NEW"]


@pytest.mark.asyncio
async def test_invalidate_drops_pending_request():
    quote_fn = AsyncMock(return_value="quote")
    debouncer = QuoteDebouncer(quote_fn, delay=0.05)
    debouncer.request("edit")
    debouncer.invalidate()
    await debouncer.wait()
    quote_fn.assert_not_awaited()
    assert debouncer.latest is None


@pytest.mark.asyncio
async def test_debounce_error_reported_for_latest_only():
    quote_fn = AsyncMock(side_effect=QuoteSimulationReverted("revert"))
    errors = []
    debouncer = QuoteDebouncer(quote_fn, delay=0.01, on_error=errors.append)
    debouncer.request("edit")
    await debouncer.wait()
    assert len(errors) == 1
