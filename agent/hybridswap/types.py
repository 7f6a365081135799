"""Swap data structures and API models."""

import enum
from dataclasses import dataclass, field

from pydantic import BaseModel


@dataclass(frozen=True)
class PoolKey:
    """Uniswap v4 pool key."""

    currency0: str  # address
    currency1: str  # address
    fee: int
    tick_spacing: int
    hooks: str  # address

    @classmethod
    def from_pair(cls, token_a: str, token_b: str, fee: int, tick_spacing: int, hooks: str) -> "PoolKey":
        """Build a key with the two currencies in canonical (lower address first) order."""
        currency0, currency1 = sorted((token_a, token_b), key=lambda a: int(a, 16))
        return cls(currency0, currency1, fee, tick_spacing, hooks)

    def has_currency(self, currency: str) -> bool:
        return currency.lower() in (self.currency0.lower(), self.currency1.lower())

    def zero_for_one(self, input_currency: str) -> bool:
        """Direction flag for a swap paying `input_currency` into this pool."""
        if input_currency.lower() == self.currency0.lower():
            return True
        if input_currency.lower() == self.currency1.lower():
            return False
        raise ValueError(f"{input_currency} is not a currency of this pool")

    def other(self, currency: str) -> str:
        return self.currency1 if self.zero_for_one(currency) else self.currency0

    def as_tuple(self) -> tuple:
        return (self.currency0, self.currency1, self.fee, self.tick_spacing, self.hooks)


class Direction(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class QuoteSource(str, enum.Enum):
    AMM = "amm"
    OTC = "otc"


class Confidence(str, enum.Enum):
    EXACT = "exact"
    ESTIMATED = "estimated"


class ApprovalState(str, enum.Enum):
    NOT_REQUIRED = "not_required"
    NEEDS_SPENDER_APPROVAL = "needs_spender_approval"
    NEEDS_ROUTER_APPROVAL = "needs_router_approval"
    READY = "ready"

    @property
    def needs_approval(self) -> bool:
        return self in (ApprovalState.NEEDS_SPENDER_APPROVAL, ApprovalState.NEEDS_ROUTER_APPROVAL)


class SubmissionStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class TradeIntent:
    """A single user trade request. Replaced, never mutated."""

    direction: Direction
    input_asset: str
    output_asset: str
    input_amount: int  # smallest unit
    slippage_bps: int
    deadline: int  # unix seconds


@dataclass(frozen=True)
class SourcePortion:
    source: QuoteSource
    input_portion: int
    output_portion: int


@dataclass(frozen=True)
class Quote:
    """Estimated trade output. Disposable."""

    estimated_output_amount: int
    source_breakdown: list[SourcePortion]
    confidence: Confidence
    # Intermediate amount after the first hop of an indirect route
    intermediate_amount: int | None = None

    def min_output(self, slippage_bps: int) -> int:
        """Output floor after slippage."""
        return self.estimated_output_amount * (10_000 - slippage_bps) // 10_000


@dataclass(frozen=True)
class HybridSplit:
    """How the hybrid source would fill a given input."""

    swap_portion: int
    otc_portion: int
    otc_available: int
    otc_bps: int
    otc_fee_bps: int
    has_otc: bool


@dataclass(frozen=True)
class RouterCall:
    """Fully encoded payload for one router execute()."""

    commands: bytes
    inputs: list[bytes]
    deadline: int
    native_value: int = 0


@dataclass(frozen=True)
class BatchCall:
    target: str
    data: bytes
    value: int = 0
    label: str = ""


@dataclass
class BatchPlan:
    """Ordered calls for one submission attempt."""

    calls: list[BatchCall]
    atomic: bool = False

    @property
    def swap_call(self) -> BatchCall:
        return self.calls[-1]

    @property
    def approval_calls(self) -> list[BatchCall]:
        return self.calls[:-1]


@dataclass
class PendingSubmission:
    transaction_id: str
    label: str
    submitted_at: float
    status: SubmissionStatus = SubmissionStatus.PENDING
    error: str | None = None
    is_batch: bool = False
    timed_out: bool = False


@dataclass(frozen=True)
class Candle:
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    optimistic: bool = field(default=False, compare=False)

    def same_values(self, other: "Candle") -> bool:
        return (self.open, self.high, self.low, self.close, self.volume) == (
            other.open,
            other.high,
            other.low,
            other.close,
            other.volume,
        )


class InputRequest(BaseModel):
    """API request model for a trade form edit."""

    direction: Direction
    amount: int
    slippage_bps: int | None = None


class SelectPairResponse(BaseModel):
    pair_id: str
    quoting_enabled: bool
    error: str | None = None


class QuotePortionModel(BaseModel):
    source: QuoteSource
    input_portion: str
    output_portion: str


class QuoteResponse(BaseModel):
    estimated_output_amount: str
    confidence: Confidence
    source_breakdown: list[QuotePortionModel]
    min_output_amount: str

    @classmethod
    def from_quote(cls, quote: Quote, slippage_bps: int) -> "QuoteResponse":
        return cls(
            estimated_output_amount=str(quote.estimated_output_amount),
            confidence=quote.confidence,
            source_breakdown=[
                QuotePortionModel(
                    source=p.source,
                    input_portion=str(p.input_portion),
                    output_portion=str(p.output_portion),
                )
                for p in quote.source_breakdown
            ],
            min_output_amount=str(quote.min_output(slippage_bps)),
        )


class SubmissionModel(BaseModel):
    transaction_id: str
    label: str
    submitted_at: float
    status: SubmissionStatus
    error: str | None = None
    explorer_url: str | None = None


class CandleModel(BaseModel):
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    optimistic: bool = False
