"""Swap error taxonomy."""


class SwapError(Exception):
    """Base class for swap subsystem errors."""

    pass


class PoolKeyUnavailable(SwapError):
    """Pool key could not be resolved; quoting is disabled for the pair."""

    def __init__(self, pair_id: str, reason: str = ""):
        self.pair_id = pair_id
        super().__init__(f"Pool key unavailable for {pair_id}: {reason}" if reason else f"Pool key unavailable for {pair_id}")


class QuoteUnavailable(SwapError):
    pass


class QuoteSimulationReverted(SwapError):
    pass


class InsufficientAllowance(SwapError):
    pass


class UserRejectedSignature(SwapError):
    pass


class SubmissionTimeout(SwapError):
    pass


class TransactionReverted(SwapError):
    def __init__(self, transaction_id: str, detail: str = ""):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction reverted: {transaction_id}" + (f" ({detail})" if detail else ""))


class PriceFeedError(SwapError):
    pass
