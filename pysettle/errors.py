from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pysettle.verifier import VerificationFailure


class SettlementError(Exception):
    """Base class for errors raised while simulating or executing a settlement"""


class UnsupportedAssetKind(SettlementError, ValueError):
    """Asset data carries a kind selector with no transfer rule"""

    def __init__(self, selector: str) -> None:
        super().__init__(f"Unsupported asset kind: {selector}")
        self.selector = selector


class AmountConflict(SettlementError, ValueError):
    """Both views of a maker-to-maker transfer were supplied and disagree"""

    def __init__(self, sold_field: str, sold: int, bought_field: str, bought: int, profit: int) -> None:
        super().__init__(
            f"{sold_field}={sold} does not equal {bought_field}={bought} "
            f"plus taker profit {profit}"
        )
        self.sold_field = sold_field
        self.bought_field = bought_field
        self.sold = sold
        self.bought = bought
        self.profit = profit


class ExchangeError(SettlementError):
    """Raised by the reference exchange when it rejects a match"""


class NegativeSpreadError(ExchangeError):
    pass


class OrderNotFillableError(ExchangeError):
    pass


class InsufficientBalanceError(ExchangeError):
    pass


class InvalidTakerError(ExchangeError):
    pass


class MatchVerificationError(AssertionError):
    """Predicted settlement and the engine's actual outcome diverged.
    Carries every failure found, not just the first.
    """

    def __init__(self, failures: "list[VerificationFailure]") -> None:
        lines = "\n".join(f"  - {failure}" for failure in failures)
        super().__init__(f"{len(failures)} settlement divergence(s):\n{lines}")
        self.failures = failures
