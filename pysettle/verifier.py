"""Checks a simulated settlement against what the engine actually did.

Every check returns the list of divergences it found. Checks never stop each
other: a wrong Fill event does not hide a wrong balance.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, fields
from enum import StrEnum, auto
from typing import Any

from pysettle.asset import Address, AssetKind
from pysettle.balances import BalanceSnapshot
from pysettle.errors import MatchVerificationError
from pysettle.events import FillEvent, TransactionReceipt, extract_fill_events
from pysettle.order import MatchedOrders, OrderInfo, expected_status
from pysettle.simulator import SettlementResult

logger = logging.getLogger(__name__)


class Side(StrEnum):
    """Which of the two matched orders a check refers to"""

    LEFT = auto()
    RIGHT = auto()


@dataclass(frozen=True)
class VerificationFailure:
    def __str__(self) -> str:
        return self.describe()

    def describe(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class WrongFillEventCount(VerificationFailure):
    expected: int
    actual: int

    def describe(self) -> str:
        return f"wrong number of Fill events: expected {self.expected}, got {self.actual}"


@dataclass(frozen=True)
class FillEventMismatch(VerificationFailure):
    side: Side
    field: str
    expected: Any
    actual: Any

    def describe(self) -> str:
        return (
            f"{self.side} order Fill event {self.field}: "
            f"expected {self.expected!r}, got {self.actual!r}"
        )


@dataclass(frozen=True)
class BalanceMismatch(VerificationFailure):
    owner: Address
    asset: Address
    kind: AssetKind
    expected: Any
    actual: Any

    def describe(self) -> str:
        return (
            f"{self.kind} balance of {self.owner} in {self.asset}: "
            f"expected {self.expected!r}, got {self.actual!r}"
        )


@dataclass(frozen=True)
class InitialStateMismatch(VerificationFailure):
    side: Side
    expected: int
    actual: int

    def describe(self) -> str:
        return (
            f"{self.side} order initial filled amount: "
            f"expected {self.expected}, got {self.actual}"
        )


@dataclass(frozen=True)
class PostStateMismatch(VerificationFailure):
    side: Side
    field: str
    expected: Any
    actual: Any

    def describe(self) -> str:
        return f"{self.side} order final {self.field}: expected {self.expected!r}, got {self.actual!r}"


@dataclass
class VerificationOutcome:
    failures: list[VerificationFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def extend(self, failures: Sequence[VerificationFailure]) -> None:
        self.failures.extend(failures)

    def raise_for_failures(self) -> None:
        if self.failures:
            raise MatchVerificationError(list(self.failures))


def verify_fill_events(
    expected_fills: Sequence[FillEvent], receipt: TransactionReceipt
) -> list[VerificationFailure]:
    """Compare predicted Fill events to the receipt's, pairwise in emission
    order (left first). Field comparison is skipped when the counts differ.
    """
    actual_fills = extract_fill_events(receipt)
    if len(actual_fills) != len(expected_fills):
        return [WrongFillEventCount(len(expected_fills), len(actual_fills))]
    failures: list[VerificationFailure] = []
    for side, expected, actual in zip(Side, expected_fills, actual_fills):
        for f in fields(FillEvent):
            expected_value = getattr(expected, f.name)
            actual_value = getattr(actual, f.name)
            if expected_value != actual_value:
                failures.append(FillEventMismatch(side, f.name, expected_value, actual_value))
    return failures


def verify_balances(
    expected: BalanceSnapshot, actual: BalanceSnapshot
) -> list[VerificationFailure]:
    """Fungible balances must match exactly; non-fungible holdings must hold
    the same ids in any order. Missing entries read as zero / no tokens.
    """
    failures: list[VerificationFailure] = []
    for owner in sorted(set(expected.fungible) | set(actual.fungible)):
        tokens = set(expected.fungible.get(owner, {})) | set(actual.fungible.get(owner, {}))
        for token in sorted(tokens):
            expected_amount = expected.fungible_balance(owner, token)
            actual_amount = actual.fungible_balance(owner, token)
            if expected_amount != actual_amount:
                failures.append(
                    BalanceMismatch(owner, token, AssetKind.FUNGIBLE, expected_amount, actual_amount)
                )
    for owner in sorted(set(expected.non_fungible) | set(actual.non_fungible)):
        tokens = set(expected.non_fungible.get(owner, {})) | set(actual.non_fungible.get(owner, {}))
        for token in sorted(tokens):
            expected_ids = sorted(expected.non_fungible_tokens(owner, token))
            actual_ids = sorted(actual.non_fungible_tokens(owner, token))
            if expected_ids != actual_ids:
                failures.append(
                    BalanceMismatch(owner, token, AssetKind.NON_FUNGIBLE, expected_ids, actual_ids)
                )
    return failures


def verify_initial_order_states(
    orders: MatchedOrders, actual_filled_amounts: tuple[int, int]
) -> list[VerificationFailure]:
    """Each order's filled amount before the match must equal what the caller
    declared (zero when not declared).
    """
    declared = (
        orders.left_order_taker_asset_filled_amount,
        orders.right_order_taker_asset_filled_amount,
    )
    return [
        InitialStateMismatch(side, expected, actual)
        for side, expected, actual in zip(Side, declared, actual_filled_amounts)
        if expected != actual
    ]


def verify_post_order_states(
    result: SettlementResult, order_infos: tuple[OrderInfo, OrderInfo]
) -> list[VerificationFailure]:
    """Each order's filled amount after the match must equal the predicted
    cumulative amount, and its status must follow from that amount.
    """
    predicted = (
        (result.orders.left_order, result.orders.left_order_taker_asset_filled_amount),
        (result.orders.right_order, result.orders.right_order_taker_asset_filled_amount),
    )
    failures: list[VerificationFailure] = []
    for side, (order, expected_filled), info in zip(Side, predicted, order_infos):
        if info.order_taker_asset_filled_amount != expected_filled:
            failures.append(
                PostStateMismatch(
                    side, "filled_amount", expected_filled, info.order_taker_asset_filled_amount
                )
            )
        status = expected_status(order, expected_filled)
        if info.order_status != status:
            failures.append(PostStateMismatch(side, "status", status, info.order_status))
    return failures


def verify_match_results(
    result: SettlementResult,
    receipt: TransactionReceipt,
    actual_balances: BalanceSnapshot,
    order_infos: tuple[OrderInfo, OrderInfo],
) -> VerificationOutcome:
    """Run every post-match check and collect all divergences.
    :param result: output of simulate_match_orders
    :param receipt: receipt of the real match call
    :param actual_balances: balances read after the match
    :param order_infos: left and right order info read after the match
    :returns: VerificationOutcome
    """
    outcome = VerificationOutcome()
    outcome.extend(verify_fill_events(result.fills, receipt))
    outcome.extend(verify_balances(result.balances, actual_balances))
    outcome.extend(verify_post_order_states(result, order_infos))
    if outcome.ok:
        logger.info("Settlement of %s verified", receipt.transaction_hash)
    else:
        for failure in outcome.failures:
            logger.error("Settlement of %s diverged: %s", receipt.transaction_hash, failure)
    return outcome
