import logging
from dataclasses import dataclass, fields

from pysettle.errors import AmountConflict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferAmounts:
    """Every asset movement a single match can produce, in base units"""

    # Assets being traded.
    left_maker_asset_sold_by_left_maker_amount: int = 0
    right_maker_asset_sold_by_right_maker_amount: int = 0
    right_maker_asset_bought_by_left_maker_amount: int = 0
    left_maker_asset_bought_by_right_maker_amount: int = 0
    # Taker profit.
    left_maker_asset_received_by_taker_amount: int = 0
    right_maker_asset_received_by_taker_amount: int = 0
    # Maker fees.
    left_maker_fee_asset_paid_by_left_maker_amount: int = 0
    right_maker_fee_asset_paid_by_right_maker_amount: int = 0
    # Taker fees.
    left_taker_fee_asset_paid_by_taker_amount: int = 0
    right_taker_fee_asset_paid_by_taker_amount: int = 0

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{f.name} must be an int, got {value!r}")
            if value < 0:
                raise ValueError(f"{f.name} must be non-negative, got {value}")


@dataclass(frozen=True)
class PartialTransferAmounts:
    """Caller-supplied expected amounts. None means omitted, which is distinct
    from an explicit zero.
    """

    left_maker_asset_sold_by_left_maker_amount: int | None = None
    right_maker_asset_sold_by_right_maker_amount: int | None = None
    right_maker_asset_bought_by_left_maker_amount: int | None = None
    left_maker_asset_bought_by_right_maker_amount: int | None = None
    left_maker_asset_received_by_taker_amount: int | None = None
    right_maker_asset_received_by_taker_amount: int | None = None
    left_maker_fee_asset_paid_by_left_maker_amount: int | None = None
    right_maker_fee_asset_paid_by_right_maker_amount: int | None = None
    left_taker_fee_asset_paid_by_taker_amount: int | None = None
    right_taker_fee_asset_paid_by_taker_amount: int | None = None


# (sold field, bought-by-counterparty field, taker profit field) per maker asset
SYMMETRIC_PAIRS: tuple[tuple[str, str, str], ...] = (
    (
        "left_maker_asset_sold_by_left_maker_amount",
        "left_maker_asset_bought_by_right_maker_amount",
        "left_maker_asset_received_by_taker_amount",
    ),
    (
        "right_maker_asset_sold_by_right_maker_amount",
        "right_maker_asset_bought_by_left_maker_amount",
        "right_maker_asset_received_by_taker_amount",
    ),
)
ONE_DIRECTIONAL_FIELDS: tuple[str, ...] = (
    "left_maker_asset_received_by_taker_amount",
    "right_maker_asset_received_by_taker_amount",
    "left_maker_fee_asset_paid_by_left_maker_amount",
    "right_maker_fee_asset_paid_by_right_maker_amount",
    "left_taker_fee_asset_paid_by_taker_amount",
    "right_taker_fee_asset_paid_by_taker_amount",
)


def _first_given(*values: int | None) -> int:
    for value in values:
        if value is not None:
            return value
    return 0


def normalize_transfer_amounts(
    partial: PartialTransferAmounts, *, strict: bool = True
) -> TransferAmounts:
    """Fill a partial set of expected transfer amounts.
    Each maker-to-maker field falls back to its counterpart, then zero.
    One-directional fields fall back to zero.
    :param partial: caller-supplied amounts
    :param strict: raise AmountConflict when both views of a maker asset are
        given and sold != bought + taker profit. When False the directly named
        field wins.
    :returns: fully populated TransferAmounts
    """
    resolved: dict[str, int] = {
        name: _first_given(getattr(partial, name)) for name in ONE_DIRECTIONAL_FIELDS
    }
    for sold_field, bought_field, profit_field in SYMMETRIC_PAIRS:
        sold = getattr(partial, sold_field)
        bought = getattr(partial, bought_field)
        if sold is not None and bought is not None:
            profit = resolved[profit_field]
            if sold != bought + profit:
                if strict:
                    raise AmountConflict(sold_field, sold, bought_field, bought, profit)
                logger.warning(
                    "Inconsistent amounts %s=%s and %s=%s (taker profit %s); keeping both as given",
                    sold_field,
                    sold,
                    bought_field,
                    bought,
                    profit,
                )
        resolved[sold_field] = _first_given(sold, bought)
        resolved[bought_field] = _first_given(bought, sold)
    return TransferAmounts(**resolved)


def to_full_transfer_amounts(
    amounts: PartialTransferAmounts | TransferAmounts, *, strict: bool = True
) -> TransferAmounts:
    if isinstance(amounts, TransferAmounts):
        return amounts
    return normalize_transfer_amounts(amounts, strict=strict)
