"""Settlement simulator: predicts the balances, Fill events and order states a
two-order match must produce, given the amounts the caller expects to move.
"""

import logging
from dataclasses import dataclass

from pysettle.amounts import TransferAmounts
from pysettle.asset import Address, AssetData
from pysettle.balances import BalanceSnapshot
from pysettle.events import FillEvent
from pysettle.order import MatchedOrders, Order, OrderHasher, order_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedTransfer:
    label: str
    from_owner: Address
    to_owner: Address
    amount: int
    asset_data: AssetData


@dataclass
class SettlementResult:
    """Predicted post-match state; the unit compared against reality"""

    orders: MatchedOrders
    fills: tuple[FillEvent, FillEvent]
    balances: BalanceSnapshot


def shares_taker_fee_settlement(left_order: Order, right_order: Order) -> bool:
    """True when both orders pay taker fees to the same recipient in the same
    asset, in which case the engine settles them as one transfer.
    """
    return (
        left_order.fee_recipient_address.lower() == right_order.fee_recipient_address.lower()
        and left_order.taker_fee_asset_data.lower() == right_order.taker_fee_asset_data.lower()
    )


def plan_settlement_transfers(
    orders: MatchedOrders,
    taker_address: Address,
    transfer_amounts: TransferAmounts,
    *,
    merge_taker_fees: bool = True,
) -> list[PlannedTransfer]:
    """Return the fixed sequence of transfers a match settles through.
    :param orders: the matched orders
    :param taker_address: address that called the match
    :param transfer_amounts: amounts moved by each leg
    :param merge_taker_fees: combine the two taker fee legs when they share a
        recipient and asset. Both paths yield identical final balances.
    :returns: transfers in settlement order
    """
    left, right = orders.left_order, orders.right_order
    amounts = transfer_amounts
    transfers = [
        PlannedTransfer(
            "left maker asset to right maker",
            left.maker_address,
            right.maker_address,
            amounts.left_maker_asset_bought_by_right_maker_amount,
            left.maker_asset_data,
        ),
        PlannedTransfer(
            "right maker asset to left maker",
            right.maker_address,
            left.maker_address,
            amounts.right_maker_asset_bought_by_left_maker_amount,
            right.maker_asset_data,
        ),
        PlannedTransfer(
            "left taker profit",
            left.maker_address,
            taker_address,
            amounts.left_maker_asset_received_by_taker_amount,
            left.maker_asset_data,
        ),
        PlannedTransfer(
            "right taker profit",
            right.maker_address,
            taker_address,
            amounts.right_maker_asset_received_by_taker_amount,
            right.maker_asset_data,
        ),
        PlannedTransfer(
            "left maker fee",
            left.maker_address,
            left.fee_recipient_address,
            amounts.left_maker_fee_asset_paid_by_left_maker_amount,
            left.maker_fee_asset_data,
        ),
        PlannedTransfer(
            "right maker fee",
            right.maker_address,
            right.fee_recipient_address,
            amounts.right_maker_fee_asset_paid_by_right_maker_amount,
            right.maker_fee_asset_data,
        ),
    ]
    if merge_taker_fees and shares_taker_fee_settlement(left, right):
        transfers.append(
            PlannedTransfer(
                "combined taker fee",
                taker_address,
                left.fee_recipient_address,
                amounts.left_taker_fee_asset_paid_by_taker_amount
                + amounts.right_taker_fee_asset_paid_by_taker_amount,
                left.taker_fee_asset_data,
            )
        )
    else:
        transfers.append(
            PlannedTransfer(
                "left taker fee",
                taker_address,
                left.fee_recipient_address,
                amounts.left_taker_fee_asset_paid_by_taker_amount,
                left.taker_fee_asset_data,
            )
        )
        transfers.append(
            PlannedTransfer(
                "right taker fee",
                taker_address,
                right.fee_recipient_address,
                amounts.right_taker_fee_asset_paid_by_taker_amount,
                right.taker_fee_asset_data,
            )
        )
    return transfers


def predict_fill_events(
    orders: MatchedOrders,
    taker_address: Address,
    transfer_amounts: TransferAmounts,
    *,
    order_hasher: OrderHasher = order_hash,
) -> tuple[FillEvent, FillEvent]:
    """Create the pair of Fill events (left, right) a match should emit"""
    left, right = orders.left_order, orders.right_order
    amounts = transfer_amounts
    left_fill = FillEvent(
        order_hash=order_hasher(left),
        maker_address=left.maker_address,
        taker_address=taker_address,
        maker_asset_filled_amount=amounts.left_maker_asset_sold_by_left_maker_amount,
        taker_asset_filled_amount=amounts.right_maker_asset_bought_by_left_maker_amount,
        maker_fee_paid=amounts.left_maker_fee_asset_paid_by_left_maker_amount,
        taker_fee_paid=amounts.left_taker_fee_asset_paid_by_taker_amount,
    )
    right_fill = FillEvent(
        order_hash=order_hasher(right),
        maker_address=right.maker_address,
        taker_address=taker_address,
        maker_asset_filled_amount=amounts.right_maker_asset_sold_by_right_maker_amount,
        taker_asset_filled_amount=amounts.left_maker_asset_bought_by_right_maker_amount,
        maker_fee_paid=amounts.right_maker_fee_asset_paid_by_right_maker_amount,
        taker_fee_paid=amounts.right_taker_fee_asset_paid_by_taker_amount,
    )
    return left_fill, right_fill


def simulate_match_orders(
    orders: MatchedOrders,
    taker_address: Address,
    balances: BalanceSnapshot,
    transfer_amounts: TransferAmounts,
    *,
    order_hasher: OrderHasher = order_hash,
    merge_taker_fees: bool = True,
) -> SettlementResult:
    """Simulate matching two orders by transferring `transfer_amounts`.
    `balances` is never modified; the result owns a fresh snapshot.
    :param orders: the matched orders and their filled states
    :param taker_address: address that called the match
    :param balances: balances before the match
    :param transfer_amounts: amounts to move
    :returns: SettlementResult with updated orders, Fill events and balances
    :raises UnsupportedAssetKind: if any leg names an unknown asset kind
    """
    logger.debug("~~~ Simulating match for taker %s", taker_address)
    working = balances.copy()
    for transfer in plan_settlement_transfers(
        orders, taker_address, transfer_amounts, merge_taker_fees=merge_taker_fees
    ):
        logger.debug("Settling %s: %s", transfer.label, transfer.amount)
        working.apply_transfer(
            transfer.from_owner, transfer.to_owner, transfer.amount, transfer.asset_data
        )

    updated_orders = MatchedOrders(
        left_order=orders.left_order,
        right_order=orders.right_order,
        left_order_taker_asset_filled_amount=orders.left_order_taker_asset_filled_amount
        + transfer_amounts.right_maker_asset_bought_by_left_maker_amount,
        right_order_taker_asset_filled_amount=orders.right_order_taker_asset_filled_amount
        + transfer_amounts.left_maker_asset_bought_by_right_maker_amount,
    )
    fills = predict_fill_events(orders, taker_address, transfer_amounts, order_hasher=order_hasher)
    return SettlementResult(orders=updated_orders, fills=fills, balances=working)
