"""In-memory reference exchange.

Implements the three boundaries the tester talks to (matching engine,
balance reader, order-state oracle) against a local ledger, so settlements
can be simulated and verified without a remote chain.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeAlias

from pysettle.asset import (
    Address,
    AssetData,
    FungibleAsset,
    NonFungibleAsset,
    decode_asset_data,
    normalize_address,
)
from pysettle.balances import BalanceSnapshot
from pysettle.errors import (
    ExchangeError,
    InsufficientBalanceError,
    InvalidTakerError,
    NegativeSpreadError,
    OrderNotFillableError,
    UnsupportedAssetKind,
)
from pysettle.events import FillEvent, TransactionReceipt, TransferEvent
from pysettle.order import (
    NULL_ADDRESS,
    Order,
    OrderHash,
    OrderHasher,
    OrderInfo,
    OrderStatus,
    order_hash,
)

logger = logging.getLogger(__name__)


def partial_amount_floor(numerator: int, denominator: int, target: int) -> int:
    return numerator * target // denominator


def partial_amount_ceil(numerator: int, denominator: int, target: int) -> int:
    return -(-numerator * target // denominator)


@dataclass(frozen=True)
class FillResults:
    maker_asset_filled_amount: int = 0
    taker_asset_filled_amount: int = 0
    maker_fee_paid: int = 0
    taker_fee_paid: int = 0


@dataclass(frozen=True)
class MatchedFillResults:
    left: FillResults
    right: FillResults
    profit_in_left_maker_asset: int
    profit_in_right_maker_asset: int


def _with_fees(order: Order, maker_filled: int, taker_filled: int) -> FillResults:
    return FillResults(
        maker_asset_filled_amount=maker_filled,
        taker_asset_filled_amount=taker_filled,
        maker_fee_paid=partial_amount_floor(maker_filled, order.maker_asset_amount, order.maker_fee),
        taker_fee_paid=partial_amount_floor(taker_filled, order.taker_asset_amount, order.taker_fee),
    )


def calculate_matched_fill_results(
    left_order: Order,
    right_order: Order,
    left_order_taker_asset_filled_amount: int,
    right_order_taker_asset_filled_amount: int,
) -> MatchedFillResults:
    """Decide how much of each order a match fills.
    The order with less remaining is filled completely. Maker amounts round
    down and the right order's taker amount rounds up, so any spread lands
    with the taker in the left maker asset.
    """
    left_taker_remaining = left_order.taker_asset_amount - left_order_taker_asset_filled_amount
    right_taker_remaining = right_order.taker_asset_amount - right_order_taker_asset_filled_amount
    left_maker_remaining = partial_amount_floor(
        left_order.maker_asset_amount, left_order.taker_asset_amount, left_taker_remaining
    )
    right_maker_remaining = partial_amount_floor(
        right_order.maker_asset_amount, right_order.taker_asset_amount, right_taker_remaining
    )

    if left_taker_remaining > right_maker_remaining:
        # right order completely filled
        right = (right_maker_remaining, right_taker_remaining)
        left = (
            partial_amount_floor(
                left_order.maker_asset_amount, left_order.taker_asset_amount, right_maker_remaining
            ),
            right_maker_remaining,
        )
    elif left_taker_remaining < right_maker_remaining:
        # left order completely filled
        left = (left_maker_remaining, left_taker_remaining)
        right = (
            left_taker_remaining,
            partial_amount_ceil(
                right_order.taker_asset_amount, right_order.maker_asset_amount, left_taker_remaining
            ),
        )
    else:
        left = (left_maker_remaining, left_taker_remaining)
        right = (right_maker_remaining, right_taker_remaining)

    left_results = _with_fees(left_order, *left)
    right_results = _with_fees(right_order, *right)
    return MatchedFillResults(
        left=left_results,
        right=right_results,
        profit_in_left_maker_asset=left_results.maker_asset_filled_amount
        - right_results.taker_asset_filled_amount,
        profit_in_right_maker_asset=right_results.maker_asset_filled_amount
        - left_results.taker_asset_filled_amount,
    )


class InMemoryExchange:
    """Atomic two-order matcher over a local ledger. Matches are serialised;
    a rejected match leaves balances and order state untouched.
    """

    def __init__(
        self,
        *,
        order_hasher: OrderHasher = order_hash,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.balances = BalanceSnapshot()
        self.filled_amounts: dict[OrderHash, int] = {}
        self.cancelled: set[OrderHash] = set()
        self.order_hasher = order_hasher
        self.clock = clock
        self._lock = asyncio.Lock()
        self._nonce = 0

    def mint_fungible(self, owner: Address, token_address: Address, amount: int) -> None:
        if amount < 0:
            raise ValueError("Mint amount must be non-negative")
        owner, token = normalize_address(owner), normalize_address(token_address)
        holdings = self.balances.fungible.setdefault(owner, {})
        holdings[token] = holdings.get(token, 0) + amount

    def mint_non_fungible(self, owner: Address, token_address: Address, token_id: int) -> None:
        owner, token = normalize_address(owner), normalize_address(token_address)
        for holder, holdings in self.balances.non_fungible.items():
            if token_id in holdings.get(token, []):
                raise ValueError(f"Token {token_id} of {token} already held by {holder}")
        self.balances.non_fungible.setdefault(owner, {}).setdefault(token, []).append(token_id)

    async def get_balances(self) -> BalanceSnapshot:
        return self.balances.copy()

    async def get_taker_asset_filled_amount(self, order_hash: OrderHash) -> int:
        return self.filled_amounts.get(order_hash, 0)

    async def get_order_info(self, order: Order) -> OrderInfo:
        hash_ = self.order_hasher(order)
        return OrderInfo(
            order_status=self.order_status(order),
            order_hash=hash_,
            order_taker_asset_filled_amount=self.filled_amounts.get(hash_, 0),
        )

    def order_status(self, order: Order) -> OrderStatus:
        hash_ = self.order_hasher(order)
        if hash_ in self.cancelled:
            return OrderStatus.CANCELLED
        if self.filled_amounts.get(hash_, 0) >= order.taker_asset_amount:
            return OrderStatus.FULLY_FILLED
        if order.expiration_time_seconds and order.expiration_time_seconds <= self.clock():
            return OrderStatus.EXPIRED
        return OrderStatus.FILLABLE

    async def cancel_order(self, order: Order) -> None:
        async with self._lock:
            hash_ = self.order_hasher(order)
            logger.debug("~~~ Processing Cancel Request for Order %s", hash_)
            status = self.order_status(order)
            if status != OrderStatus.FILLABLE:
                logger.error("Order %s cannot be cancelled, it is %s", hash_, status)
                raise OrderNotFillableError(f"Order {hash_} is {status}")
            self.cancelled.add(hash_)

    async def match_orders(
        self, left_order: Order, right_order: Order, taker_address: Address
    ) -> TransactionReceipt:
        """Match two complementary orders and settle them atomically.
        :param left_order: first order
        :param right_order: order whose maker asset is left_order's taker asset
        :param taker_address: address calling the match, receives any spread
        :returns: TransactionReceipt holding Transfer logs then the two Fill logs
        """
        async with self._lock:
            return self._match_orders(left_order, right_order, taker_address)

    def _match_orders(
        self, left_order: Order, right_order: Order, taker_address: Address
    ) -> TransactionReceipt:
        logger.debug("~~~ Processing match for taker %s", taker_address)
        self._validate_match(left_order, right_order, taker_address)
        left_hash = self.order_hasher(left_order)
        right_hash = self.order_hasher(right_order)
        left_filled = self.filled_amounts.get(left_hash, 0)
        right_filled = self.filled_amounts.get(right_hash, 0)
        results = calculate_matched_fill_results(left_order, right_order, left_filled, right_filled)

        working = self.balances.copy()
        transfer_events: list[TransferEvent] = []
        for leg in _settlement_legs(left_order, right_order, taker_address, results):
            event = self._checked_transfer(working, *leg)
            if event is not None:
                transfer_events.append(event)
        fills = (
            _fill_event(left_hash, left_order, taker_address, results.left),
            _fill_event(right_hash, right_order, taker_address, results.right),
        )

        # commit
        self.balances = working
        self.filled_amounts[left_hash] = left_filled + results.left.taker_asset_filled_amount
        self.filled_amounts[right_hash] = right_filled + results.right.taker_asset_filled_amount
        self._nonce += 1
        receipt = TransactionReceipt(
            transaction_hash=f"0x{self._nonce:064x}",
            logs=[event.to_log() for event in transfer_events] + [fill.to_log() for fill in fills],
        )
        logger.info(
            "Matched %s with %s: %s transfers", left_hash, right_hash, len(transfer_events)
        )
        return receipt

    def _validate_match(self, left_order: Order, right_order: Order, taker_address: Address) -> None:
        for side, order in (("left", left_order), ("right", right_order)):
            status = self.order_status(order)
            if status != OrderStatus.FILLABLE:
                raise OrderNotFillableError(f"{side} order {self.order_hasher(order)} is {status}")
            if order.taker_address != NULL_ADDRESS and (
                order.taker_address.lower() != taker_address.lower()
            ):
                raise InvalidTakerError(f"{side} order may only be filled by {order.taker_address}")
        if (
            left_order.maker_asset_data.lower() != right_order.taker_asset_data.lower()
            or right_order.maker_asset_data.lower() != left_order.taker_asset_data.lower()
        ):
            raise ExchangeError("Orders do not trade complementary assets")
        if (
            left_order.maker_asset_amount * right_order.maker_asset_amount
            < left_order.taker_asset_amount * right_order.taker_asset_amount
        ):
            raise NegativeSpreadError("Orders do not cross: negative spread")

    @staticmethod
    def _checked_transfer(
        working: BalanceSnapshot,
        label: str,
        from_owner: Address,
        to_owner: Address,
        amount: int,
        asset_data: AssetData,
    ) -> TransferEvent | None:
        """Move one settlement leg on the working ledger, refusing overdrafts.
        :returns: the Transfer event, or None for a zero leg
        """
        if amount == 0:
            return None
        asset = decode_asset_data(asset_data)
        match asset:
            case FungibleAsset(token_address=token):
                available = working.fungible_balance(from_owner, token)
                if available < amount:
                    raise InsufficientBalanceError(
                        f"{label}: {from_owner} holds {available} of {token}, needs {amount}"
                    )
                event = TransferEvent(token, from_owner, to_owner, value=amount)
            case NonFungibleAsset(token_address=token, token_id=token_id):
                if token_id not in working.non_fungible_tokens(from_owner, token):
                    raise InsufficientBalanceError(
                        f"{label}: {from_owner} does not hold token {token_id} of {token}"
                    )
                event = TransferEvent(token, from_owner, to_owner, token_id=token_id)
            case _:
                raise UnsupportedAssetKind(type(asset).__name__)
        working.apply_transfer(from_owner, to_owner, amount, asset_data)
        return event


SettlementLeg: TypeAlias = tuple[str, Address, Address, int, AssetData]


def _settlement_legs(
    left_order: Order,
    right_order: Order,
    taker_address: Address,
    results: MatchedFillResults,
) -> list[SettlementLeg]:
    """Legs a match settles through: asset swap, taker profits, maker fees,
    then taker fees. Taker fees owed to one recipient in one asset are paid
    as a single transfer.
    """
    legs: list[SettlementLeg] = [
        (
            "left maker asset to right maker",
            left_order.maker_address,
            right_order.maker_address,
            results.right.taker_asset_filled_amount,
            left_order.maker_asset_data,
        ),
        (
            "right maker asset to left maker",
            right_order.maker_address,
            left_order.maker_address,
            results.left.taker_asset_filled_amount,
            right_order.maker_asset_data,
        ),
        (
            "left taker profit",
            left_order.maker_address,
            taker_address,
            results.profit_in_left_maker_asset,
            left_order.maker_asset_data,
        ),
        (
            "right taker profit",
            right_order.maker_address,
            taker_address,
            results.profit_in_right_maker_asset,
            right_order.maker_asset_data,
        ),
        (
            "left maker fee",
            left_order.maker_address,
            left_order.fee_recipient_address,
            results.left.maker_fee_paid,
            left_order.maker_fee_asset_data,
        ),
        (
            "right maker fee",
            right_order.maker_address,
            right_order.fee_recipient_address,
            results.right.maker_fee_paid,
            right_order.maker_fee_asset_data,
        ),
    ]
    same_recipient = (
        left_order.fee_recipient_address.lower() == right_order.fee_recipient_address.lower()
    )
    same_asset = left_order.taker_fee_asset_data.lower() == right_order.taker_fee_asset_data.lower()
    if same_recipient and same_asset:
        legs.append(
            (
                "taker fees",
                taker_address,
                left_order.fee_recipient_address,
                results.left.taker_fee_paid + results.right.taker_fee_paid,
                left_order.taker_fee_asset_data,
            )
        )
    else:
        legs.append(
            (
                "left taker fee",
                taker_address,
                left_order.fee_recipient_address,
                results.left.taker_fee_paid,
                left_order.taker_fee_asset_data,
            )
        )
        legs.append(
            (
                "right taker fee",
                taker_address,
                right_order.fee_recipient_address,
                results.right.taker_fee_paid,
                right_order.taker_fee_asset_data,
            )
        )
    return legs


def _fill_event(
    hash_: OrderHash, order: Order, taker_address: Address, results: FillResults
) -> FillEvent:
    return FillEvent(
        order_hash=hash_,
        maker_address=order.maker_address,
        taker_address=taker_address,
        maker_asset_filled_amount=results.maker_asset_filled_amount,
        taker_asset_filled_amount=results.taker_asset_filled_amount,
        maker_fee_paid=results.maker_fee_paid,
        taker_fee_paid=results.taker_fee_paid,
    )
