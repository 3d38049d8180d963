"""Reference exchange: matching arithmetic, atomic settlement and order state."""

import time
from collections.abc import Callable

import pytest

from pysettle.asset import encode_fungible_asset_data, encode_non_fungible_asset_data
from pysettle.errors import (
    ExchangeError,
    InsufficientBalanceError,
    InvalidTakerError,
    NegativeSpreadError,
    OrderNotFillableError,
)
from pysettle.events import (
    FillEvent,
    TransferEvent,
    extract_fill_events,
    extract_transfer_events,
)
from pysettle.exchange import (
    InMemoryExchange,
    calculate_matched_fill_results,
    partial_amount_ceil,
    partial_amount_floor,
)
from pysettle.order import Order, OrderStatus, order_hash


def _address(n: int) -> str:
    return "0x" + format(n, "040x")


LEFT_MAKER, RIGHT_MAKER, TAKER = _address(1), _address(2), _address(3)
FEE_RECIPIENT = _address(4)
TOKEN_A, TOKEN_B, TOKEN_Z = _address(0xA), _address(0xB), _address(0xF)
COLLECTION = _address(0xC)
A, B, Z = (encode_fungible_asset_data(t) for t in (TOKEN_A, TOKEN_B, TOKEN_Z))


def _exchange(clock: Callable[[], float] = time.time) -> InMemoryExchange:
    exchange = InMemoryExchange(clock=clock)
    exchange.mint_fungible(LEFT_MAKER, TOKEN_A, 1000)
    exchange.mint_fungible(RIGHT_MAKER, TOKEN_B, 1000)
    for owner in (LEFT_MAKER, RIGHT_MAKER, TAKER):
        exchange.mint_fungible(owner, TOKEN_Z, 100)
    return exchange


# ── Rounding ───────────────────────────────────────────────────────────────


class TestPartialAmounts:
    def test_floor_and_ceil(self) -> None:
        assert partial_amount_floor(15, 5, 3) == 9
        assert partial_amount_floor(10, 3, 2) == 6
        assert partial_amount_ceil(10, 3, 2) == 7
        assert partial_amount_ceil(15, 5, 3) == 9

    def test_exact_match(self) -> None:
        left = Order(LEFT_MAKER, A, B, 100, 50)
        right = Order(RIGHT_MAKER, B, A, 50, 100)
        results = calculate_matched_fill_results(left, right, 0, 0)
        assert (results.left.maker_asset_filled_amount, results.left.taker_asset_filled_amount) == (
            100,
            50,
        )
        assert (
            results.right.maker_asset_filled_amount,
            results.right.taker_asset_filled_amount,
        ) == (50, 100)
        assert results.profit_in_left_maker_asset == 0
        assert results.profit_in_right_maker_asset == 0

    def test_left_filled_rounds_right_taker_up(self) -> None:
        left = Order(LEFT_MAKER, A, B, 10, 3)
        right = Order(RIGHT_MAKER, B, A, 5, 15)
        results = calculate_matched_fill_results(left, right, 0, 0)
        assert results.left.maker_asset_filled_amount == 10
        assert results.left.taker_asset_filled_amount == 3
        assert results.right.maker_asset_filled_amount == 3
        assert results.right.taker_asset_filled_amount == 9
        assert results.profit_in_left_maker_asset == 1

    def test_right_filled_completely(self) -> None:
        left = Order(LEFT_MAKER, A, B, 100, 50)
        right = Order(RIGHT_MAKER, B, A, 20, 40)
        results = calculate_matched_fill_results(left, right, 0, 0)
        assert results.left.maker_asset_filled_amount == 40
        assert results.left.taker_asset_filled_amount == 20
        assert results.right.taker_asset_filled_amount == 40

    def test_fees_are_pro_rata(self) -> None:
        left = Order(LEFT_MAKER, A, B, 100, 50, maker_fee=10, taker_fee=6)
        right = Order(RIGHT_MAKER, B, A, 20, 40, maker_fee=4, taker_fee=8)
        results = calculate_matched_fill_results(left, right, 0, 0)
        assert results.left.maker_fee_paid == 4
        assert results.left.taker_fee_paid == 2
        assert results.right.maker_fee_paid == 4
        assert results.right.taker_fee_paid == 8

    def test_spread_goes_to_taker(self) -> None:
        left = Order(LEFT_MAKER, A, B, 100, 50)
        right = Order(RIGHT_MAKER, B, A, 50, 90)
        results = calculate_matched_fill_results(left, right, 0, 0)
        assert results.left.maker_asset_filled_amount == 100
        assert results.right.taker_asset_filled_amount == 90
        assert results.profit_in_left_maker_asset == 10
        assert results.profit_in_right_maker_asset == 0


# ── Matching ───────────────────────────────────────────────────────────────


class TestMatchOrders:
    @pytest.mark.asyncio
    async def test_settles_and_reports(self) -> None:
        exchange = _exchange()
        left = Order(LEFT_MAKER, A, B, 100, 50)
        right = Order(RIGHT_MAKER, B, A, 50, 90)
        receipt = await exchange.match_orders(left, right, TAKER)

        assert receipt.transaction_hash == "0x" + "0" * 63 + "1"
        assert [log.event for log in receipt.logs] == ["Transfer", "Transfer", "Transfer", "Fill", "Fill"]
        left_fill, right_fill = extract_fill_events(receipt)
        assert left_fill.order_hash == order_hash(left)
        assert right_fill.order_hash == order_hash(right)
        assert right_fill.taker_asset_filled_amount == 90
        assert extract_transfer_events(receipt)[2].to_address == TAKER

        balances = await exchange.get_balances()
        assert balances.fungible_balance(LEFT_MAKER, TOKEN_A) == 900
        assert balances.fungible_balance(RIGHT_MAKER, TOKEN_A) == 90
        assert balances.fungible_balance(TAKER, TOKEN_A) == 10
        assert balances.fungible_balance(LEFT_MAKER, TOKEN_B) == 50

        assert (await exchange.get_order_info(left)).order_status == OrderStatus.FULLY_FILLED
        assert await exchange.get_taker_asset_filled_amount(order_hash(right)) == 90

    @pytest.mark.asyncio
    async def test_fees_settle_through_one_combined_transfer(self) -> None:
        exchange = _exchange()
        fee_terms = {
            "fee_recipient_address": FEE_RECIPIENT,
            "maker_fee_asset_data": Z,
            "taker_fee_asset_data": Z,
        }
        left = Order(LEFT_MAKER, A, B, 100, 50, maker_fee=10, taker_fee=6, **fee_terms)
        right = Order(RIGHT_MAKER, B, A, 50, 100, maker_fee=4, taker_fee=8, **fee_terms)
        receipt = await exchange.match_orders(left, right, TAKER)
        fee_values = [t.value for t in extract_transfer_events(receipt) if t.token == TOKEN_Z]
        assert fee_values == [10, 4, 14]
        balances = await exchange.get_balances()
        assert balances.fungible_balance(FEE_RECIPIENT, TOKEN_Z) == 28
        assert balances.fungible_balance(TAKER, TOKEN_Z) == 86

    @pytest.mark.asyncio
    async def test_non_fungible_settlement(self) -> None:
        exchange = _exchange()
        exchange.mint_non_fungible(LEFT_MAKER, COLLECTION, 7)
        nft = encode_non_fungible_asset_data(COLLECTION, 7)
        receipt = await exchange.match_orders(
            Order(LEFT_MAKER, nft, B, 1, 50), Order(RIGHT_MAKER, B, nft, 50, 1), TAKER
        )
        assert extract_transfer_events(receipt)[0].token_id == 7
        balances = await exchange.get_balances()
        assert balances.non_fungible_tokens(RIGHT_MAKER, COLLECTION) == [7]
        assert balances.non_fungible_tokens(LEFT_MAKER, COLLECTION) == []

    @pytest.mark.asyncio
    async def test_successive_partial_fills(self) -> None:
        exchange = _exchange()
        left = Order(LEFT_MAKER, A, B, 200, 100)
        await exchange.match_orders(left, Order(RIGHT_MAKER, B, A, 20, 40), TAKER)
        assert await exchange.get_taker_asset_filled_amount(order_hash(left)) == 20
        await exchange.match_orders(left, Order(RIGHT_MAKER, B, A, 30, 60), TAKER)
        info = await exchange.get_order_info(left)
        assert info.order_taker_asset_filled_amount == 50
        assert info.order_status == OrderStatus.FILLABLE

    @pytest.mark.asyncio
    async def test_get_balances_returns_copy(self) -> None:
        exchange = _exchange()
        snapshot = await exchange.get_balances()
        snapshot.fungible[LEFT_MAKER][TOKEN_A] = 0
        assert exchange.balances.fungible_balance(LEFT_MAKER, TOKEN_A) == 1000


# ── Receipts ───────────────────────────────────────────────────────────────


class TestReceiptLogs:
    @pytest.mark.asyncio
    async def test_spread_match_logs(self) -> None:
        exchange = _exchange()
        left = Order(LEFT_MAKER, A, B, 100, 50)
        right = Order(RIGHT_MAKER, B, A, 50, 90)
        receipt = await exchange.match_orders(left, right, TAKER)
        assert extract_transfer_events(receipt) == [
            TransferEvent(TOKEN_A, LEFT_MAKER, RIGHT_MAKER, value=90),
            TransferEvent(TOKEN_B, RIGHT_MAKER, LEFT_MAKER, value=50),
            TransferEvent(TOKEN_A, LEFT_MAKER, TAKER, value=10),
        ]
        assert extract_fill_events(receipt) == [
            FillEvent(order_hash(left), LEFT_MAKER, TAKER, 100, 50, 0, 0),
            FillEvent(order_hash(right), RIGHT_MAKER, TAKER, 50, 90, 0, 0),
        ]

    @pytest.mark.asyncio
    async def test_fee_match_logs(self) -> None:
        exchange = _exchange()
        fee_terms = {
            "fee_recipient_address": FEE_RECIPIENT,
            "maker_fee_asset_data": Z,
            "taker_fee_asset_data": Z,
        }
        left = Order(LEFT_MAKER, A, B, 100, 50, maker_fee=10, taker_fee=6, **fee_terms)
        right = Order(RIGHT_MAKER, B, A, 20, 40, maker_fee=4, taker_fee=8, **fee_terms)
        receipt = await exchange.match_orders(left, right, TAKER)
        assert extract_transfer_events(receipt) == [
            TransferEvent(TOKEN_A, LEFT_MAKER, RIGHT_MAKER, value=40),
            TransferEvent(TOKEN_B, RIGHT_MAKER, LEFT_MAKER, value=20),
            TransferEvent(TOKEN_Z, LEFT_MAKER, FEE_RECIPIENT, value=4),
            TransferEvent(TOKEN_Z, RIGHT_MAKER, FEE_RECIPIENT, value=4),
            TransferEvent(TOKEN_Z, TAKER, FEE_RECIPIENT, value=10),
        ]
        assert extract_fill_events(receipt) == [
            FillEvent(order_hash(left), LEFT_MAKER, TAKER, 40, 20, 4, 2),
            FillEvent(order_hash(right), RIGHT_MAKER, TAKER, 20, 40, 4, 8),
        ]

    @pytest.mark.asyncio
    async def test_taker_fees_split_across_recipients(self) -> None:
        exchange = _exchange()
        other_recipient = _address(5)
        left = Order(
            LEFT_MAKER,
            A,
            B,
            100,
            50,
            fee_recipient_address=FEE_RECIPIENT,
            taker_fee=6,
            taker_fee_asset_data=Z,
        )
        right = Order(
            RIGHT_MAKER,
            B,
            A,
            50,
            100,
            fee_recipient_address=other_recipient,
            taker_fee=8,
            taker_fee_asset_data=Z,
        )
        receipt = await exchange.match_orders(left, right, TAKER)
        fee_transfers = [t for t in extract_transfer_events(receipt) if t.token == TOKEN_Z]
        assert fee_transfers == [
            TransferEvent(TOKEN_Z, TAKER, FEE_RECIPIENT, value=6),
            TransferEvent(TOKEN_Z, TAKER, other_recipient, value=8),
        ]

    @pytest.mark.asyncio
    async def test_mixed_case_mint_owner_settles(self) -> None:
        exchange = InMemoryExchange()
        maker = "0x" + "Ab" * 20
        exchange.mint_fungible(maker, TOKEN_A, 100)
        exchange.mint_fungible(RIGHT_MAKER, TOKEN_B, 50)
        await exchange.match_orders(
            Order(maker, A, B, 100, 50), Order(RIGHT_MAKER, B, A, 50, 100), TAKER
        )
        balances = await exchange.get_balances()
        assert balances.fungible_balance(maker, TOKEN_A) == 0
        assert balances.fungible_balance(maker, TOKEN_B) == 50
        assert balances.owners() == {maker.lower(), RIGHT_MAKER}


# ── Rejections ─────────────────────────────────────────────────────────────


class TestRejections:
    @pytest.mark.asyncio
    async def test_negative_spread(self) -> None:
        exchange = _exchange()
        with pytest.raises(NegativeSpreadError):
            await exchange.match_orders(
                Order(LEFT_MAKER, A, B, 100, 50), Order(RIGHT_MAKER, B, A, 40, 100), TAKER
            )

    @pytest.mark.asyncio
    async def test_non_complementary_assets(self) -> None:
        exchange = _exchange()
        with pytest.raises(ExchangeError):
            await exchange.match_orders(
                Order(LEFT_MAKER, A, B, 100, 50), Order(RIGHT_MAKER, B, Z, 50, 100), TAKER
            )

    @pytest.mark.asyncio
    async def test_restricted_taker(self) -> None:
        exchange = _exchange()
        left = Order(LEFT_MAKER, A, B, 100, 50, taker_address=_address(9))
        with pytest.raises(InvalidTakerError):
            await exchange.match_orders(left, Order(RIGHT_MAKER, B, A, 50, 100), TAKER)

    @pytest.mark.asyncio
    async def test_insufficient_balance_rolls_back(self) -> None:
        exchange = InMemoryExchange()
        exchange.mint_fungible(LEFT_MAKER, TOKEN_A, 100)
        exchange.mint_fungible(RIGHT_MAKER, TOKEN_B, 10)
        left = Order(LEFT_MAKER, A, B, 100, 50)
        before = await exchange.get_balances()
        with pytest.raises(InsufficientBalanceError):
            await exchange.match_orders(left, Order(RIGHT_MAKER, B, A, 50, 100), TAKER)
        assert await exchange.get_balances() == before
        assert await exchange.get_taker_asset_filled_amount(order_hash(left)) == 0

    @pytest.mark.asyncio
    async def test_fully_filled_order_cannot_match_again(self) -> None:
        exchange = _exchange()
        left = Order(LEFT_MAKER, A, B, 100, 50)
        await exchange.match_orders(left, Order(RIGHT_MAKER, B, A, 50, 100), TAKER)
        with pytest.raises(OrderNotFillableError):
            await exchange.match_orders(left, Order(RIGHT_MAKER, B, A, 50, 100, salt=1), TAKER)

    def test_duplicate_non_fungible_mint(self) -> None:
        exchange = InMemoryExchange()
        exchange.mint_non_fungible(LEFT_MAKER, COLLECTION, 1)
        with pytest.raises(ValueError):
            exchange.mint_non_fungible(RIGHT_MAKER, COLLECTION, 1)

    def test_negative_mint(self) -> None:
        with pytest.raises(ValueError):
            InMemoryExchange().mint_fungible(LEFT_MAKER, TOKEN_A, -1)


# ── Order lifecycle ────────────────────────────────────────────────────────


class TestOrderLifecycle:
    @pytest.mark.asyncio
    async def test_cancel(self) -> None:
        exchange = _exchange()
        left = Order(LEFT_MAKER, A, B, 100, 50)
        await exchange.cancel_order(left)
        assert exchange.order_status(left) == OrderStatus.CANCELLED
        with pytest.raises(OrderNotFillableError):
            await exchange.match_orders(left, Order(RIGHT_MAKER, B, A, 50, 100), TAKER)
        with pytest.raises(OrderNotFillableError):
            await exchange.cancel_order(left)

    def test_expiry_uses_clock(self) -> None:
        exchange = _exchange(clock=lambda: 1000.0)
        assert exchange.order_status(Order(LEFT_MAKER, A, B, 1, 1, expiration_time_seconds=500)) == (
            OrderStatus.EXPIRED
        )
        assert exchange.order_status(Order(LEFT_MAKER, A, B, 1, 1, expiration_time_seconds=2000)) == (
            OrderStatus.FILLABLE
        )
        assert exchange.order_status(Order(LEFT_MAKER, A, B, 1, 1)) == OrderStatus.FILLABLE
