"""Match two orders on the reference exchange and verify every effect: spread
to the taker, shared taker fees, and a misreporting engine caught in the act.
"""

import asyncio

from pysettle import (
    InMemoryExchange,
    MatchedOrders,
    MatchOrderTester,
    MatchVerificationError,
    Order,
    PartialTransferAmounts,
    SettlementSettings,
    TransactionReceipt,
    encode_fungible_asset_data,
)
from pysettle.config import configure_logging

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
RELAYER = "0x" + "7e" * 20
FEE_COLLECTOR = "0x" + "fe" * 20
WETH = "0x" + "e7" * 20
USDC = "0x" + "d5" * 20
ZRX = "0x" + "2e" * 20


async def main() -> None:
    settings = SettlementSettings.from_env()
    configure_logging(settings)

    exchange = InMemoryExchange()
    exchange.mint_fungible(ALICE, WETH, 1_000)
    exchange.mint_fungible(BOB, USDC, 500_000)
    for owner in (ALICE, BOB, RELAYER):
        exchange.mint_fungible(owner, ZRX, 100)

    weth, usdc, zrx = (encode_fungible_asset_data(t) for t in (WETH, USDC, ZRX))
    fee_terms = {
        "fee_recipient_address": FEE_COLLECTOR,
        "maker_fee_asset_data": zrx,
        "taker_fee_asset_data": zrx,
    }
    # Alice sells 10 WETH for 20,000 USDC; Bob buys 9 WETH for the same USDC
    alice = Order(ALICE, weth, usdc, 10, 20_000, taker_fee=3, **fee_terms)
    bob = Order(BOB, usdc, weth, 20_000, 9, taker_fee=4, **fee_terms)

    tester = MatchOrderTester(exchange, settings=settings)
    result = await tester.match_orders_and_assert_effects(
        MatchedOrders(alice, bob),
        RELAYER,
        PartialTransferAmounts(
            left_maker_asset_sold_by_left_maker_amount=10,
            left_maker_asset_bought_by_right_maker_amount=9,
            left_maker_asset_received_by_taker_amount=1,
            right_maker_asset_sold_by_right_maker_amount=20_000,
            left_taker_fee_asset_paid_by_taker_amount=3,
            right_taker_fee_asset_paid_by_taker_amount=4,
        ),
    )
    print("Verified match:")
    for side, fill in zip(("left", "right"), result.fills):
        print(
            f"  {side}: {fill.maker_asset_filled_amount} sold, "
            f"{fill.taker_asset_filled_amount} bought, taker fee {fill.taker_fee_paid}"
        )
    print(f"  relayer WETH spread: {result.balances.fungible_balance(RELAYER, WETH)}")
    print(f"  fee collector ZRX:   {result.balances.fungible_balance(FEE_COLLECTOR, ZRX)}")

    # An engine that forgets to report the right order's Fill event
    async def lossy_engine(left: Order, right: Order, taker: str) -> TransactionReceipt:
        receipt = await exchange.match_orders(left, right, taker)
        return TransactionReceipt(receipt.transaction_hash, receipt.logs[:-1])

    lossy = MatchOrderTester(exchange, match_orders_call=lossy_engine, settings=settings)
    exchange.mint_fungible(ALICE, WETH, 10)
    try:
        await lossy.match_orders_and_assert_effects(
            MatchedOrders(
                Order(ALICE, weth, usdc, 5, 10_000, salt=1),
                Order(BOB, usdc, weth, 10_000, 5, salt=1),
            ),
            RELAYER,
            PartialTransferAmounts(
                left_maker_asset_sold_by_left_maker_amount=5,
                right_maker_asset_sold_by_right_maker_amount=10_000,
            ),
        )
    except MatchVerificationError as exc:
        print(f"\nLossy engine rejected:\n{exc}")


if __name__ == "__main__":
    asyncio.run(main())
