"""Balance snapshots: diff before/after a match and persist them as parquet.

Requires the parquet extra: pip install pysettle[parquet]
"""

import asyncio
import tempfile
from pathlib import Path

from pysettle import (
    InMemoryExchange,
    MatchedOrders,
    MatchOrderTester,
    Order,
    PartialTransferAmounts,
    SettlementSettings,
    diff_balances,
    encode_fungible_asset_data,
    encode_non_fungible_asset_data,
)
from pysettle.balances import read_balance_snapshot_parquet
from pysettle.config import configure_logging

ARTIST = "0x" + "a7" * 20
COLLECTOR = "0x" + "c0" * 20
RELAYER = "0x" + "7e" * 20
GALLERY = "0x" + "9a" * 20
WETH = "0x" + "e7" * 20


async def main() -> None:
    snapshot_dir = Path(tempfile.mkdtemp(prefix="pysettle-"))
    settings = SettlementSettings(snapshot_dir=snapshot_dir)
    configure_logging(settings)

    exchange = InMemoryExchange()
    exchange.mint_non_fungible(ARTIST, GALLERY, 42)
    exchange.mint_fungible(COLLECTOR, WETH, 50)

    painting = encode_non_fungible_asset_data(GALLERY, 42)
    weth = encode_fungible_asset_data(WETH)
    tester = MatchOrderTester(exchange, settings=settings)

    before = await tester.get_balances()
    await tester.match_orders_and_assert_effects(
        MatchedOrders(
            Order(ARTIST, painting, weth, 1, 30),
            Order(COLLECTOR, weth, painting, 30, 1),
        ),
        RELAYER,
        PartialTransferAmounts(
            left_maker_asset_sold_by_left_maker_amount=1,
            right_maker_asset_sold_by_right_maker_amount=30,
        ),
    )
    after = await tester.get_balances()

    print("=== Balance changes ===")
    for delta in diff_balances(before, after):
        if delta.change:
            print(f"  {delta.owner[:10]}  {delta.token[:10]}  {delta.change:+}")
        else:
            print(f"  {delta.owner[:10]}  {delta.token[:10]}  +{list(delta.added)} -{list(delta.removed)}")

    print(f"\n=== Snapshots in {snapshot_dir} ===")
    for path in sorted(snapshot_dir.glob("*.parquet")):
        loaded = read_balance_snapshot_parquet(str(path))
        print(f"  {path.name}: {len(loaded.owners())} owners")


if __name__ == "__main__":
    asyncio.run(main())
