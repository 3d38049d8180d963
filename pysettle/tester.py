import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Protocol, TypeAlias

from pysettle.amounts import PartialTransferAmounts, TransferAmounts, to_full_transfer_amounts
from pysettle.asset import Address
from pysettle.balances import BalanceSnapshot, write_balance_snapshot_parquet
from pysettle.config import SettlementSettings
from pysettle.events import TransactionReceipt
from pysettle.order import MatchedOrders, Order, OrderHash, OrderHasher, OrderInfo, order_hash
from pysettle.simulator import SettlementResult, simulate_match_orders
from pysettle.verifier import verify_initial_order_states, verify_match_results

logger = logging.getLogger(__name__)

MatchOrdersCall: TypeAlias = Callable[[Order, Order, Address], Awaitable[TransactionReceipt]]


class BalanceReader(Protocol):
    async def get_balances(self) -> BalanceSnapshot: ...


class OrderStateOracle(Protocol):
    async def get_order_info(self, order: Order) -> OrderInfo: ...

    async def get_taker_asset_filled_amount(self, order_hash: OrderHash) -> int: ...


class Exchange(BalanceReader, OrderStateOracle, Protocol):
    async def match_orders(
        self, left_order: Order, right_order: Order, taker_address: Address
    ) -> TransactionReceipt: ...


class MatchOrderTester:
    """Matches two complementary orders through a real engine and asserts that
    the outcome agrees with an independent simulation.
    """

    def __init__(
        self,
        exchange: Exchange,
        match_orders_call: MatchOrdersCall | None = None,
        settings: SettlementSettings | None = None,
        order_hasher: OrderHasher = order_hash,
    ) -> None:
        """
        :param exchange: balance reader and order-state oracle, and the default engine
        :param match_orders_call: optional custom caller replacing exchange.match_orders
        :param settings: amount policy and snapshot persistence
        :param order_hasher: must agree with the engine's order hashes
        """
        self.exchange = exchange
        self.match_orders_call = match_orders_call
        self.settings = settings or SettlementSettings()
        self.order_hasher = order_hasher
        self._runs = 0

    async def get_balances(self) -> BalanceSnapshot:
        """Fetch the current balances of all known owners"""
        return await self.exchange.get_balances()

    async def match_orders_and_assert_effects(
        self,
        orders: MatchedOrders,
        taker_address: Address,
        expected_transfer_amounts: PartialTransferAmounts | TransferAmounts,
        initial_balances: BalanceSnapshot | None = None,
    ) -> SettlementResult:
        """Match two orders and assert every effect of the match.
        :param orders: the orders and their filled amounts before the match
        :param taker_address: address that calls the match
        :param expected_transfer_amounts: amounts each leg should move; omitted
            fields fall back to their counterpart or zero
        :param initial_balances: balances before the match; read from the
            exchange when omitted
        :returns: the simulated SettlementResult
        :raises MatchVerificationError: listing every divergence found
        """
        # fail fast on bad expectations before touching the engine
        transfer_amounts = to_full_transfer_amounts(
            expected_transfer_amounts, strict=self.settings.strict_transfer_amounts
        )
        initial_filled = await asyncio.gather(
            self.exchange.get_taker_asset_filled_amount(self.order_hasher(orders.left_order)),
            self.exchange.get_taker_asset_filled_amount(self.order_hasher(orders.right_order)),
        )
        initial_failures = verify_initial_order_states(orders, (initial_filled[0], initial_filled[1]))
        if initial_balances is None:
            initial_balances = await self.get_balances()

        receipt = await self._execute_match_orders(
            orders.left_order, orders.right_order, taker_address
        )
        result = simulate_match_orders(
            orders,
            taker_address,
            initial_balances,
            transfer_amounts,
            order_hasher=self.order_hasher,
        )

        actual_balances, left_info, right_info = await asyncio.gather(
            self.get_balances(),
            self.exchange.get_order_info(orders.left_order),
            self.exchange.get_order_info(orders.right_order),
        )
        self._runs += 1
        if self.settings.snapshot_dir is not None:
            self._persist_snapshots(self.settings.snapshot_dir, initial_balances, actual_balances)

        outcome = verify_match_results(result, receipt, actual_balances, (left_info, right_info))
        outcome.failures = initial_failures + outcome.failures
        outcome.raise_for_failures()
        return result

    async def _execute_match_orders(
        self, left_order: Order, right_order: Order, taker_address: Address
    ) -> TransactionReceipt:
        caller = self.match_orders_call or self.exchange.match_orders
        logger.debug("~~~ Executing match for taker %s", taker_address)
        return await caller(left_order, right_order, taker_address)

    def _persist_snapshots(
        self, snapshot_dir: Path, before: BalanceSnapshot, after: BalanceSnapshot
    ) -> None:
        snapshot_dir.mkdir(parents=True, exist_ok=True)
        prefix = f"match_{self._runs:04d}"
        write_balance_snapshot_parquet(before, str(snapshot_dir / f"{prefix}_before.parquet"))
        write_balance_snapshot_parquet(after, str(snapshot_dir / f"{prefix}_after.parquet"))
