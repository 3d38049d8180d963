from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pysettle")
except PackageNotFoundError:
    __version__ = "v0.1.0"

from pysettle.amounts import PartialTransferAmounts, TransferAmounts, normalize_transfer_amounts
from pysettle.asset import (
    AssetKind,
    FungibleAsset,
    NonFungibleAsset,
    decode_asset_data,
    encode_fungible_asset_data,
    encode_non_fungible_asset_data,
)
from pysettle.balances import BalanceSnapshot, diff_balances, transfer_asset
from pysettle.config import SettlementSettings
from pysettle.errors import AmountConflict, MatchVerificationError, UnsupportedAssetKind
from pysettle.events import FillEvent, LogEntry, TransactionReceipt, TransferEvent
from pysettle.exchange import InMemoryExchange
from pysettle.order import MatchedOrders, Order, OrderInfo, OrderStatus, order_hash
from pysettle.simulator import SettlementResult, predict_fill_events, simulate_match_orders
from pysettle.tester import MatchOrderTester
from pysettle.verifier import Side, VerificationOutcome, verify_match_results

__all__ = [
    "AmountConflict",
    "AssetKind",
    "BalanceSnapshot",
    "FillEvent",
    "FungibleAsset",
    "InMemoryExchange",
    "LogEntry",
    "MatchOrderTester",
    "MatchVerificationError",
    "MatchedOrders",
    "NonFungibleAsset",
    "Order",
    "OrderInfo",
    "OrderStatus",
    "PartialTransferAmounts",
    "SettlementResult",
    "SettlementSettings",
    "Side",
    "TransactionReceipt",
    "TransferAmounts",
    "TransferEvent",
    "UnsupportedAssetKind",
    "VerificationOutcome",
    "decode_asset_data",
    "diff_balances",
    "encode_fungible_asset_data",
    "encode_non_fungible_asset_data",
    "normalize_transfer_amounts",
    "order_hash",
    "predict_fill_events",
    "simulate_match_orders",
    "transfer_asset",
    "verify_match_results",
]
