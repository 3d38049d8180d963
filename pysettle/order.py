import hashlib
from collections.abc import Callable
from dataclasses import dataclass, fields
from enum import StrEnum, auto
from typing import TypeAlias

from pysettle.asset import Address, AssetData, normalize_address

NULL_ADDRESS: Address = "0x" + "0" * 40
OrderHash: TypeAlias = str


class OrderStatus(StrEnum):
    """Enum for the lifecycle status the order book reports for an order"""

    INVALID = auto()
    INVALID_MAKER_ASSET_AMOUNT = auto()
    INVALID_TAKER_ASSET_AMOUNT = auto()
    FILLABLE = auto()
    EXPIRED = auto()
    FULLY_FILLED = auto()
    CANCELLED = auto()


@dataclass(frozen=True)
class Order:
    """Limit order. Immutable once created; owned by the order book."""

    maker_address: Address
    maker_asset_data: AssetData
    taker_asset_data: AssetData
    maker_asset_amount: int
    taker_asset_amount: int
    fee_recipient_address: Address = NULL_ADDRESS
    taker_address: Address = NULL_ADDRESS
    sender_address: Address = NULL_ADDRESS
    maker_fee: int = 0
    taker_fee: int = 0
    maker_fee_asset_data: AssetData = ""
    taker_fee_asset_data: AssetData = ""
    expiration_time_seconds: int = 0
    salt: int = 0

    def __post_init__(self) -> None:
        for name in ("maker_fee", "taker_fee", "expiration_time_seconds", "salt"):
            if getattr(self, name) < 0:
                raise ValueError(f"Order {name} must be non-negative")
        if self.maker_asset_amount <= 0:
            raise ValueError("Order maker_asset_amount must be greater than zero")
        if self.taker_asset_amount <= 0:
            raise ValueError("Order taker_asset_amount must be greater than zero")
        # fee assets default to the traded assets
        if not self.maker_fee_asset_data:
            object.__setattr__(self, "maker_fee_asset_data", self.maker_asset_data)
        if not self.taker_fee_asset_data:
            object.__setattr__(self, "taker_fee_asset_data", self.taker_asset_data)

    @property
    def hash(self) -> OrderHash:
        return order_hash(self)


OrderHasher: TypeAlias = Callable[[Order], OrderHash]


def order_hash(order: Order) -> OrderHash:
    """Deterministic order hash: SHA3-256 over every order field in declaration
    order. Addresses are compared case-insensitively.
    :param order: order to hash
    :returns: 0x-prefixed hex digest
    """
    parts: list[str] = []
    for f in fields(order):
        value = getattr(order, f.name)
        if f.name.endswith("_address"):
            value = normalize_address(value)
        elif f.name.endswith("_asset_data"):
            value = value.lower()
        parts.append(f"{f.name}={value}")
    return "0x" + hashlib.sha3_256("|".join(parts).encode()).hexdigest()


@dataclass(frozen=True)
class OrderInfo:
    order_status: OrderStatus
    order_hash: OrderHash
    order_taker_asset_filled_amount: int


@dataclass(frozen=True)
class MatchedOrders:
    """Two complementary orders and how much of each was filled before the match"""

    left_order: Order
    right_order: Order
    left_order_taker_asset_filled_amount: int = 0
    right_order_taker_asset_filled_amount: int = 0


def expected_status(order: Order, taker_asset_filled_amount: int) -> OrderStatus:
    if taker_asset_filled_amount >= order.taker_asset_amount:
        return OrderStatus.FULLY_FILLED
    return OrderStatus.FILLABLE
