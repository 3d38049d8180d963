from dataclasses import asdict, dataclass, field
from typing import Any

from pysettle.asset import Address
from pysettle.order import OrderHash

FILL_EVENT = "Fill"
TRANSFER_EVENT = "Transfer"
FILL_AMOUNT_FIELDS: tuple[str, ...] = (
    "maker_asset_filled_amount",
    "taker_asset_filled_amount",
    "maker_fee_paid",
    "taker_fee_paid",
)


@dataclass(frozen=True)
class FillEvent:
    """Record emitted per order describing what moved and what fees were paid"""

    order_hash: OrderHash
    maker_address: Address
    taker_address: Address
    maker_asset_filled_amount: int
    taker_asset_filled_amount: int
    maker_fee_paid: int
    taker_fee_paid: int

    def to_log(self) -> "LogEntry":
        args: dict[str, Any] = asdict(self)
        for name in FILL_AMOUNT_FIELDS:
            args[name] = str(args[name])
        return LogEntry(FILL_EVENT, args)


@dataclass(frozen=True)
class TransferEvent:
    token: Address
    from_address: Address
    to_address: Address
    value: int | None = None
    token_id: int | None = None

    def to_log(self) -> "LogEntry":
        args: dict[str, Any] = {"token": self.token, "from": self.from_address, "to": self.to_address}
        if self.value is not None:
            args["value"] = str(self.value)
        if self.token_id is not None:
            args["token_id"] = str(self.token_id)
        return LogEntry(TRANSFER_EVENT, args)


@dataclass(frozen=True)
class LogEntry:
    """A decoded log: event name plus its arguments as the engine reported them"""

    event: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionReceipt:
    transaction_hash: str
    logs: list[LogEntry] = field(default_factory=list)


def extract_fill_events(receipt: TransactionReceipt) -> list[FillEvent]:
    """Decode every Fill log of a receipt, in emission order. Amounts arrive
    as decimal strings or ints and are converted to int.
    """
    fills: list[FillEvent] = []
    for log in receipt.logs:
        if log.event != FILL_EVENT:
            continue
        args = log.args
        fills.append(
            FillEvent(
                order_hash=args["order_hash"],
                maker_address=args["maker_address"],
                taker_address=args["taker_address"],
                maker_asset_filled_amount=int(args["maker_asset_filled_amount"]),
                taker_asset_filled_amount=int(args["taker_asset_filled_amount"]),
                maker_fee_paid=int(args["maker_fee_paid"]),
                taker_fee_paid=int(args["taker_fee_paid"]),
            )
        )
    return fills


def extract_transfer_events(receipt: TransactionReceipt) -> list[TransferEvent]:
    transfers: list[TransferEvent] = []
    for log in receipt.logs:
        if log.event != TRANSFER_EVENT:
            continue
        args = log.args
        value = args.get("value")
        token_id = args.get("token_id")
        transfers.append(
            TransferEvent(
                token=args["token"],
                from_address=args["from"],
                to_address=args["to"],
                value=None if value is None else int(value),
                token_id=None if token_id is None else int(token_id),
            )
        )
    return transfers
