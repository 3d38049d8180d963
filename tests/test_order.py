import pytest

from pysettle.asset import encode_fungible_asset_data
from pysettle.events import (
    FillEvent,
    TransactionReceipt,
    TransferEvent,
    extract_fill_events,
    extract_transfer_events,
)
from pysettle.order import Order, OrderStatus, expected_status, order_hash

MAKER = "0x" + "ab" * 20
A = encode_fungible_asset_data("0x" + "0a" * 20)
B = encode_fungible_asset_data("0x" + "0b" * 20)


class TestOrder:
    def test_fee_assets_default_to_traded_assets(self) -> None:
        order = Order(MAKER, A, B, 10, 5)
        assert order.maker_fee_asset_data == A
        assert order.taker_fee_asset_data == B

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"maker_asset_amount": 0},
            {"taker_asset_amount": 0},
            {"maker_fee": -1},
            {"salt": -1},
        ],
    )
    def test_invalid_orders(self, kwargs: dict[str, int]) -> None:
        terms = {"maker_asset_amount": 10, "taker_asset_amount": 5, **kwargs}
        with pytest.raises(ValueError):
            Order(MAKER, A, B, **terms)

    def test_hash_is_deterministic_and_case_insensitive(self) -> None:
        order = Order(MAKER, A, B, 10, 5)
        assert order.hash == order_hash(Order(MAKER.upper().replace("0X", "0x"), A, B, 10, 5))
        assert order.hash != order_hash(Order(MAKER, A, B, 10, 5, salt=1))
        assert order.hash.startswith("0x") and len(order.hash) == 66

    def test_expected_status(self) -> None:
        order = Order(MAKER, A, B, 10, 5)
        assert expected_status(order, 0) == OrderStatus.FILLABLE
        assert expected_status(order, 4) == OrderStatus.FILLABLE
        assert expected_status(order, 5) == OrderStatus.FULLY_FILLED


class TestEvents:
    def test_fill_log_round_trip(self) -> None:
        fill = FillEvent("0x01", MAKER, MAKER, 2**100, 5, 0, 1)
        log = fill.to_log()
        assert log.args["maker_asset_filled_amount"] == str(2**100)
        assert extract_fill_events(TransactionReceipt("0x02", [log])) == [fill]

    def test_transfer_logs(self) -> None:
        fungible = TransferEvent("0x" + "0a" * 20, MAKER, MAKER, value=3)
        nft = TransferEvent("0x" + "0c" * 20, MAKER, MAKER, token_id=7)
        assert "token_id" not in fungible.to_log().args
        assert "value" not in nft.to_log().args
        receipt = TransactionReceipt("0x03", [fungible.to_log(), nft.to_log()])
        assert extract_transfer_events(receipt) == [fungible, nft]
        assert extract_fill_events(receipt) == []
