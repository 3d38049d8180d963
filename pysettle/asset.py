"""Asset data codec.

Asset data is a hex string made of a 4-byte kind selector followed by
32-byte ABI words:

    fungible:      0xf47261b0 | address
    non-fungible:  0x02571792 | address | uint256 token id
"""

from dataclasses import dataclass
from enum import StrEnum, auto
from typing import TypeAlias

from pysettle.errors import UnsupportedAssetKind

Address: TypeAlias = str
AssetData: TypeAlias = str

WORD_SIZE = 32
SELECTOR_SIZE = 4
MAX_UINT256 = 2**256 - 1


class AssetKind(StrEnum):
    """Enum of the asset kinds the transfer model knows how to move"""

    FUNGIBLE = auto()
    NON_FUNGIBLE = auto()

    @property
    def selector(self) -> str:
        return _SELECTORS[self]


_SELECTORS: dict[AssetKind, str] = {
    AssetKind.FUNGIBLE: "f47261b0",
    AssetKind.NON_FUNGIBLE: "02571792",
}
_KINDS_BY_SELECTOR: dict[str, AssetKind] = {v: k for k, v in _SELECTORS.items()}


@dataclass(frozen=True)
class FungibleAsset:
    token_address: Address

    @property
    def kind(self) -> AssetKind:
        return AssetKind.FUNGIBLE


@dataclass(frozen=True)
class NonFungibleAsset:
    token_address: Address
    token_id: int

    @property
    def kind(self) -> AssetKind:
        return AssetKind.NON_FUNGIBLE


AssetDescriptor: TypeAlias = FungibleAsset | NonFungibleAsset


def normalize_address(address: Address) -> Address:
    """Lowercase a 20-byte hex address, validating its shape.
    :param address: 0x-prefixed hex address
    :returns: lowercase address
    """
    body = _strip_hex_prefix(address)
    if len(body) != 40:
        raise ValueError(f"Address must be 20 bytes, got '{address}'")
    try:
        int(body, 16)
    except ValueError as exc:
        raise ValueError(f"Address is not hex: '{address}'") from exc
    return "0x" + body.lower()


def encode_fungible_asset_data(token_address: Address) -> AssetData:
    return "0x" + AssetKind.FUNGIBLE.selector + _address_word(token_address)


def encode_non_fungible_asset_data(token_address: Address, token_id: int) -> AssetData:
    if not 0 <= token_id <= MAX_UINT256:
        raise ValueError(f"Token id out of uint256 range: {token_id}")
    return (
        "0x"
        + AssetKind.NON_FUNGIBLE.selector
        + _address_word(token_address)
        + format(token_id, "064x")
    )


def encode_asset_data(asset: AssetDescriptor) -> AssetData:
    match asset:
        case FungibleAsset(token_address=token_address):
            return encode_fungible_asset_data(token_address)
        case NonFungibleAsset(token_address=token_address, token_id=token_id):
            return encode_non_fungible_asset_data(token_address, token_id)
    raise UnsupportedAssetKind(type(asset).__name__)


def decode_asset_kind(asset_data: AssetData) -> AssetKind:
    """Return the asset kind named by the selector of an asset data string.
    :param asset_data: hex encoded asset data
    :returns: AssetKind
    """
    body = _strip_hex_prefix(asset_data)
    if len(body) < SELECTOR_SIZE * 2:
        raise ValueError(f"Asset data too short to hold a selector: '{asset_data}'")
    selector = body[: SELECTOR_SIZE * 2].lower()
    try:
        return _KINDS_BY_SELECTOR[selector]
    except KeyError:
        raise UnsupportedAssetKind("0x" + selector) from None


def decode_fungible_asset_data(asset_data: AssetData) -> FungibleAsset:
    words = _words(asset_data, AssetKind.FUNGIBLE, 1)
    return FungibleAsset(_word_to_address(words[0]))


def decode_non_fungible_asset_data(asset_data: AssetData) -> NonFungibleAsset:
    words = _words(asset_data, AssetKind.NON_FUNGIBLE, 2)
    return NonFungibleAsset(_word_to_address(words[0]), int(words[1], 16))


def decode_asset_data(asset_data: AssetData) -> AssetDescriptor:
    """Decode asset data into its typed descriptor.
    :param asset_data: hex encoded asset data
    :returns: FungibleAsset or NonFungibleAsset
    :raises UnsupportedAssetKind: if the selector is unknown
    """
    kind = decode_asset_kind(asset_data)
    match kind:
        case AssetKind.FUNGIBLE:
            return decode_fungible_asset_data(asset_data)
        case AssetKind.NON_FUNGIBLE:
            return decode_non_fungible_asset_data(asset_data)


def _strip_hex_prefix(value: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"Expected a hex string, got {type(value).__name__}")
    return value[2:] if value[:2].lower() == "0x" else value


def _address_word(address: Address) -> str:
    return _strip_hex_prefix(normalize_address(address)).rjust(WORD_SIZE * 2, "0")


def _word_to_address(word: str) -> Address:
    if int(word[:24], 16) != 0:
        raise ValueError(f"Address word has dirty high bytes: '{word}'")
    return "0x" + word[24:]


def _words(asset_data: AssetData, kind: AssetKind, count: int) -> list[str]:
    if decode_asset_kind(asset_data) != kind:
        raise ValueError(f"Asset data is not {kind} asset data: '{asset_data}'")
    body = _strip_hex_prefix(asset_data)[SELECTOR_SIZE * 2 :].lower()
    if len(body) != count * WORD_SIZE * 2:
        raise ValueError(
            f"{kind} asset data must hold {count} word(s), got {len(body)} hex chars"
        )
    try:
        int(body, 16)
    except ValueError as exc:
        raise ValueError(f"Asset data is not hex: '{asset_data}'") from exc
    return [body[i : i + WORD_SIZE * 2] for i in range(0, len(body), WORD_SIZE * 2)]
