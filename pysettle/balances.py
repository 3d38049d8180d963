import logging
from dataclasses import dataclass, field
from typing import TypeAlias, cast

from pysettle.asset import (
    Address,
    AssetData,
    AssetKind,
    FungibleAsset,
    NonFungibleAsset,
    decode_asset_data,
    normalize_address,
)
from pysettle.errors import UnsupportedAssetKind

logger = logging.getLogger(__name__)

FungibleBalances: TypeAlias = dict[Address, dict[Address, int]]
NonFungibleHoldings: TypeAlias = dict[Address, dict[Address, list[int]]]
REQUIRED_PARQUET_COLUMNS: tuple[str, str, str, str, str] = (
    "owner",
    "token",
    "kind",
    "amount",
    "token_id",
)


@dataclass
class BalanceSnapshot:
    """Point-in-time holdings of every tracked owner.
    fungible: owner -> token -> quantity
    non_fungible: owner -> token -> held token ids
    Missing entries read as zero / no tokens.
    Owner and token keys are lowercased on construction, and lookups accept
    any casing. Keys differing only in case are merged.
    """

    fungible: FungibleBalances = field(default_factory=dict)
    non_fungible: NonFungibleHoldings = field(default_factory=dict)

    def __post_init__(self) -> None:
        fungible: FungibleBalances = {}
        for owner, tokens in self.fungible.items():
            holdings = fungible.setdefault(normalize_address(owner), {})
            for token, amount in tokens.items():
                key = normalize_address(token)
                holdings[key] = holdings.get(key, 0) + amount
        non_fungible: NonFungibleHoldings = {}
        for owner, tokens in self.non_fungible.items():
            held = non_fungible.setdefault(normalize_address(owner), {})
            for token, token_ids in tokens.items():
                held.setdefault(normalize_address(token), []).extend(token_ids)
        self.fungible = fungible
        self.non_fungible = non_fungible

    def copy(self) -> "BalanceSnapshot":
        """Return an independently owned copy; no inner dict or list is shared"""
        return BalanceSnapshot(fungible=self.fungible, non_fungible=self.non_fungible)

    def fungible_balance(self, owner: Address, token: Address) -> int:
        return self.fungible.get(normalize_address(owner), {}).get(normalize_address(token), 0)

    def non_fungible_tokens(self, owner: Address, token: Address) -> list[int]:
        return self.non_fungible.get(normalize_address(owner), {}).get(normalize_address(token), [])

    def total_supply(self, token: Address) -> int:
        """Sum of a fungible token's balances across all owners"""
        token = normalize_address(token)
        return sum(tokens.get(token, 0) for tokens in self.fungible.values())

    def owners(self) -> set[Address]:
        return set(self.fungible) | set(self.non_fungible)

    def apply_transfer(
        self, from_owner: Address, to_owner: Address, amount: int, asset_data: AssetData
    ) -> None:
        """Move an asset between owners in place.
        Fungible balances are not checked for solvency; that is the engine's job.
        :param from_owner: sending address
        :param to_owner: receiving address
        :param amount: quantity for fungible assets, ignored (beyond zero) for non-fungible
        :param asset_data: encoded asset data naming the asset
        :raises UnsupportedAssetKind: if the asset data names an unknown kind,
            whatever the amount
        """
        asset = decode_asset_data(asset_data)
        if amount == 0:
            return
        from_owner = normalize_address(from_owner)
        to_owner = normalize_address(to_owner)
        match asset:
            case FungibleAsset(token_address=token):
                from_balances = self.fungible.setdefault(from_owner, {})
                to_balances = self.fungible.setdefault(to_owner, {})
                from_balances[token] = from_balances.get(token, 0) - amount
                to_balances[token] = to_balances.get(token, 0) + amount
                logger.debug("Moved %s of %s from %s to %s", amount, token, from_owner, to_owner)
            case NonFungibleAsset(token_address=token, token_id=token_id):
                from_tokens = self.non_fungible.setdefault(from_owner, {}).setdefault(token, [])
                to_tokens = self.non_fungible.setdefault(to_owner, {}).setdefault(token, [])
                if token_id in from_tokens:
                    from_tokens.remove(token_id)
                else:
                    logger.warning(
                        "%s does not hold token %s of %s; crediting %s anyway",
                        from_owner,
                        token_id,
                        token,
                        to_owner,
                    )
                to_tokens.append(token_id)
                logger.debug("Moved token %s of %s from %s to %s", token_id, token, from_owner, to_owner)
            case _:
                raise UnsupportedAssetKind(type(asset).__name__)


def transfer_asset(
    from_owner: Address,
    to_owner: Address,
    amount: int,
    asset_data: AssetData,
    balances: BalanceSnapshot,
) -> BalanceSnapshot:
    """Pure form of BalanceSnapshot.apply_transfer: returns a new snapshot and
    leaves `balances` untouched.
    """
    updated = balances.copy()
    updated.apply_transfer(from_owner, to_owner, amount, asset_data)
    return updated


@dataclass(frozen=True)
class BalanceDelta:
    owner: Address
    token: Address
    kind: AssetKind
    change: int = 0
    added: tuple[int, ...] = ()
    removed: tuple[int, ...] = ()


def diff_balances(before: BalanceSnapshot, after: BalanceSnapshot) -> list[BalanceDelta]:
    """List every (owner, token) whose holdings changed between two snapshots.
    :param before: snapshot taken first
    :param after: snapshot taken second
    :returns: deltas sorted by owner then token, fungible before non-fungible
    """
    deltas: list[BalanceDelta] = []
    for owner in sorted(set(before.fungible) | set(after.fungible)):
        tokens = set(before.fungible.get(owner, {})) | set(after.fungible.get(owner, {}))
        for token in sorted(tokens):
            change = after.fungible_balance(owner, token) - before.fungible_balance(owner, token)
            if change:
                deltas.append(BalanceDelta(owner, token, AssetKind.FUNGIBLE, change=change))
    for owner in sorted(set(before.non_fungible) | set(after.non_fungible)):
        tokens = set(before.non_fungible.get(owner, {})) | set(after.non_fungible.get(owner, {}))
        for token in sorted(tokens):
            held_before = set(before.non_fungible_tokens(owner, token))
            held_after = set(after.non_fungible_tokens(owner, token))
            if held_before != held_after:
                deltas.append(
                    BalanceDelta(
                        owner,
                        token,
                        AssetKind.NON_FUNGIBLE,
                        added=tuple(sorted(held_after - held_before)),
                        removed=tuple(sorted(held_before - held_after)),
                    )
                )
    return deltas


def _import_parquet():  # type: ignore[no-untyped-def]
    try:
        import pyarrow as pa
        import pyarrow.parquet as parquet
    except ImportError as exc:
        raise ImportError(
            "pyarrow is required for parquet snapshots. Install with `pip install pysettle[parquet]`."
        ) from exc
    return pa, parquet


def write_balance_snapshot_parquet(snapshot: BalanceSnapshot, path: str) -> int:
    """Persist a snapshot as one row per fungible balance or held token id.
    Amounts and ids are stored as decimal strings since they may exceed int64.
    :returns: number of rows written
    """
    pa, parquet = _import_parquet()
    rows: dict[str, list[str | None]] = {name: [] for name in REQUIRED_PARQUET_COLUMNS}
    for owner, tokens in sorted(snapshot.fungible.items()):
        for token, amount in sorted(tokens.items()):
            _append_row(rows, owner, token, AssetKind.FUNGIBLE, str(amount), None)
    for owner, holdings in sorted(snapshot.non_fungible.items()):
        for token, token_ids in sorted(holdings.items()):
            for token_id in token_ids:
                _append_row(rows, owner, token, AssetKind.NON_FUNGIBLE, None, str(token_id))
    schema = pa.schema([(name, pa.utf8()) for name in REQUIRED_PARQUET_COLUMNS])
    table = pa.table(rows, schema=schema)
    parquet.write_table(table, path)
    logger.info("Wrote %s balance rows to %s", len(table), path)
    return len(table)


def read_balance_snapshot_parquet(path: str) -> BalanceSnapshot:
    """Load a snapshot written by write_balance_snapshot_parquet"""
    _, parquet = _import_parquet()
    table = parquet.read_table(path)
    missing_columns = [name for name in REQUIRED_PARQUET_COLUMNS if name not in table.column_names]
    if missing_columns:
        required = ", ".join(REQUIRED_PARQUET_COLUMNS)
        missing = ", ".join(missing_columns)
        raise ValueError(f"Parquet file must contain columns [{required}]; missing [{missing}].")

    fungible: FungibleBalances = {}
    non_fungible: NonFungibleHoldings = {}
    for row_idx, row in enumerate(cast(list[dict[str, str | None]], table.to_pylist())):
        owner, token, kind = row["owner"], row["token"], row["kind"]
        if not owner or not token:
            raise ValueError(f"Missing owner or token at row {row_idx}")
        try:
            asset_kind = AssetKind(str(kind))
        except ValueError as exc:
            raise ValueError(f"Invalid kind at row {row_idx}: '{kind}'") from exc
        if asset_kind == AssetKind.FUNGIBLE:
            if row["amount"] is None:
                raise ValueError(f"Missing amount at row {row_idx}")
            fungible.setdefault(owner, {})[token] = int(row["amount"])
        else:
            if row["token_id"] is None:
                raise ValueError(f"Missing token_id at row {row_idx}")
            non_fungible.setdefault(owner, {}).setdefault(token, []).append(
                int(row["token_id"])
            )
    return BalanceSnapshot(fungible=fungible, non_fungible=non_fungible)


def _append_row(
    rows: dict[str, list[str | None]],
    owner: Address,
    token: Address,
    kind: AssetKind,
    amount: str | None,
    token_id: str | None,
) -> None:
    rows["owner"].append(owner)
    rows["token"].append(token)
    rows["kind"].append(str(kind))
    rows["amount"].append(amount)
    rows["token_id"].append(token_id)
