"""Runtime settings, loaded from the environment (and a .env file if present)."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class SettlementSettings:
    """
    Attributes:
        log_level: level handed to logging.basicConfig by configure_logging.
        strict_transfer_amounts: raise AmountConflict on inconsistent expected
            amounts instead of keeping both as given.
        snapshot_dir: when set, MatchOrderTester writes before/after balance
            snapshots there as parquet.
    """

    log_level: str = "INFO"
    strict_transfer_amounts: bool = True
    snapshot_dir: Path | None = None

    def __post_init__(self) -> None:
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}, got: {self.log_level}")
        object.__setattr__(self, "log_level", self.log_level.upper())

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "SettlementSettings":
        """
        Environment variables:
          - PYSETTLE_LOG_LEVEL (optional, default INFO)
          - PYSETTLE_STRICT_TRANSFER_AMOUNTS (optional, default true)
          - PYSETTLE_SNAPSHOT_DIR (optional, default unset)

        Raises:
            ValueError: if a variable holds an unparseable value.
        """
        load_dotenv(dotenv_path=env_file)
        strict_str = os.getenv("PYSETTLE_STRICT_TRANSFER_AMOUNTS", "true").strip().lower()
        if strict_str in _TRUE:
            strict = True
        elif strict_str in _FALSE:
            strict = False
        else:
            raise ValueError(
                f"PYSETTLE_STRICT_TRANSFER_AMOUNTS must be a boolean, got: {strict_str}"
            )
        snapshot_dir = os.getenv("PYSETTLE_SNAPSHOT_DIR")
        return cls(
            log_level=os.getenv("PYSETTLE_LOG_LEVEL", "INFO"),
            strict_transfer_amounts=strict,
            snapshot_dir=Path(snapshot_dir) if snapshot_dir else None,
        )


def configure_logging(settings: SettlementSettings) -> None:
    logging.basicConfig(level=getattr(logging, settings.log_level))
