"""
Ledger settings schema.

Defines the tunables of the lot ledger and their defaults.  Values are
loaded from YAML and environment variables by ``ledger_config.loader``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Self

from ledger_kernel.domain.values import VoidCreditPolicy
from ledger_kernel.logging_config import get_logger

logger = get_logger("config.settings")

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class LedgerSettings:
    """
    Configuration schema for the lot ledger.

        settings = LedgerSettings(
            database_url="postgresql://ledger@localhost/ledger",
            max_commit_attempts=5,
        )
    """

    database_url: str = "sqlite:///lot_ledger.db"
    echo_sql: bool = False
    pool_size: int = 20
    max_overflow: int = 10

    # Sale commits
    max_commit_attempts: int = 3

    # Voids
    void_credit_policy: str = VoidCreditPolicy.LATEST_LOT.value

    # Queries
    default_page_size: int = 10
    max_page_size: int = 100

    log_level: str = "INFO"

    def __post_init__(self):
        if not self.database_url:
            raise ValueError("database_url is required")

        if self.max_commit_attempts < 1:
            raise ValueError("max_commit_attempts must be at least 1")

        valid_policies = {p.value for p in VoidCreditPolicy}
        if self.void_credit_policy not in valid_policies:
            raise ValueError(
                f"void_credit_policy must be one of {sorted(valid_policies)}, "
                f"got '{self.void_credit_policy}'"
            )

        if self.default_page_size < 1:
            raise ValueError("default_page_size must be positive")
        if self.max_page_size < self.default_page_size:
            raise ValueError(
                f"max_page_size ({self.max_page_size}) cannot be below "
                f"default_page_size ({self.default_page_size})"
            )

        if self.pool_size < 1 or self.max_overflow < 0:
            raise ValueError("pool_size must be positive and max_overflow non-negative")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got '{self.log_level}'"
            )

        logger.debug(
            "ledger_settings_initialized",
            extra={
                "dialect": self.database_url.split(":", 1)[0],
                "max_commit_attempts": self.max_commit_attempts,
                "void_credit_policy": self.void_credit_policy,
                "max_page_size": self.max_page_size,
            },
        )

    @property
    def credit_policy(self) -> VoidCreditPolicy:
        return VoidCreditPolicy(self.void_credit_policy)

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level.upper())

    @classmethod
    def with_defaults(cls) -> Self:
        """Create settings with the built-in defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        Create settings from a mapping (e.g. parsed YAML).

        Raises:
            ValueError: unknown keys or invalid values.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown ledger settings: {unknown}")
        logger.info(
            "ledger_settings_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
