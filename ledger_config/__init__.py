"""
ledger_config -- single public entrypoint for lot ledger settings.

Responsibility:
    ``get_settings()`` is the one way services and scripts obtain
    configuration.  It loads YAML and environment overrides through
    ``ledger_config.loader`` and logs a LEDGER_CONFIG_TRACE record.

Architecture position:
    Configuration -- sits above ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from here;
    services pass the values it needs as plain arguments.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from ledger_config.loader import compute_checksum, load_settings, load_yaml_file
from ledger_config.settings import LedgerSettings
from ledger_kernel.logging_config import get_logger

_logger = get_logger("config")

__all__ = [
    "LedgerSettings",
    "compute_checksum",
    "get_settings",
    "load_settings",
    "load_yaml_file",
]


def get_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """Load settings and trace which configuration is in effect."""
    settings = load_settings(path, environ)
    traced = settings.to_dict()
    traced.pop("database_url")
    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "source": str(path) if path is not None else "defaults",
            "checksum": compute_checksum(traced),
            **traced,
        },
    )
    return settings
