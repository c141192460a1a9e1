"""
Settings loader (``ledger_config.loader``).

Responsibility
--------------
Reads a YAML settings file, applies ``LOTLEDGER_*`` environment overrides,
and builds a validated ``LedgerSettings``.

Precedence (highest first): environment variable, YAML file, built-in
default.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Top-level YAML that is not a mapping  -> ``ValueError``.
* Unknown keys or invalid values  -> ``ValueError`` from LedgerSettings.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Mapping
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from ledger_config.settings import LedgerSettings

ENV_PREFIX = "LOTLEDGER_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level, got {type(data).__name__}")
    return data


def _coerce(name: str, raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"{ENV_PREFIX}{name.upper()}: not a boolean: {raw!r}")
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError as exc:
            raise ValueError(f"{ENV_PREFIX}{name.upper()}: not an integer: {raw!r}") from exc
    return raw


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Settings taken from ``LOTLEDGER_<FIELD>`` variables, typed like the defaults."""
    environ = os.environ if environ is None else environ
    defaults = LedgerSettings.with_defaults()
    overrides: dict[str, Any] = {}
    for f in fields(LedgerSettings):
        key = f"{ENV_PREFIX}{f.name.upper()}"
        if key in environ:
            overrides[f.name] = _coerce(f.name, environ[key], getattr(defaults, f.name))
    return overrides


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Build settings from an optional YAML file plus environment overrides.

    ``path`` defaults to ``$LOTLEDGER_CONFIG`` when set.
    """
    environ = os.environ if environ is None else environ
    if path is None and environ.get(f"{ENV_PREFIX}CONFIG"):
        path = environ[f"{ENV_PREFIX}CONFIG"]

    data: dict[str, Any] = {}
    if path is not None:
        data.update(load_yaml_file(Path(path)))
    data.update(env_overrides(environ))
    return LedgerSettings.from_dict(data)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
