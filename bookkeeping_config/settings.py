"""
YAML settings loader.

Loading pipeline:
    packaged ``defaults.yaml`` -> optional settings file (deep-merged on
    top) -> ``BOOKKEEPING_DATABASE_URL`` environment override -> frozen
    BookkeepingSettings.

Failure modes:
    * Missing settings file -> ``FileNotFoundError``.
    * Unknown keys, wrong types, negative limits -> ``ValueError``.
    * Malformed YAML -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

_logger = logging.getLogger("bookkeeping_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV = "BOOKKEEPING_DATABASE_URL"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ReconciliationSettings:
    fuzzy_amount_pct: Decimal = Decimal("0.01")
    fuzzy_days: int = 3
    fuzzy_min_confidence: Decimal = Decimal("0.85")
    reference_confidence: Decimal = Decimal("0.95")
    pattern_window_days: int = 7
    pattern_min_score: Decimal = Decimal("0.80")
    unusual_amount_multiplier: Decimal = Decimal("5")
    stale_unmatched_days: int = 7


@dataclass(frozen=True)
class BookkeepingSettings:
    """Runtime settings for one set of books."""

    database_url: str = "sqlite:///bookkeeping.db"
    echo_sql: bool = False
    log_level: str = "INFO"
    ledger_name: str = "default"
    balance_tolerance: Decimal = Decimal("0.01")
    currency_symbol: str = "₹"
    lock_timeout_seconds: float = 30.0
    numbering_max_retries: int = 3
    reconciliation: ReconciliationSettings = field(default_factory=ReconciliationSettings)

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load one YAML mapping.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: settings must be a mapping, got {type(data).__name__}")
    return data


def _merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _coerce(name: str, value: Any, target: type) -> Any:
    if target is Decimal:
        if isinstance(value, bool):
            raise ValueError(f"{name}: expected a number, got {value!r}")
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError(f"{name}: expected a number, got {value!r}") from exc
        if result < 0:
            raise ValueError(f"{name}: must not be negative")
        return result
    if target is bool:
        if not isinstance(value, bool):
            raise ValueError(f"{name}: expected true or false, got {value!r}")
        return value
    if target in (int, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{name}: expected a number, got {value!r}")
        if value < 0:
            raise ValueError(f"{name}: must not be negative")
        return target(value)
    if not isinstance(value, str):
        raise ValueError(f"{name}: expected text, got {value!r}")
    return value


def _build(cls: type, data: Mapping[str, Any], prefix: str = "") -> Any:
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"Unknown setting(s): {', '.join(prefix + k for k in unknown)}")
    kwargs = {}
    for name, value in data.items():
        target = known[name].type
        if name == "reconciliation":
            if not isinstance(value, Mapping):
                raise ValueError("reconciliation: expected a mapping")
            kwargs[name] = _build(ReconciliationSettings, value, prefix="reconciliation.")
            continue
        kwargs[name] = _coerce(prefix + name, value, _TYPES[target])
    return cls(**kwargs)


# Field annotations are strings under ``from __future__ import annotations``.
_TYPES: dict[str, type] = {
    "str": str,
    "bool": bool,
    "int": int,
    "float": float,
    "Decimal": Decimal,
}


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BookkeepingSettings:
    """
    Build settings from the packaged defaults, an optional file and the
    environment.

    Args:
        path: YAML file whose keys override the defaults.
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        ValueError: unknown keys or invalid values.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data = _merge(data, load_yaml_file(Path(path)))

    env = os.environ if environ is None else environ
    if env.get(DATABASE_URL_ENV):
        data["database_url"] = env[DATABASE_URL_ENV]

    settings = _build(BookkeepingSettings, data)
    if settings.log_level.upper() not in _LOG_LEVELS:
        raise ValueError(f"log_level: expected one of {', '.join(_LOG_LEVELS)}")
    settings = replace(settings, log_level=settings.log_level.upper())
    if settings.numbering_max_retries < 1:
        raise ValueError("numbering_max_retries: must be at least 1")

    _logger.info(
        "settings_loaded",
        extra={
            "settings_path": str(path) if path is not None else None,
            "ledger_name": settings.ledger_name,
            "balance_tolerance": str(settings.balance_tolerance),
            "database_override": bool(env.get(DATABASE_URL_ENV)),
        },
    )
    return settings
