"""
Configuration Loader (``shopbooks_config.loader``).

Responsibility
--------------
Reads a YAML file and parses it into a ``BooksConfig``.  Callers use
``shopbooks_config.get_active_config()``; this module is the parsing
half of that entry point.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong value types or out-of-range values  -> ``InvalidConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from shopbooks_config.schema import AgingBucketDef, BooksConfig, SeedAccountDef
from shopbooks_kernel.domain.records import AccountType, ValuationMode
from shopbooks_kernel.exceptions import InvalidConfigError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Postconditions:
        - Returns a ``dict`` (empty if the YAML document is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        InvalidConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfigError("<root>", f"expected a mapping, got {type(data).__name__}")
    return data


def parse_aging_bucket(data: dict[str, Any]) -> AgingBucketDef:
    max_days = data.get("max_days")
    return AgingBucketDef(
        label=str(data["label"]),
        min_days=int(data["min_days"]),
        max_days=int(max_days) if max_days is not None else None,
    )


def parse_seed_account(data: dict[str, Any]) -> SeedAccountDef:
    try:
        account_type = AccountType(data.get("type", "cash"))
    except ValueError as exc:
        raise InvalidConfigError("seed_accounts.type", str(exc)) from exc
    return SeedAccountDef(id=str(data["id"]), name=str(data["name"]), type=account_type)


def _decimal(key: str, value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidConfigError(key, f"not a number: {value!r}") from exc


def parse_books_config(data: dict[str, Any], checksum: str = "") -> BooksConfig:
    """
    Build a ``BooksConfig`` from a parsed YAML mapping.

    Missing keys take the dataclass defaults; unknown keys are ignored.
    """
    kwargs: dict[str, Any] = {"checksum": checksum}

    for key in ("currency", "storage_key", "spoilage_category", "log_level"):
        if key in data:
            kwargs[key] = str(data[key])
    if data.get("database_url"):
        kwargs["database_url"] = str(data["database_url"])

    if "valuation" in data:
        try:
            kwargs["valuation"] = ValuationMode(data["valuation"])
        except ValueError as exc:
            raise InvalidConfigError("valuation", str(exc)) from exc

    if "default_payment_term_days" in data:
        try:
            kwargs["default_payment_term_days"] = int(data["default_payment_term_days"])
        except (TypeError, ValueError) as exc:
            raise InvalidConfigError("default_payment_term_days", str(exc)) from exc

    if "ap_noise_epsilon" in data:
        kwargs["ap_noise_epsilon"] = _decimal("ap_noise_epsilon", data["ap_noise_epsilon"])

    try:
        if "aging_buckets" in data:
            kwargs["aging_buckets"] = tuple(
                parse_aging_bucket(b) for b in data["aging_buckets"] or ()
            )
        if "seed_accounts" in data:
            kwargs["seed_accounts"] = tuple(
                parse_seed_account(a) for a in data["seed_accounts"] or ()
            )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidConfigError("aging_buckets/seed_accounts", str(exc)) from exc

    return BooksConfig(**kwargs)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
