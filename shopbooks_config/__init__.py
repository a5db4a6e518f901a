"""
shopbooks_config -- single public entrypoint for books configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned ``BooksConfig``
    and never read files or environment variables themselves.

Architecture position:
    Configuration -- sits above ``shopbooks_kernel`` and below
    ``shopbooks_services``.  The kernel and engines never import from
    ``shopbooks_config``.

Failure modes:
    - ``FileNotFoundError`` -- the resolved YAML file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``InvalidConfigError`` -- a value is missing, mistyped or out of range.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SHOPBOOKS_CONFIG_TRACE`` log entry with the source path and the
    SHA-256 checksum of the parsed document.
"""

from __future__ import annotations

import os
from pathlib import Path

from shopbooks_config.loader import compute_checksum, load_yaml_file, parse_books_config
from shopbooks_config.schema import AgingBucketDef, BooksConfig, SeedAccountDef
from shopbooks_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "SHOPBOOKS_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Explicit argument, then ``SHOPBOOKS_CONFIG``, then the packaged defaults."""
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def get_active_config(path: str | Path | None = None) -> BooksConfig:
    """The public configuration entrypoint.

    Guarantees:
        - The returned ``BooksConfig`` has passed validation.
        - A ``SHOPBOOKS_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        InvalidConfigError: If configuration validation fails.
    """
    source = resolve_config_path(path)
    data = load_yaml_file(source)
    checksum = compute_checksum(data)
    config = parse_books_config(data, checksum=checksum)

    _logger.info(
        "SHOPBOOKS_CONFIG_TRACE",
        extra={
            "trace_type": "SHOPBOOKS_CONFIG_TRACE",
            "source": str(source),
            "checksum": checksum,
            "currency": config.currency,
            "storage_key": config.storage_key,
            "valuation": config.valuation.value,
        },
    )
    return config


__all__ = [
    "AgingBucketDef",
    "BooksConfig",
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "SeedAccountDef",
    "get_active_config",
    "resolve_config_path",
]
