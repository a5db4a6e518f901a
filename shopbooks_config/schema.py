"""
BooksConfig schema.

Frozen dataclasses the YAML configuration is parsed into.  Every class
validates itself in ``__post_init__`` and raises ``InvalidConfigError``
naming the offending key, so a bad file fails at load time rather than
in the middle of a posting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from shopbooks_kernel.domain.records import AccountType, ValuationMode
from shopbooks_kernel.exceptions import InvalidConfigError
from shopbooks_kernel.logging_config import get_logger

logger = get_logger("config.schema")


# ---------------------------------------------------------------------------
# Aging buckets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AgingBucketDef:
    """One overdue bucket: inclusive day range, open-ended when max_days is None."""

    label: str
    min_days: int
    max_days: int | None = None

    def __post_init__(self) -> None:
        if not self.label:
            raise InvalidConfigError("aging_buckets.label", "must be non-empty")
        if self.min_days < 0:
            raise InvalidConfigError(
                f"aging_buckets.{self.label}.min_days", "must be >= 0"
            )
        if self.max_days is not None and self.max_days < self.min_days:
            raise InvalidConfigError(
                f"aging_buckets.{self.label}.max_days", "must be >= min_days"
            )


# ---------------------------------------------------------------------------
# Seed accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SeedAccountDef:
    """Account created when a store is opened with no saved state."""

    id: str
    name: str
    type: AccountType = AccountType.CASH

    def __post_init__(self) -> None:
        if not self.id or not self.name:
            raise InvalidConfigError("seed_accounts", "id and name are required")


DEFAULT_AGING_BUCKETS: tuple[AgingBucketDef, ...] = (
    AgingBucketDef("0-7", 0, 7),
    AgingBucketDef("8-30", 8, 30),
    AgingBucketDef("31-60", 31, 60),
    AgingBucketDef("60+", 61, None),
)

DEFAULT_SEED_ACCOUNTS: tuple[SeedAccountDef, ...] = (
    SeedAccountDef("acc-cash", "Kassa", AccountType.CASH),
    SeedAccountDef("acc-bank1", "Bank - Kapital", AccountType.BANK),
    SeedAccountDef("acc-pos1", "POS - ABB", AccountType.POS),
)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BooksConfig:
    """
    Runtime configuration of the books.

    Contract:
        Constructed only through ``shopbooks_config.get_active_config()``
        (or directly in tests).  Immutable once built.

    Guarantees:
        - ``default_payment_term_days >= 0``.
        - ``ap_noise_epsilon >= 0``.
        - ``aging_buckets`` is non-empty, ordered and non-overlapping.
        - Seed account ids are unique.
    """

    currency: str = "AZN"
    storage_key: str = "og-finance-v2"
    valuation: ValuationMode = ValuationMode.FIFO
    default_payment_term_days: int = 7
    ap_noise_epsilon: Decimal = Decimal("0.001")
    aging_buckets: tuple[AgingBucketDef, ...] = DEFAULT_AGING_BUCKETS
    seed_accounts: tuple[SeedAccountDef, ...] = DEFAULT_SEED_ACCOUNTS
    spoilage_category: str = "spoilage"
    database_url: str | None = None
    log_level: str = "INFO"
    checksum: str = field(default="", compare=False)

    def _check_bucket_coverage(self) -> None:
        """Buckets must cover every day late from 1 upwards, each day exactly once."""
        first = self.aging_buckets[0]
        if first.min_days > 1:
            raise InvalidConfigError(
                "aging_buckets", f"first bucket {first.label!r} must start at day 0 or 1"
            )
        for previous, bucket in zip(self.aging_buckets, self.aging_buckets[1:]):
            if previous.max_days is None or bucket.min_days <= previous.max_days:
                raise InvalidConfigError(
                    "aging_buckets", f"bucket {bucket.label!r} overlaps the previous one"
                )
            if bucket.min_days != previous.max_days + 1:
                raise InvalidConfigError(
                    "aging_buckets",
                    f"gap between {previous.label!r} and {bucket.label!r}",
                )
        if self.aging_buckets[-1].max_days is not None:
            raise InvalidConfigError(
                "aging_buckets",
                f"last bucket {self.aging_buckets[-1].label!r} must be open-ended",
            )

    def __post_init__(self) -> None:
        if not self.currency:
            raise InvalidConfigError("currency", "must be non-empty")
        if not self.storage_key:
            raise InvalidConfigError("storage_key", "must be non-empty")
        if self.default_payment_term_days < 0:
            raise InvalidConfigError("default_payment_term_days", "must be >= 0")
        if self.ap_noise_epsilon < 0:
            raise InvalidConfigError("ap_noise_epsilon", "must be >= 0")
        if not self.aging_buckets:
            raise InvalidConfigError("aging_buckets", "at least one bucket is required")

        self._check_bucket_coverage()

        ids = [account.id for account in self.seed_accounts]
        if len(ids) != len(set(ids)):
            raise InvalidConfigError("seed_accounts", "account ids must be unique")

        logger.debug("books_config_validated", extra={
            "currency": self.currency,
            "storage_key": self.storage_key,
            "valuation": self.valuation.value,
            "bucket_count": len(self.aging_buckets),
        })
