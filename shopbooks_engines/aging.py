"""
Module: shopbooks_engines.aging
Responsibility:
    Age outstanding supplier payables against supplier payment terms and
    total the overdue amounts into aging buckets.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The as-of date is always
    passed in; the service resolves "today" from its injected clock.

Rules:
    - Each supplier row of the AP snapshot is aged from that supplier's
      most recent purchase: ``due = last_purchase.date + term_days`` where
      ``term_days`` is the supplier's payment term or the default (7).
    - ``days_late = as_of - due``.  ``<= 0`` is current; otherwise the row
      is overdue and its amount lands in the bucket containing days_late.
    - Suppliers with a payable but no purchase cannot be aged and are
      skipped (listed in ``skipped_supplier_ids``).
    - Bucket totals are rounded to two places.

    Aging only the latest purchase is a simplification: an older unpaid
    purchase is not aged on its own due date.

Usage:
    from shopbooks_engines.aging import AgingCalculator

    calculator = AgingCalculator()
    due = calculator.due_date(date(2024, 1, 1), term_days=7)   # 2024-01-08
    calculator.days_late(due, as_of_date=date(2024, 1, 20))    # 12
    calculator.classify(12).name                               # "8-30"
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from shopbooks_engines.tracer import traced_engine
from shopbooks_kernel.domain.records import APBalance, Purchase, Supplier
from shopbooks_kernel.domain.values import ZERO, round_money
from shopbooks_kernel.logging_config import get_logger

logger = get_logger("engines.aging")

DEFAULT_PAYMENT_TERM_DAYS = 7


@dataclass(frozen=True)
class AgeBucket:
    """
    Definition of an aging bucket.

    Contract:
        Frozen dataclass representing a contiguous range of days late.
    Guarantees:
        - min_days >= 0.
        - max_days >= min_days (when bounded).
    """

    name: str
    min_days: int
    max_days: int | None  # None = unbounded (e.g., 60+)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        """Check if age falls within this bucket."""
        if age_days < self.min_days:
            return False
        if self.max_days is None:
            return True
        return age_days <= self.max_days

    @property
    def is_unbounded(self) -> bool:
        return self.max_days is None


# Overdue buckets for supplier payables
AP_AGING_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("0-7", 0, 7),
    AgeBucket("8-30", 8, 30),
    AgeBucket("31-60", 31, 60),
    AgeBucket("60+", 61, None),
)


@dataclass(frozen=True)
class AgedPayable:
    """One supplier payable with its aging reference point."""

    supplier_id: str
    amount: Decimal
    last_purchase_date: date
    due_date: date
    days_late: int
    bucket: AgeBucket | None  # None while not yet due

    @property
    def is_overdue(self) -> bool:
        return self.days_late > 0


@dataclass(frozen=True)
class APAgingReport:
    """
    AP aging as of one date.

    Guarantees:
        - Every snapshot row with a purchase history is in exactly one of
          ``current`` / ``overdue``.
        - ``aging_buckets`` has one key per configured bucket, in order.
    """

    as_of_date: date
    current: tuple[APBalance, ...]
    overdue: tuple[APBalance, ...]
    aging_buckets: Mapping[str, Decimal]
    items: tuple[AgedPayable, ...] = ()
    skipped_supplier_ids: tuple[str, ...] = field(default=())

    @property
    def overdue_amount(self) -> Decimal:
        return round_money(sum((row.amount for row in self.overdue), ZERO))

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of_date": self.as_of_date.isoformat(),
            "current": [row.to_dict() for row in self.current],
            "overdue": [row.to_dict() for row in self.overdue],
            "aging_buckets": {k: str(v) for k, v in self.aging_buckets.items()},
        }


class AgingCalculator:
    """
    Calculate due dates, lateness and bucket membership.

    Contract:
        Pure functions -- no I/O, no database access, no clock.
    """

    DEFAULT_BUCKETS = AP_AGING_BUCKETS

    def __init__(
        self,
        buckets: Sequence[AgeBucket] | None = None,
        default_term_days: int = DEFAULT_PAYMENT_TERM_DAYS,
    ):
        self.buckets = tuple(buckets) if buckets else self.DEFAULT_BUCKETS
        self.default_term_days = default_term_days

    def term_days(self, supplier: Supplier | None) -> int:
        """Supplier's payment term, or the default when unset or unknown."""
        if supplier is not None and supplier.payment_term_days is not None:
            return supplier.payment_term_days
        return self.default_term_days

    def due_date(self, document_date: date, term_days: int) -> date:
        return document_date + timedelta(days=term_days)

    def days_late(self, due_date: date, as_of_date: date) -> int:
        """Whole days past due (negative when not yet due)."""
        return (as_of_date - due_date).days

    def classify(self, days_late: int) -> AgeBucket:
        """
        Bucket for a positive number of days late.

        Raises:
            ValueError: If the configured buckets do not cover the age.
        """
        for bucket in self.buckets:
            if bucket.contains(days_late):
                return bucket

        logger.warning("age_classification_no_bucket", extra={
            "days_late": days_late,
            "bucket_count": len(self.buckets),
        })
        raise ValueError(f"Age {days_late} does not fit any bucket")

    def age_payables(
        self,
        snapshot: Sequence[APBalance],
        purchases: Sequence[Purchase],
        suppliers: Sequence[Supplier],
        as_of_date: date,
    ) -> APAgingReport:
        """Classify every snapshot row as current or overdue."""
        suppliers_by_id = {s.id: s for s in suppliers}
        last_purchase: dict[str, date] = {}
        for purchase in purchases:
            seen = last_purchase.get(purchase.supplier_id)
            if seen is None or purchase.date > seen:
                last_purchase[purchase.supplier_id] = purchase.date

        totals: dict[str, Decimal] = {b.name: ZERO for b in self.buckets}
        current: list[APBalance] = []
        overdue: list[APBalance] = []
        items: list[AgedPayable] = []
        skipped: list[str] = []

        for row in snapshot:
            purchase_date = last_purchase.get(row.supplier_id)
            if purchase_date is None:
                skipped.append(row.supplier_id)
                continue

            term = self.term_days(suppliers_by_id.get(row.supplier_id))
            due = self.due_date(purchase_date, term)
            late = self.days_late(due, as_of_date)

            bucket = None
            if late <= 0:
                current.append(row)
            else:
                overdue.append(row)
                bucket = self.classify(late)
                totals[bucket.name] += row.amount

            items.append(AgedPayable(
                supplier_id=row.supplier_id,
                amount=row.amount,
                last_purchase_date=purchase_date,
                due_date=due,
                days_late=late,
                bucket=bucket,
            ))

        if skipped:
            logger.debug("ap_aging_suppliers_skipped", extra={
                "supplier_ids": skipped,
            })

        return APAgingReport(
            as_of_date=as_of_date,
            current=tuple(current),
            overdue=tuple(overdue),
            aging_buckets={name: round_money(total) for name, total in totals.items()},
            items=tuple(items),
            skipped_supplier_ids=tuple(skipped),
        )


@traced_engine("ap_aging", "1.0", fingerprint_fields=("as_of_date",))
def age_payables(
    *,
    snapshot: Sequence[APBalance],
    purchases: Sequence[Purchase],
    suppliers: Sequence[Supplier],
    as_of_date: date,
    buckets: Sequence[AgeBucket] | None = None,
    default_term_days: int = DEFAULT_PAYMENT_TERM_DAYS,
) -> APAgingReport:
    """Traced entry point used by the finance service."""
    calculator = AgingCalculator(buckets=buckets, default_term_days=default_term_days)
    return calculator.age_payables(snapshot, purchases, suppliers, as_of_date)
