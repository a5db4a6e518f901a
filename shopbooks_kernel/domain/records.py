"""
Records -- The vocabulary of the shop's books.

Responsibility:
    Dataclasses for every record the finance engine owns (suppliers,
    accounts, expenses, purchases, supplier payments, customer payments,
    ledger entries, inventory batches) plus the derived AP/AR rows.
    Each record converts to and from a plain JSON-ready dict.

Architecture position:
    Kernel > Domain -- pure data, zero I/O.

Invariants enforced:
    - Amounts, quantities and costs are ``Decimal``; dates are ``date``.
      Boundary values (ISO strings, ints, floats) are coerced on
      construction.
    - Purchases: qty > 0, unit_cost >= 0, 0 <= paid <= qty * unit_cost.
    - Ledger entries, expenses and payments carry non-negative amounts.
    - Batch qty never drops below zero.

Failure modes:
    - InvalidRecordError from ``__post_init__`` when a field is out of range
      or cannot be coerced.

Serialization:
    ``to_dict`` emits Decimals as strings, dates as ISO strings and enums as
    their values.  ``from_dict`` ignores unknown keys and lets fields added
    after a blob was written fall back to their defaults.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Self

from shopbooks_kernel.domain.values import ZERO, parse_date, to_decimal
from shopbooks_kernel.exceptions import InvalidRecordError


class AccountType(str, Enum):
    """Where money is held."""

    CASH = "cash"
    BANK = "bank"
    POS = "pos"
    WALLET = "wallet"


class EntryType(str, Enum):
    """Direction of a cash ledger entry."""

    IN = "in"
    OUT = "out"


class RefKind(str, Enum):
    """Kind of source record a ledger entry was booked for."""

    EXPENSE = "expense"
    PURCHASE = "purchase"
    PAYMENT = "payment"
    ARPAYMENT = "arpayment"
    ORDER = "order"


class ValuationMode(str, Enum):
    """Inventory costing policy flag."""

    FIFO = "fifo"
    LIFO = "lifo"


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _coerce(record: Any, name: str, convert: Callable[[Any], Any]) -> None:
    """Convert a field in place, mapping failures to InvalidRecordError."""
    value = getattr(record, name)
    try:
        converted = convert(value)
    except (ValueError, TypeError) as e:
        raise InvalidRecordError(type(record).__name__, name, value, str(e)) from e
    object.__setattr__(record, name, converted)


def _coerce_optional(record: Any, name: str, convert: Callable[[Any], Any]) -> None:
    if getattr(record, name) is not None:
        _coerce(record, name, convert)


def _require_non_negative(record: Any, name: str) -> None:
    value = getattr(record, name)
    if value < 0:
        raise InvalidRecordError(type(record).__name__, name, value, "must not be negative")


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, LedgerRef):
        return value.to_dict()
    return value


class _RecordMixin:
    """Dict conversion shared by all records."""

    def to_dict(self) -> dict[str, Any]:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})


# ---------------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Supplier(_RecordMixin):
    """A vendor. ``payment_term_days`` is the net term used for AP aging."""

    id: str
    name: str
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    note: str | None = None
    payment_term_days: int | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        _coerce_optional(self, "payment_term_days", int)
        if self.payment_term_days is not None:
            _require_non_negative(self, "payment_term_days")


@dataclass(frozen=True)
class Account(_RecordMixin):
    """
    A cash-holding bucket.

    ``balance`` is a cache filled in by the cash balance derivation; the
    ledger is the only source of truth.
    """

    id: str
    name: str
    type: AccountType = AccountType.CASH
    currency: str = "AZN"
    balance: Decimal = ZERO

    def __post_init__(self) -> None:
        _coerce(self, "type", AccountType)
        _coerce(self, "balance", to_decimal)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Expense(_RecordMixin):
    id: str
    date: date
    category: str
    amount: Decimal
    account_id: str | None = None

    def __post_init__(self) -> None:
        _coerce(self, "date", parse_date)
        _coerce(self, "amount", to_decimal)
        _require_non_negative(self, "amount")


@dataclass(frozen=True)
class Purchase(_RecordMixin):
    """
    Stock bought from a supplier.

    Whatever is not ``paid`` at receipt becomes a payable to ``supplier_id``.
    ``unit_cost`` already includes the allocated freight.
    """

    id: str
    date: date
    supplier_id: str
    product_id: str
    qty: Decimal
    unit_cost: Decimal
    variant_id: str | None = None
    account_id: str | None = None
    paid: Decimal = ZERO
    note: str | None = None

    def __post_init__(self) -> None:
        _coerce(self, "date", parse_date)
        _coerce(self, "qty", to_decimal)
        _coerce(self, "unit_cost", to_decimal)
        _coerce(self, "paid", to_decimal)
        if self.qty <= 0:
            raise InvalidRecordError("Purchase", "qty", self.qty, "must be positive")
        _require_non_negative(self, "unit_cost")
        _require_non_negative(self, "paid")
        if self.paid > self.total_cost:
            raise InvalidRecordError(
                "Purchase", "paid", self.paid,
                f"exceeds purchase total {self.total_cost}",
            )

    @property
    def total_cost(self) -> Decimal:
        return self.qty * self.unit_cost

    @property
    def unpaid(self) -> Decimal:
        """Amount left owing to the supplier from this purchase alone."""
        return max(ZERO, self.total_cost - self.paid)


@dataclass(frozen=True)
class Payment(_RecordMixin):
    """A payment to a supplier; lowers that supplier's payable."""

    id: str
    date: date
    supplier_id: str
    account_id: str
    amount: Decimal
    note: str | None = None

    def __post_init__(self) -> None:
        _coerce(self, "date", parse_date)
        _coerce(self, "amount", to_decimal)
        _require_non_negative(self, "amount")


@dataclass(frozen=True)
class ARPayment(_RecordMixin):
    """Money received from a customer."""

    id: str
    date: date
    account_id: str
    amount: Decimal
    customer_name: str | None = None
    order_id: str | None = None
    note: str | None = None

    def __post_init__(self) -> None:
        _coerce(self, "date", parse_date)
        _coerce(self, "amount", to_decimal)
        _require_non_negative(self, "amount")


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerRef:
    """Link from a ledger entry back to the record that booked it."""

    kind: RefKind
    id: str

    def __post_init__(self) -> None:
        _coerce(self, "kind", RefKind)

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "id": self.id}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LedgerRef:
        return cls(kind=data["kind"], id=data["id"])


@dataclass(frozen=True)
class LedgerEntry(_RecordMixin):
    """One immutable row of the cash journal."""

    id: str
    date: date
    account_id: str
    type: EntryType
    amount: Decimal
    ref: LedgerRef | None = None
    memo: str | None = None

    def __post_init__(self) -> None:
        _coerce(self, "date", parse_date)
        _coerce(self, "type", EntryType)
        _coerce(self, "amount", to_decimal)
        _require_non_negative(self, "amount")
        if isinstance(self.ref, Mapping):
            _coerce(self, "ref", LedgerRef.from_dict)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type is EntryType.IN else -self.amount


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


@dataclass
class Batch(_RecordMixin):
    """
    A lot of stock received from one purchase.

    ``id`` equals the owning purchase id.  ``qty`` is the remaining
    quantity and only ever goes down; ``unit_cost`` never changes.
    """

    id: str
    product_id: str
    date: date
    qty: Decimal
    unit_cost: Decimal
    variant_id: str | None = None

    def __post_init__(self) -> None:
        _coerce(self, "date", parse_date)
        _coerce(self, "qty", to_decimal)
        _coerce(self, "unit_cost", to_decimal)
        _require_non_negative(self, "qty")
        _require_non_negative(self, "unit_cost")

    @classmethod
    def for_purchase(cls, purchase: Purchase) -> Batch:
        return cls(
            id=purchase.id,
            product_id=purchase.product_id,
            variant_id=purchase.variant_id,
            date=purchase.date,
            qty=purchase.qty,
            unit_cost=purchase.unit_cost,
        )

    def copy(self) -> Batch:
        return replace(self)

    @property
    def value(self) -> Decimal:
        return self.qty * self.unit_cost


# ---------------------------------------------------------------------------
# Derived rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class APBalance:
    """Outstanding payable to one supplier."""

    supplier_id: str
    amount: Decimal

    def to_dict(self) -> dict[str, str]:
        return {"supplier_id": self.supplier_id, "amount": str(self.amount)}


@dataclass(frozen=True)
class ARBalance:
    """Outstanding receivable from one customer or order."""

    amount: Decimal
    customer_name: str | None = None
    order_id: str | None = None


RECORD_TYPES: dict[str, type] = {
    "suppliers": Supplier,
    "accounts": Account,
    "expenses": Expense,
    "purchases": Purchase,
    "payments": Payment,
    "ar_payments": ARPayment,
    "ledger": LedgerEntry,
    "batches": Batch,
}

__all__ = [
    "AccountType",
    "EntryType",
    "RefKind",
    "ValuationMode",
    "Supplier",
    "Account",
    "Expense",
    "Purchase",
    "Payment",
    "ARPayment",
    "LedgerRef",
    "LedgerEntry",
    "Batch",
    "APBalance",
    "ARBalance",
    "RECORD_TYPES",
]
