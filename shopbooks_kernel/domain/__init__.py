"""
Pure domain layer.

Record types, decimal helpers and the clock.  No ORM, no database, no I/O
(other than SystemClock reading the time).
"""

from shopbooks_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from shopbooks_kernel.domain.records import (
    Account,
    AccountType,
    APBalance,
    ARBalance,
    ARPayment,
    Batch,
    EntryType,
    Expense,
    LedgerEntry,
    LedgerRef,
    Payment,
    Purchase,
    RefKind,
    Supplier,
    ValuationMode,
)
from shopbooks_kernel.domain.values import (
    ZERO,
    parse_date,
    round_money,
    round_unit_cost,
    to_decimal,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Account",
    "AccountType",
    "APBalance",
    "ARBalance",
    "ARPayment",
    "Batch",
    "EntryType",
    "Expense",
    "LedgerEntry",
    "LedgerRef",
    "Payment",
    "Purchase",
    "RefKind",
    "Supplier",
    "ValuationMode",
    "ZERO",
    "parse_date",
    "round_money",
    "round_unit_cost",
    "to_decimal",
]
