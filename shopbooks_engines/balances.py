"""
shopbooks_engines.balances -- Cash account balances derived from the journal.

Responsibility:
    Replay the whole cash ledger into per-account balances.  Balances are
    never stored as ground truth; every call starts each account at zero
    and folds every entry.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Rules:
    - ``in`` entries add, ``out`` entries subtract.
    - Entries for accounts that no longer exist are ignored.
    - Balances are rounded to two places.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from decimal import Decimal

from shopbooks_engines.tracer import traced_engine
from shopbooks_kernel.domain.records import Account, EntryType, LedgerEntry
from shopbooks_kernel.domain.values import ZERO, round_money


@traced_engine("cash_balances", "1.0")
def cash_balances(
    *,
    accounts: Sequence[Account],
    ledger: Sequence[LedgerEntry],
) -> list[Account]:
    """Accounts in their stored order, each with its derived balance."""
    totals: dict[str, Decimal] = {a.id: ZERO for a in accounts}
    for entry in ledger:
        if entry.account_id in totals:
            totals[entry.account_id] += entry.signed_amount
    return [replace(a, balance=round_money(totals[a.id])) for a in accounts]


def account_activity(
    ledger: Sequence[LedgerEntry],
    account_id: str,
) -> tuple[Decimal, Decimal]:
    """Total money in and out of one account, unrounded."""
    money_in = ZERO
    money_out = ZERO
    for entry in ledger:
        if entry.account_id != account_id:
            continue
        if entry.type is EntryType.IN:
            money_in += entry.amount
        else:
            money_out += entry.amount
    return money_in, money_out
