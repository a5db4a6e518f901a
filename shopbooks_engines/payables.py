"""
shopbooks_engines.payables -- Accounts-payable snapshot.

Responsibility:
    Derive what the shop owes each supplier: the unpaid remainder of every
    purchase, minus every direct supplier payment.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Rules:
    - ``due = max(0, qty * unit_cost - paid)`` per purchase, summed per
      supplier.
    - Each payment's amount is subtracted from its supplier's total (a
      supplier may end up negative when overpaid).
    - Amounts are rounded to two places; rows whose absolute amount is not
      above the noise epsilon are dropped.
    - Row order is the order in which suppliers first appear (purchases,
      then payments).
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from shopbooks_engines.tracer import traced_engine
from shopbooks_kernel.domain.records import APBalance, Payment, Purchase
from shopbooks_kernel.domain.values import ZERO, round_money
from shopbooks_kernel.logging_config import get_logger

logger = get_logger("engines.payables")

AP_NOISE_EPSILON = Decimal("0.001")


@traced_engine("ap_snapshot", "1.0")
def ap_snapshot(
    *,
    purchases: Sequence[Purchase],
    payments: Sequence[Payment],
    epsilon: Decimal = AP_NOISE_EPSILON,
) -> list[APBalance]:
    """Outstanding payable per supplier, zero rows filtered out."""
    by_supplier: dict[str, Decimal] = {}

    for purchase in purchases:
        by_supplier[purchase.supplier_id] = (
            by_supplier.get(purchase.supplier_id, ZERO) + purchase.unpaid
        )

    for payment in payments:
        by_supplier[payment.supplier_id] = (
            by_supplier.get(payment.supplier_id, ZERO) - payment.amount
        )

    rows = [
        APBalance(supplier_id=supplier_id, amount=round_money(amount))
        for supplier_id, amount in by_supplier.items()
    ]
    result = [row for row in rows if abs(row.amount) > epsilon]

    overpaid = [row.supplier_id for row in result if row.amount < 0]
    if overpaid:
        logger.info("ap_suppliers_overpaid", extra={"supplier_ids": overpaid})

    return result
