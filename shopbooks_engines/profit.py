"""
shopbooks_engines.profit -- Top-line profit and margin.

Responsibility:
    Combine order revenue, the COGS recorded on order lines and total
    expenses into a quick margin report.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Orders are read-only.

Rules:
    - revenue = sum(price_at_order * qty) over every order line.
    - cogs = round(sum(cost_at_order * qty), 2); lines without a cost count 0.
    - profit = round(revenue - cogs - expense, 2).
    - margin_pct = round(profit / revenue * 100, 2), or 0 without revenue.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from shopbooks_engines.tracer import traced_engine
from shopbooks_kernel.domain.orders import Order
from shopbooks_kernel.domain.records import Expense
from shopbooks_kernel.domain.values import ZERO, round_money


@dataclass(frozen=True)
class ProfitSummary:
    revenue: Decimal
    cogs: Decimal
    expense: Decimal
    profit: Decimal
    margin_pct: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "revenue": str(self.revenue),
            "cogs": str(self.cogs),
            "expense": str(self.expense),
            "profit": str(self.profit),
            "margin_pct": str(self.margin_pct),
        }


def total_revenue(orders: Sequence[Order]) -> Decimal:
    return sum((item.revenue for order in orders for item in order.items), ZERO)


def total_cogs(orders: Sequence[Order]) -> Decimal:
    return round_money(
        sum((item.cost for order in orders for item in order.items), ZERO)
    )


def total_expenses(expenses: Sequence[Expense]) -> Decimal:
    return sum((e.amount for e in expenses), ZERO)


@traced_engine("profit_quick", "1.0")
def profit_quick(
    *,
    orders: Sequence[Order],
    expenses: Sequence[Expense],
) -> ProfitSummary:
    revenue = total_revenue(orders)
    cogs = total_cogs(orders)
    expense = total_expenses(expenses)

    profit = round_money(revenue - cogs - expense)
    margin = round_money(profit / revenue * 100) if revenue > 0 else round_money(ZERO)

    return ProfitSummary(
        revenue=round_money(revenue),
        cogs=cogs,
        expense=round_money(expense),
        profit=profit,
        margin_pct=margin,
    )
