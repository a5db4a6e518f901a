"""
Shopbooks Engines - pure calculation layer.

Every engine is a function of its inputs: no I/O, no clock, no shared
state.  Each public entry point is wrapped in ``@traced_engine`` and emits
one SHOPBOOKS_ENGINE_TRACE record per call.

Engines:
    fifo         FIFO COGS consumption over inventory batches
    payables     Accounts-payable snapshot per supplier
    aging        AP aging against supplier payment terms
    balances     Cash balances replayed from the ledger
    profit       Revenue / COGS / expense / margin summary
    landed_cost  Freight allocation and payment split at goods intake
"""

from shopbooks_engines.aging import (
    AP_AGING_BUCKETS,
    AgeBucket,
    AgedPayable,
    AgingCalculator,
    APAgingReport,
    age_payables,
)
from shopbooks_engines.balances import account_activity, cash_balances
from shopbooks_engines.fifo import (
    BatchDraw,
    ConsumptionWarning,
    LineCosting,
    SaleCosting,
    SaleLine,
    WarningCode,
    consume_fifo,
    inventory_value,
    stock_on_hand,
)
from shopbooks_engines.landed_cost import (
    IntakeLine,
    LandedCostResult,
    LandedLine,
    allocate_landed_cost,
    prorate_payment,
)
from shopbooks_engines.payables import AP_NOISE_EPSILON, ap_snapshot
from shopbooks_engines.profit import (
    ProfitSummary,
    profit_quick,
    total_cogs,
    total_expenses,
    total_revenue,
)
from shopbooks_engines.tracer import traced_engine

__all__ = [
    "AP_AGING_BUCKETS",
    "AP_NOISE_EPSILON",
    "AgeBucket",
    "AgedPayable",
    "AgingCalculator",
    "APAgingReport",
    "age_payables",
    "account_activity",
    "cash_balances",
    "BatchDraw",
    "ConsumptionWarning",
    "LineCosting",
    "SaleCosting",
    "SaleLine",
    "WarningCode",
    "consume_fifo",
    "inventory_value",
    "stock_on_hand",
    "IntakeLine",
    "LandedCostResult",
    "LandedLine",
    "allocate_landed_cost",
    "prorate_payment",
    "ap_snapshot",
    "ProfitSummary",
    "profit_quick",
    "total_cogs",
    "total_expenses",
    "total_revenue",
    "traced_engine",
]
