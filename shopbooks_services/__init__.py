"""
Shopbooks Services - stateful orchestration over engines + kernel.

FinanceService owns the books and is the only component that mutates
them; the state and order stores are its ports to the outside world.
"""

from shopbooks_services.finance_service import FinanceService, SpoilageResult
from shopbooks_services.finance_state import FinanceState
from shopbooks_services.order_store import InMemoryOrderStore, OrderStore
from shopbooks_services.state_store import (
    InMemoryStateStore,
    JsonFileStateStore,
    SqlStateStore,
    StateStore,
)

__all__ = [
    "FinanceService",
    "FinanceState",
    "InMemoryOrderStore",
    "InMemoryStateStore",
    "JsonFileStateStore",
    "OrderStore",
    "SpoilageResult",
    "SqlStateStore",
    "StateStore",
]
