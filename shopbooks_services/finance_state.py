"""
finance_state -- The persisted finance blob.

Everything the books own (suppliers, accounts, expenses, purchases,
supplier payments, customer payments, the cash ledger, inventory batches
and the valuation flag) travels as one JSON object under one storage key.
It is written and restored wholesale; there are no migrations, so blobs
written before a field existed must still load.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from shopbooks_kernel.domain.records import (
    Account,
    ARPayment,
    Batch,
    Expense,
    LedgerEntry,
    Payment,
    Purchase,
    RECORD_TYPES,
    Supplier,
    ValuationMode,
)
from shopbooks_kernel.exceptions import RecordError, StateLoadError
from shopbooks_kernel.logging_config import get_logger

logger = get_logger("services.finance_state")


@dataclass
class FinanceState:
    suppliers: list[Supplier] = field(default_factory=list)
    accounts: list[Account] = field(default_factory=list)
    expenses: list[Expense] = field(default_factory=list)
    purchases: list[Purchase] = field(default_factory=list)
    payments: list[Payment] = field(default_factory=list)
    ar_payments: list[ARPayment] = field(default_factory=list)
    ledger: list[LedgerEntry] = field(default_factory=list)
    batches: list[Batch] = field(default_factory=list)
    valuation: ValuationMode = ValuationMode.FIFO

    def copy(self) -> FinanceState:
        """Shallow copy of the lists; batches are copied since they mutate."""
        return FinanceState(
            suppliers=list(self.suppliers),
            accounts=list(self.accounts),
            expenses=list(self.expenses),
            purchases=list(self.purchases),
            payments=list(self.payments),
            ar_payments=list(self.ar_payments),
            ledger=list(self.ledger),
            batches=[b.copy() for b in self.batches],
            valuation=self.valuation,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            key: [record.to_dict() for record in getattr(self, key)]
            for key in RECORD_TYPES
        }
        data["valuation"] = self.valuation.value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], storage_key: str = "") -> FinanceState:
        """
        Rebuild state from a persisted mapping.

        Missing collections load empty and a missing valuation flag means
        FIFO.  Unknown keys are ignored.

        Raises:
            StateLoadError: If a collection is not a list or a record in it
                cannot be rebuilt.
        """
        if not isinstance(data, Mapping):
            raise StateLoadError(storage_key, f"expected an object, got {type(data).__name__}")

        collections: dict[str, list[Any]] = {}
        for key, record_type in RECORD_TYPES.items():
            raw = data.get(key) or []
            if not isinstance(raw, list):
                raise StateLoadError(storage_key, f"'{key}' must be a list")
            try:
                collections[key] = [record_type.from_dict(item) for item in raw]
            except (RecordError, TypeError, KeyError, AttributeError) as e:
                raise StateLoadError(storage_key, f"bad record in '{key}': {e}") from e

        try:
            valuation = ValuationMode(data.get("valuation") or ValuationMode.FIFO)
        except ValueError as e:
            raise StateLoadError(storage_key, str(e)) from e

        state = cls(valuation=valuation, **collections)
        logger.debug("finance_state_decoded", extra={
            "storage_key": storage_key,
            **{f"{key}_count": len(value) for key, value in collections.items()},
        })
        return state

    @classmethod
    def from_json(cls, payload: str, storage_key: str = "") -> FinanceState:
        """
        Raises:
            StateLoadError: If the payload is not valid JSON or not a state blob.
        """
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise StateLoadError(storage_key, f"invalid JSON: {e}") from e
        return cls.from_dict(data, storage_key=storage_key)
