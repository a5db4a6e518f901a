"""
Order store port.

Orders are owned by the storefront / POS.  The books read them for
revenue and COGS and never create or persist them.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol

from shopbooks_kernel.domain.orders import Order


class OrderStore(Protocol):
    def list_orders(self) -> Sequence[Order]:
        ...


class InMemoryOrderStore:
    """Order list held in memory, for tests and the command line viewer."""

    def __init__(self, orders: Iterable[Order | Mapping[str, Any]] = ()):
        self._lock = threading.Lock()
        self._orders: list[Order] = [self._coerce(o) for o in orders]

    @staticmethod
    def _coerce(order: Order | Mapping[str, Any]) -> Order:
        return order if isinstance(order, Order) else Order.from_dict(order)

    @classmethod
    def from_json_file(cls, path: str | Path) -> InMemoryOrderStore:
        """Load a JSON list of orders (snake_case or camelCase keys)."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, Mapping):
            data = data.get("orders", [])
        return cls(data)

    def add(self, order: Order | Mapping[str, Any]) -> Order:
        order = self._coerce(order)
        with self._lock:
            self._orders.append(order)
        return order

    def list_orders(self) -> Sequence[Order]:
        with self._lock:
            return list(self._orders)
