"""
Orders -- The finance engine's view of storefront / POS orders.

Orders belong to the order subsystem.  The finance engine only reads
``price_at_order`` and ``qty`` (revenue) and ``cost_at_order`` (COGS).  The
one field it hands back is ``cost_at_order``, filled from the per-item costs
that FIFO consumption returns.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from shopbooks_kernel.domain.values import ZERO, to_decimal


@dataclass
class OrderItem:
    product_id: str
    qty: Decimal
    price_at_order: Decimal
    variant_id: str | None = None
    cost_at_order: Decimal | None = None

    def __post_init__(self) -> None:
        self.qty = to_decimal(self.qty)
        self.price_at_order = to_decimal(self.price_at_order)
        if self.cost_at_order is not None:
            self.cost_at_order = to_decimal(self.cost_at_order)

    @property
    def revenue(self) -> Decimal:
        return self.price_at_order * self.qty

    @property
    def cost(self) -> Decimal:
        """Line COGS; a line without a recorded cost counts as 0."""
        return (self.cost_at_order or ZERO) * self.qty

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OrderItem:
        """Accepts snake_case or the storefront's camelCase keys."""
        cost = data.get("cost_at_order", data.get("costAtOrder"))
        return cls(
            product_id=data.get("product_id", data.get("productId")),
            variant_id=data.get("variant_id", data.get("variantId")),
            qty=data["qty"],
            price_at_order=data.get("price_at_order", data.get("priceAtOrder")),
            cost_at_order=cost,
        )


@dataclass
class Order:
    id: str
    items: list[OrderItem] = field(default_factory=list)
    created_at: datetime | None = None
    customer_name: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Order:
        created = data.get("created_at", data.get("createdAt"))
        if isinstance(created, str):
            created = datetime.fromisoformat(created)
        return cls(
            id=str(data["id"]),
            items=[OrderItem.from_dict(item) for item in data.get("items", [])],
            created_at=created,
            customer_name=data.get("customer_name", data.get("customerName")),
        )


def apply_item_costs(items: Sequence[OrderItem], per_item_cost: Sequence[Decimal]) -> None:
    """
    Write FIFO unit costs into the matching order lines.

    Raises:
        ValueError: If the two sequences differ in length.
    """
    if len(items) != len(per_item_cost):
        raise ValueError(
            f"{len(items)} order items but {len(per_item_cost)} unit costs"
        )
    for item, cost in zip(items, per_item_cost):
        item.cost_at_order = cost
