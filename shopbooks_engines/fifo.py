"""
shopbooks_engines.fifo -- FIFO cost-of-goods-sold consumption over batches.

Responsibility:
    Given the current inventory batches and one sale's line items, decide
    which batches each line draws from (oldest first), what each line cost,
    and what is left in every batch afterwards.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Works on copies of the
    batches it is given and returns the remaining batches; the caller
    swaps them in under its own lock.

Algorithm:
    1. Stable sort of all batches by receipt date (one global sort; product
       matching happens while walking).
    2. Lines are served in the order given.  Each line walks the sorted
       batches and takes ``min(still_needed, batch.qty)`` from every batch
       of the same product (and the same variant, when the line names one)
       until it is satisfied.
    3. Shortfall: the unmet remainder is costed at the average unit cost of
       what the line did consume.  A line that consumed nothing costs 0.
    4. ``per_item_cost = round(line_cost / line_qty, 4)``;
       ``total_cost = round(sum(line_cost), 2)``.
    5. Batches drained to zero are pruned from the returned list.

Ordering granularity:
    Batch dates are calendar dates.  Timestamps are cut to their date when
    a purchase is recorded (``parse_date``), so two deliveries received on
    the same day tie on date and are drawn in the order they were recorded,
    whatever their time of day.

Failure modes:
    None raised.  Shortfalls and non-positive line quantities come back as
    ``ConsumptionWarning`` rows and WARNING log records; the numbers are the
    best-effort estimate described above.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from shopbooks_engines.tracer import traced_engine
from shopbooks_kernel.domain.records import Batch
from shopbooks_kernel.domain.values import ZERO, round_money, round_unit_cost, to_decimal
from shopbooks_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")


@dataclass(frozen=True)
class SaleLine:
    """One requested line of a sale (or write-off)."""

    product_id: str
    qty: Decimal
    variant_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "qty", to_decimal(self.qty))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SaleLine:
        """Build from a dict using either snake_case or camelCase keys."""
        return cls(
            product_id=data.get("product_id", data.get("productId")),
            variant_id=data.get("variant_id", data.get("variantId")) or None,
            qty=data["qty"],
        )

    def matches(self, batch: Batch) -> bool:
        if batch.product_id != self.product_id:
            return False
        return not self.variant_id or batch.variant_id == self.variant_id


class WarningCode(str, Enum):
    """Why a line's cost is an estimate."""

    INSUFFICIENT_STOCK = "insufficient_stock"  # partly served, rest averaged
    NO_STOCK = "no_stock"                      # nothing matched, cost 0
    NON_POSITIVE_QTY = "non_positive_qty"      # nothing to consume, cost 0


@dataclass(frozen=True)
class ConsumptionWarning:
    line_index: int
    code: WarningCode
    product_id: str
    variant_id: str | None
    requested_qty: Decimal
    consumed_qty: Decimal

    @property
    def shortfall_qty(self) -> Decimal:
        return max(ZERO, self.requested_qty - self.consumed_qty)

    @property
    def message(self) -> str:
        return (
            f"{self.code.value}: {self.product_id}/{self.variant_id} "
            f"requested {self.requested_qty}, consumed {self.consumed_qty}"
        )


@dataclass(frozen=True)
class BatchDraw:
    """Quantity taken from a single batch for a single line."""

    batch_id: str
    qty: Decimal
    unit_cost: Decimal
    remaining_in_batch: Decimal

    @property
    def cost(self) -> Decimal:
        return self.qty * self.unit_cost


@dataclass(frozen=True)
class LineCosting:
    """How one line was costed."""

    line_index: int
    product_id: str
    variant_id: str | None
    requested_qty: Decimal
    consumed_qty: Decimal
    cost: Decimal
    unit_cost: Decimal
    draws: tuple[BatchDraw, ...]

    @property
    def shortfall_qty(self) -> Decimal:
        return max(ZERO, self.requested_qty - self.consumed_qty)

    @property
    def is_estimated(self) -> bool:
        return self.shortfall_qty > 0


@dataclass(frozen=True)
class SaleCosting:
    """
    Result of consuming one sale.

    ``per_item_cost[i]`` is the unit cost to write into line ``i``'s
    ``cost_at_order``.  ``remaining_batches`` is the batch list to keep.
    """

    total_cost: Decimal
    per_item_cost: tuple[Decimal, ...]
    lines: tuple[LineCosting, ...]
    warnings: tuple[ConsumptionWarning, ...]
    remaining_batches: tuple[Batch, ...]

    @property
    def is_estimated(self) -> bool:
        """True when any line fell back to an estimate."""
        return bool(self.warnings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_cost": str(self.total_cost),
            "per_item_cost": [str(c) for c in self.per_item_cost],
            "warnings": [w.message for w in self.warnings],
        }


def sort_fifo(batches: Sequence[Batch]) -> list[Batch]:
    """Oldest first.  Same-day batches keep their receipt order."""
    return sorted(batches, key=lambda b: b.date)


def _cost_line(
    index: int,
    line: SaleLine,
    ordered: list[Batch],
) -> tuple[LineCosting, ConsumptionWarning | None]:
    if line.qty <= 0:
        warning = ConsumptionWarning(
            line_index=index,
            code=WarningCode.NON_POSITIVE_QTY,
            product_id=line.product_id,
            variant_id=line.variant_id,
            requested_qty=line.qty,
            consumed_qty=ZERO,
        )
        costing = LineCosting(
            line_index=index,
            product_id=line.product_id,
            variant_id=line.variant_id,
            requested_qty=line.qty,
            consumed_qty=ZERO,
            cost=ZERO,
            unit_cost=round_unit_cost(ZERO),
            draws=(),
        )
        return costing, warning

    cost = ZERO
    consumed = ZERO
    remaining = line.qty
    draws: list[BatchDraw] = []

    for batch in ordered:
        if remaining <= 0:
            break
        if not line.matches(batch):
            continue
        take = min(remaining, batch.qty)
        if take <= 0:
            continue
        cost += take * batch.unit_cost
        consumed += take
        remaining -= take
        batch.qty -= take
        draws.append(BatchDraw(
            batch_id=batch.id,
            qty=take,
            unit_cost=batch.unit_cost,
            remaining_in_batch=batch.qty,
        ))

    warning = None
    if remaining > 0:
        code = WarningCode.INSUFFICIENT_STOCK if consumed > 0 else WarningCode.NO_STOCK
        warning = ConsumptionWarning(
            line_index=index,
            code=code,
            product_id=line.product_id,
            variant_id=line.variant_id,
            requested_qty=line.qty,
            consumed_qty=consumed,
        )
        logger.warning("cogs_insufficient_stock", extra={
            "line_index": index,
            "product_id": line.product_id,
            "variant_id": line.variant_id,
            "requested_qty": str(line.qty),
            "consumed_qty": str(consumed),
            "warning_code": code.value,
        })
        if consumed > 0:
            cost += remaining * (cost / consumed)

    costing = LineCosting(
        line_index=index,
        product_id=line.product_id,
        variant_id=line.variant_id,
        requested_qty=line.qty,
        consumed_qty=consumed,
        cost=cost,
        unit_cost=round_unit_cost(cost / line.qty),
        draws=tuple(draws),
    )
    return costing, warning


@traced_engine("fifo_consumption", "1.0", fingerprint_fields=("lines",))
def consume_fifo(
    *,
    batches: Sequence[Batch],
    lines: Sequence[SaleLine],
    prune_depleted: bool = True,
) -> SaleCosting:
    """
    Drain batches oldest-first for every line of a sale.

    Preconditions:
        Every batch has qty >= 0.  The input batches are not modified.

    Postconditions:
        - sum(remaining qty) + sum(consumed qty) == sum(input qty).
        - ``per_item_cost`` has one entry per line, in line order.
        - Depleted batches are absent from ``remaining_batches`` when
          ``prune_depleted`` is True.
    """
    ordered = sort_fifo([b.copy() for b in batches])

    costings: list[LineCosting] = []
    warnings: list[ConsumptionWarning] = []
    for index, line in enumerate(lines):
        costing, warning = _cost_line(index, line, ordered)
        costings.append(costing)
        if warning is not None:
            warnings.append(warning)

    total = round_money(sum((c.cost for c in costings), ZERO))
    remaining = [b for b in ordered if b.qty > 0] if prune_depleted else ordered

    logger.debug("fifo_consumption_completed", extra={
        "line_count": len(costings),
        "total_cost": str(total),
        "batches_before": len(batches),
        "batches_after": len(remaining),
        "warning_count": len(warnings),
    })

    return SaleCosting(
        total_cost=total,
        per_item_cost=tuple(c.unit_cost for c in costings),
        lines=tuple(costings),
        warnings=tuple(warnings),
        remaining_batches=tuple(remaining),
    )


def stock_on_hand(
    batches: Sequence[Batch],
    product_id: str,
    variant_id: str | None = None,
) -> Decimal:
    """Remaining batch quantity for a product (and variant, if given)."""
    wanted = SaleLine(product_id=product_id, variant_id=variant_id, qty=ZERO)
    return sum((b.qty for b in batches if wanted.matches(b)), ZERO)


def inventory_value(batches: Sequence[Batch]) -> Decimal:
    """Cost value of all remaining stock, rounded to money."""
    return round_money(sum((b.value for b in batches), ZERO))
