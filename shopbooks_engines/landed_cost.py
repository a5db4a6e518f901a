"""
Module: shopbooks_engines.landed_cost
Responsibility:
    Spread the freight of a goods delivery over its lines by weight and
    work out each line's landed unit cost; split an up-front payment over
    the received lines pro rata.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Rules:
    - A line's freight share is ``freight * weight_kg / total_weight``.
      Lines without weight carry no freight; with no weight at all the
      freight is not allocated.
    - ``final_unit_cost = unit_cost + freight_share / qty``.
    - Only lines with a product, ``qty > 0`` and ``final_unit_cost > 0``
      are receivable.
    - The up-front payment is clamped to ``[0, total]`` and each line gets
      ``round(line_total * paid / total, 2)``.

Usage:
    result = allocate_landed_cost(
        lines=[IntakeLine("apple", qty=10, unit_cost="1.20", weight_kg=10)],
        freight=Decimal("5"),
    )
    result.lines[0].final_unit_cost   # Decimal("1.70")
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from shopbooks_engines.tracer import traced_engine
from shopbooks_kernel.domain.values import ZERO, round_money, to_decimal
from shopbooks_kernel.logging_config import get_logger

logger = get_logger("engines.landed_cost")


@dataclass(frozen=True)
class IntakeLine:
    """One delivered product line as typed in at goods receipt."""

    product_id: str
    qty: Decimal
    unit_cost: Decimal
    variant_id: str | None = None
    weight_kg: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "qty", to_decimal(self.qty))
        object.__setattr__(self, "unit_cost", to_decimal(self.unit_cost))
        object.__setattr__(self, "weight_kg", to_decimal(self.weight_kg))


@dataclass(frozen=True)
class LandedLine:
    line: IntakeLine
    freight_share: Decimal
    final_unit_cost: Decimal

    @property
    def base_total(self) -> Decimal:
        return self.line.unit_cost * self.line.qty

    @property
    def final_total(self) -> Decimal:
        return self.final_unit_cost * self.line.qty

    @property
    def freight_per_unit(self) -> Decimal:
        if self.line.qty <= 0:
            return ZERO
        return self.freight_share / self.line.qty

    @property
    def is_receivable(self) -> bool:
        return bool(self.line.product_id) and self.line.qty > 0 and self.final_unit_cost > 0


@dataclass(frozen=True)
class LandedCostResult:
    lines: tuple[LandedLine, ...]
    freight: Decimal

    @property
    def receivable_lines(self) -> tuple[LandedLine, ...]:
        return tuple(line for line in self.lines if line.is_receivable)

    @property
    def base_total(self) -> Decimal:
        return sum((line.base_total for line in self.lines), ZERO)

    @property
    def allocated_freight(self) -> Decimal:
        return sum((line.freight_share for line in self.lines), ZERO)

    @property
    def grand_total(self) -> Decimal:
        return sum((line.final_total for line in self.lines), ZERO)


@traced_engine("landed_cost", "1.0", fingerprint_fields=("freight",))
def allocate_landed_cost(
    *,
    lines: Sequence[IntakeLine],
    freight: Decimal = ZERO,
) -> LandedCostResult:
    """Landed unit cost per line with freight spread by weight."""
    freight = to_decimal(freight)
    total_weight = sum((line.weight_kg for line in lines), ZERO)

    landed: list[LandedLine] = []
    for line in lines:
        share = ZERO
        if total_weight > 0 and line.weight_kg > 0:
            share = freight * line.weight_kg / total_weight
        per_unit = share / line.qty if line.qty > 0 else ZERO
        landed.append(LandedLine(
            line=line,
            freight_share=share,
            final_unit_cost=line.unit_cost + per_unit,
        ))

    if freight > 0 and total_weight <= 0:
        logger.warning("landed_cost_freight_unallocated", extra={
            "freight": str(freight),
            "line_count": len(lines),
        })

    return LandedCostResult(lines=tuple(landed), freight=freight)


def prorate_payment(paid: Decimal, totals: Sequence[Decimal]) -> list[Decimal]:
    """
    Split an up-front payment over line totals.

    The payment is clamped to ``[0, sum(totals)]``; each share is rounded
    to two places and never exceeds its own line total.
    """
    grand = sum(totals, ZERO)
    paid = min(max(ZERO, to_decimal(paid)), grand)
    if grand <= 0:
        return [round_money(ZERO) for _ in totals]
    ratio = paid / grand
    return [min(round_money(total * ratio), total) for total in totals]
