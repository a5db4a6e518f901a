"""Tests for landed-cost allocation at goods intake."""

from decimal import Decimal

from shopbooks_engines.landed_cost import IntakeLine, allocate_landed_cost, prorate_payment


class TestAllocateLandedCost:

    def test_freight_split_by_weight(self):
        result = allocate_landed_cost(
            lines=[
                IntakeLine("apple", qty=10, unit_cost="1.00", weight_kg=30),
                IntakeLine("pear", qty=5, unit_cost="2.00", weight_kg=10),
            ],
            freight=Decimal("20"),
        )

        apple, pear = result.lines
        assert apple.freight_share == Decimal("15")
        assert pear.freight_share == Decimal("5")
        assert apple.final_unit_cost == Decimal("2.50")
        assert pear.final_unit_cost == Decimal("3.00")
        assert result.allocated_freight == Decimal("20")
        assert result.grand_total == Decimal("40.00")

    def test_line_without_weight_gets_no_freight(self):
        result = allocate_landed_cost(
            lines=[
                IntakeLine("apple", qty=2, unit_cost="1.00", weight_kg=4),
                IntakeLine("salt", qty=1, unit_cost="0.50"),
            ],
            freight=Decimal("6"),
        )

        assert result.lines[0].freight_per_unit == Decimal("3")
        assert result.lines[1].freight_share == Decimal("0")
        assert result.lines[1].final_unit_cost == Decimal("0.50")

    def test_no_weight_at_all_leaves_freight_unallocated(self, captured_logs):
        result = allocate_landed_cost(
            lines=[IntakeLine("apple", qty=2, unit_cost="1.00")],
            freight=Decimal("6"),
        )

        assert result.allocated_freight == Decimal("0")
        assert result.lines[0].final_unit_cost == Decimal("1.00")
        assert any(r["message"] == "landed_cost_freight_unallocated" for r in captured_logs())

    def test_receivable_lines_filtered(self):
        result = allocate_landed_cost(
            lines=[
                IntakeLine("apple", qty=2, unit_cost="1.00"),
                IntakeLine("", qty=2, unit_cost="1.00"),
                IntakeLine("pear", qty=0, unit_cost="1.00"),
                IntakeLine("gift", qty=1, unit_cost="0"),
            ],
        )

        assert [r.line.product_id for r in result.receivable_lines] == ["apple"]

    def test_free_goods_receivable_when_freight_gives_them_cost(self):
        result = allocate_landed_cost(
            lines=[IntakeLine("gift", qty=2, unit_cost="0", weight_kg=1)],
            freight=Decimal("1"),
        )

        assert result.receivable_lines[0].final_unit_cost == Decimal("0.5")


class TestProratePayment:

    def test_split_pro_rata(self):
        assert prorate_payment(Decimal("50"), [Decimal("60"), Decimal("40")]) == [
            Decimal("30.00"),
            Decimal("20.00"),
        ]

    def test_clamped_to_total(self):
        assert prorate_payment(Decimal("500"), [Decimal("60"), Decimal("40")]) == [
            Decimal("60.00"),
            Decimal("40.00"),
        ]

    def test_negative_payment_clamped_to_zero(self):
        assert prorate_payment(Decimal("-5"), [Decimal("10")]) == [Decimal("0.00")]

    def test_zero_total(self):
        assert prorate_payment(Decimal("5"), []) == []
        assert prorate_payment(Decimal("5"), [Decimal("0")]) == [Decimal("0.00")]

    def test_share_never_exceeds_line_total(self):
        shares = prorate_payment(Decimal("0.01"), [Decimal("0.005"), Decimal("0.005")])

        assert all(share <= Decimal("0.005") for share in shares)
