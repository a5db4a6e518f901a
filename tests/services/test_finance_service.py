"""
Tests for FinanceService.

Covers the bookkeeping contract end to end:
- Purchases create batches; FIFO consumption drains them
- Expenses, purchases and payments append ledger entries atomically
- Cascading deletes
- AP snapshot and aging through the service
- Profit aggregation from costed orders
- Save / load round trip
- Intake with landed cost and spoilage write-off
"""

from datetime import date
from decimal import Decimal

import pytest

from shopbooks_kernel.domain.orders import Order, OrderItem
from shopbooks_kernel.domain.records import (
    AccountType,
    EntryType,
    RefKind,
    Supplier,
    ValuationMode,
)
from shopbooks_kernel.exceptions import InvalidRecordError, StateStoreError
from shopbooks_services import FinanceService
from shopbooks_services.state_store import InMemoryStateStore


def _buy(books, product_id="apple", qty=10, unit_cost="5", day="2024-01-01", **kw):
    return books.add_purchase({
        "supplier_id": kw.pop("supplier_id", "s1"),
        "product_id": product_id,
        "qty": qty,
        "unit_cost": unit_cost,
        "date": day,
        **kw,
    })


def _balance(books, account_id) -> Decimal:
    return next(a.balance for a in books.cash_balances() if a.id == account_id)


class _BrokenStore(InMemoryStateStore):
    """Saves succeed until ``broken`` is set."""

    broken = False

    def save(self, storage_key, state):
        if self.broken:
            raise StateStoreError(storage_key, "write", "disk full")
        super().save(storage_key, state)


class TestSeedAndCrud:

    def test_fresh_books_hold_seed_accounts(self, books):
        accounts = books.accounts

        assert [(a.id, a.type) for a in accounts] == [
            ("acc-cash", AccountType.CASH),
            ("acc-bank1", AccountType.BANK),
            ("acc-pos1", AccountType.POS),
        ]
        assert all(a.currency == "AZN" for a in accounts)

    def test_add_supplier_assigns_id(self, books):
        supplier = books.add_supplier({"name": "Green Farm", "payment_term_days": 14})

        assert supplier.id
        assert supplier.is_active
        assert books.suppliers == [supplier]

    def test_update_supplier_patch(self, books):
        supplier = books.add_supplier({"id": "s1", "name": "Green Farm"})

        updated = books.update_supplier({"id": "s1", "phone": "+994 50 000 00 00"})

        assert updated.name == "Green Farm"
        assert updated.phone == "+994 50 000 00 00"
        assert books.suppliers == [updated]
        assert supplier.phone is None

    def test_update_supplier_replace(self, books):
        books.add_supplier({"id": "s1", "name": "Green Farm"})

        books.update_supplier(Supplier(id="s1", name="Blue Farm"))

        assert books.suppliers[0].name == "Blue Farm"

    def test_update_unknown_id_is_noop(self, books):
        assert books.update_supplier({"id": "nope", "name": "x"}) is None
        assert books.update_account({"id": "nope", "name": "x"}) is None
        assert books.suppliers == []

    def test_remove_supplier(self, books):
        books.add_supplier({"id": "s1", "name": "Green Farm"})

        books.remove_supplier("s1")
        books.remove_supplier("s1")

        assert books.suppliers == []

    def test_add_account_starts_at_zero(self, books):
        account = books.add_account({"name": "Wallet", "type": "wallet", "balance": "500"})

        assert account.balance == Decimal("0")
        assert account.currency == "AZN"
        assert _balance(books, account.id) == Decimal("0.00")

    def test_remove_account_drops_its_entries(self, books):
        books.add_expense({"category": "rent", "amount": "50", "account_id": "acc-bank1"})
        books.add_expense({"category": "tea", "amount": "5", "account_id": "acc-cash"})

        books.remove_account("acc-bank1")

        assert [a.id for a in books.accounts] == ["acc-cash", "acc-pos1"]
        assert {e.account_id for e in books.ledger} == {"acc-cash"}

    def test_set_valuation_stored_consumption_stays_fifo(self, books):
        _buy(books, qty=1, unit_cost="10", day="2024-01-01")
        _buy(books, qty=1, unit_cost="20", day="2024-01-02")

        assert books.set_valuation("lifo") is ValuationMode.LIFO
        costing = books.consume_for_sale([{"product_id": "apple", "qty": 1}])

        assert books.valuation is ValuationMode.LIFO
        assert costing.per_item_cost == (Decimal("10.0000"),)

    def test_invalid_record_rejected(self, books):
        with pytest.raises(InvalidRecordError):
            _buy(books, qty=0)
        with pytest.raises(InvalidRecordError):
            books.add_expense({"category": "rent", "amount": "-1"})
        with pytest.raises(InvalidRecordError):
            books.add_supplier({"phone": "no name"})

        assert books.purchases == []
        assert books.batches == []


class TestPurchasesAndBatches:

    def test_purchase_creates_matching_batch(self, books):
        purchase = _buy(books, variant_id="1kg", qty=4, unit_cost="2.50")

        (batch,) = books.batches
        assert batch.id == purchase.id
        assert (batch.product_id, batch.variant_id) == ("apple", "1kg")
        assert batch.qty == Decimal("4")
        assert batch.unit_cost == Decimal("2.50")
        assert batch.date == date(2024, 1, 1)

    def test_zero_cost_purchase_prices_cogs_at_zero(self, books):
        _buy(books, qty=3, unit_cost="0")

        costing = books.consume_for_sale([{"product_id": "apple", "qty": 2}])

        assert costing.total_cost == Decimal("0.00")
        assert not costing.is_estimated
        assert books.stock_on_hand("apple") == 1

    def test_purchase_defaults_to_clock_date(self, books):
        purchase = books.add_purchase({
            "supplier_id": "s1", "product_id": "apple", "qty": 1, "unit_cost": 1,
        })

        assert purchase.date == date(2024, 3, 1)

    def test_paid_purchase_books_cash_out(self, books):
        purchase = _buy(books, qty=10, unit_cost="5", paid="20", account_id="acc-cash")

        (entry,) = books.ledger
        assert entry.type is EntryType.OUT
        assert entry.amount == Decimal("20")
        assert entry.ref.kind is RefKind.PURCHASE
        assert entry.ref.id == purchase.id
        assert entry.memo == "Purchase immediate pay"
        assert _balance(books, "acc-cash") == Decimal("-20.00")

    def test_unpaid_purchase_books_nothing(self, books):
        _buy(books, account_id="acc-cash")
        _buy(books, paid="5")

        assert books.ledger == []

    def test_paid_over_total_rejected(self, books):
        with pytest.raises(InvalidRecordError):
            _buy(books, qty=1, unit_cost="5", paid="6", account_id="acc-cash")
        assert books.ledger == []

    def test_stock_views(self, books):
        _buy(books, qty=3, unit_cost="2")
        _buy(books, product_id="pear", qty=1, unit_cost="4")

        assert books.stock_on_hand("apple") == Decimal("3")
        assert books.inventory_value() == Decimal("10.00")

    def test_batches_view_is_a_copy(self, books):
        _buy(books, qty=3)

        books.batches[0].qty = Decimal("0")

        assert books.stock_on_hand("apple") == Decimal("3")


class TestConsumeForSale:

    def test_fifo_uses_older_batch_first(self, books):
        _buy(books, qty=10, unit_cost="10", day="2024-01-01")
        _buy(books, qty=10, unit_cost="20", day="2024-01-05")

        costing = books.consume_for_sale([{"productId": "apple", "qty": 4}])

        assert costing.per_item_cost == (Decimal("10.0000"),)
        assert costing.total_cost == Decimal("40.00")
        assert sorted(b.qty for b in books.batches) == [Decimal("6"), Decimal("10")]

    def test_same_day_purchases_drawn_in_recorded_order(self, books):
        late = _buy(books, qty=5, unit_cost="10", day="2024-01-01T18:00:00Z")
        _buy(books, qty=5, unit_cost="20", day="2024-01-01T08:00:00Z")

        costing = books.consume_for_sale([{"product_id": "apple", "qty": 2}])

        assert late.date == date(2024, 1, 1)
        assert costing.total_cost == Decimal("20.00")

    def test_average_cost_fallback(self, books):
        _buy(books, qty=5, unit_cost="10")

        costing = books.consume_for_sale([{"product_id": "apple", "qty": 8}])

        assert costing.total_cost == Decimal("80.00")
        assert costing.per_item_cost == (Decimal("10.0000"),)
        assert books.batches == []
        assert costing.warnings[0].shortfall_qty == Decimal("3")

    def test_depleted_batches_removed_from_state(self, books):
        _buy(books, qty=2, unit_cost="1")
        _buy(books, qty=2, unit_cost="1", day="2024-01-02")

        books.consume_for_sale([{"product_id": "apple", "qty": 2}])

        assert len(books.batches) == 1

    def test_accepts_order_items(self, books):
        _buy(books, qty=5, unit_cost="3")

        costing = books.consume_for_sale([OrderItem("apple", qty=2, price_at_order="9")])

        assert costing.total_cost == Decimal("6.00")

    def test_cost_order_writes_line_costs(self, books):
        _buy(books, qty=5, unit_cost="3")
        order = Order(id="o1", items=[
            OrderItem("apple", qty=2, price_at_order="9"),
            OrderItem("pear", qty=1, price_at_order="4"),
        ])

        books.cost_order(order)

        assert [i.cost_at_order for i in order.items] == [Decimal("3.0000"), Decimal("0.0000")]

    def test_sale_logged_with_order_context(self, books, captured_logs):
        _buy(books, qty=5, unit_cost="3")

        books.consume_for_sale([{"product_id": "apple", "qty": 1}], order_id="o-77")

        (record,) = [r for r in captured_logs() if r["message"] == "sale_consumed"]
        assert record["order_id"] == "o-77"
        assert record["total_cost"] == "3.00"


class TestLedger:

    def test_expense_appends_one_out_entry(self, books):
        before = _balance(books, "acc-cash")

        expense = books.add_expense({
            "amount": 50, "account_id": "acc-cash", "date": "2024-02-01", "category": "rent",
        })

        (entry,) = books.ledger
        assert entry.type is EntryType.OUT
        assert entry.amount == Decimal("50")
        assert entry.account_id == "acc-cash"
        assert entry.ref.id == expense.id
        assert entry.memo == "Expense rent"
        assert _balance(books, "acc-cash") == before - 50

    def test_expense_without_account_books_no_entry(self, books):
        books.add_expense({"amount": 50, "category": "rent"})

        assert books.ledger == []
        assert books.total_expenses() == Decimal("50")

    def test_payment_and_ar_payment_entries(self, books):
        books.add_payment({"supplier_id": "s1", "account_id": "acc-bank1", "amount": "30"})
        books.add_ar_payment({"account_id": "acc-pos1", "amount": "12.5", "order_id": "o1"})

        assert _balance(books, "acc-bank1") == Decimal("-30.00")
        assert _balance(books, "acc-pos1") == Decimal("12.50")
        assert [e.memo for e in books.ledger] == ["Supplier payment", "Customer in"]
        assert [e.ref.kind for e in books.ledger] == [RefKind.PAYMENT, RefKind.ARPAYMENT]

    def test_ledger_for_account(self, books):
        books.add_expense({"amount": 1, "category": "a", "account_id": "acc-cash"})
        books.add_expense({"amount": 2, "category": "b", "account_id": "acc-bank1"})
        books.add_expense({"amount": 3, "category": "c", "account_id": "acc-cash"})

        assert [e.amount for e in books.ledger_for_account("acc-cash")] == [
            Decimal("1"), Decimal("3"),
        ]

    def test_removes_cascade_to_ledger(self, books):
        expense = books.add_expense({"amount": 5, "category": "a", "account_id": "acc-cash"})
        payment = books.add_payment({"supplier_id": "s1", "account_id": "acc-cash", "amount": "7"})
        ar = books.add_ar_payment({"account_id": "acc-cash", "amount": "9"})

        books.remove_expense(expense.id)
        books.remove_payment(payment.id)
        books.remove_ar_payment(ar.id)

        assert books.ledger == []
        assert books.expenses == [] and books.payments == [] and books.ar_payments == []
        assert _balance(books, "acc-cash") == Decimal("0.00")

    def test_remove_unknown_ids_noop(self, books):
        books.add_expense({"amount": 5, "category": "a", "account_id": "acc-cash"})

        for remove in (
            books.remove_expense, books.remove_purchase,
            books.remove_payment, books.remove_ar_payment,
        ):
            remove("does-not-exist")

        assert len(books.ledger) == 1


class TestCascadingDelete:

    def test_remove_purchase_drops_batch_and_entry(self, books, order_store):
        purchase = _buy(books, qty=10, unit_cost="5", paid="20", account_id="acc-cash")
        costing = books.consume_for_sale([{"product_id": "apple", "qty": 3}])
        order_store.add(Order(id="o1", items=[
            OrderItem("apple", qty=3, price_at_order="8", cost_at_order=costing.per_item_cost[0]),
        ]))

        books.remove_purchase(purchase.id)

        assert books.batches == []
        assert books.ledger == []
        assert books.ap_snapshot() == []
        assert _balance(books, "acc-cash") == Decimal("0.00")
        # costs already written onto orders stay
        assert books.total_cogs() == Decimal("15.00")


class TestAccountsPayable:

    def test_snapshot_after_partial_payment(self, books):
        _buy(books, qty=10, unit_cost="5", paid="20", account_id="acc-cash")

        (row,) = books.ap_snapshot()
        assert (row.supplier_id, row.amount) == ("s1", Decimal("30.00"))

        books.add_payment({"supplier_id": "s1", "account_id": "acc-cash", "amount": "30"})

        assert books.ap_snapshot() == []

    def test_aging_defaults_to_clock_today(self, books):
        books.add_supplier({"id": "s1", "name": "Farm", "payment_term_days": 30})
        _buy(books, supplier_id="s1", day="2024-01-01")
        _buy(books, supplier_id="s2", day="2024-02-28")

        report = books.ap_aging()

        assert report.as_of_date == date(2024, 3, 1)
        # s1 due 2024-01-31, 30 days late; s2 due 2024-03-06
        assert [r.supplier_id for r in report.overdue] == ["s1"]
        assert [r.supplier_id for r in report.current] == ["s2"]
        assert report.aging_buckets["8-30"] == Decimal("50.00")

    def test_aging_follows_clock(self, books, deterministic_clock):
        _buy(books, day="2024-03-01")
        assert books.ap_aging().overdue == ()

        deterministic_clock.advance(days=10)
        report = books.ap_aging()

        assert report.as_of_date == date(2024, 3, 11)
        assert report.items[0].days_late == 3
        assert report.aging_buckets["0-7"] == Decimal("50.00")

    def test_aging_as_of_string(self, books):
        _buy(books, day="2024-01-01")

        report = books.ap_aging("2024-06-01")

        assert report.aging_buckets["60+"] == Decimal("50.00")

    def test_aging_skips_supplier_without_purchases(self, books):
        books.add_payment({"supplier_id": "ghost", "account_id": "acc-cash", "amount": "3"})

        report = books.ap_aging()

        assert report.current == () and report.overdue == ()
        assert books.ap_snapshot()[0].supplier_id == "ghost"

    def test_ar_snapshot_empty(self, books):
        books.add_ar_payment({"account_id": "acc-cash", "amount": "9"})

        assert books.ar_snapshot() == []


class TestProfit:

    def test_profit_from_costed_orders(self, books, order_store):
        _buy(books, qty=10, unit_cost="2")
        order = Order(id="o1", items=[OrderItem("apple", qty=4, price_at_order="5")])
        books.cost_order(order)
        order_store.add(order)
        books.add_expense({"amount": "3.30", "category": "bags"})

        summary = books.profit_quick()

        assert summary.revenue == Decimal("20.00")
        assert summary.cogs == Decimal("8.00")
        assert summary.expense == Decimal("3.30")
        assert summary.profit == Decimal("8.70")
        assert summary.margin_pct == Decimal("43.50")
        assert books.total_cogs() == Decimal("8.00")

    def test_no_orders(self, books):
        summary = books.profit_quick()

        assert summary.margin_pct == Decimal("0.00")


class TestPersistence:

    def test_round_trip_reproduces_reports(self, books, make_books, state_store, order_store):
        books.add_supplier({"id": "s1", "name": "Farm"})
        _buy(books, qty=10, unit_cost="5", paid="20", account_id="acc-cash")
        _buy(books, product_id="pear", qty=3, unit_cost="1.3333", variant_id="1kg")
        books.consume_for_sale([{"product_id": "apple", "qty": 4}])
        books.add_expense({"amount": "12.5", "category": "rent", "account_id": "acc-bank1"})
        books.add_payment({"supplier_id": "s1", "account_id": "acc-cash", "amount": "10"})
        books.add_ar_payment({"account_id": "acc-pos1", "amount": "40"})
        books.set_valuation("lifo")
        order_store.add(Order(id="o1", items=[
            OrderItem("apple", qty=4, price_at_order="9", cost_at_order="5"),
        ]))

        restored = make_books(store=state_store, order_store=order_store)
        assert restored.load() is True

        assert restored.cash_balances() == books.cash_balances()
        assert restored.ap_snapshot() == books.ap_snapshot()
        assert restored.profit_quick() == books.profit_quick()
        assert restored.snapshot_state().to_dict() == books.snapshot_state().to_dict()
        assert restored.valuation is ValuationMode.LIFO

    def test_load_without_saved_state_keeps_seed(self, make_books):
        books = make_books()

        assert books.load() is False
        assert len(books.accounts) == 3

    def test_autosave_off_requires_save(self, make_books, state_store):
        books = make_books(store=state_store, autosave=False)
        _buy(books)

        assert state_store.load("og-finance-v2") is None
        books.save()
        assert len(state_store.load("og-finance-v2").purchases) == 1

    def test_storage_key_from_config(self, make_books, state_store):
        from shopbooks_config import BooksConfig

        books = make_books(store=state_store, config=BooksConfig(storage_key="branch-2"))
        _buy(books)

        assert state_store.keys() == ["branch-2"]

    def test_failed_save_rolls_back_sale(self, make_books):
        store = _BrokenStore()
        books = make_books(store=store)
        _buy(books, qty=5)
        store.broken = True

        with pytest.raises(StateStoreError):
            books.consume_for_sale([{"product_id": "apple", "qty": 3}])

        assert books.stock_on_hand("apple") == 5
        assert store.load("og-finance-v2").batches[0].qty == 5

    def test_failed_save_rolls_back_expense(self, make_books):
        store = _BrokenStore()
        books = make_books(store=store)
        before = _balance(books, "acc-cash")
        store.broken = True

        with pytest.raises(StateStoreError):
            books.add_expense({"amount": 50, "account_id": "acc-cash", "category": "rent"})

        assert books.expenses == []
        assert books.ledger == []
        assert _balance(books, "acc-cash") == before

    def test_books_usable_after_failed_save(self, make_books):
        store = _BrokenStore()
        books = make_books(store=store)
        store.broken = True
        with pytest.raises(StateStoreError):
            _buy(books)

        store.broken = False
        _buy(books, qty=2)

        assert books.stock_on_hand("apple") == 2
        assert len(store.load("og-finance-v2").purchases) == 1


class TestIntake:

    def test_receive_intake_books_one_purchase_per_line(self, books):
        purchases = books.receive_intake(
            supplier_id="s1",
            lines=[
                {"product_id": "apple", "qty": 10, "unit_cost": "1.00", "weight_kg": 30},
                {"product_id": "pear", "qty": 5, "unit_cost": "2.00", "weight_kg": 10},
                {"product_id": "", "qty": 5, "unit_cost": "2.00"},
                {"product_id": "plum", "qty": 0, "unit_cost": "2.00"},
            ],
            freight="20",
            paid_now="20",
            account_id="acc-cash",
            on="2024-02-10",
        )

        assert [(p.product_id, p.unit_cost, p.paid) for p in purchases] == [
            ("apple", Decimal("2.5000"), Decimal("12.50")),
            ("pear", Decimal("3.0000"), Decimal("7.50")),
        ]
        assert all(p.date == date(2024, 2, 10) for p in purchases)
        assert [b.id for b in books.batches] == [p.id for p in purchases]
        assert _balance(books, "acc-cash") == Decimal("-20.00")
        assert books.ap_snapshot()[0].amount == Decimal("20.00")

    def test_paid_now_clamped_to_total(self, books):
        purchases = books.receive_intake(
            supplier_id="s1",
            lines=[{"product_id": "apple", "qty": 3, "unit_cost": "1"}],
            paid_now="100",
            account_id="acc-cash",
        )

        assert purchases[0].paid == Decimal("3.00")
        assert books.ap_snapshot() == []

    def test_unit_cost_rounded_to_four_places(self, books):
        (purchase,) = books.receive_intake(
            supplier_id="s1",
            lines=[{"product_id": "apple", "qty": 3, "unit_cost": "1", "weight_kg": 1}],
            freight="1",
            paid_now="4",
            account_id="acc-cash",
        )

        assert purchase.unit_cost == Decimal("1.3333")
        assert purchase.paid <= purchase.total_cost


class TestSpoilage:

    def test_spoilage_drains_batches_and_books_expense(self, books):
        _buy(books, qty=5, unit_cost="2")

        result = books.record_spoilage([{"product_id": "apple", "qty": 2}])

        assert result.cost == Decimal("4.00")
        assert result.expense.category == "spoilage"
        assert result.expense.account_id is None
        assert books.stock_on_hand("apple") == Decimal("3")
        assert books.total_expenses() == Decimal("4.00")
        assert books.ledger == []

    def test_fallback_cost_when_no_stock(self, books):
        result = books.record_spoilage(
            [{"product_id": "apple", "qty": 2}], fallback_cost="1.75", category="waste",
        )

        assert result.expense.amount == Decimal("1.75")
        assert result.expense.category == "waste"

    def test_zero_cost_books_nothing(self, books):
        result = books.record_spoilage([{"product_id": "apple", "qty": 2}])

        assert result.expense is None
        assert books.expenses == []


def test_service_constructs_with_defaults():
    books = FinanceService()

    assert books.storage_key == "og-finance-v2"
    assert books.cash_balances()[0].balance == Decimal("0.00")
