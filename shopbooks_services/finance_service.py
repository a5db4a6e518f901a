"""
shopbooks_services.finance_service -- The shop's books.

Responsibility:
    Own the finance state (suppliers, accounts, expenses, purchases,
    supplier and customer payments, the cash ledger and inventory batches)
    and expose every bookkeeping operation on it: record CRUD, FIFO cost of
    sales, AP snapshot and aging, cash balances and the quick profit view,
    plus goods intake with landed cost and spoilage write-offs.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  Numbers
    come from the pure engines in ``shopbooks_engines``; this class decides
    what to feed them and swaps their results into the state.

Invariants enforced:
    - Every purchase owns exactly one batch with the same id; removing the
      purchase removes the batch and its ledger entries.
    - A mutation appends its record and at most one ledger entry under a
      single lock acquisition, so readers never see one without the other.
    - ``consume_for_sale`` reads, sorts, matches, decrements and writes the
      batches inside one lock acquisition.
    - Cash balances are always replayed from the ledger.
    - A mutation whose autosave fails leaves the in-memory books exactly as
      they were before the call.

Failure modes:
    - InvalidRecordError when a record cannot be built from the input.
    - StateLoadError / StateStoreError from ``load``/``save`` (and from
      mutations when autosave is on).
    - Business conditions (short stock, unknown ids, suppliers that cannot
      be aged) never raise.

Usage:
    books = FinanceService(config=get_active_config(), store=JsonFileStateStore(path))
    books.load()
    books.add_purchase({"supplier_id": "s1", "product_id": "apple",
                        "qty": 10, "unit_cost": "1.20", "date": "2024-03-01"})
    costing = books.consume_for_sale([{"product_id": "apple", "qty": 3}])
    costing.per_item_cost   # (Decimal("1.2000"),)
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar
from uuid import uuid4

from shopbooks_config.schema import BooksConfig
from shopbooks_engines.aging import AgeBucket, APAgingReport, age_payables
from shopbooks_engines.balances import cash_balances
from shopbooks_engines.fifo import SaleCosting, SaleLine, consume_fifo, inventory_value, stock_on_hand
from shopbooks_engines.landed_cost import IntakeLine, allocate_landed_cost, prorate_payment
from shopbooks_engines.payables import ap_snapshot
from shopbooks_engines.profit import ProfitSummary, profit_quick, total_cogs
from shopbooks_kernel.domain.clock import Clock, SystemClock
from shopbooks_kernel.domain.orders import Order, OrderItem, apply_item_costs
from shopbooks_kernel.domain.records import (
    Account,
    APBalance,
    ARBalance,
    ARPayment,
    Batch,
    EntryType,
    Expense,
    LedgerEntry,
    LedgerRef,
    Payment,
    Purchase,
    RefKind,
    Supplier,
    ValuationMode,
)
from shopbooks_kernel.domain.values import ZERO, parse_date, round_unit_cost, to_decimal
from shopbooks_kernel.exceptions import InvalidRecordError
from shopbooks_kernel.logging_config import LogContext, get_logger
from shopbooks_services.finance_state import FinanceState
from shopbooks_services.order_store import InMemoryOrderStore, OrderStore
from shopbooks_services.state_store import InMemoryStateStore, StateStore

logger = get_logger("services.finance")

R = TypeVar("R")

SaleItem = SaleLine | OrderItem | Mapping[str, Any]


@dataclass(frozen=True)
class SpoilageResult:
    """Outcome of a write-off: the batch draw and the expense booked for it."""

    costing: SaleCosting
    cost: Decimal
    expense: Expense | None


def _new_id() -> str:
    return str(uuid4())


def _to_sale_line(item: SaleItem) -> SaleLine:
    if isinstance(item, SaleLine):
        return item
    if isinstance(item, OrderItem):
        return SaleLine(product_id=item.product_id, variant_id=item.variant_id, qty=item.qty)
    return SaleLine.from_mapping(item)


def _to_intake_line(line: IntakeLine | Mapping[str, Any]) -> IntakeLine:
    if isinstance(line, IntakeLine):
        return line
    return IntakeLine(
        product_id=line.get("product_id", line.get("productId")),
        variant_id=line.get("variant_id", line.get("variantId")) or None,
        qty=line.get("qty", 0),
        unit_cost=line.get("unit_cost", line.get("unitCost", 0)),
        weight_kg=line.get("weight_kg", line.get("weightKg")) or 0,
    )


class FinanceService:
    """
    Stateful owner of the books.

    Contract:
        Receives configuration, a state store, an order store and a clock
        via constructor injection.  All reads and writes of the state go
        through one re-entrant lock.
    Guarantees:
        - A fresh service holds the configured seed accounts.
        - With ``autosave`` on, every mutation is written to the store
          before the method returns.
        - A mutation either lands in memory and in the store, or in
          neither: when the save raises, the state is rolled back.
        - Read methods return copies; callers cannot mutate the books
          behind the lock.
    Non-goals:
        - Does not create or persist orders; it only reads the order store
          and hands unit costs back through ``cost_order``.
    """

    def __init__(
        self,
        config: BooksConfig | None = None,
        store: StateStore | None = None,
        order_store: OrderStore | None = None,
        clock: Clock | None = None,
        autosave: bool = True,
        id_factory: Callable[[], str] | None = None,
    ):
        self.config = config or BooksConfig()
        self.store = store or InMemoryStateStore()
        self.order_store = order_store or InMemoryOrderStore()
        self.clock = clock or SystemClock()
        self.autosave = autosave
        self._new_id = id_factory or _new_id
        self._lock = threading.RLock()
        self._state = self._seed_state()

    @property
    def storage_key(self) -> str:
        return self.config.storage_key

    # =========================================================================
    # Persistence
    # =========================================================================

    def _seed_state(self) -> FinanceState:
        return FinanceState(
            accounts=[
                Account(id=a.id, name=a.name, type=a.type, currency=self.config.currency)
                for a in self.config.seed_accounts
            ],
            valuation=self.config.valuation,
        )

    def load(self) -> bool:
        """
        Replace the in-memory books with the saved blob.

        Returns:
            True if a blob was found; False leaves the current state alone.
        """
        with LogContext.bind(storage_key=self.storage_key), self._lock:
            state = self.store.load(self.storage_key)
            if state is None:
                logger.info("finance_state_not_found")
                return False
            self._state = state
            logger.info("finance_state_loaded", extra={
                "purchase_count": len(state.purchases),
                "batch_count": len(state.batches),
                "ledger_count": len(state.ledger),
            })
            return True

    def save(self) -> None:
        with LogContext.bind(storage_key=self.storage_key), self._lock:
            self.store.save(self.storage_key, self._state.copy())
            logger.debug("finance_state_saved")

    @contextmanager
    def _mutation(self) -> Iterator[FinanceState]:
        """
        Hold the lock for one change to the books and autosave it.

        If the block or the save raises, the state is put back exactly as
        it was before the block, so a failed write changes nothing.
        """
        with self._lock:
            before = self._state.copy()
            try:
                yield self._state
                if self.autosave:
                    self.save()
            except Exception:
                self._state = before
                raise

    def snapshot_state(self) -> FinanceState:
        """Detached copy of the whole state."""
        with self._lock:
            return self._state.copy()

    # =========================================================================
    # Read views
    # =========================================================================

    @property
    def suppliers(self) -> list[Supplier]:
        with self._lock:
            return list(self._state.suppliers)

    @property
    def accounts(self) -> list[Account]:
        with self._lock:
            return list(self._state.accounts)

    @property
    def expenses(self) -> list[Expense]:
        with self._lock:
            return list(self._state.expenses)

    @property
    def purchases(self) -> list[Purchase]:
        with self._lock:
            return list(self._state.purchases)

    @property
    def payments(self) -> list[Payment]:
        with self._lock:
            return list(self._state.payments)

    @property
    def ar_payments(self) -> list[ARPayment]:
        with self._lock:
            return list(self._state.ar_payments)

    @property
    def ledger(self) -> list[LedgerEntry]:
        with self._lock:
            return list(self._state.ledger)

    @property
    def batches(self) -> list[Batch]:
        with self._lock:
            return [b.copy() for b in self._state.batches]

    @property
    def valuation(self) -> ValuationMode:
        with self._lock:
            return self._state.valuation

    # =========================================================================
    # Record construction
    # =========================================================================

    def _build(self, record_type: type[R], data: R | Mapping[str, Any], dated: bool = False) -> R:
        if isinstance(data, record_type):
            return data
        if not isinstance(data, Mapping):
            raise InvalidRecordError(record_type.__name__, "<record>", data, "expected a mapping")
        values = dict(data)
        if not values.get("id"):
            values["id"] = self._new_id()
        if dated and values.get("date") is None:
            values["date"] = self.clock.today()
        try:
            return record_type.from_dict(values)
        except TypeError as e:
            raise InvalidRecordError(record_type.__name__, "<record>", values, str(e)) from e

    def _ledger_entry(
        self,
        *,
        on: date,
        account_id: str,
        entry_type: EntryType,
        amount: Decimal,
        ref: LedgerRef,
        memo: str,
    ) -> LedgerEntry:
        return LedgerEntry(
            id=self._new_id(),
            date=on,
            account_id=account_id,
            type=entry_type,
            amount=amount,
            ref=ref,
            memo=memo,
        )

    def _drop_ref(self, ref_id: str) -> int:
        before = len(self._state.ledger)
        self._state.ledger = [
            e for e in self._state.ledger if e.ref is None or e.ref.id != ref_id
        ]
        return before - len(self._state.ledger)

    @staticmethod
    def _merge(existing: R, changes: Mapping[str, Any]) -> R:
        known = {f.name for f in fields(existing)} - {"id"}
        return replace(existing, **{k: v for k, v in changes.items() if k in known})

    # =========================================================================
    # Suppliers & accounts
    # =========================================================================

    def add_supplier(self, supplier: Supplier | Mapping[str, Any]) -> Supplier:
        record = self._build(Supplier, supplier)
        with self._mutation():
            self._state.suppliers.append(record)
        logger.info("supplier_added", extra={"supplier_id": record.id})
        return record

    def update_supplier(self, supplier: Supplier | Mapping[str, Any]) -> Supplier | None:
        """
        Replace (record) or patch (mapping with ``id``) a supplier.

        Returns the stored supplier, or None when the id is unknown.
        """
        supplier_id = supplier.id if isinstance(supplier, Supplier) else supplier.get("id")
        with self._mutation():
            for i, existing in enumerate(self._state.suppliers):
                if existing.id == supplier_id:
                    updated = (
                        supplier if isinstance(supplier, Supplier)
                        else self._merge(existing, supplier)
                    )
                    self._state.suppliers[i] = updated
                    return updated
        logger.debug("supplier_update_unknown_id", extra={"supplier_id": supplier_id})
        return None

    def remove_supplier(self, supplier_id: str) -> None:
        with self._mutation():
            self._state.suppliers = [s for s in self._state.suppliers if s.id != supplier_id]

    def add_account(self, account: Account | Mapping[str, Any]) -> Account:
        if isinstance(account, Mapping) and "currency" not in account:
            account = {**account, "currency": self.config.currency}
        record = replace(self._build(Account, account), balance=ZERO)
        with self._mutation():
            self._state.accounts.append(record)
        logger.info("account_added", extra={
            "account_id": record.id,
            "account_type": record.type.value,
        })
        return record

    def update_account(self, account: Account | Mapping[str, Any]) -> Account | None:
        account_id = account.id if isinstance(account, Account) else account.get("id")
        with self._mutation():
            for i, existing in enumerate(self._state.accounts):
                if existing.id == account_id:
                    updated = (
                        account if isinstance(account, Account)
                        else self._merge(existing, account)
                    )
                    self._state.accounts[i] = updated
                    return updated
        return None

    def remove_account(self, account_id: str) -> None:
        """Remove an account together with its ledger entries."""
        with self._mutation():
            self._state.accounts = [a for a in self._state.accounts if a.id != account_id]
            before = len(self._state.ledger)
            self._state.ledger = [e for e in self._state.ledger if e.account_id != account_id]
            dropped = before - len(self._state.ledger)
        if dropped:
            logger.info("account_removed_with_entries", extra={
                "account_id": account_id,
                "entry_count": dropped,
            })

    def set_valuation(self, mode: ValuationMode | str) -> ValuationMode:
        """Store the valuation flag.  Consumption stays FIFO either way."""
        mode = ValuationMode(mode)
        with self._mutation():
            self._state.valuation = mode
        return mode

    # =========================================================================
    # Expenses
    # =========================================================================

    def _append_expense(self, record: Expense) -> None:
        self._state.expenses.append(record)
        if record.account_id:
            self._state.ledger.append(self._ledger_entry(
                on=record.date,
                account_id=record.account_id,
                entry_type=EntryType.OUT,
                amount=record.amount,
                ref=LedgerRef(RefKind.EXPENSE, record.id),
                memo=f"Expense {record.category}",
            ))

    def add_expense(self, expense: Expense | Mapping[str, Any]) -> Expense:
        record = self._build(Expense, expense, dated=True)
        with self._mutation():
            self._append_expense(record)
        logger.info("expense_recorded", extra={
            "expense_id": record.id,
            "category": record.category,
            "amount": str(record.amount),
        })
        return record

    def remove_expense(self, expense_id: str) -> None:
        with self._mutation():
            self._state.expenses = [e for e in self._state.expenses if e.id != expense_id]
            self._drop_ref(expense_id)

    def total_expenses(self) -> Decimal:
        with self._lock:
            return sum((e.amount for e in self._state.expenses), ZERO)

    # =========================================================================
    # Purchases & batches
    # =========================================================================

    def _append_purchase(self, record: Purchase) -> None:
        self._state.purchases.append(record)
        self._state.batches.append(Batch.for_purchase(record))
        if record.account_id and record.paid > 0:
            self._state.ledger.append(self._ledger_entry(
                on=record.date,
                account_id=record.account_id,
                entry_type=EntryType.OUT,
                amount=record.paid,
                ref=LedgerRef(RefKind.PURCHASE, record.id),
                memo="Purchase immediate pay",
            ))

    def add_purchase(self, purchase: Purchase | Mapping[str, Any]) -> Purchase:
        """Record a purchase, its batch and (if paid on receipt) its cash out."""
        record = self._build(Purchase, purchase, dated=True)
        with self._mutation():
            self._append_purchase(record)
        logger.info("purchase_recorded", extra={
            "purchase_id": record.id,
            "supplier_id": record.supplier_id,
            "product_id": record.product_id,
            "variant_id": record.variant_id,
            "qty": str(record.qty),
            "unit_cost": str(record.unit_cost),
            "paid": str(record.paid),
        })
        return record

    def remove_purchase(self, purchase_id: str) -> None:
        """Remove a purchase, its batch (even if partly consumed) and its entries."""
        with self._mutation():
            self._state.purchases = [p for p in self._state.purchases if p.id != purchase_id]
            self._state.batches = [b for b in self._state.batches if b.id != purchase_id]
            self._drop_ref(purchase_id)

    def stock_on_hand(self, product_id: str, variant_id: str | None = None) -> Decimal:
        with self._lock:
            return stock_on_hand(self._state.batches, product_id, variant_id)

    def inventory_value(self) -> Decimal:
        with self._lock:
            return inventory_value(self._state.batches)

    # =========================================================================
    # Cost of sales
    # =========================================================================

    def consume_for_sale(
        self,
        items: Sequence[SaleItem],
        order_id: str | None = None,
    ) -> SaleCosting:
        """
        Drain batches FIFO for a sale and return its cost.

        Never raises on short stock: the unmet part is priced at the
        average cost of what was consumed (or 0) and reported in
        ``SaleCosting.warnings``.
        """
        lines = [_to_sale_line(item) for item in items]
        with LogContext.bind(order_id=order_id):
            with self._mutation():
                costing = consume_fifo(batches=self._state.batches, lines=lines)
                self._state.batches = list(costing.remaining_batches)

            logger.info("sale_consumed", extra={
                "line_count": len(lines),
                "total_cost": str(costing.total_cost),
                "warning_count": len(costing.warnings),
            })
        return costing

    def cost_order(self, order: Order) -> SaleCosting:
        """Consume stock for an order and write the unit costs onto its lines."""
        costing = self.consume_for_sale(order.items, order_id=order.id)
        apply_item_costs(order.items, costing.per_item_cost)
        return costing

    def total_cogs(self) -> Decimal:
        return total_cogs(self.order_store.list_orders())

    # =========================================================================
    # Supplier payments & AP
    # =========================================================================

    def add_payment(self, payment: Payment | Mapping[str, Any]) -> Payment:
        record = self._build(Payment, payment, dated=True)
        with self._mutation():
            self._state.payments.append(record)
            self._state.ledger.append(self._ledger_entry(
                on=record.date,
                account_id=record.account_id,
                entry_type=EntryType.OUT,
                amount=record.amount,
                ref=LedgerRef(RefKind.PAYMENT, record.id),
                memo="Supplier payment",
            ))
        logger.info("supplier_payment_recorded", extra={
            "payment_id": record.id,
            "supplier_id": record.supplier_id,
            "amount": str(record.amount),
        })
        return record

    def remove_payment(self, payment_id: str) -> None:
        with self._mutation():
            self._state.payments = [p for p in self._state.payments if p.id != payment_id]
            self._drop_ref(payment_id)

    def ap_snapshot(self) -> list[APBalance]:
        with self._lock:
            return ap_snapshot(
                purchases=list(self._state.purchases),
                payments=list(self._state.payments),
                epsilon=self.config.ap_noise_epsilon,
            )

    def ap_aging(self, as_of_date: date | str | None = None) -> APAgingReport:
        """AP aging as of a date (today by the service clock when omitted)."""
        as_of = parse_date(as_of_date) if as_of_date is not None else self.clock.today()
        buckets = [
            AgeBucket(b.label, b.min_days, b.max_days) for b in self.config.aging_buckets
        ]
        with self._lock:
            snapshot = self.ap_snapshot()
            return age_payables(
                snapshot=snapshot,
                purchases=list(self._state.purchases),
                suppliers=list(self._state.suppliers),
                as_of_date=as_of,
                buckets=buckets,
                default_term_days=self.config.default_payment_term_days,
            )

    # =========================================================================
    # Customer payments & AR
    # =========================================================================

    def add_ar_payment(self, ar_payment: ARPayment | Mapping[str, Any]) -> ARPayment:
        record = self._build(ARPayment, ar_payment, dated=True)
        with self._mutation():
            self._state.ar_payments.append(record)
            self._state.ledger.append(self._ledger_entry(
                on=record.date,
                account_id=record.account_id,
                entry_type=EntryType.IN,
                amount=record.amount,
                ref=LedgerRef(RefKind.ARPAYMENT, record.id),
                memo="Customer in",
            ))
        logger.info("customer_payment_recorded", extra={
            "ar_payment_id": record.id,
            "amount": str(record.amount),
        })
        return record

    def remove_ar_payment(self, ar_payment_id: str) -> None:
        with self._mutation():
            self._state.ar_payments = [
                p for p in self._state.ar_payments if p.id != ar_payment_id
            ]
            self._drop_ref(ar_payment_id)

    def ar_snapshot(self) -> list[ARBalance]:
        """Receivables.  Every order is treated as paid at checkout, so none."""
        return []

    # =========================================================================
    # Cash & profit
    # =========================================================================

    def cash_balances(self) -> list[Account]:
        with self._lock:
            return cash_balances(
                accounts=list(self._state.accounts),
                ledger=list(self._state.ledger),
            )

    def ledger_for_account(self, account_id: str) -> list[LedgerEntry]:
        with self._lock:
            return [e for e in self._state.ledger if e.account_id == account_id]

    def profit_quick(self) -> ProfitSummary:
        with self._lock:
            expenses = list(self._state.expenses)
        return profit_quick(orders=self.order_store.list_orders(), expenses=expenses)

    # =========================================================================
    # Goods intake & spoilage
    # =========================================================================

    def receive_intake(
        self,
        *,
        supplier_id: str,
        lines: Sequence[IntakeLine | Mapping[str, Any]],
        freight: Decimal | str | int = ZERO,
        paid_now: Decimal | str | int = ZERO,
        account_id: str | None = None,
        on: date | str | None = None,
        note: str | None = None,
    ) -> list[Purchase]:
        """
        Receive a delivery: spread freight by weight, book one purchase per line.

        Lines without a product, with ``qty <= 0`` or with a landed unit cost
        of 0 are skipped.  ``paid_now`` is clamped to the delivery total and
        split pro rata over the received lines.
        """
        receipt_date = parse_date(on) if on is not None else self.clock.today()
        result = allocate_landed_cost(
            lines=[_to_intake_line(line) for line in lines],
            freight=to_decimal(freight),
        )
        received = result.receivable_lines
        shares = prorate_payment(to_decimal(paid_now), [r.final_total for r in received])

        purchases: list[Purchase] = []
        with self._mutation():
            for row, share in zip(received, shares):
                unit_cost = round_unit_cost(row.final_unit_cost)
                purchase = Purchase(
                    id=self._new_id(),
                    date=receipt_date,
                    supplier_id=supplier_id,
                    product_id=row.line.product_id,
                    variant_id=row.line.variant_id,
                    qty=row.line.qty,
                    unit_cost=unit_cost,
                    account_id=account_id,
                    paid=min(share, row.line.qty * unit_cost),
                    note=note,
                )
                self._append_purchase(purchase)
                purchases.append(purchase)

        logger.info("intake_received", extra={
            "supplier_id": supplier_id,
            "line_count": len(lines),
            "received_count": len(purchases),
            "freight": str(result.freight),
            "paid_now": str(sum(shares, ZERO)),
        })
        return purchases

    def record_spoilage(
        self,
        items: Sequence[SaleItem],
        *,
        fallback_cost: Decimal | str | int = ZERO,
        category: str | None = None,
        on: date | str | None = None,
    ) -> SpoilageResult:
        """
        Write off spoiled stock.

        The items are drained FIFO like a sale and an expense without an
        account is booked for their cost.  When the batches hold nothing to
        price the loss, ``fallback_cost`` is booked instead; a cost of 0
        books nothing.
        """
        lines = [_to_sale_line(item) for item in items]
        spoil_date = parse_date(on) if on is not None else self.clock.today()
        with self._mutation():
            costing = consume_fifo(batches=self._state.batches, lines=lines)
            self._state.batches = list(costing.remaining_batches)
            cost = costing.total_cost if costing.total_cost > 0 else to_decimal(fallback_cost)

            expense = None
            if cost > 0:
                expense = Expense(
                    id=self._new_id(),
                    date=spoil_date,
                    category=category or self.config.spoilage_category,
                    amount=cost,
                )
                self._append_expense(expense)

        logger.info("spoilage_recorded", extra={
            "line_count": len(lines),
            "cost": str(cost),
            "expense_id": expense.id if expense else None,
        })
        return SpoilageResult(costing=costing, cost=cost, expense=expense)
