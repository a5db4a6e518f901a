#!/usr/bin/env python3
"""
View the shop's books from a saved finance state.

Reads the finance blob from a JSON state file or a database and prints
cash balances, supplier payables, AP aging and the quick profit view.

Usage:
    python3 scripts/view_books.py --state books.json
    python3 scripts/view_books.py --database-url sqlite:///books.db --as-of 2024-06-30
    python3 scripts/view_books.py --state books.json --orders orders.json
"""

import argparse
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 60


def banner(title: str) -> None:
    print()
    print("=" * W)
    print(f"  {title}")
    print("=" * W)


def section(title: str) -> None:
    print()
    print(f"--- {title} ---")
    print()


def row(label: str, value, indent: int = 4) -> None:
    print(f"{' ' * indent}{label:<30} {value:>14}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Print cash, AP, aging and profit")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--state", type=Path, help="JSON state file")
    source.add_argument("--database-url", help="SQLAlchemy URL of the state database")
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument("--orders", type=Path, help="JSON list of orders for COGS and revenue")
    parser.add_argument("--as-of", help="Aging date (YYYY-MM-DD), default today")
    parser.add_argument("--log", action="store_true", help="Write JSON logs to stderr at the configured level")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.log:
        logging.disable(logging.CRITICAL)
    try:
        return _run(args)
    finally:
        logging.disable(logging.NOTSET)


def _run(args: argparse.Namespace) -> int:
    from shopbooks_config import get_active_config
    from shopbooks_engines.balances import account_activity
    from shopbooks_kernel.exceptions import ShopbooksError
    from shopbooks_kernel.logging_config import configure_logging
    from shopbooks_services import (
        FinanceService,
        InMemoryOrderStore,
        JsonFileStateStore,
        SqlStateStore,
    )

    try:
        config = get_active_config(args.config)
        if args.log:
            configure_logging(level=config.log_level)
        database_url = args.database_url or config.database_url
        if args.state is not None:
            store = JsonFileStateStore(args.state)
        elif database_url:
            store = SqlStateStore.from_url(database_url)
        else:
            print("ERROR: pass --state or --database-url", file=sys.stderr)
            return 2

        orders = (
            InMemoryOrderStore.from_json_file(args.orders)
            if args.orders is not None else InMemoryOrderStore()
        )
        books = FinanceService(config=config, store=store, order_store=orders, autosave=False)
        if not books.load():
            print(f"  No saved books under '{config.storage_key}'", file=sys.stderr)
            return 1

        aging = books.ap_aging(args.as_of)
        balances = books.cash_balances()
        ledger = books.ledger
        payables = books.ap_snapshot()
        profit = books.profit_quick()
    except (ShopbooksError, OSError, ValueError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    currency = config.currency
    banner(f"BOOKS  {config.storage_key}  (as of {aging.as_of_date.isoformat()})")

    section(f"Cash balances ({currency})")
    for account in balances:
        money_in, money_out = account_activity(ledger, account.id)
        row(f"{account.name} [{account.type.value}]", account.balance)
        row("in / out", f"{money_in} / {money_out}", indent=8)

    section(f"Accounts payable ({currency})")
    if not payables:
        print("    (nothing owed)")
    for payable in payables:
        row(payable.supplier_id, payable.amount)

    section("AP aging")
    row("current", len(aging.current))
    row("overdue", len(aging.overdue))
    for bucket, amount in aging.aging_buckets.items():
        row(bucket, amount)

    section(f"Profit ({currency})")
    row("revenue", profit.revenue)
    row("cogs", profit.cogs)
    row("expense", profit.expense)
    row("profit", profit.profit)
    row("margin %", profit.margin_pct)
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
