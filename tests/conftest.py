# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own SQLite file under tmp_path (schema applied by
#   get_connection), so tests never share state.
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON (get_connection)
# - Returns use a fixed clock so the policy window does not depend on today.
# - Provide handy product/invoice builders.
# ---------------------------------------------------------------------

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from invoice_ledger.database import get_connection
from invoice_ledger.database.repositories import (
    DashboardRepo,
    InventoryRepo,
    InvoiceLine,
    InvoicePaymentsRepo,
    InvoiceReturnsRepo,
    InvoicesRepo,
    ProductsRepo,
    ReconciliationRepo,
)

ISSUE_DATE = "2026-01-10"
TODAY = date(2026, 1, 12)   # two days after ISSUE_DATE, inside the 7-day window


# ---------- Per-test database ----------
@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "ledger.db"


@pytest.fixture()
def conn(db_path: Path):
    con = get_connection(db_path)
    try:
        yield con
    finally:
        con.close()


# ---------- Repositories ----------
@pytest.fixture()
def products(conn) -> ProductsRepo:
    return ProductsRepo(conn)


@pytest.fixture()
def inventory(conn) -> InventoryRepo:
    return InventoryRepo(conn)


@pytest.fixture()
def invoices(conn) -> InvoicesRepo:
    return InvoicesRepo(conn)


@pytest.fixture()
def payments(conn) -> InvoicePaymentsRepo:
    return InvoicePaymentsRepo(conn)


@pytest.fixture()
def returns(conn) -> InvoiceReturnsRepo:
    return InvoiceReturnsRepo(conn, clock=lambda: TODAY)


@pytest.fixture()
def reconciliation(conn) -> ReconciliationRepo:
    return ReconciliationRepo(conn)


@pytest.fixture()
def dashboard(conn) -> DashboardRepo:
    return DashboardRepo(conn)


# ---------- Builders ----------
@pytest.fixture()
def make_product(products: ProductsRepo):
    def _make(name: str = "Widget A", price: float = 100.0, stock: float = 10.0, sku: str | None = None):
        return products.upsert_product(name=name, price=price, stock=stock, sku=sku)
    return _make


@pytest.fixture()
def widget(make_product):
    """Product A from the worked example: price 100, stock 10."""
    return make_product("Widget A", 100.0, 10.0, sku="A-001")


@pytest.fixture()
def sample_invoice(invoices: InvoicesRepo, widget):
    """3 x Widget A at 100, tax 5% -> total 315.00."""
    return invoices.create_invoice(
        [InvoiceLine(product_id=widget.product_id, quantity=3)],
        issue_date=ISSUE_DATE,
        tax_rate=5,
    )


# ---------- Invariant check used across suites ----------
def assert_ledger_invariants(conn) -> None:
    rows = conn.execute(
        "SELECT invoice_id, CAST(total AS REAL) AS total, CAST(paid AS REAL) AS paid, "
        "CAST(due AS REAL) AS due, status FROM invoices"
    ).fetchall()
    for r in rows:
        assert r["due"] == pytest.approx(max(0.0, r["total"] - r["paid"])), dict(r)
        if r["status"] == "paid":
            assert r["paid"] + 1e-9 >= r["total"], dict(r)
        if r["status"] == "open":
            assert r["paid"] < r["total"] + 1e-9, dict(r)


@pytest.fixture()
def check_ledger(conn):
    """Call after a sequence of writes to assert due/status agree with total/paid."""
    def _check() -> None:
        assert_ledger_invariants(conn)
    return _check
