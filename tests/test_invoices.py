"""
Invoice creation, numbering, snapshots, cancellation and previews.

Creation is one transaction: any failure must leave no header, no lines,
no payment and untouched stock.
"""

from __future__ import annotations

import pytest

from invoice_ledger.database.repositories import (
    CustomerInfo,
    InsufficientStock,
    InvalidAmount,
    InvalidQuantity,
    InventoryRepo,
    InvoiceLine,
    InvoiceNotFound,
    ProductNotFound,
    ValidationError,
)

ISSUE_DATE = "2026-01-10"


def _count(conn, table: str) -> int:
    return int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

def test_worked_example_totals_and_stock(check_ledger, sample_invoice, inventory, widget):
    inv = sample_invoice
    assert inv.number == "20260110-0001"
    assert inv.issue_date == ISSUE_DATE
    assert inv.subtotal == pytest.approx(300.0)
    assert inv.tax_amount == pytest.approx(15.0)
    assert inv.total == pytest.approx(315.0)
    assert inv.paid == pytest.approx(0.0)
    assert inv.due == pytest.approx(315.0)
    assert inv.status == "open"
    assert inventory.get_stock(widget.product_id) == pytest.approx(7.0)
    check_ledger()


def test_lines_discounts_and_customer(invoices, make_product):
    a = make_product("A", 10.0, 100)
    b = make_product("B", 4.0, 100)
    inv = invoices.create_invoice(
        [
            InvoiceLine(a.product_id, 2, line_discount=5),           # 15
            InvoiceLine(b.product_id, 2.5, unit_price=3.0),          # 7.5
        ],
        customer=CustomerInfo(name=" Jane ", phone="0300", address=""),
        issue_date=ISSUE_DATE,
        invoice_discount=2.5,
        tax_rate=10,
        notes="rush",
    )
    assert inv.subtotal == pytest.approx(22.5)
    assert inv.tax_amount == pytest.approx(2.0)
    assert inv.total == pytest.approx(22.0)
    assert inv.customer_name == "Jane"
    assert inv.customer_address is None
    assert inv.notes == "rush"

    items = invoices.list_items(inv.invoice_id)
    assert [i.line_total for i in items] == pytest.approx([15.0, 7.5])
    assert items[1].unit_price == pytest.approx(3.0)
    assert items[0].sku is None


def test_numbers_follow_global_sequence(invoices, widget):
    first = invoices.create_invoice([InvoiceLine(widget.product_id, 1)], issue_date="2026-01-10")
    second = invoices.create_invoice([InvoiceLine(widget.product_id, 1)], issue_date="2026-01-10")
    third = invoices.create_invoice([InvoiceLine(widget.product_id, 1)], issue_date="2026-02-01")
    assert first.number == "20260110-0001"
    assert second.number == "20260110-0002"
    assert third.number == "20260201-0003"


def test_description_snapshot_survives_product_rename(invoices, products, widget):
    inv = invoices.create_invoice([InvoiceLine(widget.product_id, 1)], issue_date=ISSUE_DATE)
    products.upsert_product(product_id=widget.product_id, name="Renamed", price=999, stock=1)
    item = invoices.list_items(inv.invoice_id)[0]
    assert item.description == "Widget A"
    assert item.unit_price == pytest.approx(100.0)


def test_initial_payment(invoices, payments, widget):
    inv = invoices.create_invoice(
        [InvoiceLine(widget.product_id, 1)],
        issue_date=ISSUE_DATE,
        initial_payment=40,
        payment_method="cash",
    )
    assert inv.paid == pytest.approx(40.0)
    assert inv.due == pytest.approx(60.0)
    assert inv.status == "open"
    (p,) = payments.list_by_invoice(inv.invoice_id)
    assert p.method == "cash"
    assert p.note == "Initial payment"


def test_initial_payment_covering_total_marks_paid(invoices, widget):
    inv = invoices.create_invoice(
        [InvoiceLine(widget.product_id, 1)], issue_date=ISSUE_DATE, initial_payment=100
    )
    assert inv.status == "paid"
    assert inv.due == pytest.approx(0.0)


def test_zero_initial_payment_is_skipped(invoices, payments, widget):
    inv = invoices.create_invoice(
        [InvoiceLine(widget.product_id, 1)], issue_date=ISSUE_DATE, initial_payment=0
    )
    assert payments.list_by_invoice(inv.invoice_id) == []


# ---------------------------------------------------------------------------
# Validation and atomicity
# ---------------------------------------------------------------------------

def test_empty_invoice_rejected(conn, invoices):
    with pytest.raises(ValidationError):
        invoices.create_invoice([], issue_date=ISSUE_DATE)
    assert _count(conn, "invoices") == 0


@pytest.mark.parametrize("qty", [0, -2, "x", float("nan"), "inf"])
def test_invalid_quantity(conn, invoices, widget, qty):
    with pytest.raises(InvalidQuantity):
        invoices.create_invoice([InvoiceLine(widget.product_id, qty)], issue_date=ISSUE_DATE)
    assert _count(conn, "invoices") == 0


def test_unknown_product(conn, invoices, widget):
    with pytest.raises(ProductNotFound):
        invoices.create_invoice(
            [InvoiceLine(widget.product_id, 1), InvoiceLine(12345, 1)], issue_date=ISSUE_DATE
        )
    assert _count(conn, "invoices") == 0


@pytest.mark.parametrize(
    "kwargs, exc",
    [
        ({"issue_date": "10/01/2026"}, ValidationError),
        ({"invoice_discount": -1}, ValidationError),
        ({"tax_rate": -5}, ValidationError),
        ({"initial_payment": -10}, InvalidAmount),
    ],
)
def test_bad_header_fields(conn, invoices, widget, kwargs, exc):
    kwargs.setdefault("issue_date", ISSUE_DATE)
    with pytest.raises(exc):
        invoices.create_invoice([InvoiceLine(widget.product_id, 1)], **kwargs)
    assert _count(conn, "invoices") == 0


def test_insufficient_stock_on_later_line_rolls_back_everything(conn, invoices, inventory, make_product):
    a = make_product("A", 1.0, 10)
    b = make_product("B", 1.0, 10)
    c = make_product("C", 1.0, 1)
    with pytest.raises(InsufficientStock) as ei:
        invoices.create_invoice(
            [InvoiceLine(a.product_id, 2), InvoiceLine(b.product_id, 2), InvoiceLine(c.product_id, 5)],
            issue_date=ISSUE_DATE,
            initial_payment=3,
        )
    assert ei.value.details["product_id"] == c.product_id
    assert _count(conn, "invoices") == 0
    assert _count(conn, "invoice_items") == 0
    assert _count(conn, "invoice_payments") == 0
    assert inventory.get_stock(a.product_id) == pytest.approx(10.0)
    assert inventory.get_stock(b.product_id) == pytest.approx(10.0)
    assert inventory.get_stock(c.product_id) == pytest.approx(1.0)


def test_repeated_product_lines_are_checked_together(conn, invoices, inventory, widget):
    with pytest.raises(InsufficientStock):
        invoices.create_invoice(
            [InvoiceLine(widget.product_id, 6), InvoiceLine(widget.product_id, 6)],
            issue_date=ISSUE_DATE,
        )
    assert _count(conn, "invoices") == 0
    assert inventory.get_stock(widget.product_id) == pytest.approx(10.0)


def test_failure_after_partial_writes_rolls_back(conn, invoices, inventory, make_product, monkeypatch):
    a = make_product("A", 1.0, 10)
    b = make_product("B", 1.0, 10)

    original = InventoryRepo.adjust_stock
    calls = {"n": 0}

    def flaky(self, product_id, delta):
        calls["n"] += 1
        if calls["n"] == 2:
            raise InsufficientStock("simulated race", product_id=product_id)
        return original(self, product_id, delta)

    monkeypatch.setattr(InventoryRepo, "adjust_stock", flaky)

    with pytest.raises(InsufficientStock):
        invoices.create_invoice(
            [InvoiceLine(a.product_id, 4), InvoiceLine(b.product_id, 4)], issue_date=ISSUE_DATE
        )

    monkeypatch.undo()
    assert calls["n"] == 2
    assert _count(conn, "invoices") == 0
    assert _count(conn, "invoice_items") == 0
    assert inventory.get_stock(a.product_id) == pytest.approx(10.0)
    assert inventory.get_stock(b.product_id) == pytest.approx(10.0)


# ---------------------------------------------------------------------------
# Reads, cancel, preview
# ---------------------------------------------------------------------------

def test_detail_and_search(invoices, payments, widget):
    inv = invoices.create_invoice(
        [InvoiceLine(widget.product_id, 1)],
        customer=CustomerInfo(name="Ali", phone="0311"),
        issue_date=ISSUE_DATE,
    )
    payments.add_payment(inv.invoice_id, 10)

    detail = invoices.get_invoice_detail(inv.invoice_id)
    assert detail.invoice.invoice_id == inv.invoice_id
    assert len(detail.items) == 1 and detail.items[0].sku == "A-001"
    assert len(detail.payments) == 1
    assert detail.returns == []

    assert [h.invoice_id for h in invoices.search_invoices("Ali")] == [inv.invoice_id]
    assert [h.invoice_id for h in invoices.search_invoices("0311", ISSUE_DATE)] == [inv.invoice_id]
    assert invoices.search_invoices("", "2026-03-01") == []

    with pytest.raises(InvoiceNotFound):
        invoices.get_invoice_detail(999)


def test_list_invoices_newest_first_and_filter(invoices, widget):
    a = invoices.create_invoice([InvoiceLine(widget.product_id, 1)], issue_date=ISSUE_DATE)
    b = invoices.create_invoice([InvoiceLine(widget.product_id, 1)], issue_date=ISSUE_DATE)
    invoices.cancel_invoice(a.invoice_id)

    assert [h.invoice_id for h in invoices.list_invoices()] == [b.invoice_id, a.invoice_id]
    assert [h.invoice_id for h in invoices.list_invoices(limit=1)] == [b.invoice_id]
    assert [h.invoice_id for h in invoices.list_invoices(status="canceled")] == [a.invoice_id]
    with pytest.raises(ValidationError):
        invoices.list_invoices(status="void")


def test_cancel_is_idempotent_and_keeps_everything(check_ledger, invoices, payments, inventory, sample_invoice, widget):
    payments.add_payment(sample_invoice.invoice_id, 50)
    once = invoices.cancel_invoice(sample_invoice.invoice_id)
    twice = invoices.cancel_invoice(sample_invoice.invoice_id)
    assert once.status == twice.status == "canceled"
    assert twice.paid == pytest.approx(50.0)
    assert twice.total == pytest.approx(315.0)
    assert inventory.get_stock(widget.product_id) == pytest.approx(7.0)

    # payment activity never revives a canceled invoice
    payments.add_payment(sample_invoice.invoice_id, 265)
    assert invoices.require_header(sample_invoice.invoice_id).status == "canceled"
    check_ledger()

    with pytest.raises(InvoiceNotFound):
        invoices.cancel_invoice(999)


def test_preview_matches_stored_totals(invoices, widget):
    preview = invoices.preview_totals([(3, 100.0, 0.0)], 0.0, 5)
    assert preview["line_totals"] == [300.0]
    assert preview["total"] == pytest.approx(315.0)

    stored = invoices.create_invoice(
        [InvoiceLine(widget.product_id, 3)], issue_date=ISSUE_DATE, tax_rate=5
    )
    assert stored.total == pytest.approx(preview["total"])
    assert stored.tax_amount == pytest.approx(preview["tax_amount"])
