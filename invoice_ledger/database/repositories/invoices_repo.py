from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import logging
import sqlite3
from typing import Iterable

from ..transactions import immediate_tx
from ...constants import DEFAULT_TAX_RATE, EPSILON, INVOICE_STATUSES
from ...utils.calculations import invoice_totals, line_total
from ...utils.helpers import fmt_money, parse_iso_date, today_str
from ...utils.validators import clean_text, try_parse_float
from .errors import (
    InsufficientStock,
    InvalidAmount,
    InvalidQuantity,
    InvoiceNotFound,
    ProductNotFound,
    ValidationError,
)
from .inventory_repo import InventoryRepo
from .invoice_payments_repo import InvoicePaymentsRepo, Payment
from .invoice_returns_repo import InvoiceReturnsRepo, ReturnRecord

_log = logging.getLogger(__name__)


@dataclass
class CustomerInfo:
    name: str | None = None
    phone: str | None = None
    address: str | None = None


@dataclass
class InvoiceLine:
    """One requested line for create_invoice; unit_price defaults to the product price."""
    product_id: int
    quantity: float
    unit_price: float | None = None
    line_discount: float = 0.0


@dataclass
class InvoiceHeader:
    invoice_id: int
    number: str
    customer_name: str | None
    customer_phone: str | None
    customer_address: str | None
    issue_date: str
    subtotal: float
    discount: float
    tax_rate: float
    tax_amount: float
    total: float
    paid: float
    due: float
    status: str
    notes: str | None
    created_at: str | None = None


@dataclass
class InvoiceItem:
    item_id: int
    invoice_id: int
    product_id: int
    description: str | None
    quantity: float
    unit_price: float
    line_discount: float
    line_total: float
    sku: str | None = None


@dataclass
class InvoiceDetail:
    invoice: InvoiceHeader
    items: list[InvoiceItem] = field(default_factory=list)
    payments: list[Payment] = field(default_factory=list)
    returns: list[ReturnRecord] = field(default_factory=list)


_HEADER_COLUMNS = """
    invoice_id, number, customer_name, customer_phone, customer_address, issue_date,
    CAST(subtotal AS REAL)   AS subtotal,
    CAST(discount AS REAL)   AS discount,
    CAST(tax_rate AS REAL)   AS tax_rate,
    CAST(tax_amount AS REAL) AS tax_amount,
    CAST(total AS REAL)      AS total,
    CAST(paid AS REAL)       AS paid,
    CAST(due AS REAL)        AS due,
    status, notes, created_at
"""


class InvoicesRepo:
    """
    Invoices repository.

    Key behavior:
      - create_invoice() is one all-or-nothing transaction: header, lines,
        stock decrements and the optional first payment commit together.
      - Line descriptions and unit prices are snapshots; later product edits
        do not touch issued invoices.
      - paid/due/status are owned by InvoicePaymentsRepo and the returns repo;
        nothing here hand-edits them after creation (cancel only sets status).
      - Invoices are never deleted; cancel_invoice() is the terminal state and
        does not reverse stock, payments or totals.
    """

    def __init__(self, conn: sqlite3.Connection):
        # ensure rows behave like dicts/tuples
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_invoices(self, limit: int | None = None, *, status: str | None = None) -> list[InvoiceHeader]:
        """
        Newest first. `status` filters to one of open/paid/canceled.
        """
        sql = f"SELECT {_HEADER_COLUMNS} FROM invoices"
        params: list = []
        if status:
            if status not in INVOICE_STATUSES:
                raise ValidationError(f"Unknown invoice status: {status}", field="status")
            sql += " WHERE status = ?"
            params.append(status)
        sql += " ORDER BY invoice_id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return [InvoiceHeader(**r) for r in self.conn.execute(sql, params).fetchall()]

    def search_invoices(self, query: str = "", date: str | None = None) -> list[InvoiceHeader]:
        """
        Match invoice number, customer name or phone; optionally one issue date.
        """
        where: list[str] = []
        params: list = []

        if query:
            where.append("(number LIKE ? OR customer_name LIKE ? OR customer_phone LIKE ?)")
            params += [f"%{query}%", f"%{query}%", f"%{query}%"]

        if date:
            where.append("DATE(issue_date) = DATE(?)")
            params.append(date)

        sql = f"SELECT {_HEADER_COLUMNS} FROM invoices"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY DATE(issue_date) DESC, invoice_id DESC"

        return [InvoiceHeader(**r) for r in self.conn.execute(sql, params).fetchall()]

    def get_header(self, invoice_id: int) -> InvoiceHeader | None:
        row = self.conn.execute(
            f"SELECT {_HEADER_COLUMNS} FROM invoices WHERE invoice_id=?", (int(invoice_id),)
        ).fetchone()
        return InvoiceHeader(**row) if row else None

    def require_header(self, invoice_id: int) -> InvoiceHeader:
        header = self.get_header(invoice_id)
        if header is None:
            raise InvoiceNotFound(f"Invoice not found: {invoice_id}", invoice_id=invoice_id)
        return header

    def list_items(self, invoice_id: int) -> list[InvoiceItem]:
        sql = """
        SELECT ii.item_id, ii.invoice_id, ii.product_id, ii.description,
               CAST(ii.quantity AS REAL)      AS quantity,
               CAST(ii.unit_price AS REAL)    AS unit_price,
               CAST(ii.line_discount AS REAL) AS line_discount,
               CAST(ii.line_total AS REAL)    AS line_total,
               p.sku
        FROM invoice_items ii
        LEFT JOIN products p ON p.product_id = ii.product_id
        WHERE ii.invoice_id = ?
        ORDER BY ii.item_id
        """
        return [InvoiceItem(**r) for r in self.conn.execute(sql, (int(invoice_id),)).fetchall()]

    def get_invoice_detail(self, invoice_id: int) -> InvoiceDetail:
        """
        Header + lines + payments (newest first) + returns (newest first).
        """
        header = self.require_header(invoice_id)
        return InvoiceDetail(
            invoice=header,
            items=self.list_items(invoice_id),
            payments=InvoicePaymentsRepo(self.conn).list_by_invoice(invoice_id),
            returns=InvoiceReturnsRepo(self.conn).list_by_invoice(invoice_id),
        )

    # ---------------------------------------------------------------------
    # PREVIEW (no writes)
    # ---------------------------------------------------------------------
    @staticmethod
    def preview_totals(
        lines: Iterable[tuple[float, float, float]],
        invoice_discount: float = 0.0,
        tax_rate: float = DEFAULT_TAX_RATE,
    ) -> dict:
        """
        Totals for (quantity, unit_price, line_discount) tuples, as create_invoice
        would store them. Lets a form show running totals before saving.
        """
        totals = [line_total(q, p, d) for (q, p, d) in lines]
        subtotal, taxable, tax_amount, total = invoice_totals(totals, invoice_discount, tax_rate)
        return {
            "line_totals": totals,
            "subtotal": subtotal,
            "taxable": taxable,
            "tax_amount": tax_amount,
            "total": total,
        }

    # ---------------------------------------------------------------------
    # INTERNAL WRITES
    # ---------------------------------------------------------------------
    def _next_number(self, issue_date: str) -> str:
        """YYYYMMDD-NNNN; the sequence is max(invoice_id) + 1."""
        seq = int(
            self.conn.execute("SELECT COALESCE(MAX(invoice_id), 0) + 1 FROM invoices").fetchone()[0]
        )
        return f"{issue_date.replace('-', '')}-{seq:04d}"

    def _resolve_lines(self, lines: list[InvoiceLine]) -> list[dict]:
        """
        Validate requested lines against the products table and compute
        line totals. Raises before anything is written.
        """
        resolved: list[dict] = []
        for ln in lines:
            ok_q, qty = try_parse_float(ln.quantity)
            if not ok_q or qty is None or qty <= 0:
                raise InvalidQuantity("Quantity must be > 0", product_id=ln.product_id)

            prod = self.conn.execute(
                "SELECT product_id, name, CAST(price AS REAL) AS price, CAST(stock AS REAL) AS stock "
                "FROM products WHERE product_id=?",
                (int(ln.product_id),),
            ).fetchone()
            if not prod:
                raise ProductNotFound(f"Product not found: {ln.product_id}", product_id=ln.product_id)

            price = prod["price"] if ln.unit_price is None else ln.unit_price
            ok_p, price = try_parse_float(price)
            if not ok_p or price is None or price < 0:
                raise ValidationError("Unit price must be a number >= 0", product_id=ln.product_id)

            ok_d, disc = try_parse_float(ln.line_discount or 0.0)
            if not ok_d or disc is None or disc < 0:
                raise ValidationError("Line discount must be a number >= 0", product_id=ln.product_id)

            resolved.append(
                {
                    "product_id": int(prod["product_id"]),
                    "description": prod["name"],
                    "stock": float(prod["stock"]),
                    "quantity": float(qty),
                    "unit_price": float(price),
                    "line_discount": float(disc),
                    "line_total": line_total(qty, price, disc),
                }
            )
        return resolved

    @staticmethod
    def _precheck_stock(resolved: list[dict]) -> None:
        """Sum requested quantities per product and compare with stock on hand."""
        requested: dict[int, float] = {}
        on_hand: dict[int, float] = {}
        for r in resolved:
            requested[r["product_id"]] = requested.get(r["product_id"], 0.0) + r["quantity"]
            on_hand[r["product_id"]] = r["stock"]
        for pid, qty in requested.items():
            if on_hand[pid] + EPSILON < qty:
                raise InsufficientStock(
                    f"Insufficient stock for product ID {pid}",
                    product_id=pid,
                    available=on_hand[pid],
                    requested=qty,
                )

    def _insert_header(self, **h) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO invoices (
                number, customer_name, customer_phone, customer_address, issue_date,
                subtotal, discount, tax_rate, tax_amount, total,
                paid, due, status, notes
            )
            VALUES (:number, :customer_name, :customer_phone, :customer_address, :issue_date,
                    :subtotal, :discount, :tax_rate, :tax_amount, :total,
                    0.0, :total, 'open', :notes)
            """,
            h,
        )
        return int(cur.lastrowid)

    def _insert_item(self, invoice_id: int, r: dict) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO invoice_items (
                invoice_id, product_id, description, quantity, unit_price, line_discount, line_total
            ) VALUES (?,?,?,?,?,?,?)
            """,
            (
                invoice_id,
                r["product_id"],
                r["description"],
                r["quantity"],
                r["unit_price"],
                r["line_discount"],
                r["line_total"],
            ),
        )
        return int(cur.lastrowid)

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def create_invoice(
        self,
        items: Iterable[InvoiceLine],
        *,
        customer: CustomerInfo | None = None,
        issue_date: str | date | None = None,
        invoice_discount: float = 0.0,
        tax_rate: float | None = None,
        notes: str | None = None,
        initial_payment: float | None = None,
        payment_method: str | None = None,
    ) -> InvoiceHeader:
        """
        Create an invoice, its lines and stock decrements, plus an optional
        first payment, as a single transaction. Any failure leaves no invoice,
        no lines, no payment and untouched stock.
        """
        lines = list(items)
        if not lines:
            raise ValidationError("No items in invoice")

        try:
            issued = parse_iso_date(issue_date).isoformat() if issue_date else today_str()
        except ValueError as e:
            raise ValidationError(str(e), field="issue_date") from e

        ok_disc, discount = try_parse_float(invoice_discount or 0.0)
        if not ok_disc or discount is None or discount < 0:
            raise ValidationError("Invoice discount must be a number >= 0", field="discount")
        ok_rate, rate = try_parse_float(DEFAULT_TAX_RATE if tax_rate is None else tax_rate)
        if not ok_rate or rate is None or rate < 0:
            raise ValidationError("Tax rate must be a number >= 0", field="tax_rate")

        pay_amount = 0.0
        if initial_payment is not None:
            ok_pay, pay_amount = try_parse_float(initial_payment)
            if not ok_pay or pay_amount is None or pay_amount < 0:
                raise InvalidAmount("Initial payment must be a number >= 0", amount=initial_payment)

        cust = customer or CustomerInfo()

        with immediate_tx(self.conn):
            resolved = self._resolve_lines(lines)
            self._precheck_stock(resolved)

            subtotal, _taxable, tax_amount, total = invoice_totals(
                (r["line_total"] for r in resolved), discount, rate
            )
            number = self._next_number(issued)

            invoice_id = self._insert_header(
                number=number,
                customer_name=clean_text(cust.name),
                customer_phone=clean_text(cust.phone),
                customer_address=clean_text(cust.address),
                issue_date=issued,
                subtotal=subtotal,
                discount=float(discount),
                tax_rate=float(rate),
                tax_amount=tax_amount,
                total=total,
                notes=clean_text(notes),
            )

            inventory = InventoryRepo(self.conn)
            for r in resolved:
                # conditional decrement: the authoritative check under concurrency
                inventory.adjust_stock(r["product_id"], -r["quantity"])
                self._insert_item(invoice_id, r)

            if pay_amount > 0:
                InvoicePaymentsRepo(self.conn).add_payment(
                    invoice_id, pay_amount, payment_method, "Initial payment"
                )

        _log.info(
            "invoice %s (%s) created: %d line(s), total %s",
            invoice_id, number, len(resolved), fmt_money(total),
        )
        return self.require_header(invoice_id)

    def cancel_invoice(self, invoice_id: int) -> InvoiceHeader:
        """
        Mark an invoice canceled. Idempotent; stock, payments and totals stay
        exactly as they were.
        """
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "UPDATE invoices SET status='canceled' WHERE invoice_id=?", (int(invoice_id),)
            )
            if cur.rowcount == 0:
                raise InvoiceNotFound(f"Invoice not found: {invoice_id}", invoice_id=invoice_id)
        _log.info("invoice %s canceled", invoice_id)
        return self.require_header(invoice_id)
