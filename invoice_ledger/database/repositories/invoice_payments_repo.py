from __future__ import annotations

from dataclasses import dataclass
import logging
import sqlite3
from typing import Optional

from ..transactions import immediate_tx
from ...constants import EPSILON
from ...utils.validators import clean_text, try_parse_float
from .errors import InvalidAmount, InvoiceNotFound, PaymentNotFound

_log = logging.getLogger(__name__)


@dataclass
class Payment:
    payment_id: int
    invoice_id: int
    amount: float
    method: str | None
    note: str | None
    paid_at: str | None


_PAYMENT_COLUMNS = (
    "payment_id, invoice_id, CAST(amount AS REAL) AS amount, method, note, paid_at"
)

# invoices.paid moves by :delta; due and status are re-derived from the new paid
# in the same statement. SQLite evaluates every right-hand side against the
# pre-update row, so "paid" below is the old value.
_APPLY_PAID_DELTA_SQL = """
UPDATE invoices
   SET paid   = MAX(0.0, CAST(paid AS REAL) + :delta),
       due    = MAX(0.0, CAST(total AS REAL) - MAX(0.0, CAST(paid AS REAL) + :delta)),
       status = CASE
                  WHEN status = 'canceled' THEN 'canceled'
                  WHEN MAX(0.0, CAST(paid AS REAL) + :delta) + :eps >= CAST(total AS REAL) THEN 'paid'
                  WHEN :recompute THEN 'open'
                  ELSE status
                END
 WHERE invoice_id = :invoice_id
"""


class InvoicePaymentsRepo:
    """
    Repository for payments recorded against invoices (rows in invoice_payments).

    The invoice header keeps a running `paid`, a derived `due` and `status`.
    Each call here changes the payment row and the header roll-up inside one
    transaction, so readers never see one without the other.

    Status rules:
      • add_payment promotes an invoice to 'paid' once paid >= total; it never
        demotes.
      • update_payment / delete_payment recompute 'paid' / 'open' from the new
        paid value.
      • 'canceled' is never changed by payment activity.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # --- validation ---------------------------------------------------------

    @staticmethod
    def _positive_amount(amount) -> float:
        ok, value = try_parse_float(amount)
        if not ok or value is None or value <= 0:
            raise InvalidAmount("Amount must be > 0", amount=amount)
        return float(value)

    def _apply_paid_delta(self, invoice_id: int, delta: float, *, recompute: bool) -> None:
        self.conn.execute(
            _APPLY_PAID_DELTA_SQL,
            {
                "delta": float(delta),
                "eps": EPSILON,
                "recompute": 1 if recompute else 0,
                "invoice_id": int(invoice_id),
            },
        )

    def _require_payment(self, payment_id: int) -> Payment:
        payment = self.get(payment_id)
        if payment is None:
            raise PaymentNotFound(f"Payment not found: {payment_id}", payment_id=payment_id)
        return payment

    # --- API ----------------------------------------------------------------

    def add_payment(
        self,
        invoice_id: int,
        amount: float,
        method: Optional[str] = None,
        note: Optional[str] = None,
    ) -> int:
        """
        Insert a payment and roll it into the invoice header. Returns payment_id.
        """
        value = self._positive_amount(amount)
        with immediate_tx(self.conn):
            exists = self.conn.execute(
                "SELECT 1 FROM invoices WHERE invoice_id=?", (int(invoice_id),)
            ).fetchone()
            if not exists:
                raise InvoiceNotFound(f"Invoice not found: {invoice_id}", invoice_id=invoice_id)

            cur = self.conn.execute(
                "INSERT INTO invoice_payments(invoice_id, amount, method, note) VALUES (?, ?, ?, ?)",
                (int(invoice_id), value, clean_text(method), clean_text(note)),
            )
            payment_id = int(cur.lastrowid)
            self._apply_paid_delta(invoice_id, value, recompute=False)

        _log.info("payment %s of %.2f recorded on invoice %s", payment_id, value, invoice_id)
        return payment_id

    def update_payment(
        self,
        payment_id: int,
        amount: float,
        method: Optional[str] = None,
        note: Optional[str] = None,
    ) -> None:
        """
        Overwrite amount/method/note; the invoice moves by (new - old).
        Unlike add_payment this can demote a 'paid' invoice back to 'open'.
        """
        value = self._positive_amount(amount)
        with immediate_tx(self.conn):
            old = self._require_payment(payment_id)
            self.conn.execute(
                "UPDATE invoice_payments SET amount=?, method=?, note=? WHERE payment_id=?",
                (value, clean_text(method), clean_text(note), int(payment_id)),
            )
            diff = value - old.amount
            self._apply_paid_delta(old.invoice_id, diff, recompute=True)

        _log.info(
            "payment %s on invoice %s changed %.2f -> %.2f",
            payment_id, old.invoice_id, old.amount, value,
        )

    def delete_payment(self, payment_id: int) -> None:
        """
        Remove the payment row and take its amount back off the invoice.
        """
        with immediate_tx(self.conn):
            old = self._require_payment(payment_id)
            self.conn.execute("DELETE FROM invoice_payments WHERE payment_id=?", (int(payment_id),))
            self._apply_paid_delta(old.invoice_id, -old.amount, recompute=True)

        _log.info("payment %s (%.2f) deleted from invoice %s", payment_id, old.amount, old.invoice_id)

    # --- reads --------------------------------------------------------------

    def list_by_invoice(self, invoice_id: int) -> list[Payment]:
        """
        Return all payments for an invoice, newest first.
        """
        rows = self.conn.execute(
            f"""
            SELECT {_PAYMENT_COLUMNS}
              FROM invoice_payments
             WHERE invoice_id = ?
             ORDER BY payment_id DESC
            """,
            (int(invoice_id),),
        ).fetchall()
        return [Payment(**r) for r in rows]

    def get(self, payment_id: int) -> Optional[Payment]:
        row = self.conn.execute(
            f"SELECT {_PAYMENT_COLUMNS} FROM invoice_payments WHERE payment_id = ?",
            (int(payment_id),),
        ).fetchone()
        return Payment(**row) if row else None
