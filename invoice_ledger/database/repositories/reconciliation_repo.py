# invoice_ledger/database/repositories/reconciliation_repo.py
from __future__ import annotations

from dataclasses import dataclass
import logging
import sqlite3
from typing import Optional

from ..transactions import immediate_tx
from ...constants import EPSILON
from ...utils.calculations import remaining_due, status_from_paid
from .errors import InvoiceNotFound

_log = logging.getLogger(__name__)

# money comparisons tolerate float noise from repeated += on REAL columns
_TOLERANCE = 1e-6


@dataclass
class LedgerDrift:
    invoice_id: int
    number: str
    field: str          # 'paid' | 'due' | 'status'
    stored: object
    expected: object


class ReconciliationRepo:
    """
    Cross-checks the stored invoice roll-up against the rows it summarizes.

    invoices.paid / due / status are maintained incrementally by the payments
    and returns repos. This repo recomputes what they should be:

      paid   == SUM(invoice_payments.amount)
      due    == max(0, total - paid)
      status == 'paid' iff paid >= total (unless 'canceled')

    find_drift() only reports; rebuild_invoice() rewrites one header from its
    payments (for migrations and repair scripts).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    def find_drift(self, invoice_id: Optional[int] = None) -> list[LedgerDrift]:
        sql = """
            SELECT i.invoice_id, i.number, i.status,
                   CAST(i.total AS REAL) AS total,
                   CAST(i.paid AS REAL)  AS paid,
                   CAST(i.due AS REAL)   AS due,
                   v.payments_sum
              FROM invoices i
              JOIN v_invoice_payment_totals v ON v.invoice_id = i.invoice_id
        """
        params: tuple = ()
        if invoice_id is not None:
            sql += " WHERE i.invoice_id = ?"
            params = (int(invoice_id),)
        sql += " ORDER BY i.invoice_id"

        out: list[LedgerDrift] = []
        for r in self.conn.execute(sql, params).fetchall():
            iid, number = int(r["invoice_id"]), r["number"]
            paid, total, due = float(r["paid"]), float(r["total"]), float(r["due"])
            payments_sum = float(r["payments_sum"])

            if abs(paid - payments_sum) > _TOLERANCE:
                out.append(LedgerDrift(iid, number, "paid", paid, payments_sum))

            expected_due = remaining_due(total, paid)
            if abs(due - expected_due) > _TOLERANCE:
                out.append(LedgerDrift(iid, number, "due", due, expected_due))

            expected_status = status_from_paid(total, paid, r["status"])
            if r["status"] != expected_status:
                out.append(LedgerDrift(iid, number, "status", r["status"], expected_status))

        if out:
            _log.warning("ledger drift on %d field(s)", len(out))
        return out

    def rebuild_invoice(self, invoice_id: int) -> None:
        """
        Recompute paid from payments, then due and status from paid/total.
        A canceled invoice stays canceled.
        """
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                """
                UPDATE invoices
                   SET paid   = (SELECT COALESCE(SUM(CAST(amount AS REAL)), 0.0)
                                   FROM invoice_payments WHERE invoice_id = :iid),
                       due    = MAX(0.0, CAST(total AS REAL) -
                                  (SELECT COALESCE(SUM(CAST(amount AS REAL)), 0.0)
                                     FROM invoice_payments WHERE invoice_id = :iid)),
                       status = CASE
                                  WHEN status = 'canceled' THEN 'canceled'
                                  WHEN (SELECT COALESCE(SUM(CAST(amount AS REAL)), 0.0)
                                          FROM invoice_payments WHERE invoice_id = :iid) + :eps
                                       >= CAST(total AS REAL) THEN 'paid'
                                  ELSE 'open'
                                END
                 WHERE invoice_id = :iid
                """,
                {"iid": int(invoice_id), "eps": EPSILON},
            )
            if cur.rowcount == 0:
                raise InvoiceNotFound(f"Invoice not found: {invoice_id}", invoice_id=invoice_id)
        _log.info("invoice %s roll-up rebuilt from payments", invoice_id)
