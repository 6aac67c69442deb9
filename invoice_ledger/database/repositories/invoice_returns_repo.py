from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
import logging
import sqlite3
from typing import Callable, Dict, Optional, Union

from ..transactions import immediate_tx
from ...constants import ENFORCE_REMAINING_RETURNABLE, EPSILON, RETURN_WINDOW_DAYS
from ...utils.helpers import parse_iso_date
from ...utils.validators import clean_text, try_parse_float
from .errors import (
    ExceedsSoldQuantity,
    InvalidQuantity,
    InvoiceNotFound,
    ItemNotFound,
    ReturnNotFound,
    ReturnWindowExpired,
)
from .inventory_repo import InventoryRepo
from .returns_helpers import get_returnable_quantities

_log = logging.getLogger(__name__)

Clock = Callable[[], Union[date, datetime]]


@dataclass
class ReturnRecord:
    return_id: int
    invoice_id: int
    item_id: int
    product_id: int
    quantity: float
    reason: str | None
    restocked: int
    returned_at: str | None
    sku: str | None = None


_RETURN_COLUMNS = """
    r.return_id, r.invoice_id, r.item_id, r.product_id,
    CAST(r.quantity AS REAL) AS quantity,
    r.reason, r.restocked, r.returned_at, p.sku
"""

# total drops by :credit; due/status are re-derived against the new total.
_APPLY_CREDIT_SQL = """
UPDATE invoices
   SET total  = MAX(0.0, CAST(total AS REAL) - :credit),
       due    = MAX(0.0, MAX(0.0, CAST(total AS REAL) - :credit) - CAST(paid AS REAL)),
       status = CASE
                  WHEN status = 'canceled' THEN 'canceled'
                  WHEN CAST(paid AS REAL) + :eps >= MAX(0.0, CAST(total AS REAL) - :credit) THEN 'paid'
                  ELSE 'open'
                END
 WHERE invoice_id = :invoice_id
"""


class InvoiceReturnsRepo:
    """
    Item returns against issued invoices.

    process_return() validates the policy window and quantity, records the
    return, restocks the product and credits the invoice in one transaction.
    The credit is quantity * line unit price; the line's own discount is not
    prorated.

    Known limitations:
      • update_return() only rewrites quantity/reason; stock and invoice
        totals keep the effect of the original quantity.
      • delete_return() removes the row only; the restock and the credit stay.
      • By default a line's sold quantity bounds each return on its own, so
        repeated returns can exceed what was sold. Pass enforce_remaining=True
        to bound by sold minus already-returned instead.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        clock: Optional[Clock] = None,
        window_days: int = RETURN_WINDOW_DAYS,
        enforce_remaining: bool = ENFORCE_REMAINING_RETURNABLE,
    ):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.clock: Clock = clock or datetime.now
        self.window_days = int(window_days)
        self.enforce_remaining = bool(enforce_remaining)

    # ---------------------------------------------------------------------
    # Policy
    # ---------------------------------------------------------------------
    def _now(self) -> datetime:
        # a bare date from the clock counts as midnight of that day
        now = self.clock()
        if isinstance(now, datetime):
            return now.replace(tzinfo=None) if now.tzinfo else now
        return datetime.combine(now, time.min)

    def return_deadline(self, issue_date: str) -> datetime:
        """Last accepted instant: midnight of the issue date plus the window."""
        start = datetime.combine(parse_iso_date(issue_date), time.min)
        return start + timedelta(days=self.window_days)

    def last_return_date(self, issue_date: str) -> date:
        return self.return_deadline(issue_date).date()

    def window_open(self, issue_date: str) -> bool:
        return self._now() <= self.return_deadline(issue_date)

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def process_return(
        self,
        invoice_id: int,
        item_id: int,
        qty: float,
        reason: str | None = None,
    ) -> ReturnRecord:
        ok, quantity = try_parse_float(qty)
        if not ok or quantity is None or quantity <= 0:
            raise InvalidQuantity("Return qty must be > 0", item_id=item_id)

        with immediate_tx(self.conn):
            inv = self.conn.execute(
                "SELECT invoice_id, issue_date FROM invoices WHERE invoice_id=?",
                (int(invoice_id),),
            ).fetchone()
            if not inv:
                raise InvoiceNotFound(f"Invoice not found: {invoice_id}", invoice_id=invoice_id)

            if not self.window_open(inv["issue_date"]):
                _log.warning("return on invoice %s refused: window closed", invoice_id)
                raise ReturnWindowExpired(
                    "Return window expired",
                    invoice_id=invoice_id,
                    last_return_date=self.last_return_date(inv["issue_date"]).isoformat(),
                    deadline=self.return_deadline(inv["issue_date"]).isoformat(),
                )

            item = self.conn.execute(
                """
                SELECT item_id, product_id,
                       CAST(quantity AS REAL)   AS quantity,
                       CAST(unit_price AS REAL) AS unit_price
                  FROM invoice_items
                 WHERE item_id=? AND invoice_id=?
                """,
                (int(item_id), int(invoice_id)),
            ).fetchone()
            if not item:
                raise ItemNotFound(
                    "Invoice item not found", invoice_id=invoice_id, item_id=item_id
                )

            limit = float(item["quantity"])
            if self.enforce_remaining:
                limit = get_returnable_quantities(self.conn, invoice_id).get(int(item_id), 0.0)
            if quantity > limit + EPSILON:
                raise ExceedsSoldQuantity(
                    "Cannot return more than sold",
                    item_id=item_id,
                    requested=quantity,
                    allowed=limit,
                )

            cur = self.conn.execute(
                """
                INSERT INTO invoice_returns(invoice_id, item_id, product_id, quantity, reason, restocked)
                VALUES (?, ?, ?, ?, ?, 1)
                """,
                (int(invoice_id), int(item_id), int(item["product_id"]), quantity, clean_text(reason)),
            )
            return_id = int(cur.lastrowid)

            InventoryRepo(self.conn).restock(int(item["product_id"]), quantity)

            credit = quantity * float(item["unit_price"])
            self.conn.execute(
                _APPLY_CREDIT_SQL,
                {"credit": credit, "eps": EPSILON, "invoice_id": int(invoice_id)},
            )

        _log.info(
            "return %s on invoice %s: %g of item %s restocked, credit %.2f",
            return_id, invoice_id, quantity, item_id, credit,
        )
        record = self.get(return_id)
        if record is None:
            raise ReturnNotFound(f"Return not found: {return_id}", return_id=return_id)
        return record

    def update_return(self, return_id: int, qty: float, reason: str | None = None) -> None:
        """
        Correct the clerical fields of a return. Stock and invoice totals are
        NOT re-derived from the new quantity.
        """
        ok, quantity = try_parse_float(qty)
        if not ok or quantity is None or quantity <= 0:
            raise InvalidQuantity("Return qty must be > 0", return_id=return_id)
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "UPDATE invoice_returns SET quantity=?, reason=? WHERE return_id=?",
                (quantity, clean_text(reason), int(return_id)),
            )
            if cur.rowcount == 0:
                raise ReturnNotFound(f"Return not found: {return_id}", return_id=return_id)
        _log.info("return %s edited (quantity %g); stock and totals unchanged", return_id, quantity)

    def delete_return(self, return_id: int) -> None:
        """
        Remove a return record. Its restock and credit are NOT reversed.
        """
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "DELETE FROM invoice_returns WHERE return_id=?", (int(return_id),)
            )
            if cur.rowcount == 0:
                raise ReturnNotFound(f"Return not found: {return_id}", return_id=return_id)
        _log.info("return %s deleted; stock and totals unchanged", return_id)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get(self, return_id: int) -> ReturnRecord | None:
        row = self.conn.execute(
            f"""
            SELECT {_RETURN_COLUMNS}
              FROM invoice_returns r
              LEFT JOIN products p ON p.product_id = r.product_id
             WHERE r.return_id = ?
            """,
            (int(return_id),),
        ).fetchone()
        return ReturnRecord(**row) if row else None

    def list_by_invoice(self, invoice_id: int) -> list[ReturnRecord]:
        rows = self.conn.execute(
            f"""
            SELECT {_RETURN_COLUMNS}
              FROM invoice_returns r
              LEFT JOIN products p ON p.product_id = r.product_id
             WHERE r.invoice_id = ?
             ORDER BY r.return_id DESC
            """,
            (int(invoice_id),),
        ).fetchall()
        return [ReturnRecord(**r) for r in rows]

    def returnable_quantities(self, invoice_id: int) -> Dict[int, float]:
        return get_returnable_quantities(self.conn, invoice_id)
