"""
Repository for stock-on-hand (products.stock) and its adjustments.

Stock is a single REAL column per product. Sales decrement it, returns
increment it, direct product edits overwrite it. Every change goes through
`adjust_stock`, which is one conditional UPDATE: the "is there enough?" check
and the write happen in the same statement, so two concurrent invoices can
never both pass a check against the same quantity.

Conventions:
- List-returning methods yield `list[dict]` (sqlite3.Row -> dict).
- Quantities are cast to float for consistent display.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Dict, List

from ..transactions import immediate_tx
from ...constants import EPSILON, LOW_STOCK_THRESHOLD
from ...utils.validators import try_parse_float
from .errors import InsufficientStock, InvalidQuantity, ProductNotFound

_log = logging.getLogger(__name__)


class InventoryRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_stock(self, product_id: int) -> float:
        row = self.conn.execute(
            "SELECT CAST(stock AS REAL) AS stock FROM products WHERE product_id=?",
            (int(product_id),),
        ).fetchone()
        if not row:
            raise ProductNotFound(f"Product not found: {product_id}", product_id=int(product_id))
        return float(row["stock"])

    def low_stock(self, threshold: float = LOW_STOCK_THRESHOLD) -> List[Dict]:
        """
        Products at or below `threshold`, lowest stock first.
        """
        rows = self.conn.execute(
            """
            SELECT product_id, sku, name, CAST(stock AS REAL) AS stock
              FROM products
             WHERE CAST(stock AS REAL) <= ?
             ORDER BY CAST(stock AS REAL) ASC, product_id ASC
            """,
            (float(threshold),),
        ).fetchall()
        return [self._row_to_dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Adjustments
    # ------------------------------------------------------------------
    def adjust_stock(self, product_id: int, delta: float) -> float:
        """
        Apply stock += delta atomically, refusing to go below zero.

        Returns the new stock. Raises ProductNotFound for an unknown product and
        InsufficientStock when a negative delta exceeds what is on hand; in both
        cases nothing is written. Joins the caller's transaction if one is open.
        """
        pid = int(product_id)
        ok, d = try_parse_float(delta)
        if not ok:
            raise InvalidQuantity("Stock delta must be a finite number", product_id=pid)
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                """
                UPDATE products
                   SET stock = MAX(0.0, CAST(stock AS REAL) + ?)
                 WHERE product_id = ?
                   AND CAST(stock AS REAL) + ? >= ?
                """,
                (d, pid, d, -EPSILON),
            )
            if cur.rowcount == 0:
                row = self.conn.execute(
                    "SELECT CAST(stock AS REAL) AS stock FROM products WHERE product_id=?",
                    (pid,),
                ).fetchone()
                if not row:
                    raise ProductNotFound(f"Product not found: {pid}", product_id=pid)
                _log.warning(
                    "stock adjustment rejected: product %s has %g, delta %g",
                    pid, float(row["stock"]), d,
                )
                raise InsufficientStock(
                    f"Insufficient stock for product ID {pid}",
                    product_id=pid,
                    available=float(row["stock"]),
                    requested=-d,
                )
            return self.get_stock(pid)

    @staticmethod
    def _positive_qty(product_id: int, qty: float) -> float:
        ok, value = try_parse_float(qty)
        if not ok or value <= 0:
            raise InvalidQuantity("Quantity must be > 0", product_id=int(product_id))
        return value

    def decrement_for_sale(self, product_id: int, qty: float) -> float:
        return self.adjust_stock(product_id, -self._positive_qty(product_id, qty))

    def restock(self, product_id: int, qty: float) -> float:
        """Unconditional add (returns); only fails for an unknown product."""
        return self.adjust_stock(product_id, self._positive_qty(product_id, qty))

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------
    @staticmethod
    def _row_to_dict(r: sqlite3.Row | dict) -> Dict:
        return dict(r)
