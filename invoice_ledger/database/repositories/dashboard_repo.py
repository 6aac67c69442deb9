# invoice_ledger/database/repositories/dashboard_repo.py
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from ...constants import LOW_STOCK_THRESHOLD


def _to_float(x: Optional[Any]) -> float:
    try:
        return float(x or 0.0)
    except (TypeError, ValueError):
        return 0.0


class DashboardRepo:
    """
    Thin query layer for the Dashboard.

    All methods are read-only. Each returns a number or a list[dict].
    Receivables exclude canceled invoices: cancellation keeps the stored due
    untouched, so it has to be filtered here.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    def product_count(self) -> int:
        return int(self._scalar("SELECT COUNT(*) FROM products") or 0)

    def total_due(self) -> float:
        sql = """
            SELECT COALESCE(SUM(CAST(due AS REAL)), 0.0)
              FROM invoices
             WHERE status != 'canceled'
        """
        return _to_float(self._scalar(sql))

    def recent_invoices(self, limit: int = 10) -> List[Dict]:
        rows = self.conn.execute(
            """
            SELECT invoice_id, number, customer_name, issue_date,
                   CAST(total AS REAL) AS total,
                   CAST(due AS REAL)   AS due,
                   status
              FROM invoices
             ORDER BY invoice_id DESC
             LIMIT ?
            """,
            (int(limit),),
        ).fetchall()
        return [dict(r) for r in rows]

    def low_stock_count(self, threshold: float = LOW_STOCK_THRESHOLD) -> int:
        return int(
            self._scalar(
                "SELECT COUNT(*) FROM products WHERE CAST(stock AS REAL) <= ?", (float(threshold),)
            )
            or 0
        )

    # ----------------------------- helpers -----------------------------

    def _scalar(self, sql: str, params: tuple = ()) -> Any:
        row = self.conn.execute(sql, params).fetchone()
        return None if row is None else row[0]
