from __future__ import annotations

from typing import Dict
import sqlite3


def get_returnable_quantities(conn: sqlite3.Connection, invoice_id: int) -> Dict[int, float]:
    """
    Compute remaining returnable quantity per invoice line.

    Returns a dict mapping item_id -> remaining_qty (float, clamped to >= 0.0),
    where remaining = sold quantity - sum of returns recorded against the line.
    """
    sql = """
    SELECT item_id, sold_qty, returned_qty
      FROM v_invoice_item_returns
     WHERE invoice_id = ?
    """
    rows = conn.execute(sql, (int(invoice_id),)).fetchall()
    out: Dict[int, float] = {}
    for r in rows:
        if hasattr(r, "keys"):
            item_id = int(r["item_id"])
            sold_qty = float(r["sold_qty"])
            returned_so_far = float(r["returned_qty"])
        else:
            item_id = int(r[0])
            sold_qty = float(r[1])
            returned_so_far = float(r[2])
        out[item_id] = max(0.0, sold_qty - returned_so_far)
    return out
