from pathlib import Path
import logging
import sqlite3
import sys

_log = logging.getLogger(__name__)

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== CORE TABLES ======================== */

/* -------- products -------- */
CREATE TABLE IF NOT EXISTS products (
    product_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    sku         TEXT UNIQUE,
    name        TEXT NOT NULL CHECK (length(trim(name)) > 0),
    price       REAL NOT NULL DEFAULT 0 CHECK (price >= 0),
    stock       REAL NOT NULL DEFAULT 0 CHECK (stock >= 0),
    created_at  TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_products_name ON products(name);

/* -------- invoices (header) -------- */
CREATE TABLE IF NOT EXISTS invoices (
    invoice_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    number           TEXT UNIQUE NOT NULL,
    customer_name    TEXT,
    customer_phone   VARCHAR(15),
    customer_address TEXT,
    issue_date       DATE NOT NULL,

    /* totals */
    subtotal    REAL NOT NULL DEFAULT 0 CHECK (subtotal >= 0),
    discount    REAL NOT NULL DEFAULT 0 CHECK (discount >= 0),    -- invoice-level amount
    tax_rate    REAL NOT NULL DEFAULT 0 CHECK (tax_rate >= 0),    -- percent
    tax_amount  REAL NOT NULL DEFAULT 0 CHECK (tax_amount >= 0),
    total       REAL NOT NULL DEFAULT 0 CHECK (total >= 0),

    /* payment roll-up (maintained by the payments/returns repos) */
    paid        REAL NOT NULL DEFAULT 0 CHECK (paid >= 0),
    due         REAL NOT NULL DEFAULT 0 CHECK (due >= 0),
    status      TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open','paid','canceled')),

    notes       TEXT,
    created_at  TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_invoices_issue_date ON invoices(issue_date);
CREATE INDEX IF NOT EXISTS idx_invoices_status     ON invoices(status);

/* -------- invoice lines -------- */
CREATE TABLE IF NOT EXISTS invoice_items (
    item_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id    INTEGER NOT NULL,
    product_id    INTEGER NOT NULL,
    description   TEXT,                 -- product name snapshot at invoice time
    quantity      REAL NOT NULL CHECK (quantity > 0),
    unit_price    REAL NOT NULL CHECK (unit_price >= 0),
    line_discount REAL NOT NULL DEFAULT 0 CHECK (line_discount >= 0),
    line_total    REAL NOT NULL CHECK (line_total >= 0),
    FOREIGN KEY (invoice_id) REFERENCES invoices(invoice_id) ON DELETE CASCADE,
    FOREIGN KEY (product_id) REFERENCES products(product_id)
);
CREATE INDEX IF NOT EXISTS idx_invoice_items_invoice ON invoice_items(invoice_id);
CREATE INDEX IF NOT EXISTS idx_invoice_items_product ON invoice_items(product_id);

/* -------- payments -------- */
CREATE TABLE IF NOT EXISTS invoice_payments (
    payment_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id  INTEGER NOT NULL,
    amount      REAL NOT NULL CHECK (amount > 0),
    method      TEXT,
    note        TEXT,
    paid_at     TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (invoice_id) REFERENCES invoices(invoice_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_invoice_payments_invoice ON invoice_payments(invoice_id);

/* -------- returns -------- */
CREATE TABLE IF NOT EXISTS invoice_returns (
    return_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    invoice_id  INTEGER NOT NULL,
    item_id     INTEGER NOT NULL,
    product_id  INTEGER NOT NULL,
    quantity    REAL NOT NULL CHECK (quantity > 0),
    reason      TEXT,
    restocked   INTEGER NOT NULL DEFAULT 1 CHECK (restocked IN (0,1)),
    returned_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (invoice_id) REFERENCES invoices(invoice_id)    ON DELETE CASCADE,
    FOREIGN KEY (item_id)    REFERENCES invoice_items(item_id)  ON DELETE CASCADE,
    FOREIGN KEY (product_id) REFERENCES products(product_id)
);
CREATE INDEX IF NOT EXISTS idx_invoice_returns_invoice ON invoice_returns(invoice_id);
CREATE INDEX IF NOT EXISTS idx_invoice_returns_item    ON invoice_returns(item_id);

/* ======================== GUARDS ======================== */

/* A return row must point at a line of the same invoice and the same product. */
DROP TRIGGER IF EXISTS trg_invoice_returns_ref_validate;
CREATE TRIGGER trg_invoice_returns_ref_validate
BEFORE INSERT ON invoice_returns
FOR EACH ROW
BEGIN
  SELECT CASE
    WHEN NOT EXISTS (
      SELECT 1 FROM invoice_items ii
       WHERE ii.item_id = NEW.item_id
         AND ii.invoice_id = NEW.invoice_id
         AND ii.product_id = NEW.product_id
    )
    THEN RAISE(ABORT, 'Return must reference a line of the same invoice')
    ELSE 1
  END;
END;

/* ======================== VIEWS ======================== */

/* Payments actually on file per invoice, for reconciliation against invoices.paid */
DROP VIEW IF EXISTS v_invoice_payment_totals;
CREATE VIEW v_invoice_payment_totals AS
SELECT
  i.invoice_id,
  CAST(i.paid AS REAL)                            AS paid,
  COALESCE(SUM(CAST(p.amount AS REAL)), 0.0)      AS payments_sum,
  COUNT(p.payment_id)                             AS payments_count
FROM invoices i
LEFT JOIN invoice_payments p ON p.invoice_id = i.invoice_id
GROUP BY i.invoice_id;

/* Sold vs returned per line */
DROP VIEW IF EXISTS v_invoice_item_returns;
CREATE VIEW v_invoice_item_returns AS
SELECT
  ii.item_id,
  ii.invoice_id,
  ii.product_id,
  CAST(ii.quantity AS REAL)                       AS sold_qty,
  COALESCE(SUM(CAST(r.quantity AS REAL)), 0.0)    AS returned_qty
FROM invoice_items ii
LEFT JOIN invoice_returns r ON r.item_id = ii.item_id
GROUP BY ii.item_id;
"""


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply the (idempotent) DDL on an open connection."""
    conn.executescript(SQL)


def init_schema(db_path: Path | str = "ledger.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        apply_schema(conn)
        conn.commit()
    finally:
        conn.close()
    _log.info("schema applied to %s", db_path)


if __name__ == "__main__":
    from ..config import DB_PATH
    from ..utils.loggers import get_logger

    get_logger()
    target = sys.argv[1] if len(sys.argv) > 1 else DB_PATH
    init_schema(target)
