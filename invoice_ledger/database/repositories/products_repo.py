# invoice_ledger/database/repositories/products_repo.py
from __future__ import annotations

from dataclasses import dataclass
import logging
import sqlite3

from ..transactions import immediate_tx
from ...utils.validators import clean_text, is_non_negative_number, non_empty, parse_float
from .errors import ProductInUse, ProductNotFound, ValidationError

_log = logging.getLogger(__name__)


@dataclass
class Product:
    product_id: int | None
    sku: str | None
    name: str
    price: float
    stock: float
    created_at: str | None = None


_PRODUCT_COLUMNS = (
    "product_id, sku, name, CAST(price AS REAL) AS price, "
    "CAST(stock AS REAL) AS stock, created_at"
)


class ProductsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        # Use Row for named access; we normalize to dataclasses where we return products.
        self.conn.row_factory = sqlite3.Row

    # ---------------------------- Queries ----------------------------

    def list_products(self) -> list[Product]:
        rows = self.conn.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY product_id DESC"
        ).fetchall()
        return [Product(**r) for r in rows]

    def get(self, product_id: int) -> Product | None:
        r = self.conn.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE product_id=?",
            (product_id,),
        ).fetchone()
        return Product(**r) if r else None

    def get_by_sku(self, sku: str) -> Product | None:
        r = self.conn.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE sku=?",
            (sku,),
        ).fetchone()
        return Product(**r) if r else None

    # ---------------------------- Mutations ----------------------------

    @staticmethod
    def _validated_fields(sku, name, price, stock) -> tuple[str | None, str, float, float]:
        if not non_empty(name):
            raise ValidationError("Product name required", field="name")
        price = 0 if price is None else price
        stock = 0 if stock is None else stock
        if not is_non_negative_number(price):
            raise ValidationError("Price must be a number >= 0", field="price")
        if not is_non_negative_number(stock):
            raise ValidationError("Stock must be a number >= 0", field="stock")
        return clean_text(sku), str(name).strip(), parse_float(price), parse_float(stock)

    def upsert_product(
        self,
        *,
        name: str,
        price: float = 0.0,
        stock: float = 0.0,
        sku: str | None = None,
        product_id: int | None = None,
    ) -> Product:
        """
        Insert a product, or overwrite sku/name/price/stock of an existing one
        when `product_id` is given. A blank SKU is stored as NULL.
        """
        sku_n, name_n, price_v, stock_v = self._validated_fields(sku, name, price, stock)

        try:
            with immediate_tx(self.conn):
                if product_id:
                    cur = self.conn.execute(
                        "UPDATE products SET sku=?, name=?, price=?, stock=? WHERE product_id=?",
                        (sku_n, name_n, price_v, stock_v, int(product_id)),
                    )
                    if cur.rowcount == 0:
                        raise ProductNotFound(
                            f"Product not found: {product_id}", product_id=int(product_id)
                        )
                    pid = int(product_id)
                else:
                    cur = self.conn.execute(
                        "INSERT INTO products(sku, name, price, stock) VALUES (?, ?, ?, ?)",
                        (sku_n, name_n, price_v, stock_v),
                    )
                    pid = int(cur.lastrowid)
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e) and "sku" in str(e):
                raise ValidationError(f"SKU already in use: {sku_n}", field="sku") from e
            raise

        _log.info("product %s saved (sku=%s, stock=%g)", pid, sku_n, stock_v)
        product = self.get(pid)
        if product is None:
            raise ProductNotFound(f"Product not found: {pid}", product_id=pid)
        return product

    def _product_is_referenced(self, product_id: int) -> bool:
        """
        Invoice lines and returns keep a plain FK to products (no cascade).
        Deleting a referenced product would fail or orphan ledger rows.
        """
        checks = [
            "SELECT 1 FROM invoice_items   WHERE product_id=? LIMIT 1",
            "SELECT 1 FROM invoice_returns WHERE product_id=? LIMIT 1",
        ]
        for sql in checks:
            if self.conn.execute(sql, (product_id,)).fetchone():
                return True
        return False

    def delete_product(self, product_id: int) -> None:
        """
        Safer delete: disallow if any invoice line references the product.
        """
        with immediate_tx(self.conn):
            if self.get(product_id) is None:
                raise ProductNotFound(f"Product not found: {product_id}", product_id=product_id)
            if self._product_is_referenced(product_id):
                raise ProductInUse(
                    "Cannot delete product: it is referenced by invoice lines.",
                    product_id=product_id,
                )
            self.conn.execute("DELETE FROM products WHERE product_id=?", (product_id,))
        _log.info("product %s deleted", product_id)
