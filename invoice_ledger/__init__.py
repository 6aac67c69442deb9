"""Invoice & inventory ledger: products, invoices, payments and returns on SQLite."""

__version__ = "0.1.0"
