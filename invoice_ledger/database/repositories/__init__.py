# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from invoice_ledger.database.repositories import (
        # Products & stock
        ProductsRepo, Product, InventoryRepo,
        # Invoices
        InvoicesRepo, InvoiceHeader, InvoiceItem, InvoiceLine, CustomerInfo, InvoiceDetail,
        # Payments & returns
        InvoicePaymentsRepo, Payment, InvoiceReturnsRepo, ReturnRecord,
        # Checks & dashboard
        ReconciliationRepo, LedgerDrift, DashboardRepo,
        # Errors
        DomainError, ValidationError, InsufficientStock, ...
    )
"""

# ----------------- Errors ------------------
from .errors import (
    DomainError,
    ValidationError,
    InvalidQuantity,
    InvalidAmount,
    InsufficientStock,
    ProductNotFound,
    ProductInUse,
    InvoiceNotFound,
    ItemNotFound,
    PaymentNotFound,
    ReturnNotFound,
    ReturnWindowExpired,
    ExceedsSoldQuantity,
)

# ---------------- Products -----------------
from .products_repo import ProductsRepo, Product

# ---------------- Inventory ----------------
from .inventory_repo import InventoryRepo

# ---------------- Invoices -----------------
from .invoices_repo import (
    InvoicesRepo,
    InvoiceHeader,
    InvoiceItem,
    InvoiceLine,
    InvoiceDetail,
    CustomerInfo,
)

# -------------- Payments/returns -----------
from .invoice_payments_repo import InvoicePaymentsRepo, Payment
from .invoice_returns_repo import InvoiceReturnsRepo, ReturnRecord
from .returns_helpers import get_returnable_quantities

# ------------- Checks & dashboard ----------
from .reconciliation_repo import ReconciliationRepo, LedgerDrift
from .dashboard_repo import DashboardRepo

__all__ = [
    # errors
    "DomainError",
    "ValidationError",
    "InvalidQuantity",
    "InvalidAmount",
    "InsufficientStock",
    "ProductNotFound",
    "ProductInUse",
    "InvoiceNotFound",
    "ItemNotFound",
    "PaymentNotFound",
    "ReturnNotFound",
    "ReturnWindowExpired",
    "ExceedsSoldQuantity",
    # products / inventory
    "ProductsRepo",
    "Product",
    "InventoryRepo",
    # invoices
    "InvoicesRepo",
    "InvoiceHeader",
    "InvoiceItem",
    "InvoiceLine",
    "InvoiceDetail",
    "CustomerInfo",
    # payments / returns
    "InvoicePaymentsRepo",
    "Payment",
    "InvoiceReturnsRepo",
    "ReturnRecord",
    "get_returnable_quantities",
    # checks / dashboard
    "ReconciliationRepo",
    "LedgerDrift",
    "DashboardRepo",
]
