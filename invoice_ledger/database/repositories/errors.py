"""
Domain errors raised by the repositories.

Each error carries a stable `kind` (the class name) and a human-readable
message so the presentation layer can show a banner/toast without parsing
strings. Compound operations raise these from inside their transaction, so
the transaction is rolled back before the error reaches the caller.
"""
from __future__ import annotations


class DomainError(Exception):
    """Domain-level error suitable for surfacing to the UI."""

    def __init__(self, message: str = "", **details):
        super().__init__(message)
        self.message = message
        self.details = details

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, **self.details}


class ValidationError(DomainError):
    """Missing name, non-positive quantity/amount, malformed input."""


class InvalidQuantity(ValidationError):
    pass


class InvalidAmount(ValidationError):
    pass


class InsufficientStock(DomainError):
    pass


class ProductNotFound(DomainError):
    pass


class ProductInUse(DomainError):
    pass


class InvoiceNotFound(DomainError):
    pass


class ItemNotFound(DomainError):
    pass


class PaymentNotFound(DomainError):
    pass


class ReturnNotFound(DomainError):
    pass


class ReturnWindowExpired(DomainError):
    pass


class ExceedsSoldQuantity(DomainError):
    pass


__all__ = [
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
]
