from __future__ import annotations

import pytest

from invoice_ledger.database.repositories import DomainError, InsufficientStock, InvalidAmount, ValidationError
from invoice_ledger.utils.calculations import (
    clamp_non_negative,
    invoice_totals,
    line_total,
    remaining_due,
    round_money,
    status_from_paid,
)
from invoice_ledger.utils.helpers import fmt_money, parse_iso_date
from invoice_ledger.utils.validators import clean_text, is_strictly_positive_number, parse_float, try_parse_float


def test_round_money_is_half_up():
    assert round_money(0.125) == 0.13
    assert round_money(2.675) == 2.68
    assert round_money(1.004) == 1.0


def test_line_and_invoice_totals():
    assert line_total(3, 100.0) == 300.0
    assert line_total(1, 5.0, 9.0) == 0.0
    assert invoice_totals([300.0], 0.0, 5) == (300.0, 300.0, 15.0, 315.0)
    # discount larger than subtotal clamps to zero before tax
    assert invoice_totals([10.0], 25.0, 10) == (10.0, 0.0, 0.0, 0.0)


def test_due_and_status():
    assert clamp_non_negative(-3) == 0.0
    assert remaining_due(100, 120) == 0.0
    assert remaining_due(100, 40) == 60.0
    assert status_from_paid(100, 100) == "paid"
    assert status_from_paid(100, 99.99) == "open"
    assert status_from_paid(100, 500, "canceled") == "canceled"


def test_domain_error_payload():
    err = InsufficientStock("Insufficient stock for product ID 1", product_id=1, available=2.0, requested=5.0)
    assert isinstance(err, DomainError)
    assert err.kind == "InsufficientStock"
    assert err.to_dict() == {
        "kind": "InsufficientStock",
        "message": "Insufficient stock for product ID 1",
        "product_id": 1,
        "available": 2.0,
        "requested": 5.0,
    }
    assert issubclass(InvalidAmount, ValidationError)


def test_helpers():
    assert parse_iso_date("2026-01-10T09:30:00").isoformat() == "2026-01-10"
    with pytest.raises(ValueError):
        parse_iso_date("not a date")
    assert fmt_money(1234.5) == "1,234.50"
    assert fmt_money("x", sentinel="N/A") == "N/A"
    assert clean_text("  ") is None
    assert is_strictly_positive_number("0.5")
    assert not is_strictly_positive_number(float("nan"))
    assert try_parse_float("inf") == (False, None)
    with pytest.raises(ValueError):
        parse_float("abc")
