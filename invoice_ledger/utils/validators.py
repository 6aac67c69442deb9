# utils/validators.py
import math


def non_empty(text: str) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


# ---- Numeric parsing & validators ----

def try_parse_float(x):
    """
    Best-effort parse to a finite float.

    Returns:
        (ok: bool, value: float|None)

    ok == False means parsing failed (or gave NaN/inf) and value is None.
    """
    try:
        value = float(x)
    except (TypeError, ValueError):
        return False, None
    if not math.isfinite(value):
        return False, None
    return True, value


def parse_float(x) -> float:
    """
    Strict parse to float; raises ValueError with a clear message on failure.
    Repositories turn this into a ValidationError for the caller.
    """
    ok, val = try_parse_float(x)
    if not ok:
        raise ValueError(f"Could not parse '{x}' as a number.")
    return val  # type: ignore[return-value]


def is_non_negative_number(x) -> bool:
    """
    True iff x parses to a float and value >= 0.
    """
    ok, val = try_parse_float(x)
    return bool(ok and val is not None and val >= 0)


def is_strictly_positive_number(x) -> bool:
    """
    True iff x parses to a float and value > 0.
    """
    ok, val = try_parse_float(x)
    return bool(ok and val is not None and val > 0)


def clean_text(text) -> str | None:
    """Trim surrounding whitespace; blank input becomes None."""
    if text is None:
        return None
    s = str(text).strip()
    return s or None
