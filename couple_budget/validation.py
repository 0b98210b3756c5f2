"""Input validation for user-entered amounts and dates."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional


class ValidationError(ValueError):
    """Raised for user input that must be rejected before any state change."""


def parse_amount(value: Any) -> float:
    """Convert textual amount representations into floats.

    Accepts plain numbers, a decimal comma (``"12,50"``), thousands
    separators and a leading or trailing euro/dollar sign.
    """
    if isinstance(value, bool):
        raise ValidationError("Invalid amount")
    if isinstance(value, (int, float)):
        return float(value)
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError("Invalid amount")
    cleaned = value.strip().replace("€", "").replace("$", "").replace(" ", "").replace("\u00a0", "")
    if "," in cleaned and "." in cleaned:
        # 1.234,56 or 1,234.56 - whichever separator comes last is the decimal
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    else:
        cleaned = cleaned.replace(",", ".")
    try:
        return float(cleaned)
    except ValueError:
        raise ValidationError(f"Invalid amount: {value!r}") from None


def positive_amount(value: Any, what: str = "Amount") -> float:
    amount = parse_amount(value)
    if amount != amount or amount <= 0:
        raise ValidationError(f"{what} must be greater than 0")
    return amount


def non_negative_amount(value: Any, what: str = "Amount") -> float:
    amount = parse_amount(value)
    if amount != amount or amount < 0:
        raise ValidationError(f"{what} cannot be negative")
    return amount


def check_date_range(start: date, end: Optional[date]) -> None:
    if end is not None and end < start:
        raise ValidationError("End date cannot be before start date")


def require_text(value: Optional[str], what: str = "Description") -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{what} is required")
    return text
