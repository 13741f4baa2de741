from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable

from .money import to_money


# Largest amount a NUMERIC(12, 2) column can hold
MAX_AMOUNT = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem; raised before anything is written."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate party)."""


class NotFoundError(LookupError):
    """404-level lookup miss for a referenced entity."""


@dataclass(frozen=True)
class FieldPolicy:
    """
    Central policy layer for partial updates:
    - writable_fields: what callers are allowed to set
    - protected_fields: known fields that only dedicated operations may touch
      (balances move through the transaction log, never through updates)
    """
    writable_fields: frozenset[str]
    protected_fields: frozenset[str] = field(default_factory=frozenset)


def require_choice(value: Any, choices: Iterable[str], *, field: str) -> str:
    choices = tuple(choices)
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value


def require_text(value: Any, *, field: str, max_length: int = 255) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def optional_text(value: Any, *, field: str, max_length: int = 255) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def require_id(value: Any, *, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer id")
    return value


def require_amount(value: Any, *, field: str, allow_zero: bool = True) -> Decimal:
    """Non-negative 2-place Decimal within column range."""
    try:
        amount = to_money(value, field=field, exact=True)
    except ValueError as exc:
        raise ValidationError(str(exc))
    if amount < 0:
        raise ValidationError(f"{field} must not be negative")
    if not allow_zero and amount == 0:
        raise ValidationError(f"{field} must be greater than zero")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds the maximum of {MAX_AMOUNT}")
    return amount


def require_percent(value: Any, *, field: str) -> Decimal:
    percent = require_amount(value, field=field)
    if percent > 100:
        raise ValidationError(f"{field} must be between 0 and 100")
    return percent


def validate_patch(payload: dict, policy: FieldPolicy) -> dict:
    """
    Reject unknown and protected keys, return the writable subset unchanged.
    Values are normalized by the caller (they know the column semantics).
    """
    protected = sorted(set(payload) & policy.protected_fields)
    if protected:
        raise ValidationError(
            f"Field(s) {', '.join(protected)} cannot be updated directly; "
            "post a ledger transaction instead"
        )
    unknown = sorted(set(payload) - policy.writable_fields)
    if unknown:
        raise ValidationError(f"Unknown or read-only field(s): {', '.join(unknown)}")
    return dict(payload)
