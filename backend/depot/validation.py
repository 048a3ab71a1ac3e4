# Overview: Payload validation for write routes, driven by SQLAlchemy column metadata.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text

from .errors import ValidationError


# Largest price a line can carry, in cents (9,999,999.99).
MAX_PRICE_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What a route lets callers write on a model.

    writable_fields is the allowlist; anything else in the payload is rejected,
    which is how server-owned columns (current_stock, money totals, status)
    stay out of reach. required_on_create applies to POST only.
    """
    writable_fields: frozenset[str] | set[str]
    required_on_create: frozenset[str] | set[str] = field(default_factory=frozenset)


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", details={key: value})
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        # plain digits only: "12.5" and "1e3" are not quantities
        digits = text[1:] if text.startswith("-") else text
        if digits.isdigit():
            return int(text)
    raise ValidationError(f"{key} must be an integer", details={key: value})


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{key} must be a boolean", details={key: value})


def _as_text(key: str, value: Any, column) -> str:
    text = str(value).strip()
    if text == "" and not column.nullable:
        raise ValidationError(f"{key} cannot be blank", details={key: value})
    length = getattr(column.type, "length", None)
    if length and len(text) > length:
        raise ValidationError(f"{key} exceeds max length {length}", details={key: len(text)})
    return text


def _coerce(key: str, value: Any, column) -> Any:
    if isinstance(column.type, Boolean):
        return _as_bool(key, value)
    if isinstance(column.type, Integer):
        return _as_int(key, value)
    if isinstance(column.type, (String, Text)):
        return _as_text(key, value, column)
    return value


def validate_payload(*, model, payload, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Check a JSON body against the policy and the model's columns and return
    the cleaned patch.

    partial=False is create semantics (required fields enforced);
    partial=True validates only the keys present.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(name for name in policy.required_on_create if name not in payload)
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing": missing},
            )

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}
    for key, value in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}", details={"field": key})
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}", details={"field": key})

        if value is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null", details={"field": key})
            patch[key] = None
        else:
            patch[key] = _coerce(key, value, column)
    return patch


def _check_non_negative(patch: dict, key: str, ceiling: int | None = None) -> None:
    value = patch.get(key)
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0", details={key: value})
    if ceiling is not None and value > ceiling:
        raise ValidationError(f"{key} cannot exceed {ceiling}", details={key: value})


def enforce_rules_product(patch: dict) -> None:
    _check_non_negative(patch, "unit_price_cents", MAX_PRICE_CENTS)
    _check_non_negative(patch, "minimum_stock")


def enforce_rules_product_supplier(patch: dict) -> None:
    _check_non_negative(patch, "supplier_price_cents", MAX_PRICE_CENTS)
    _check_non_negative(patch, "lead_time_days")


def text_field(payload: dict, name: str) -> str | None:
    """Optional free-text body field (reference, notes, reason...); must be a JSON string."""
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", details={name: value})
    return value.strip()
