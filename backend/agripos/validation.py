# Overview: Payload validation for create/patch endpoints, driven by column metadata plus a per-model policy.

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text

from .errors import ValidationError


# 9,999,999.99 is the largest single amount or limit the ledger accepts
MAX_AMOUNT_CENTS = 999_999_999


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What a client may write to a model, and the value rules that column
    metadata cannot express.

    - writable_fields: allowlist; anything else is rejected outright
    - required_on_create: must be present when partial=False
    - choices: field -> allowed values
    - cents_fields: integer cents in [0, MAX_AMOUNT_CENTS]
    - non_negative: integers that may not go below zero
    """
    writable_fields: frozenset
    required_on_create: frozenset = frozenset()
    choices: dict = field(default_factory=dict)
    cents_fields: frozenset = frozenset()
    non_negative: frozenset = frozenset()

    def for_update(self, *frozen_fields: str) -> "ModelValidationPolicy":
        """Same rules for PATCH, minus fields that are fixed after creation."""
        return replace(
            self,
            writable_fields=self.writable_fields - set(frozen_fields),
            required_on_create=frozenset(),
        )


def _as_int(key: str, value: Any) -> int:
    # JSON numbers only; "12", 12.0 and 1e3 are all rejected
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _as_bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be true or false")
    return value


def _as_text(key: str, value: Any, column) -> str:
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise ValidationError(f"{key} must be a string")
    text = str(value).strip()
    if not text and not column.nullable:
        raise ValidationError(f"{key} cannot be blank")
    length = getattr(column.type, "length", None)
    if length and len(text) > length:
        raise ValidationError(f"{key} exceeds max length {length}")
    return text


def _coerce(key: str, value: Any, column) -> Any:
    coltype = column.type
    if isinstance(coltype, Boolean):
        return _as_bool(key, value)
    if isinstance(coltype, Integer):
        return _as_int(key, value)
    if isinstance(coltype, (String, Text)):
        return _as_text(key, value, column)
    return value


def _apply_rules(key: str, value: Any, policy: ModelValidationPolicy) -> None:
    allowed = policy.choices.get(key)
    if allowed is not None and value not in allowed:
        raise ValidationError(f"{key} must be one of {tuple(allowed)}")
    if key in policy.cents_fields:
        if value < 0:
            raise ValidationError(f"{key} must be >= 0")
        if value > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS} cents")
    if key in policy.non_negative and value < 0:
        raise ValidationError(f"{key} must be >= 0")


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON body against `policy` and the model's columns.

    Returns a patch dict holding only writable fields, with values coerced to
    the column types. partial=True validates just the keys provided (PATCH);
    partial=False also enforces required_on_create (POST).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        value = _coerce(key, raw, column)
        _apply_rules(key, value, policy)
        patch[key] = value

    return patch


def require_amount_cents(value: Any, field: str = "amount_cents") -> int:
    """Amounts moved through the ledger must be positive integer cents."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer number of cents")
    if value <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return value
