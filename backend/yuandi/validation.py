from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
import re
from .time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Column, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Largest KRW amount a single order/payment may carry (9,999,999,999 won)
MAX_AMOUNT_KRW = 9_999_999_999

# Korean mobile number: 010-1234-5678 or 01012345678
PHONE_RE = re.compile(r"^(01[0-9])-?([0-9]{3,4})-?([0-9]{4})$")

# Personal Customs Clearance Code: P + 12 digits
PCCC_RE = re.compile(r"^P\d{12}$")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def payload_columns(*columns: Column) -> dict[str, Column]:
    """Column metadata for payloads that do not map 1:1 onto a table."""
    return {c.key: c for c in columns}


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Decimals (CNY costs, exchange rates)
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        if isinstance(value, (int, float, str, Decimal)):
            try:
                dec = Decimal(str(value).strip())
            except InvalidOperation:
                raise ValidationError(f"{col.key} must be a number")
            if not dec.is_finite():
                raise ValidationError(f"{col.key} must be a finite number")
            return dec
        raise ValidationError(f"{col.key} must be a number")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
    model: DeclarativeMeta | None = None,
    columns: dict[str, Column] | None = None,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length), taken from
      `model` or from an explicit `columns` mapping
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = columns if columns is not None else _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable or k in required:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and (not col.nullable or k in required):
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_amount(patch: dict, key: str, *, allow_zero: bool = True) -> None:
    if key not in patch or patch[key] is None:
        return
    value = patch[key]
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{key} must be {'>=' if allow_zero else '>'} 0")
    if value > MAX_AMOUNT_KRW:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_KRW:,}")


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_RE.match(re.sub(r"\s", "", phone or "")))


def is_valid_pccc(pccc: str) -> bool:
    return bool(PCCC_RE.match(pccc or ""))


def enforce_rules_product(patch: dict, *, is_create: bool = True) -> None:
    _check_amount(patch, "sale_price_krw")
    if patch.get("cost_cny") is not None and patch["cost_cny"] <= 0:
        raise ValidationError("cost_cny must be > 0")
    if patch.get("low_stock_threshold") is not None and patch["low_stock_threshold"] < 0:
        raise ValidationError("low_stock_threshold must be >= 0")
    if is_create and not patch.get("sku"):
        # Without an explicit SKU one is generated from model + color
        if not patch.get("model") or not patch.get("color"):
            raise ValidationError("model and color are required when sku is omitted")


def enforce_rules_inbound(patch: dict) -> None:
    if patch.get("quantity") is None or patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0 for inbound")
    _check_amount(patch, "total_cost_krw")
    if patch.get("cost_cny") is not None and patch["cost_cny"] < 0:
        raise ValidationError("cost_cny must be >= 0")
    if patch.get("exchange_rate") is not None and patch["exchange_rate"] <= 0:
        raise ValidationError("exchange_rate must be > 0")


def enforce_rules_adjustment(patch: dict) -> None:
    if patch.get("quantity_delta") is None or patch["quantity_delta"] == 0:
        raise ValidationError("quantity_delta must be non-zero for adjustment")


def enforce_rules_order(patch: dict) -> None:
    if not is_valid_phone(patch.get("customer_phone", "")):
        raise ValidationError("Invalid phone number format")
    if not is_valid_pccc(patch.get("pccc", "")):
        raise ValidationError("Invalid PCCC format")
    _check_amount(patch, "total_amount")
    _check_amount(patch, "shipping_fee")


def enforce_rules_order_item(patch: dict, index: int) -> None:
    if patch.get("quantity") is None or patch["quantity"] <= 0:
        raise ValidationError(f"Item {index + 1}: quantity must be positive")
    if patch.get("price") is None or patch["price"] < 0:
        raise ValidationError(f"Item {index + 1}: price cannot be negative")


def enforce_rules_shipment(patch: dict) -> None:
    _check_amount(patch, "shipping_fee")


def enforce_rules_refund(patch: dict) -> None:
    _check_amount(patch, "refund_amount", allow_zero=False)
    _check_amount(patch, "refund_fee")
    _check_amount(patch, "shipping_refund")
