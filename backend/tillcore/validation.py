"""
Request payload validation.

Routes describe what a client may send with a ModelValidationPolicy; the
column metadata of the target model supplies types, nullability and String
lengths. Money, quantities and rates are all Integer columns and must
arrive as whole numbers: 12.5, "1e3" and true are rejected, "450" is 450.

enforce_rules_* hold the business rules column metadata cannot express.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from sqlalchemy import Boolean, Integer, String, Text

from .errors import EngineError, ValidationFailure


# Maximum price: 9,999,999.99 in major units (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_STOCK_LEVEL = 1_000_000_000

_WHOLE_NUMBER = re.compile(r"[+-]?\d+")


class ValidationError(ValidationFailure):
    """400-level input problem."""


class ConflictError(EngineError):
    """409-level business rule conflict (e.g., duplicate SKU)."""

    code = "conflict"
    http_status = 409


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    writable_fields: keys a client may send at all
    required_on_create: keys a create (partial=False) must carry
    choices: closed vocabularies for String columns
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    choices: dict[str, tuple[str, ...]] = field(default_factory=dict)


def _whole_number(key: str, value) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a whole number, not a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _WHOLE_NUMBER.fullmatch(value.strip()):
        return int(value.strip())
    raise ValidationError(f"{key} must be a whole number (cents, units or basis points)")


def _flag(key: str, value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    raise ValidationError(f"{key} must be true or false")


def _text(col, value) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{col.key} must be a string")
    value = value.strip()
    if value == "" and not col.nullable:
        raise ValidationError(f"{col.key} cannot be blank")
    if isinstance(col.type, String) and col.type.length and len(value) > col.type.length:
        raise ValidationError(f"{col.key} exceeds max length {col.type.length}")
    return value


def _clean(col, value):
    if isinstance(col.type, Boolean):
        return _flag(col.key, value)
    if isinstance(col.type, Integer):
        return _whole_number(col.key, value)
    if isinstance(col.type, (String, Text)):
        return _text(col, value)
    return value


def validate_payload(*, model, payload, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Check a JSON body against the policy and the model's columns.

    partial=False is a create and must carry policy.required_on_create;
    partial=True only checks the keys present. Returns the cleaned patch.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(k for k in payload if k not in policy.writable_fields)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}", details={"fields": unknown})
    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})

    columns = model.__mapper__.columns
    patch: dict = {}
    for key, raw in payload.items():
        col = columns.get(key)
        if col is None:
            raise ValidationError(f"Unknown field: {key}")
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue
        value = _clean(col, raw)
        allowed = policy.choices.get(key)
        if allowed and value not in allowed:
            raise ValidationError(f"{key} must be one of {', '.join(allowed)}")
        patch[key] = value
    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    A sellable product needs a positive tax-inclusive price.
    """
    if "price_cents" in patch:
        price = patch["price_cents"]
        if price is None or price <= 0:
            raise ValidationError("price_cents must be > 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")

    for key in ("current_stock", "min_stock_level"):
        if key in patch and patch[key] is not None:
            if patch[key] < 0:
                raise ValidationError(f"{key} must be >= 0")
            if patch[key] > MAX_STOCK_LEVEL:
                raise ValidationError(f"{key} cannot exceed {MAX_STOCK_LEVEL}")

    if "sku" in patch and patch["sku"] == "":
        patch["sku"] = None


def enforce_rules_tax_slab(patch: dict) -> None:
    """
    Rates are basis points in [0, 10000]. Components come in name/rate pairs
    and, when present, must add up to the slab rate.
    """
    if "name" in patch and not patch["name"]:
        raise ValidationError("Tax name is required")

    for key in ("rate_bps", "component1_rate_bps", "component2_rate_bps"):
        value = patch.get(key)
        if value is not None and not 0 <= value <= 10000:
            raise ValidationError(f"{key} must be between 0 and 10000 basis points")

    components = []
    for n in (1, 2):
        name = patch.get(f"component{n}_name")
        rate = patch.get(f"component{n}_rate_bps")
        if bool(name) != (rate is not None):
            raise ValidationError(f"component{n}_name and component{n}_rate_bps must be given together")
        if name:
            components.append(rate)

    if components and "rate_bps" in patch and sum(components) != patch["rate_bps"]:
        raise ValidationError(
            "Component rates must add up to rate_bps",
            details={"rate_bps": patch["rate_bps"], "components_bps": components},
        )


def enforce_rules_stock_adjustment(patch: dict) -> None:
    # IN/OUT move a positive quantity; ADJUSTMENT sets an absolute count >= 0
    movement_type = patch.get("movement_type")
    quantity = patch.get("quantity")
    if movement_type not in ("IN", "OUT", "ADJUSTMENT"):
        raise ValidationError("movement_type must be IN, OUT or ADJUSTMENT")
    if quantity is None:
        raise ValidationError("quantity is required")
    if movement_type == "ADJUSTMENT":
        if quantity < 0:
            raise ValidationError("quantity must be >= 0 for ADJUSTMENT")
    elif quantity <= 0:
        raise ValidationError(f"quantity must be > 0 for {movement_type}")
