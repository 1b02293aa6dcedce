from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import InvalidArgumentError
from .models import CUSTOMER_TYPES, USER_ROLES
from .money import to_money
from .time_utils import parse_iso_datetime

# Largest product price a Numeric(8, 2) column can hold
MAX_PRICE = Decimal("999999.99")

MIN_ITEM_QUANTITY = 1
MAX_ITEM_QUANTITY = 10000

MIN_REASON_LENGTH = 3
MAX_REASON_LENGTH = 500

PRODUCT_CODE_RE = re.compile(r"^[A-Z0-9_-]{3,20}$")
BARCODE_RE = re.compile(r"^\d{8,14}$")
CNAE_RE = re.compile(r"^\d{2}\.\d{2}-\d-\d{2}$")
STATE_RE = re.compile(r"^[A-Z]{2}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(InvalidArgumentError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(name: str, value: Any) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def coerce_money(name: str, value: Any) -> Decimal:
    try:
        return to_money(value)
    except ValueError:
        raise ValidationError(f"{name} must be a decimal amount")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    # Numeric(p, 2) columns hold money
    if isinstance(coltype, Numeric):
        return coerce_money(col.key, value)

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
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
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

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        # Optional text left blank is stored as NULL (keeps unique columns happy)
        if col.nullable and val == "":
            val = None

        patch[k] = val

    return patch


def _check_length(patch: dict, key: str, minimum: int) -> None:
    value = patch.get(key)
    if value is not None and len(value) < minimum:
        raise ValidationError(f"{key} must be at least {minimum} characters")


def enforce_rules_category(patch: dict) -> None:
    cnae = patch.get("cnae")
    if cnae is not None and not CNAE_RE.match(cnae):
        raise ValidationError("cnae must match NN.NN-N-NN")


def enforce_rules_supplier(patch: dict) -> None:
    _check_length(patch, "name", 3)
    state = patch.get("state")
    if state is not None and not STATE_RE.match(state):
        raise ValidationError("state must be 2 uppercase letters")
    email = patch.get("email")
    if email is not None and not EMAIL_RE.match(email):
        raise ValidationError("email is invalid")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_length(patch, "name", 3)

    code = patch.get("code")
    if code is not None and not PRODUCT_CODE_RE.match(code):
        raise ValidationError("code must be 3-20 characters of A-Z, 0-9, '-' or '_'")

    barcode = patch.get("barcode")
    if barcode is not None and not BARCODE_RE.match(barcode):
        raise ValidationError("barcode must be 8-14 digits")

    if "price" in patch:
        price = patch["price"]
        if price is None or price <= 0:
            raise ValidationError("price must be > 0")
        if price > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE}")


def enforce_rules_customer(patch: dict) -> None:
    _check_length(patch, "name", 2)
    if "type" in patch and patch["type"] not in CUSTOMER_TYPES:
        raise ValidationError(f"type must be one of {', '.join(CUSTOMER_TYPES)}")
    document = patch.get("document")
    if document is not None and len(document) < 11:
        raise ValidationError("document must be 11-18 characters")
    email = patch.get("email")
    if email is not None and not EMAIL_RE.match(email):
        raise ValidationError("email is invalid")
    state = patch.get("state")
    if state is not None and not STATE_RE.match(state):
        raise ValidationError("state must be 2 uppercase letters")


def enforce_rules_user(patch: dict) -> None:
    if "role" in patch and patch["role"] not in USER_ROLES:
        raise ValidationError(f"role must be one of {', '.join(USER_ROLES)}")
    email = patch.get("email")
    if email is not None and not EMAIL_RE.match(email):
        raise ValidationError("email is invalid")


# ---------------------------------------------------------------------------
# Request variants
#
# Each request shape validates itself. Routes build them from JSON with
# from_payload(); services call validate() before touching the database so
# the same checks hold for CLI and test callers.
# ---------------------------------------------------------------------------


def _payload_dict(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _optional_int(name: str, value: Any) -> int | None:
    if value is None:
        return None
    return coerce_int(name, value)


def _optional_money(name: str, value: Any) -> Decimal | None:
    if value is None:
        return None
    return coerce_money(name, value)


def _require(payload: dict, *names: str) -> None:
    missing = [n for n in names if payload.get(n) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def validate_reason(reason: Any) -> str:
    if not isinstance(reason, str):
        raise ValidationError("reason is required")
    reason = reason.strip()
    if not MIN_REASON_LENGTH <= len(reason) <= MAX_REASON_LENGTH:
        raise ValidationError(
            f"reason must be between {MIN_REASON_LENGTH} and {MAX_REASON_LENGTH} characters"
        )
    return reason


def validate_item_quantity(quantity: Any) -> int:
    quantity = coerce_int("quantity", quantity)
    if not MIN_ITEM_QUANTITY <= quantity <= MAX_ITEM_QUANTITY:
        raise ValidationError(
            f"quantity must be between {MIN_ITEM_QUANTITY} and {MAX_ITEM_QUANTITY}"
        )
    return quantity


def validate_stock_quantity(quantity: Any) -> int:
    """Positive unit count for stock movements and holds. No upper bound."""
    quantity = coerce_int("quantity", quantity)
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    return quantity


def _validate_thresholds(min_stock: int | None, max_stock: int | None) -> None:
    if min_stock is not None and min_stock < 0:
        raise ValidationError("min_stock must be >= 0")
    if max_stock is not None and max_stock < 0:
        raise ValidationError("max_stock must be >= 0")
    if min_stock is not None and max_stock is not None and max_stock <= min_stock:
        raise ValidationError("max_stock must be greater than min_stock")


def _validate_location(location: str | None) -> str | None:
    if location is None:
        return None
    location = str(location).strip()
    if len(location) > 100:
        raise ValidationError("location exceeds max length 100")
    return location or None


@dataclass
class CreateInventoryRequest:
    product_id: int
    quantity: int | None = None
    min_stock: int | None = None
    max_stock: int | None = None
    location: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "CreateInventoryRequest":
        payload = _payload_dict(payload)
        _require(payload, "product_id")
        return cls(
            product_id=coerce_int("product_id", payload["product_id"]),
            quantity=_optional_int("quantity", payload.get("quantity")),
            min_stock=_optional_int("min_stock", payload.get("min_stock")),
            max_stock=_optional_int("max_stock", payload.get("max_stock")),
            location=payload.get("location"),
        )

    def validate(self) -> None:
        if self.quantity is not None and self.quantity < 0:
            raise ValidationError("quantity must be >= 0")
        _validate_thresholds(self.min_stock, self.max_stock)
        self.location = _validate_location(self.location)


@dataclass
class UpdateInventoryRequest:
    """
    All fields optional; only the provided ones are applied.

    None means "leave unchanged". clear_max_stock removes the ceiling; in JSON
    it is spelled as an explicit "max_stock": null.
    """
    quantity: int | None = None
    min_stock: int | None = None
    max_stock: int | None = None
    location: str | None = None
    clear_max_stock: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdateInventoryRequest":
        payload = _payload_dict(payload)
        return cls(
            quantity=_optional_int("quantity", payload.get("quantity")),
            min_stock=_optional_int("min_stock", payload.get("min_stock")),
            max_stock=_optional_int("max_stock", payload.get("max_stock")),
            location=payload.get("location"),
            clear_max_stock="max_stock" in payload and payload["max_stock"] is None,
        )

    def validate(self) -> None:
        if self.clear_max_stock and self.max_stock is not None:
            raise ValidationError("max_stock cannot be both set and cleared")
        if self.quantity is not None and self.quantity < 0:
            raise ValidationError("quantity must be >= 0")
        _validate_thresholds(self.min_stock, self.max_stock)
        self.location = _validate_location(self.location)


@dataclass
class StockMovementRequest:
    """IN / OUT movement. ADJUSTMENT goes through adjust_stock with a signed delta."""
    type: str
    product_id: int
    quantity: int
    reason: str
    sale_id: int | None = None

    @classmethod
    def from_payload(cls, payload: Any, movement_type: str) -> "StockMovementRequest":
        payload = _payload_dict(payload)
        _require(payload, "product_id", "quantity", "reason")
        return cls(
            type=movement_type,
            product_id=coerce_int("product_id", payload["product_id"]),
            quantity=coerce_int("quantity", payload["quantity"]),
            reason=payload["reason"],
            sale_id=_optional_int("sale_id", payload.get("sale_id")),
        )

    def validate(self) -> None:
        if self.type not in ("IN", "OUT"):
            raise ValidationError("type must be IN or OUT")
        self.quantity = validate_stock_quantity(self.quantity)
        self.reason = validate_reason(self.reason)


@dataclass
class SaleItemRequest:
    product_id: int
    quantity: int
    unit_price: Decimal | None = None
    discount: Decimal | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SaleItemRequest":
        payload = _payload_dict(payload)
        _require(payload, "product_id", "quantity")
        return cls(
            product_id=coerce_int("product_id", payload["product_id"]),
            quantity=coerce_int("quantity", payload["quantity"]),
            unit_price=_optional_money("unit_price", payload.get("unit_price")),
            discount=_optional_money("discount", payload.get("discount")),
        )

    def validate(self) -> None:
        self.quantity = validate_item_quantity(self.quantity)
        if self.unit_price is not None:
            self.unit_price = coerce_money("unit_price", self.unit_price)
            if self.unit_price <= 0:
                raise ValidationError("unit_price must be > 0")
        if self.discount is not None:
            self.discount = coerce_money("discount", self.discount)
            if self.discount < 0:
                raise ValidationError("discount must be >= 0")
