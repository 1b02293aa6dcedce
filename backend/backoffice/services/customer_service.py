# Overview: Service-layer operations for customers.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import CUSTOMER_TYPES, Customer
from ..validation import ModelValidationPolicy, ValidationError, enforce_rules_customer, validate_payload
from .pagination import paginate

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "email", "phone", "address", "neighborhood", "city",
        "state", "zip_code", "document", "type", "is_active",
    },
    required_on_create={"name"},
)


def _check_unique(patch: dict, exclude_id: int | None = None) -> None:
    for field in ("document", "email"):
        value = patch.get(field)
        if not value:
            continue
        query = db.session.query(Customer).filter(getattr(Customer, field) == value)
        if exclude_id is not None:
            query = query.filter(Customer.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"Customer {field} already exists", {field: value})


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    enforce_rules_customer(patch)
    _check_unique(patch)

    customer = Customer()
    for key, value in patch.items():
        setattr(customer, key, value)
    db.session.add(customer)
    db.session.commit()

    current_app.logger.info("Customer %s created (%s)", customer.id, customer.type)
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", {"customer_id": customer_id})
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    customer = get_customer(customer_id)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    enforce_rules_customer(patch)
    _check_unique(patch, exclude_id=customer.id)

    for key, value in patch.items():
        setattr(customer, key, value)
    db.session.commit()
    return customer


def list_customers(
    *,
    search: str | None = None,
    type: str | None = None,
    is_active: bool | None = None,
    page: int | None = 1,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.document.ilike(pattern),
        ))
    if type:
        if type not in CUSTOMER_TYPES:
            raise ValidationError(f"type must be one of {', '.join(CUSTOMER_TYPES)}")
        query = query.filter(Customer.type == type)
    if is_active is not None:
        query = query.filter(Customer.is_active.is_(is_active))
    query = query.order_by(Customer.name.asc(), Customer.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda c: c.to_dict())
