# Overview: Service-layer operations for categories, suppliers and products.

# backend/backoffice/services/catalog_service.py

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import ConflictError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import Category, Product, Supplier
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_category,
    enforce_rules_product,
    enforce_rules_supplier,
    validate_payload,
)
from .pagination import paginate

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "cnae", "is_active"},
    required_on_create={"name"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "contact_person", "email", "phone", "address", "city",
        "state", "zip_code", "cnpj", "website", "notes", "is_active",
    },
    required_on_create={"name"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "barcode", "name", "description", "price",
        "is_active", "category_id", "supplier_id",
    },
    required_on_create={"code", "name", "price", "category_id"},
)


def _apply_patch(obj, patch: dict) -> None:
    for key, value in patch.items():
        setattr(obj, key, value)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def _category_name_taken(name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Category).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


def create_category(payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    enforce_rules_category(patch)

    if _category_name_taken(patch["name"]):
        raise ConflictError("Category name already exists", {"name": patch["name"]})

    category = Category()
    _apply_patch(category, patch)
    db.session.add(category)
    db.session.commit()
    current_app.logger.info("Category %s created: %s", category.id, category.name)
    return category


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found", {"category_id": category_id})
    return category


def update_category(category_id: int, payload: dict) -> Category:
    category = get_category(category_id)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
    enforce_rules_category(patch)

    if "name" in patch and _category_name_taken(patch["name"], exclude_id=category.id):
        raise ConflictError("Category name already exists", {"name": patch["name"]})

    _apply_patch(category, patch)
    db.session.commit()
    return category


def list_categories(*, search: str | None = None, is_active: bool | None = None,
                    page: int | None = 1, per_page: int | None = None) -> dict:
    query = db.session.query(Category)
    if search:
        query = query.filter(Category.name.ilike(f"%{search.strip()}%"))
    if is_active is not None:
        query = query.filter(Category.is_active.is_(is_active))
    query = query.order_by(Category.name.asc(), Category.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda c: c.to_dict())


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------


def _cnpj_taken(cnpj: str | None, exclude_id: int | None = None) -> bool:
    if not cnpj:
        return False
    query = db.session.query(Supplier).filter(Supplier.cnpj == cnpj)
    if exclude_id is not None:
        query = query.filter(Supplier.id != exclude_id)
    return query.first() is not None


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    enforce_rules_supplier(patch)

    if _cnpj_taken(patch.get("cnpj")):
        raise ConflictError("Supplier CNPJ already exists", {"cnpj": patch["cnpj"]})

    supplier = Supplier()
    _apply_patch(supplier, patch)
    db.session.add(supplier)
    db.session.commit()
    current_app.logger.info("Supplier %s created: %s", supplier.id, supplier.name)
    return supplier


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError("Supplier not found", {"supplier_id": supplier_id})
    return supplier


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    supplier = get_supplier(supplier_id)
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    enforce_rules_supplier(patch)

    if "cnpj" in patch and _cnpj_taken(patch["cnpj"], exclude_id=supplier.id):
        raise ConflictError("Supplier CNPJ already exists", {"cnpj": patch["cnpj"]})

    _apply_patch(supplier, patch)
    db.session.commit()
    return supplier


def list_suppliers(*, search: str | None = None, is_active: bool | None = None,
                   page: int | None = 1, per_page: int | None = None) -> dict:
    query = db.session.query(Supplier)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Supplier.name.ilike(pattern), Supplier.cnpj.ilike(pattern)))
    if is_active is not None:
        query = query.filter(Supplier.is_active.is_(is_active))
    query = query.order_by(Supplier.name.asc(), Supplier.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda s: s.to_dict())


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def _check_product_refs(patch: dict) -> None:
    """Referenced category/supplier must exist and be active."""
    if "category_id" in patch:
        category = db.session.get(Category, patch["category_id"])
        if category is None:
            raise NotFoundError("Category not found", {"category_id": patch["category_id"]})
        if not category.is_active:
            raise InvalidStateError("Category is inactive", {"category_id": category.id})

    if patch.get("supplier_id") is not None:
        supplier = db.session.get(Supplier, patch["supplier_id"])
        if supplier is None:
            raise NotFoundError("Supplier not found", {"supplier_id": patch["supplier_id"]})
        if not supplier.is_active:
            raise InvalidStateError("Supplier is inactive", {"supplier_id": supplier.id})


def _check_product_unique(patch: dict, exclude_id: int | None = None) -> None:
    for field in ("code", "barcode"):
        value = patch.get(field)
        if not value:
            continue
        query = db.session.query(Product).filter(getattr(Product, field) == value)
        if exclude_id is not None:
            query = query.filter(Product.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"Product {field} already exists", {field: value})


def create_product(payload: dict) -> Product:
    """
    Create product from a raw payload.

    Raises:
        ValidationError: bad field values
        NotFoundError: category/supplier missing
        InvalidStateError: category/supplier inactive
        ConflictError: code or barcode already used
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    _check_product_refs(patch)
    _check_product_unique(patch)

    product = Product()
    _apply_patch(product, patch)
    db.session.add(product)
    db.session.commit()

    current_app.logger.info("Product %s created: code=%s", product.id, product.code)
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", {"product_id": product_id})
    return product


def update_product(product_id: int, payload: dict) -> Product:
    product = get_product(product_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    _check_product_refs(patch)
    _check_product_unique(patch, exclude_id=product.id)

    _apply_patch(product, patch)
    db.session.commit()
    return product


def deactivate_product(product_id: int) -> Product:
    """Soft delete. Inventory and sale history keep pointing at the row."""
    product = get_product(product_id)
    product.is_active = False
    db.session.commit()
    current_app.logger.info("Product %s deactivated", product.id)
    return product


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    supplier_id: int | None = None,
    is_active: bool | None = None,
    page: int | None = 1,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Product)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.code.ilike(pattern),
            Product.barcode.ilike(pattern),
        ))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if supplier_id is not None:
        query = query.filter(Product.supplier_id == supplier_id)
    if is_active is not None:
        query = query.filter(Product.is_active.is_(is_active))
    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda p: p.to_dict())
