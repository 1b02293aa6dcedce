# backend/backoffice/routes/catalog.py
"""
Catalog routes: categories, suppliers, products.

SECURITY: All routes require authentication.
- Reads are open to every role
- Writes require ADMIN or MANAGER
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError
from ..services import catalog_service
from .params import arg_bool, arg_int, page_args

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")

CATALOG_WRITERS = ("ADMIN", "MANAGER")


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@catalog_bp.get("/categories")
@require_auth
def list_categories_route():
    try:
        page, per_page = page_args()
        result = catalog_service.list_categories(
            search=request.args.get("search"),
            is_active=arg_bool("is_active"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list categories")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/categories")
@require_auth
@require_role(*CATALOG_WRITERS)
def create_category_route():
    try:
        category = catalog_service.create_category(request.get_json(silent=True))
        return jsonify({"category": category.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/categories/<int:category_id>")
@require_auth
def get_category_route(category_id: int):
    try:
        category = catalog_service.get_category(category_id)
        return jsonify({"category": category.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@catalog_bp.put("/categories/<int:category_id>")
@require_auth
@require_role(*CATALOG_WRITERS)
def update_category_route(category_id: int):
    try:
        category = catalog_service.update_category(category_id, request.get_json(silent=True))
        return jsonify({"category": category.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------


@catalog_bp.get("/suppliers")
@require_auth
def list_suppliers_route():
    try:
        page, per_page = page_args()
        result = catalog_service.list_suppliers(
            search=request.args.get("search"),
            is_active=arg_bool("is_active"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list suppliers")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/suppliers")
@require_auth
@require_role(*CATALOG_WRITERS)
def create_supplier_route():
    try:
        supplier = catalog_service.create_supplier(request.get_json(silent=True))
        return jsonify({"supplier": supplier.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/suppliers/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    try:
        supplier = catalog_service.get_supplier(supplier_id)
        return jsonify({"supplier": supplier.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@catalog_bp.put("/suppliers/<int:supplier_id>")
@require_auth
@require_role(*CATALOG_WRITERS)
def update_supplier_route(supplier_id: int):
    try:
        supplier = catalog_service.update_supplier(supplier_id, request.get_json(silent=True))
        return jsonify({"supplier": supplier.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


@catalog_bp.get("/products")
@require_auth
def list_products_route():
    """
    Query params:
    - search: matches name, code or barcode
    - category_id, supplier_id: int
    - is_active: bool
    - page (1-indexed), per_page (default 20, max 100)
    """
    try:
        page, per_page = page_args()
        result = catalog_service.list_products(
            search=request.args.get("search"),
            category_id=arg_int("category_id"),
            supplier_id=arg_int("supplier_id"),
            is_active=arg_bool("is_active"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/products")
@require_auth
@require_role(*CATALOG_WRITERS)
def create_product_route():
    try:
        product = catalog_service.create_product(request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@catalog_bp.put("/products/<int:product_id>")
@require_auth
@require_role(*CATALOG_WRITERS)
def update_product_route(product_id: int):
    try:
        product = catalog_service.update_product(product_id, request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.delete("/products/<int:product_id>")
@require_auth
@require_role(*CATALOG_WRITERS)
def deactivate_product_route(product_id: int):
    """Soft delete: the product is marked inactive, history is kept."""
    try:
        product = catalog_service.deactivate_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate product")
        return jsonify({"error": "Internal server error"}), 500
