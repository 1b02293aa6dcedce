# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/backoffice/routes/inventory.py
"""
Inventory API routes.

SECURITY: All routes require authentication.
- Reads, availability checks and reservations are open to every role
- Record changes and stock movements require ADMIN or MANAGER
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ServiceError
from ..services import inventory_service
from ..validation import (
    CreateInventoryRequest,
    StockMovementRequest,
    UpdateInventoryRequest,
    ValidationError,
    coerce_int,
)
from .params import arg_bool, arg_datetime, arg_int, page_args

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

STOCK_MANAGERS = ("ADMIN", "MANAGER")


@inventory_bp.get("")
@require_auth
def list_inventories_route():
    """
    Query params:
    - search: product name or code
    - category_id, supplier_id: int
    - location: substring
    - low_stock, out_of_stock, has_stock: bool
    - min_quantity, max_quantity: int
    - sort_by: product_name | quantity | min_stock | location | last_update
    - sort_order: asc | desc
    - page (1-indexed), per_page (default 20, max 100)
    """
    try:
        filters = {
            "search": request.args.get("search"),
            "category_id": arg_int("category_id"),
            "supplier_id": arg_int("supplier_id"),
            "location": request.args.get("location"),
            "low_stock": arg_bool("low_stock"),
            "out_of_stock": arg_bool("out_of_stock"),
            "has_stock": arg_bool("has_stock"),
            "min_quantity": arg_int("min_quantity"),
            "max_quantity": arg_int("max_quantity"),
            "sort_by": request.args.get("sort_by"),
            "sort_order": request.args.get("sort_order"),
        }
        page, per_page = page_args()
        result = inventory_service.list_inventories(filters, page=page, per_page=per_page)
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("")
@require_auth
@require_role(*STOCK_MANAGERS)
def create_inventory_route():
    try:
        req = CreateInventoryRequest.from_payload(request.get_json(silent=True))
        inventory = inventory_service.create_for_product(
            req.product_id,
            quantity=req.quantity,
            min_stock=req.min_stock,
            max_stock=req.max_stock,
            location=req.location,
        )
        return jsonify({"inventory": inventory.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:inventory_id>")
@require_auth
def get_inventory_route(inventory_id: int):
    try:
        inventory = inventory_service.get_inventory(inventory_id)
        return jsonify({"inventory": inventory.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.put("/<int:inventory_id>")
@require_auth
@require_role(*STOCK_MANAGERS)
def update_inventory_route(inventory_id: int):
    try:
        req = UpdateInventoryRequest.from_payload(request.get_json(silent=True))
        inventory = inventory_service.update_inventory(
            inventory_id,
            g.current_user.id,
            quantity=req.quantity,
            min_stock=req.min_stock,
            max_stock=req.max_stock,
            location=req.location,
            clear_max_stock=req.clear_max_stock,
        )
        return jsonify({"inventory": inventory.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/product/<int:product_id>")
@require_auth
def get_inventory_for_product_route(product_id: int):
    try:
        inventory = inventory_service.get_inventory_for_product(product_id)
        return jsonify({"inventory": inventory.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


# ---------------------------------------------------------------------------
# Stock movements
# ---------------------------------------------------------------------------


@inventory_bp.post("/adjust")
@require_auth
@require_role(*STOCK_MANAGERS)
def adjust_stock_route():
    """
    Body: {"product_id": int, "delta": int (signed, non-zero), "reason": str}
    """
    try:
        data = request.get_json(silent=True) or {}
        missing = [k for k in ("product_id", "delta", "reason") if data.get(k) is None]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        inventory = inventory_service.adjust_stock(
            coerce_int("product_id", data["product_id"]),
            data["delta"],
            data["reason"],
            g.current_user.id,
        )
        return jsonify({"inventory": inventory.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


def _movement_route(movement_type: str):
    try:
        req = StockMovementRequest.from_payload(request.get_json(silent=True), movement_type)
        inventory = inventory_service.process_stock_movement(req, g.current_user.id)
        return jsonify({"inventory": inventory.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply %s stock movement", movement_type)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/add")
@require_auth
@require_role(*STOCK_MANAGERS)
def add_stock_route():
    """Body: {"product_id", "quantity" (1-10000), "reason"}"""
    return _movement_route("IN")


@inventory_bp.post("/remove")
@require_auth
@require_role(*STOCK_MANAGERS)
def remove_stock_route():
    """Body: {"product_id", "quantity" (1-10000), "reason", "sale_id"?}"""
    return _movement_route("OUT")


# ---------------------------------------------------------------------------
# Availability
# ---------------------------------------------------------------------------


@inventory_bp.get("/check/<int:product_id>")
@require_auth
def check_stock_route(product_id: int):
    return jsonify(inventory_service.check_stock(product_id)), 200


@inventory_bp.get("/exists/<int:product_id>")
@require_auth
def has_inventory_route(product_id: int):
    return jsonify({"product_id": product_id, "exists": inventory_service.has_inventory(product_id)}), 200


@inventory_bp.post("/reserve")
@require_auth
def reserve_stock_route():
    """Non-binding availability check; nothing is held."""
    try:
        data = request.get_json(silent=True) or {}
        if data.get("product_id") is None or data.get("quantity") is None:
            raise ValidationError("product_id and quantity required")
        product_id = coerce_int("product_id", data["product_id"])
        quantity = coerce_int("quantity", data["quantity"])
        return jsonify({
            "product_id": product_id,
            "quantity": quantity,
            "available": inventory_service.reserve_stock(product_id, quantity),
        }), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------


@inventory_bp.post("/reservations")
@require_auth
def create_reservation_route():
    """Body: {"product_id", "quantity", "sale_id"?}"""
    try:
        data = request.get_json(silent=True) or {}
        if data.get("product_id") is None or data.get("quantity") is None:
            raise ValidationError("product_id and quantity required")
        sale_id = data.get("sale_id")
        reservation = inventory_service.create_reservation(
            coerce_int("product_id", data["product_id"]),
            data["quantity"],
            g.current_user.id,
            sale_id=coerce_int("sale_id", sale_id) if sale_id is not None else None,
        )
        return jsonify({"reservation": reservation.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create reservation")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/reservations/<token>/commit")
@require_auth
@require_role(*STOCK_MANAGERS)
def commit_reservation_route(token: str):
    try:
        data = request.get_json(silent=True) or {}
        inventory = inventory_service.commit_reservation(token, g.current_user.id, reason=data.get("reason"))
        return jsonify({"inventory": inventory.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to commit reservation")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/reservations/<token>/release")
@require_auth
def release_reservation_route(token: str):
    try:
        reservation = inventory_service.release_reservation(token)
        return jsonify({"reservation": reservation.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to release reservation")
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# History and alerts
# ---------------------------------------------------------------------------


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    """
    Query params: product_id, type (IN|OUT|ADJUSTMENT), user_id, sale_id,
    reason (substring), date_from / date_to (ISO-8601, inclusive), page, per_page.
    """
    try:
        filters = {
            "product_id": arg_int("product_id"),
            "type": request.args.get("type"),
            "user_id": arg_int("user_id"),
            "sale_id": arg_int("sale_id"),
            "reason": request.args.get("reason"),
            "date_from": arg_datetime("date_from"),
            "date_to": arg_datetime("date_to"),
        }
        page, per_page = page_args()
        result = inventory_service.list_movements(filters, page=page, per_page=per_page)
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/product/<int:product_id>/movements")
@require_auth
def list_product_movements_route(product_id: int):
    try:
        limit = arg_int("limit") or 20
        movements = inventory_service.list_product_movements(product_id, limit=min(max(limit, 1), 100))
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.get("/alerts/low-stock")
@require_auth
def low_stock_route():
    rows = inventory_service.low_stock_alerts()
    return jsonify({"items": [inv.to_dict() for inv in rows], "count": len(rows)}), 200


@inventory_bp.get("/alerts/out-of-stock")
@require_auth
def out_of_stock_route():
    rows = inventory_service.out_of_stock_products()
    return jsonify({"items": [inv.to_dict() for inv in rows], "count": len(rows)}), 200
