# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/backoffice/routes/sales.py
"""
Sales API routes.

Every authenticated user may create and manage sales. The acting user is
g.current_user and is passed to the service explicitly.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ServiceError
from ..services import sales_service
from ..validation import SaleItemRequest, ValidationError, coerce_int
from .params import arg_datetime, arg_int, page_args

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Create new DRAFT sale.

    Body: {"customer_id", "items": [{"product_id", "quantity", "unit_price"?, "discount"?}],
           "notes"?, "discount"?, "tax"?}
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("customer_id") is None:
            raise ValidationError("customer_id required")
        items = data.get("items")
        if not isinstance(items, list) or not items:
            raise ValidationError("items must be a non-empty list")

        sale = sales_service.create_sale(
            coerce_int("customer_id", data["customer_id"]),
            g.current_user.id,
            [SaleItemRequest.from_payload(item) for item in items],
            notes=data.get("notes"),
            discount=data.get("discount", 0),
            tax=data.get("tax", 0),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params: customer_id, user_id, status, date_from / date_to (ISO-8601,
    inclusive), page, per_page. Items omit line items.
    """
    try:
        page, per_page = page_args()
        result = sales_service.list_sales(
            customer_id=arg_int("customer_id"),
            user_id=arg_int("user_id"),
            status=request.args.get("status"),
            date_from=arg_datetime("date_from"),
            date_to=arg_datetime("date_to"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.put("/<int:sale_id>")
@require_auth
def update_sale_route(sale_id: int):
    """Body: any of {"customer_id", "notes", "discount", "tax"}"""
    try:
        data = request.get_json(silent=True) or {}
        customer_id = data.get("customer_id")
        sale = sales_service.update_sale(
            sale_id,
            customer_id=coerce_int("customer_id", customer_id) if customer_id is not None else None,
            notes=data.get("notes"),
            discount=data.get("discount"),
            tax=data.get("tax"),
        )
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>/cancel")
@require_auth
def cancel_sale_route(sale_id: int):
    try:
        sale = sales_service.cancel_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>/status")
@require_auth
def set_status_route(sale_id: int):
    """Body: {"status": "PENDING" | "CONFIRMED" | "COMPLETED" | "REFUNDED" | "CANCELLED" | "DRAFT"}"""
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            raise ValidationError("status required")
        sale = sales_service.set_status(sale_id, str(status).upper())
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change sale status")
        return jsonify({"error": "Internal server error"}), 500


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@sales_bp.post("/<int:sale_id>/items")
@require_auth
def add_item_route(sale_id: int):
    """Body: {"product_id", "quantity", "unit_price"?, "discount"?}"""
    try:
        req = SaleItemRequest.from_payload(request.get_json(silent=True))
        sale = sales_service.add_item(
            sale_id,
            req.product_id,
            req.quantity,
            unit_price=req.unit_price,
            discount=req.discount,
        )
        return jsonify({"sale": sale.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add sale item")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.put("/<int:sale_id>/items/<int:item_id>")
@require_auth
def update_item_route(sale_id: int, item_id: int):
    """Body: any of {"quantity", "unit_price", "discount"}"""
    try:
        data = request.get_json(silent=True) or {}
        quantity = data.get("quantity")
        sale = sales_service.update_item(
            sale_id,
            item_id,
            quantity=coerce_int("quantity", quantity) if quantity is not None else None,
            unit_price=data.get("unit_price"),
            discount=data.get("discount"),
        )
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale item")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>/items/<int:item_id>")
@require_auth
def remove_item_route(sale_id: int, item_id: int):
    try:
        sale = sales_service.remove_item(sale_id, item_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove sale item")
        return jsonify({"error": "Internal server error"}), 500
