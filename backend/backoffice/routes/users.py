# backend/backoffice/routes/users.py
"""
User administration routes.

Everything here is ADMIN-only except /me and changing your own password.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import ForbiddenError, ServiceError
from ..services import user_service
from .params import arg_bool, page_args

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role("ADMIN")
def list_users_route():
    try:
        page, per_page = page_args()
        result = user_service.list_users(
            search=request.args.get("search"),
            role=request.args.get("role"),
            is_active=arg_bool("is_active"),
            page=page,
            per_page=per_page,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("")
@require_auth
@require_role("ADMIN")
def create_user_route():
    """Body: {"name", "email", "password", "role"?, "is_active"?}"""
    try:
        user = user_service.create_user(request.get_json(silent=True))
        return jsonify({"user": user.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/me")
@require_auth
def current_user_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@users_bp.get("/statistics")
@require_auth
@require_role("ADMIN")
def user_statistics_route():
    return jsonify(user_service.user_statistics()), 200


@users_bp.get("/<int:user_id>")
@require_auth
@require_role("ADMIN")
def get_user_route(user_id: int):
    try:
        user = user_service.get_user(user_id)
        return jsonify({"user": user.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@users_bp.put("/<int:user_id>")
@require_auth
@require_role("ADMIN")
def update_user_route(user_id: int):
    try:
        user = user_service.update_user(user_id, request.get_json(silent=True), g.current_user.id)
        return jsonify({"user": user.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>/password")
@require_auth
def change_password_route(user_id: int):
    """Body: {"password"}. Admins may reset anyone's; other users only their own."""
    try:
        if g.current_user.role != "ADMIN" and g.current_user.id != user_id:
            raise ForbiddenError("Permission denied")
        data = request.get_json(silent=True) or {}
        user_service.change_password(user_id, data.get("password"))
        return "", 204
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role("ADMIN")
def deactivate_user_route(user_id: int):
    """Soft delete: the account is marked inactive and its sessions revoked."""
    try:
        user = user_service.deactivate_user(user_id, g.current_user.id)
        return jsonify({"user": user.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate user")
        return jsonify({"error": "Internal server error"}), 500
