# Overview: Service-layer operations for user administration.

"""
User administration.

Accounts are never hard-deleted: movements and sales keep pointing at the
user who made them. Deactivation revokes the user's live sessions.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ConflictError, ForbiddenError, NotFoundError
from ..extensions import db
from ..models import USER_ROLES, User
from ..validation import ModelValidationPolicy, ValidationError, enforce_rules_user, validate_payload
from . import auth_service, session_service
from .pagination import paginate

USER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "role", "is_active"},
    required_on_create={"name", "email"},
)

MIN_NAME_LENGTH = 3


def _clean(patch: dict) -> dict:
    if patch.get("email"):
        patch["email"] = patch["email"].lower()
    name = patch.get("name")
    if name is not None and len(name) < MIN_NAME_LENGTH:
        raise ValidationError(f"name must be at least {MIN_NAME_LENGTH} characters")
    enforce_rules_user(patch)
    return patch


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", {"user_id": user_id})
    return user


def create_user(payload: dict) -> User:
    """
    Body: {"name", "email", "password", "role"?, "is_active"?}

    role defaults to SALESPERSON.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    password = payload.pop("password", None)
    if password is None:
        raise ValidationError("Missing required fields: password")

    patch = _clean(validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False))
    user = auth_service.create_user(
        patch["name"],
        patch["email"],
        password,
        role=patch.get("role") or "SALESPERSON",
    )
    if patch.get("is_active") is False:
        user.is_active = False
        db.session.commit()

    current_app.logger.info("User %s created (%s)", user.id, user.role)
    return user


def update_user(user_id: int, payload: dict, acting_user_id: int) -> User:
    """
    Partial update of name, email, role and is_active.

    Nobody may change their own role or deactivate themselves.
    """
    user = get_user(user_id)
    patch = _clean(validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True))

    if user.id == acting_user_id:
        if "role" in patch and patch["role"] != user.role:
            raise ForbiddenError("Cannot change your own role")
        if patch.get("is_active") is False:
            raise ForbiddenError("Cannot deactivate your own account")

    email = patch.get("email")
    if email and email != user.email:
        taken = db.session.query(User).filter(User.email == email, User.id != user.id).first()
        if taken is not None:
            raise ConflictError("Email already registered", {"email": email})

    was_active = user.is_active
    for key, value in patch.items():
        setattr(user, key, value)
    if was_active and not user.is_active:
        session_service.revoke_all_user_sessions(user.id, "User account deactivated")
    else:
        db.session.commit()

    current_app.logger.info("User %s updated by user %s: %s", user.id, acting_user_id, sorted(patch))
    return user


def change_password(user_id: int, password: str) -> None:
    user = get_user(user_id)
    user.password_hash = auth_service.hash_password(password)
    db.session.commit()
    current_app.logger.info("Password changed for user %s", user.id)


def deactivate_user(user_id: int, acting_user_id: int) -> User:
    """Soft delete. Idempotent; revokes every live session of the user."""
    if user_id == acting_user_id:
        raise ForbiddenError("Cannot deactivate your own account")
    user = get_user(user_id)

    user.is_active = False
    revoked = session_service.revoke_all_user_sessions(user.id, "User account deactivated")

    current_app.logger.info(
        "User %s deactivated by user %s (%s session(s) revoked)", user.id, acting_user_id, revoked
    )
    return user


def list_users(
    *,
    search: str | None = None,
    role: str | None = None,
    is_active: bool | None = None,
    page: int | None = 1,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(User)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    if role:
        if role not in USER_ROLES:
            raise ValidationError(f"role must be one of {', '.join(USER_ROLES)}")
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    query = query.order_by(User.name.asc(), User.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda u: u.to_dict())


def user_statistics() -> dict:
    rows = (
        db.session.query(User.role, User.is_active, func.count(User.id))
        .group_by(User.role, User.is_active)
        .all()
    )
    by_role = {role: 0 for role in USER_ROLES}
    active = inactive = 0
    for role, is_active, count in rows:
        by_role[role] = by_role.get(role, 0) + count
        if is_active:
            active += count
        else:
            inactive += count
    return {
        "total": active + inactive,
        "active": active,
        "inactive": inactive,
        "by_role": by_role,
    }
