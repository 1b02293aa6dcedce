# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication service.

WHY: Every stock movement and every sale is attributed to a user. Passwords
are hashed with bcrypt; session tokens live in session_service.py.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters
- Inactive users cannot authenticate
"""

import bcrypt

from ..errors import ConflictError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from ..validation import ValidationError, enforce_rules_user

MIN_PASSWORD_LENGTH = 6


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. A malformed stored hash
    counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(name: str, email: str, password: str, role: str = "SALESPERSON") -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: bad email/role, PasswordValidationError for a short password
        ConflictError: email already registered
    """
    name = (name or "").strip()
    email = (email or "").strip().lower()
    if not name:
        raise ValidationError("name is required")
    enforce_rules_user({"email": email, "role": role})

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("Email already registered", {"email": email})

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Return the user for valid credentials, None otherwise.

    Unknown email, wrong password and inactive account all look the same
    to the caller.
    """
    email = (email or "").strip().lower()
    user = db.session.query(User).filter_by(email=email).first()
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
