# Overview: Service-layer operations for operator accounts; bcrypt passwords and deactivation.

"""
User Accounts

Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, with uppercase, lowercase, digit and special char
- Deactivating a user revokes every session they hold
- Users are never deleted; sales and commissions keep pointing at them
"""

import re
from typing import Optional

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..validation import enforce_rules_email
from backoffice.time_utils import utcnow
from . import session_service


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    code = "WEAK_PASSWORD"


def validate_password_strength(password: str) -> None:
    """
    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check; malformed hashes simply fail."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _normalize_email(email: Optional[str]) -> str:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("email is required")
    enforce_rules_email(email)
    return email


def _check_email_unique(email: str, exclude_id: Optional[int] = None) -> None:
    query = db.session.query(User.id).filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first():
        raise ConflictError("A user with this email already exists", details={"email": email})


def create_user(
    *,
    first_name: str,
    email: str,
    password: str,
    last_name: str = "",
    is_admin: bool = False,
) -> User:
    first_name = (first_name or "").strip()
    if not first_name:
        raise ValidationError("first_name is required")
    email = _normalize_email(email)
    _check_email_unique(email)

    user = User(
        first_name=first_name,
        last_name=(last_name or "").strip(),
        email=email,
        password_hash=hash_password(password),
        is_admin=bool(is_admin),
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A user with this email already exists", details={"email": email})

    current_app.logger.info("User %s created (admin=%s)", user.id, user.is_admin)
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found", details={"user_id": user_id})
    return user


def update_user(user_id: int, payload: dict) -> User:
    """Update name, email, admin flag or password. Unknown keys are rejected."""
    allowed = {"first_name", "last_name", "email", "is_admin", "password"}
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    user = get_user(user_id)
    try:
        _apply_user_fields(user, payload)
    except (ValidationError, ConflictError):
        db.session.rollback()
        raise

    db.session.commit()
    return user


def _apply_user_fields(user: User, payload: dict) -> None:
    if "first_name" in payload:
        first_name = (payload["first_name"] or "").strip()
        if not first_name:
            raise ValidationError("first_name cannot be blank")
        user.first_name = first_name
    if "last_name" in payload:
        user.last_name = (payload["last_name"] or "").strip()
    if "email" in payload:
        email = _normalize_email(payload["email"])
        _check_email_unique(email, exclude_id=user.id)
        user.email = email
    if "is_admin" in payload:
        if not isinstance(payload["is_admin"], bool):
            raise ValidationError("is_admin must be a boolean")
        user.is_admin = payload["is_admin"]
    if "password" in payload:
        user.password_hash = hash_password(payload["password"])
        session_service.revoke_all_user_sessions(user.id, reason="Password changed", commit=False)


def deactivate_user(user_id: int, *, actor_user_id: Optional[int] = None) -> User:
    """Soft-deactivate and revoke all sessions. Admins cannot deactivate themselves."""
    if actor_user_id is not None and actor_user_id == user_id:
        raise ValidationError("You cannot deactivate your own account")

    user = get_user(user_id)
    if user.is_active:
        user.is_active = False
        user.deactivated_at = utcnow()
        revoked = session_service.revoke_all_user_sessions(user_id, reason="User account deactivated", commit=False)
        db.session.commit()
        current_app.logger.info("User %s deactivated (%s sessions revoked)", user_id, revoked)
    return user


def list_users(include_inactive: bool = False) -> list[User]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.first_name.asc(), User.id.asc()).all()
