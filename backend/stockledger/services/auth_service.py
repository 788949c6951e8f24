# Overview: Service-layer operations for auth; password hashing and user accounts.

"""
Authentication Service

WHY: Every stock movement and every sale is attributed to an actor. This
module owns the only ways a User comes into existence or proves identity.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Users are deactivated, never deleted (history keeps its author)
- Session tokens managed separately (see session_service.py)
"""

import logging

import bcrypt

from ..extensions import db
from ..errors import ValidationError
from ..models import User, ROLES


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash. Timing-safe via bcrypt.checkpw().

    A malformed stored hash verifies as False rather than raising.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str = "staff",
) -> User:
    """
    Create a new user with a bcrypt password hash.

    Raises ValidationError for an unknown role, a blank name, a weak
    password or an email that is already registered.
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("email is required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if not (first_name or "").strip() or not (last_name or "").strip():
        raise ValidationError("first_name and last_name are required")

    if db.session.query(User).filter_by(email=email).first():
        raise ValidationError("Email already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        role=role,
    )

    db.session.add(user)
    db.session.commit()
    logger.info("User %d created with role %s", user.id, role)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns the active User for these credentials, None otherwise.

    WHY: Central authentication function. All login flows go through here.
    """
    user = db.session.query(User).filter(
        User.email == (email or "").strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        return user

    return None
