# Overview: Service-layer operations for auth; password hashing, user creation and login.

"""
Authentication Service

WHY: Every action must be attributable to a user. Passwords are hashed with
bcrypt (cost factor 12); emails are the login identifier and are unique
across the marketplace.

ROLES: admin, seller, customer. Customer users always belong to a seller.
"""

import logging

import bcrypt

from ..extensions import db
from ..models import User, VALID_ROLES, ROLE_CUSTOMER, ROLE_SELLER
from marketplace.time_utils import utcnow
from ..validation import ConflictError, ValidationError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
BCRYPT_ROUNDS = 12


class PasswordValidationError(ValidationError):
    """Raised when a password doesn't meet requirements."""


def validate_password_strength(password: str | None) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def hash_password(password: str) -> str:
    """Validate, then hash with bcrypt (cost factor 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check via bcrypt.checkpw. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def create_user(
    email: str,
    password: str,
    role: str = ROLE_CUSTOMER,
    *,
    display_name: str | None = None,
    business_name: str | None = None,
    seller_id: int | None = None,
    commit: bool = True,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        ValidationError: bad role, missing seller for a customer, weak password
        ConflictError: email already registered
    """
    email = normalize_email(email)
    if not email:
        raise ValidationError("email is required")
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")

    if role == ROLE_CUSTOMER:
        seller = db.session.get(User, seller_id) if seller_id else None
        if not seller or seller.role != ROLE_SELLER:
            raise ValidationError("Customer users must belong to a seller")
    else:
        seller_id = None

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("A user with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        display_name=display_name,
        business_name=business_name,
        seller_id=seller_id,
        is_active=True,
    )
    db.session.add(user)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    logger.info("Created %s user %s", role, email)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Check credentials. Returns the active user on success, None otherwise,
    and stamps last_login_at.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()
    if not user or not password:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
