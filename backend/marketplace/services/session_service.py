# Overview: Service-layer operations for sessions; issues, validates and revokes session tokens.

"""
Session Token Management Service

WHY: The session cookie is an opaque token verified server-side on every
protected request. Tokens are random, stored only as hashes, and expire on
both an absolute and an idle timeout.

ROLE CLAIM: The user's role is captured on the session at login. If the
claim is empty or no longer matches the user record (role changed after
login), the user's current role wins and the claim is refreshed.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout (SESSION_ABSOLUTE_HOURS, default 24h)
- Idle timeout (SESSION_IDLE_HOURS, default 2h)
- Revocable on logout or account deactivation
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app, has_app_context

from ..extensions import db
from ..models import SessionToken, User, ROLE_ADMIN, ROLE_SELLER
from marketplace.time_utils import utcnow
from .access_policy import Principal

logger = logging.getLogger(__name__)


DEFAULT_ABSOLUTE_HOURS = 24
DEFAULT_IDLE_HOURS = 2


@dataclass
class SessionContext:
    """Everything require_auth learns from a valid token."""
    user: User
    session: SessionToken
    principal: Principal


def _timeouts() -> tuple[timedelta, timedelta]:
    absolute, idle = DEFAULT_ABSOLUTE_HOURS, DEFAULT_IDLE_HOURS
    if has_app_context():
        absolute = current_app.config.get("SESSION_ABSOLUTE_HOURS", absolute)
        idle = current_app.config.get("SESSION_IDLE_HOURS", idle)
    return timedelta(hours=absolute), timedelta(hours=idle)


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    SHA-256 for storage. Tokens are already high-entropy, so a fast hash
    is sufficient (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def build_principal(user: User, role: str | None = None) -> Principal:
    role = role or user.role
    if role == ROLE_ADMIN:
        seller_id = None
    elif role == ROLE_SELLER:
        seller_id = user.id
    else:
        seller_id = user.seller_id
    profile = user.customer_profile
    return Principal(
        user_id=user.id,
        role=role,
        email=user.email,
        seller_id=seller_id,
        customer_id=profile.id if profile else None,
        is_active=bool(user.is_active),
    )


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create a session for a user.

    Returns (session_record, plaintext_token). The client receives the
    plaintext token; the database keeps only its hash.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User account is disabled")

    plaintext_token = generate_token()
    absolute, _ = _timeouts()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        role_claim=user.role,
        created_at=now,
        last_used_at=now,
        expires_at=now + absolute,
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()
    logger.info("Session %s revoked: %s", session.id, reason)


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a session token.

    Returns None if the token is unknown, expired, idle too long, revoked,
    or belongs to a deactivated user. Updates last_used_at on success.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return None

    now = utcnow()
    _, idle = _timeouts()

    if session.expires_at < now:
        return None

    if now - session.last_used_at > idle:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    # Stale or missing role claim: fall back to the user record
    if session.role_claim != user.role:
        if session.role_claim:
            logger.info(
                "Session %s role claim %r is stale; using %r from user record",
                session.id, session.role_claim, user.role,
            )
        session.role_claim = user.role

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, principal=build_principal(user, session.role_claim))


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False
    _revoke(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
    db.session.commit()
    return len(sessions)


def cleanup_expired_sessions(retention_days: int = 30) -> int:
    """Delete sessions that are expired or revoked and older than the retention window."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(True),
        ),
        SessionToken.created_at < cutoff,
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
