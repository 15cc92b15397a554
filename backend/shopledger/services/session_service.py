# Overview: Bearer session tokens for operators.

"""
Session tokens.

A token is 32 random bytes sent to the client as hex; the database keeps
only its SHA-256 digest. Sessions expire SESSION_TTL_HOURS after login and
are revoked on logout or when their user is deactivated.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import timedelta

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _session_ttl() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))


def _active_session(token: str) -> SessionToken | None:
    if not token:
        return None
    return SessionToken.query.filter_by(token_hash=hash_token(token), is_revoked=False).first()


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def create_session(user_id: int, user_agent: str | None = None,
                   ip_address: str | None = None) -> tuple[SessionToken, str]:
    """Returns (session row, plaintext token). The plaintext is not kept."""
    if db.session.get(User, user_id) is None:
        raise NotFoundError("User not found", user_id=user_id)

    token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _session_ttl(),
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> User | None:
    """The token's active user, or None (unknown, expired, revoked, deactivated)."""
    session = _active_session(token)
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """True when an active session was revoked."""
    session = _active_session(token)
    if session is None:
        return False
    _revoke(session, reason)
    logger.info("Revoked session %s of user %s (%s)", session.id, session.user_id, reason)
    return True
