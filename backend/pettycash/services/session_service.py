# Overview: Session token issue, validation and revocation.

"""
Session tokens for the JSON API.

The client holds a random 64-hex token; only its SHA-256 digest is stored.
A session dies after 24 hours regardless of use, after 2 hours without a
request, on logout, and whenever the user's password changes or the account is
deactivated. Every validated request carries a SessionContext, which is where
legacy role names are normalized.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..errors import AuthenticationError
from ..extensions import db
from ..models import SessionToken, User
from pettycash.time_utils import utcnow


# Configuration constants
SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)  # Maximum session length
SESSION_IDLE_TIMEOUT = timedelta(hours=2)        # Activity timeout


@dataclass
class SessionContext:
    """Authenticated principal for one request."""
    user: User
    session: SessionToken

    @property
    def role(self) -> str:
        # Legacy stored roles are normalized here, never persisted
        return self.user.effective_role


def generate_token() -> str:
    """Plaintext token handed to the client once; 32 bytes of entropy."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Stored form of a token; lookups hash the presented token the same way."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    *,
    login_method: str = "password",
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user or not user.is_active:
        raise AuthenticationError("Account is inactive. Please contact administrator.")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        login_method=login_method,
        user_agent=user_agent,
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


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if:
    - Token is invalid, expired, or revoked
    - User account is deactivated (is_active=False)

    Updates last_used_at on successful validation (activity tracking).
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """
    Revoke session token.

    Returns True if session was revoked, False if not found.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", *, except_session_id: int | None = None) -> int:
    """Revoke every live session of a user, optionally sparing the caller's own. Returns the count."""
    query = db.session.query(SessionToken).filter(
        SessionToken.user_id == user_id,
        SessionToken.is_revoked.is_(False),
    )
    if except_session_id is not None:
        query = query.filter(SessionToken.id != except_session_id)

    count = query.update(
        {"is_revoked": True, "revoked_at": utcnow(), "revoked_reason": reason},
        synchronize_session=False,
    )
    db.session.commit()
    return count
