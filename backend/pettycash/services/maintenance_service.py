# Overview: Retention cleanup for expired credentials.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import SessionToken
from . import otp_service
from pettycash.time_utils import utcnow


def cleanup_otps(*, older_than_hours: int = 24) -> int:
    """Delete OTP rows that expired more than older_than_hours ago."""
    return otp_service.cleanup_expired(older_than_hours=older_than_hours)


def cleanup_sessions(*, retention_days: int = 30) -> int:
    """
    Delete session tokens that expired or were revoked more than
    retention_days ago.
    """
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < cutoff,
            db.and_(SessionToken.is_revoked.is_(True), SessionToken.revoked_at < cutoff),
        )
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
