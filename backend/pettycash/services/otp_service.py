# Overview: One-time password issue and verification (login and password reset).

"""
OTP Service

WHY: Users may have no password at all, and users who keep failing the
password path are steered here. Codes are short, so every step that could be
raced is a single conditional UPDATE:

- issuing claims the per-user cooldown slot (last_otp_sent_at) atomically
- verifying increments the per-code attempt counter before comparing
- using a code flips is_used only if it was still unused

Only the SHA-256 hash of a code is stored; the plaintext leaves the process
once, through the notification sender.
"""

import hashlib
import hmac
import secrets
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_, update

from ..errors import AccountLocked, AuthenticationError, NotFound, RateLimited, ValidationError
from ..extensions import db
from ..models import OTP, User
from . import audit_service, auth_service, login_throttle_service, notification_service, outbound
from .concurrency import run_with_retry
from pettycash.time_utils import utcnow


OTP_TYPE_LOGIN = "login"
OTP_TYPE_PASSWORD_RESET = "password_reset"
OTP_TYPES = (OTP_TYPE_LOGIN, OTP_TYPE_PASSWORD_RESET)


def generate_code() -> str:
    """6-digit code from the OS CSPRNG (100000-999999)."""
    return str(secrets.randbelow(900000) + 100000)


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def _lookup_active_user(email: str) -> User:
    email = auth_service.normalize_email(email)
    if not email:
        raise ValidationError("Please provide email address")
    user = auth_service.find_user_by_email(email)
    if not user:
        raise NotFound("User not found. Please contact administrator.")
    if not user.is_active:
        raise AuthenticationError("Account is inactive. Please contact administrator.")
    return user


def _claim_send_slot(user_id: int) -> bool:
    """Atomically take the cooldown slot. False if an OTP was sent too recently."""
    now = utcnow()
    cutoff = now - timedelta(seconds=current_app.config["OTP_COOLDOWN_SECONDS"])
    result = db.session.execute(
        update(User)
        .where(
            User.id == user_id,
            or_(User.last_otp_sent_at.is_(None), User.last_otp_sent_at <= cutoff),
        )
        .values(last_otp_sent_at=now)
    )
    return bool(result.rowcount)


def request_otp(email: str, otp_type: str = OTP_TYPE_LOGIN) -> dict:
    """
    Issue a fresh OTP and send it by email.

    - one request per OTP_COOLDOWN_SECONDS per user -> RateLimited otherwise
    - earlier unused OTPs of the same type are invalidated
    - expires after OTP_TTL_MINUTES
    """
    if otp_type not in OTP_TYPES:
        raise ValidationError(f"Invalid otp_type: {otp_type}")

    user = _lookup_active_user(email)
    login_throttle_service.ensure_not_locked(user)

    cooldown = current_app.config["OTP_COOLDOWN_SECONDS"]
    ttl_minutes = current_app.config["OTP_TTL_MINUTES"]
    code = generate_code()

    def _op() -> OTP:
        if not _claim_send_slot(user.id):
            db.session.rollback()
            last_sent = db.session.query(User.last_otp_sent_at).filter_by(id=user.id).scalar()
            elapsed = (utcnow() - last_sent).total_seconds() if last_sent else cooldown
            remaining = max(1, int(cooldown - elapsed))
            raise RateLimited(
                f"Please wait {remaining} seconds before requesting another OTP",
                retry_after_seconds=remaining,
            )

        now = utcnow()
        db.session.execute(
            update(OTP)
            .where(
                OTP.user_id == user.id,
                OTP.otp_type == otp_type,
                OTP.is_used.is_(False),
                OTP.invalidated_at.is_(None),
            )
            .values(invalidated_at=now)
        )

        otp = OTP(
            user_id=user.id,
            code_hash=hash_code(code),
            otp_type=otp_type,
            expires_at=now + timedelta(minutes=ttl_minutes),
            is_used=False,
            attempts=0,
            created_at=now,
        )
        db.session.add(otp)
        db.session.commit()
        return otp

    otp = run_with_retry(_op)

    outbound.dispatch(
        "send_otp",
        notification_service.send_otp,
        user.email,
        code,
        user.name,
        ttl_minutes=ttl_minutes,
    )
    current_app.logger.info("OTP (%s) issued for user %s", otp_type, user.id)

    return {
        "email": user.email,
        "otp_type": otp_type,
        "expires_at": otp.to_dict()["expires_at"],
        "expires_in_minutes": ttl_minutes,
    }


def _active_otp(user_id: int, otp_type: str) -> OTP | None:
    return (
        db.session.query(OTP)
        .filter(
            OTP.user_id == user_id,
            OTP.otp_type == otp_type,
            OTP.is_used.is_(False),
            OTP.invalidated_at.is_(None),
            OTP.expires_at > utcnow(),
        )
        .order_by(OTP.created_at.desc(), OTP.id.desc())
        .first()
    )


def _consume(user: User, code: str, otp_type: str) -> None:
    """
    Check a code against the user's active OTP and mark it used.

    Raises AccountLocked (user locked, or this failure exhausted the code),
    ValidationError (no active code) or AuthenticationError (wrong code).
    """
    login_throttle_service.ensure_not_locked(user)

    code = (code or "").strip()
    if not code:
        raise ValidationError("Please provide email and OTP")

    max_attempts = current_app.config["OTP_MAX_ATTEMPTS"]
    otp = _active_otp(user.id, otp_type)
    if otp is None:
        raise ValidationError("OTP has expired or is invalid. Please request a new one.")

    otp_id = otp.id
    expected_hash = otp.code_hash

    def _count_attempt() -> int | None:
        result = db.session.execute(
            update(OTP)
            .where(OTP.id == otp_id, OTP.attempts < max_attempts, OTP.is_used.is_(False))
            .values(attempts=OTP.attempts + 1)
        )
        db.session.commit()
        if not result.rowcount:
            return None
        return db.session.query(OTP.attempts).filter_by(id=otp_id).scalar()

    attempts = run_with_retry(_count_attempt)

    if attempts is None:
        # Code already exhausted by concurrent attempts
        login_throttle_service.record_otp_failure(user.id, lock=True)
        raise AccountLocked("Too many failed attempts. Account locked.")

    if not hmac.compare_digest(hash_code(code), expected_hash):
        if attempts >= max_attempts:
            login_throttle_service.record_otp_failure(user.id, lock=True)
            raise AccountLocked(
                f"Too many failed attempts. Account locked for "
                f"{current_app.config['ACCOUNT_LOCK_MINUTES']} minutes.",
                retry_after_seconds=current_app.config["ACCOUNT_LOCK_MINUTES"] * 60,
            )
        login_throttle_service.record_otp_failure(user.id, lock=False)
        remaining = max_attempts - attempts
        raise AuthenticationError(
            f"Invalid OTP. {remaining} attempts remaining.",
            attempts_remaining=remaining,
        )

    def _mark_used() -> bool:
        result = db.session.execute(
            update(OTP)
            .where(OTP.id == otp_id, OTP.is_used.is_(False))
            .values(is_used=True, used_at=utcnow())
        )
        db.session.commit()
        return bool(result.rowcount)

    if not run_with_retry(_mark_used):
        raise ValidationError("OTP has expired or is invalid. Please request a new one.")


def verify_otp(email: str, code: str) -> tuple[User, str]:
    """OTP login. Returns (user, plaintext_session_token)."""
    user = _lookup_active_user(email)
    try:
        _consume(user, code, OTP_TYPE_LOGIN)
    except (AccountLocked, AuthenticationError, ValidationError) as exc:
        audit_service.record_login(
            login_method="otp",
            login_status="failed",
            user=user,
            failure_reason=exc.message,
        )
        raise
    return auth_service.complete_login(user, "otp")


def reset_password(email: str, code: str, new_password: str) -> User:
    """Set a new password using a password_reset OTP. Clears counters and lock."""
    user = _lookup_active_user(email)
    auth_service.validate_password_strength(new_password)
    _consume(user, code, OTP_TYPE_PASSWORD_RESET)
    auth_service.set_password(user, new_password)
    login_throttle_service.unlock_account(user.id)
    return user


def cleanup_expired(*, older_than_hours: int = 24) -> int:
    """Delete OTP rows that expired more than older_than_hours ago."""
    cutoff = utcnow() - timedelta(hours=older_than_hours)
    deleted = db.session.query(OTP).filter(OTP.expires_at < cutoff).delete()
    db.session.commit()
    return deleted
