"""
Login Throttling Service

WHY: Slow down credential guessing without locking people out of the
password path. Failed password logins are counted per user and, past a
threshold, raise an admin alert and steer the user to OTP login. Failed OTP
verifications past the per-code attempt limit lock the account.

SECURITY FEATURES:
- Counters live on the user row and change only through atomic UPDATEs
- Password failures never lock the account
- OTP exhaustion locks the account for ACCOUNT_LOCK_MINUTES
- A lock blocks both login paths until it expires or an admin clears it
- Successful login (either path) clears both counters and the lock
"""

from datetime import timedelta

from flask import current_app
from sqlalchemy import update

from ..errors import AccountLocked
from ..extensions import db
from ..models import User
from .concurrency import run_with_retry
from pettycash.time_utils import utcnow, to_utc_z


def lock_remaining_seconds(user: User) -> int | None:
    """Seconds left on the account lock, or None when not locked."""
    now = utcnow()
    if not user.is_locked(now):
        return None
    return max(1, int((user.account_locked_until - now).total_seconds()))


def ensure_not_locked(user: User) -> None:
    seconds = lock_remaining_seconds(user)
    if seconds is None:
        return
    current_app.logger.warning("Login attempt on locked account %s", user.id)
    raise AccountLocked(
        "Account is temporarily locked. Please try again later.",
        locked_until=to_utc_z(user.account_locked_until),
        retry_after_seconds=seconds,
    )


def record_password_failure(user_id: int) -> int:
    """
    Count a failed password login.

    Returns the new failed_password_attempts value. Committed immediately so
    the count survives the error response that follows.
    """
    def _op() -> int:
        db.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                failed_password_attempts=User.failed_password_attempts + 1,
                last_failed_password_at=utcnow(),
            )
        )
        db.session.commit()
        return db.session.query(User.failed_password_attempts).filter_by(id=user_id).scalar()

    return run_with_retry(_op)


def record_otp_failure(user_id: int, *, lock: bool) -> None:
    """Count a failed OTP verification; with lock=True also lock the account."""
    values = {"failed_otp_attempts": User.failed_otp_attempts + 1}
    if lock:
        minutes = current_app.config["ACCOUNT_LOCK_MINUTES"]
        values["account_locked_until"] = utcnow() + timedelta(minutes=minutes)

    def _op() -> None:
        db.session.execute(update(User).where(User.id == user_id).values(**values))
        db.session.commit()

    run_with_retry(_op)
    if lock:
        current_app.logger.warning("Account %s locked after too many OTP attempts", user_id)


def record_successful_login(user_id: int) -> None:
    """Clear both counters and any lock; stamp last_login_at."""
    def _op() -> None:
        db.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                failed_password_attempts=0,
                failed_otp_attempts=0,
                account_locked_until=None,
                last_login_at=utcnow(),
            )
        )
        db.session.commit()

    run_with_retry(_op)


def unlock_account(user_id: int) -> None:
    """Admin action: clear the lock and both counters."""
    def _op() -> None:
        db.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(failed_password_attempts=0, failed_otp_attempts=0, account_locked_until=None)
        )
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Account %s unlocked", user_id)
