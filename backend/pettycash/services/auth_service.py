# Overview: Password hashing, user creation and the password login path.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Password is optional: accounts without one log in by OTP only
- Failed password logins are counted (see login_throttle_service.py);
  past PASSWORD_NOTIFY_THRESHOLD admins are alerted and OTP is suggested
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app, has_request_context, request

from ..errors import AccountLocked, AuthenticationError, DuplicateResource, ValidationError
from ..extensions import db
from ..models import User
from ..permissions import ROLES, ROLE_EMPLOYEE
from . import audit_service, login_throttle_service, notification_service, outbound, session_service


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    code = "WEAK_PASSWORD"


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password_hash or not password:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def find_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter(User.email == normalize_email(email)).first()


def create_user(
    *,
    name: str,
    email: str,
    password: str | None = None,
    role: str = ROLE_EMPLOYEE,
    phone: str | None = None,
    department: str | None = None,
    approval_limit_cents: int | None = None,
    manager_id: int | None = None,
    created_by_user_id: int | None = None,
) -> User:
    """
    Create a user. There is no self-registration; admins and managers call this.

    Password is optional: without one the user signs in by OTP.
    Raises DuplicateResource if the email is taken, PasswordValidationError
    for a weak password.
    """
    name = (name or "").strip()
    email = normalize_email(email)
    if not name:
        raise ValidationError("name is required")
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    if role not in ROLES:
        raise ValidationError(f"Invalid role: {role}")

    if db.session.query(User.id).filter(User.email == email).first():
        raise DuplicateResource("User already exists")

    user = User(
        name=name,
        email=email,
        phone=phone,
        password_hash=hash_password(password) if password else None,
        role=role,
        department=department,
        approval_limit_cents=approval_limit_cents,
        manager_id=manager_id,
        created_by_user_id=created_by_user_id,
        is_active=True,
    )

    db.session.add(user)
    db.session.commit()
    current_app.logger.info("User %s (%s) created with role %s", user.id, email, role)
    return user


def _client() -> tuple[str | None, str | None]:
    if not has_request_context():
        return None, None
    return request.remote_addr, request.headers.get("User-Agent")


def complete_login(user: User, login_method: str) -> tuple[User, str]:
    """
    Shared success path for password and OTP login.

    Clears counters and lock, stamps last_login_at, issues a session token
    and records the login. Returns (user, plaintext_token).
    """
    login_throttle_service.record_successful_login(user.id)
    ip_address, user_agent = _client()
    _, token = session_service.create_session(
        user.id,
        login_method=login_method,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    db.session.refresh(user)
    audit_service.record_login(login_method=login_method, login_status="success", user=user)
    current_app.logger.info("User %s logged in via %s", user.id, login_method)
    return user, token


def _reject(user: User | None, email: str, method: str, reason: str, exc: Exception):
    audit_service.record_login(
        login_method=method,
        login_status="failed",
        user=user,
        email=email,
        failure_reason=reason,
    )
    raise exc


def authenticate_password(email: str, password: str) -> tuple[User, str]:
    """
    Password login.

    - unknown email / inactive user -> AuthenticationError
    - locked account -> AccountLocked
    - no password set -> AuthenticationError suggesting OTP
    - wrong password -> failed_password_attempts incremented; at or above
      PASSWORD_NOTIFY_THRESHOLD admins are notified and OTP is suggested.
      Never locks.
    """
    email = normalize_email(email)
    if not email or not password:
        raise ValidationError("Please provide email and password")

    user = find_user_by_email(email)
    if not user:
        _reject(None, email, "password", "unknown email", AuthenticationError("Invalid credentials"))

    if not user.is_active:
        _reject(user, email, "password", "inactive",
                AuthenticationError("Account is inactive. Please contact administrator."))

    try:
        login_throttle_service.ensure_not_locked(user)
    except AccountLocked as exc:
        _reject(user, email, "password", "locked", exc)

    if not user.has_password:
        _reject(user, email, "password", "no password set", AuthenticationError(
            "No password is set for this account. Sign in with an OTP instead.",
            suggest_otp=True,
        ))

    if not verify_password(password, user.password_hash):
        failed = login_throttle_service.record_password_failure(user.id)
        threshold = current_app.config["PASSWORD_NOTIFY_THRESHOLD"]

        if failed >= threshold:
            ip_address, _ = _client()
            outbound.dispatch(
                "notify_admin_failed_login",
                notification_service.notify_admin_of_failed_login,
                {
                    "id": user.id,
                    "name": user.name,
                    "email": user.email,
                    "failed_attempts": failed,
                    "ip_address": ip_address,
                },
            )
            current_app.logger.warning("User %s reached %s failed password attempts", user.id, failed)
            _reject(user, email, "password", "invalid password", AuthenticationError(
                f"Invalid credentials. You have exceeded {threshold} failed attempts. "
                "Admin has been notified. You can try logging in with OTP instead.",
                failed_attempts=failed,
                suggest_otp=True,
            ))

        _reject(user, email, "password", "invalid password", AuthenticationError(
            f"Invalid credentials. {threshold - failed} attempt(s) remaining before account notification.",
            failed_attempts=failed,
        ))

    return complete_login(user, "password")


def change_password(
    user: User,
    current_password: str | None,
    new_password: str,
    *,
    keep_session_id: int | None = None,
) -> None:
    """
    Change own password. Users without a password may set one without
    supplying a current password. Other sessions are revoked.
    """
    if user.has_password and not verify_password(current_password or "", user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    set_password(user, new_password, keep_session_id=keep_session_id)


def set_password(user: User, new_password: str, *, keep_session_id: int | None = None) -> None:
    user.password_hash = hash_password(new_password)
    db.session.commit()
    session_service.revoke_all_user_sessions(user.id, "Password changed", except_session_id=keep_session_id)
    audit_service.record("password_changed", user.id, "User", user.id)
    current_app.logger.info("Password changed for user %s", user.id)
