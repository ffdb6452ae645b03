from __future__ import annotations

from ..extensions import db
from ..permissions import normalize_role
from ..validation import cents_to_str
from pettycash.time_utils import to_utc_z, utcnow


class User(db.Model):
    """
    User accounts for authentication, attribution and approval authority.

    Role is a plain column: a role change is a single field update, never a
    type change. Legacy stored roles (custodian, handler) are kept as-is and
    normalized at the authorization boundary.

    Users are created by admins/managers only and deactivated (is_active=False)
    instead of deleted.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.Index("ix_users_role", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=True)

    # Bcrypt hashed password; NULL means OTP-only login
    password_hash = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(32), nullable=False, default="employee")

    # NULL = unlimited approval authority
    approval_limit_cents = db.Column(db.BigInteger, nullable=True)

    department = db.Column(db.String(120), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Credential gateway state (password and OTP tracked independently)
    failed_password_attempts = db.Column(db.Integer, nullable=False, default=0)
    failed_otp_attempts = db.Column(db.Integer, nullable=False, default=0)
    last_failed_password_at = db.Column(db.DateTime(timezone=True), nullable=True)
    account_locked_until = db.Column(db.DateTime(timezone=True), nullable=True)
    last_otp_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Weak reference: reporting line, not enforced by approval logic
    manager_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    manager = db.relationship("User", remote_side=[id], foreign_keys=[manager_id])

    @property
    def effective_role(self) -> str:
        return normalize_role(self.role)

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    def is_locked(self, now=None) -> bool:
        if self.account_locked_until is None:
            return False
        return self.account_locked_until > (now or utcnow())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.effective_role,
            "stored_role": self.role,
            "approval_limit": cents_to_str(self.approval_limit_cents),
            "department": self.department,
            "is_active": self.is_active,
            "has_password": self.has_password,
            "manager_id": self.manager_id,
            "failed_password_attempts": self.failed_password_attempts,
            "failed_otp_attempts": self.failed_otp_attempts,
            "account_locked_until": to_utc_z(self.account_locked_until),
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}


class SessionToken(db.Model):
    """
    Secure session token management.

    WHY: Stateless auth tokens with timeout and revocation support.
    Tokens are cryptographically secure random strings (32 bytes = 64 hex chars).

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - 24-hour absolute timeout
    - 2-hour idle timeout
    - Revocable on logout, deactivation or suspicious activity
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Session metadata
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # How the session was obtained: password or otp
    login_method = db.Column(db.String(16), nullable=False, default="password")

    # Revocation support
    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    # Client information (for security monitoring)
    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "login_method": self.login_method,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
        }


class OTP(db.Model):
    """
    One-time password issued for login or password reset.

    Ephemeral: valid for OTP_TTL_MINUTES, consumed on successful verification,
    invalidated when a newer OTP of the same type is issued. The code itself is
    stored hashed, like session tokens.
    """
    __tablename__ = "otps"
    __table_args__ = (
        db.Index("ix_otps_user_type_active", "user_id", "otp_type", "is_used"),
        db.Index("ix_otps_expires_at", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    code_hash = db.Column(db.String(64), nullable=False)
    otp_type = db.Column(db.String(32), nullable=False, default="login")  # login, password_reset

    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    is_used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    invalidated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("otps", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "otp_type": self.otp_type,
            "expires_at": to_utc_z(self.expires_at),
            "is_used": self.is_used,
            "invalidated_at": to_utc_z(self.invalidated_at),
            "attempts": self.attempts,
            "created_at": to_utc_z(self.created_at),
        }
