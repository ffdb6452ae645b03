# Overview: Flask API routes for login, OTP, logout and the caller's own profile.

# backend/pettycash/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Password login never locks; repeated failures notify admins and suggest OTP
- OTP requests are rate limited per user; OTP verification locks the account
  after repeated wrong codes
- Session tokens are opaque, stored hashed and revocable
"""

from flask import Blueprint, g, request

from ..decorators import bearer_token, require_auth
from ..errors import PettyCashError, ValidationError
from ..permissions import get_role_permissions
from ..responses import error_response, ok, unexpected_error
from ..services import auth_service, otp_service, session_service, user_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, token: str) -> dict:
    return {
        "user": user.to_dict(),
        "permissions": sorted(get_role_permissions(user.role)),
        "token": token,
    }


@auth_bp.post("/login")
def login_route():
    """
    Password login.

    Returns user info and session token on success. The token goes in the
    Authorization header (Bearer) for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        user, token = auth_service.authenticate_password(data.get("email"), data.get("password"))
        return ok(_session_payload(user, token), "Login successful")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("login user", e)


@auth_bp.post("/request-otp")
def request_otp_route():
    try:
        data = request.get_json(silent=True) or {}
        result = otp_service.request_otp(data.get("email"), data.get("otp_type") or otp_service.OTP_TYPE_LOGIN)
        return ok(result, "OTP sent to your email")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("request OTP", e)


@auth_bp.post("/verify-otp")
def verify_otp_route():
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        code = str(data.get("otp") or data.get("code") or "").strip()
        if not email or not code:
            raise ValidationError("Please provide email and OTP")
        user, token = otp_service.verify_otp(email, code)
        return ok(_session_payload(user, token), "Login successful")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("verify OTP", e)


@auth_bp.post("/reset-password")
def reset_password_route():
    """Complete a password reset with a password_reset OTP. All sessions are revoked."""
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        code = str(data.get("otp") or data.get("code") or "").strip()
        new_password = data.get("new_password")
        if not email or not code or not new_password:
            raise ValidationError("Please provide email, OTP and new_password")
        otp_service.reset_password(email, code, new_password)
        return ok(message="Password has been reset. Please sign in.")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("reset password", e)


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(bearer_token(), "User logout")
        return ok(message="Logged out")
    except Exception as e:
        return unexpected_error("logout user", e)


@auth_bp.get("/profile")
@require_auth
def get_profile_route():
    user = g.current_user
    return ok({
        "user": user.to_dict(),
        "permissions": sorted(get_role_permissions(user.role)),
        "session": g.session_context.session.to_dict(),
    })


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    try:
        user = user_service.update_profile(g.current_user, request.get_json(silent=True) or {})
        return ok(user.to_dict(), "Profile updated")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("update profile", e)


@auth_bp.put("/change-password")
@require_auth
def change_password_route():
    """Change own password; every other session of the caller is revoked."""
    try:
        data = request.get_json(silent=True) or {}
        new_password = data.get("new_password")
        if not new_password:
            raise ValidationError("Please provide new_password")
        auth_service.validate_password_strength(new_password)
        auth_service.change_password(
            g.current_user,
            data.get("current_password"),
            new_password,
            keep_session_id=g.session_context.session.id,
        )
        return ok(message="Password changed")
    except PettyCashError as e:
        return error_response(e)
    except Exception as e:
        return unexpected_error("change password", e)
