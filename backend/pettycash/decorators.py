# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import current_app, g, request

from .permissions import ROLE_AUDITOR, get_role_permissions
from .responses import fail
from .services import session_service


READ_ONLY_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

# Auditors may still end their own session
AUDITOR_WRITE_ALLOWLIST = frozenset({"/api/auth/logout"})


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "session_context")


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid session token.

    Sets on flask.g:
    - g.current_user: the authenticated User
    - g.session_context: SessionContext (user, session, normalized role)

    Returns 401 for a missing, invalid, expired or revoked token, or a
    deactivated user. Auditors get 403 on any write method.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return fail("Authentication required", 401, "AUTHENTICATION_ERROR")

        context = session_service.validate_session(token)
        if not context:
            return fail("Invalid or expired token", 401, "AUTHENTICATION_ERROR")

        g.current_user = context.user
        g.session_context = context

        if (
            context.role == ROLE_AUDITOR
            and request.method not in READ_ONLY_METHODS
            and request.path not in AUDITOR_WRITE_ALLOWLIST
        ):
            current_app.logger.warning("Auditor %s attempted %s %s", context.user.id, request.method, request.path)
            return fail("Auditors have read-only access", 403, "READ_ONLY_ROLE")

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a permission granted to the caller's (normalized) role."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return fail("Authentication required", 401, "AUTHENTICATION_ERROR")

            if permission_code not in get_role_permissions(g.current_user.role):
                current_app.logger.warning(
                    "Permission %s denied for user %s (%s) on %s",
                    permission_code, g.current_user.id, g.session_context.role, request.path,
                )
                return fail(
                    "Permission denied",
                    403,
                    "AUTHORIZATION_ERROR",
                    required_permission=permission_code,
                )

            return f(*args, **kwargs)

        return decorated_function
    return decorator
