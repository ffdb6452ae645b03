# Overview: Domain error taxonomy shared by services and routes.

"""
Petty cash error taxonomy.

Every domain failure is an exception carrying the HTTP status and machine code
the API reports for it. Services raise these; routes roll back the session and
turn them into the standard response envelope.

    PettyCashError (500)
    ├── ValidationError (400)
    │   ├── InvalidAmount
    │   ├── InvalidFileType
    │   ├── FileTooLarge
    │   └── DuplicateResource
    ├── AuthenticationError (401)
    ├── AuthorizationError (403)
    │   ├── ReadOnlyRole
    │   ├── NotOwner
    │   └── ExceedsApprovalLimit
    ├── NotFound (404)
    ├── ConflictError (409)
    │   ├── InvalidTransition
    │   └── InsufficientFunds
    │       └── InsufficientBalance
    ├── AccountLocked (423)
    └── RateLimited (429)
"""

from __future__ import annotations


class PettyCashError(Exception):
    """Base class for domain errors. Bare instances are unexpected (500)."""

    status_code = 500
    code = "UNEXPECTED_ERROR"

    def __init__(self, message: str = "", **extra):
        super().__init__(message)
        self.message = message
        # Additional response fields (e.g. retry_after_seconds, failed_attempts)
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message, "error": self.code}
        body.update(self.extra)
        return body


class ValidationError(PettyCashError):
    """400-level input problem."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class InvalidFileType(ValidationError):
    code = "INVALID_FILE_TYPE"


class FileTooLarge(ValidationError):
    code = "FILE_TOO_LARGE"


class DuplicateResource(ValidationError):
    """Unique constraint violation (email, category name/code)."""

    code = "DUPLICATE_RESOURCE"


class AuthenticationError(PettyCashError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"


class AuthorizationError(PettyCashError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"


class ReadOnlyRole(AuthorizationError):
    code = "READ_ONLY_ROLE"


class NotOwner(AuthorizationError):
    code = "NOT_OWNER"


class ExceedsApprovalLimit(AuthorizationError):
    code = "EXCEEDS_APPROVAL_LIMIT"


class NotFound(PettyCashError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(PettyCashError):
    """409-level business rule conflict."""

    status_code = 409
    code = "CONFLICT"


class InvalidTransition(ConflictError):
    code = "INVALID_TRANSITION"


class InsufficientFunds(ConflictError):
    code = "INSUFFICIENT_FUNDS"


class InsufficientBalance(InsufficientFunds):
    """Raised by the ledger when a deduction would overdraw an account."""

    code = "INSUFFICIENT_BALANCE"


class AccountLocked(PettyCashError):
    status_code = 423
    code = "ACCOUNT_LOCKED"


class RateLimited(PettyCashError):
    status_code = 429
    code = "RATE_LIMITED"
