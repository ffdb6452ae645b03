# Overview: Role catalog, legacy role aliases, and default role -> permission mapping.

from .definitions import PERMISSION_DEFINITIONS


ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_APPROVER = "approver"
ROLE_EMPLOYEE = "employee"
ROLE_AUDITOR = "auditor"

ROLES = (ROLE_ADMIN, ROLE_MANAGER, ROLE_APPROVER, ROLE_EMPLOYEE, ROLE_AUDITOR)

# Older databases still carry these stored values
LEGACY_ROLE_ALIASES = {
    "custodian": ROLE_EMPLOYEE,
    "handler": ROLE_EMPLOYEE,
}

APPROVER_ROLES = frozenset({ROLE_ADMIN, ROLE_MANAGER, ROLE_APPROVER})


def normalize_role(stored_role: str | None) -> str:
    """
    Effective role for a stored role value.

    Pure derivation applied at the authorization boundary; the persisted
    value is never rewritten. Unknown values fall back to employee.
    """
    if not stored_role:
        return ROLE_EMPLOYEE
    role = stored_role.strip().lower()
    role = LEGACY_ROLE_ALIASES.get(role, role)
    return role if role in ROLES else ROLE_EMPLOYEE


_ALL_CODES = [perm[0] for perm in PERMISSION_DEFINITIONS]

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: list(_ALL_CODES),
    ROLE_MANAGER: [
        "VIEW_TRANSACTIONS",
        "VIEW_ALL_TRANSACTIONS",
        "CREATE_TRANSACTION",
        "APPROVE_TRANSACTIONS",
        "VIEW_BALANCE",
        "MANAGE_FUNDS",
        "VIEW_CATEGORIES",
        "VIEW_CLIENTS",
        "MANAGE_CLIENTS",
        "VIEW_USERS",
        "MANAGE_USERS",
        "VIEW_REPORTS",
        "VIEW_RECONCILIATION",
    ],
    ROLE_APPROVER: [
        "VIEW_TRANSACTIONS",
        "VIEW_ALL_TRANSACTIONS",
        "CREATE_TRANSACTION",
        "APPROVE_TRANSACTIONS",
        "VIEW_BALANCE",
        "VIEW_CATEGORIES",
        "VIEW_CLIENTS",
        "MANAGE_CLIENTS",
        "VIEW_USERS",
        "VIEW_REPORTS",
        "VIEW_RECONCILIATION",
    ],
    ROLE_EMPLOYEE: [
        "VIEW_TRANSACTIONS",
        "CREATE_TRANSACTION",
        "VIEW_BALANCE",
        "VIEW_CATEGORIES",
        "VIEW_CLIENTS",
        "MANAGE_CLIENTS",
        "VIEW_REPORTS",
    ],
    ROLE_AUDITOR: [
        "VIEW_TRANSACTIONS",
        "VIEW_ALL_TRANSACTIONS",
        "VIEW_BALANCE",
        "VIEW_CATEGORIES",
        "VIEW_CLIENTS",
        "VIEW_REPORTS",
        "VIEW_RECONCILIATION",
        "VIEW_AUDIT_LOG",
    ],
}
