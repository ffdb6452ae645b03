# Overview: Permission system package.
# Re-exports all public APIs for backwards-compatible imports.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    TRANSACTION_PERMISSIONS,
    FUND_PERMISSIONS,
    CATEGORY_PERMISSIONS,
    CLIENT_PERMISSIONS,
    USER_PERMISSIONS,
    REPORT_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import (
    ROLES,
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_APPROVER,
    ROLE_EMPLOYEE,
    ROLE_AUDITOR,
    APPROVER_ROLES,
    LEGACY_ROLE_ALIASES,
    DEFAULT_ROLE_PERMISSIONS,
    normalize_role,
)
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    validate_permission_code,
    get_role_permissions,
    role_has_permission,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "TRANSACTION_PERMISSIONS",
    "FUND_PERMISSIONS",
    "CATEGORY_PERMISSIONS",
    "CLIENT_PERMISSIONS",
    "USER_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "ROLES",
    "ROLE_ADMIN",
    "ROLE_MANAGER",
    "ROLE_APPROVER",
    "ROLE_EMPLOYEE",
    "ROLE_AUDITOR",
    "APPROVER_ROLES",
    "LEGACY_ROLE_ALIASES",
    "DEFAULT_ROLE_PERMISSIONS",
    "normalize_role",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "validate_permission_code",
    "get_role_permissions",
    "role_has_permission",
]
