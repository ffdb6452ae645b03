# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- TRANSACTIONS --

TRANSACTION_PERMISSIONS = [
    (
        "VIEW_TRANSACTIONS",
        "View Transactions",
        "View own expense transactions",
        PermissionCategory.TRANSACTIONS,
    ),
    (
        "VIEW_ALL_TRANSACTIONS",
        "View All Transactions",
        "View expense transactions submitted by anyone",
        PermissionCategory.TRANSACTIONS,
    ),
    (
        "CREATE_TRANSACTION",
        "Create Transaction",
        "Create, edit, submit and resubmit own expenses",
        PermissionCategory.TRANSACTIONS,
    ),
    (
        "APPROVE_TRANSACTIONS",
        "Approve Transactions",
        "Forward, approve, reject and request information on expenses",
        PermissionCategory.TRANSACTIONS,
    ),
    (
        "DELETE_TRANSACTIONS",
        "Delete Transactions",
        "Delete expense transactions (no automatic ledger reversal)",
        PermissionCategory.TRANSACTIONS,
    ),
]


# -- FUNDS --

FUND_PERMISSIONS = [
    (
        "VIEW_BALANCE",
        "View Balance",
        "View current petty cash balances",
        PermissionCategory.FUNDS,
    ),
    (
        "MANAGE_FUNDS",
        "Manage Funds",
        "Record and delete fund transfers into petty cash",
        PermissionCategory.FUNDS,
    ),
]


# -- CATEGORIES --

CATEGORY_PERMISSIONS = [
    (
        "VIEW_CATEGORIES",
        "View Categories",
        "View expense categories",
        PermissionCategory.CATEGORIES,
    ),
    (
        "MANAGE_CATEGORIES",
        "Manage Categories",
        "Create, edit and delete expense categories",
        PermissionCategory.CATEGORIES,
    ),
]


# -- CLIENTS --

CLIENT_PERMISSIONS = [
    (
        "VIEW_CLIENTS",
        "View Clients",
        "View and search vendors, suppliers and other payees",
        PermissionCategory.CLIENTS,
    ),
    (
        "MANAGE_CLIENTS",
        "Manage Clients",
        "Create and edit payees",
        PermissionCategory.CLIENTS,
    ),
    (
        "DELETE_CLIENTS",
        "Delete Clients",
        "Remove payees",
        PermissionCategory.CLIENTS,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "VIEW_USERS",
        "View Users",
        "View user accounts",
        PermissionCategory.USERS,
    ),
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create, edit, deactivate and unlock user accounts",
        PermissionCategory.USERS,
    ),
]


# -- REPORTS --

REPORT_PERMISSIONS = [
    (
        "VIEW_REPORTS",
        "View Reports",
        "Expense summaries, trends and exports",
        PermissionCategory.REPORTS,
    ),
    (
        "VIEW_RECONCILIATION",
        "View Reconciliation",
        "Compare ledger balances against counted cash and bank",
        PermissionCategory.REPORTS,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "VIEW_AUDIT_LOG",
        "View Audit Log",
        "View audit, user activity and login activity logs",
        PermissionCategory.SYSTEM,
    ),
    (
        "SYSTEM_ADMIN",
        "System Administration",
        "Full system access",
        PermissionCategory.SYSTEM,
    ),
]


# Combined list of all permissions (preserves original ordering)
PERMISSION_DEFINITIONS = (
    TRANSACTION_PERMISSIONS
    + FUND_PERMISSIONS
    + CATEGORY_PERMISSIONS
    + CLIENT_PERMISSIONS
    + USER_PERMISSIONS
    + REPORT_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
