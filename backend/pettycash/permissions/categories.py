# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    TRANSACTIONS = "TRANSACTIONS"
    FUNDS = "FUNDS"
    CATEGORIES = "CATEGORIES"
    USERS = "USERS"
    CLIENTS = "CLIENTS"
    REPORTS = "REPORTS"
    SYSTEM = "SYSTEM"

    ALL = (TRANSACTIONS, FUNDS, CATEGORIES, CLIENTS, USERS, REPORTS, SYSTEM)
