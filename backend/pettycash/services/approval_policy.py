# Overview: Who may do what to an expense. Pure decisions; no database writes.

from __future__ import annotations

from flask import current_app

from ..errors import AuthorizationError, ExceedsApprovalLimit, NotOwner, ReadOnlyRole
from ..permissions import (
    APPROVER_ROLES,
    ROLE_ADMIN,
    ROLE_AUDITOR,
    normalize_role,
    role_has_permission,
)
from ..validation import cents_to_str


def effective_role(user) -> str:
    return normalize_role(user.role)


def is_admin(user) -> bool:
    return effective_role(user) == ROLE_ADMIN


def is_approver(user) -> bool:
    return effective_role(user) in APPROVER_ROLES


def ensure_writer(user) -> None:
    """Auditors never mutate anything."""
    if effective_role(user) == ROLE_AUDITOR:
        current_app.logger.warning("Write attempt by read-only user %s", user.id)
        raise ReadOnlyRole("Auditors have read-only access")


def ensure_approver(user) -> None:
    ensure_writer(user)
    if not is_approver(user):
        current_app.logger.warning("User %s (%s) is not an approver", user.id, effective_role(user))
        raise AuthorizationError("Only approvers, managers and admins can do this")


def can_approve(user, amount_cents: int) -> bool:
    role = effective_role(user)
    if role == ROLE_ADMIN:
        return True
    if role not in APPROVER_ROLES:
        return False
    limit = user.approval_limit_cents
    return limit is None or amount_cents <= limit


def ensure_can_approve(user, amount_cents: int) -> None:
    """
    Approval decision for an amount.

    - admin: any amount
    - manager / approver: unlimited when approval_limit is NULL, else amount <= limit
    - employee / auditor: never
    """
    ensure_approver(user)
    if not can_approve(user, amount_cents):
        current_app.logger.warning(
            "User %s tried to approve %s above limit %s",
            user.id, cents_to_str(amount_cents), cents_to_str(user.approval_limit_cents),
        )
        raise ExceedsApprovalLimit(
            f"Amount {cents_to_str(amount_cents)} exceeds your approval limit of "
            f"{cents_to_str(user.approval_limit_cents)}",
            approval_limit=cents_to_str(user.approval_limit_cents),
        )


def is_owner(user, transaction) -> bool:
    return transaction.is_owned_by(user.id)


def ensure_owner_or_admin(user, transaction) -> None:
    if is_admin(user) or is_owner(user, transaction):
        return
    raise NotOwner("You can only act on your own transactions")


def ensure_submitter(user, transaction) -> None:
    """Strict ownership: only the original submitter, admins included."""
    if transaction.submitted_by_user_id != user.id:
        raise NotOwner("Only the original submitter can do this")


def can_view(user, transaction) -> bool:
    if role_has_permission(user.role, "VIEW_ALL_TRANSACTIONS"):
        return True
    return is_owner(user, transaction)


def ensure_owner(user, transaction) -> None:
    if not is_owner(user, transaction):
        raise NotOwner("You can only act on your own transactions")


def ensure_admin(user) -> None:
    if not is_admin(user):
        current_app.logger.warning("Admin-only action denied for user %s", user.id)
        raise AuthorizationError("Only admins can do this")
