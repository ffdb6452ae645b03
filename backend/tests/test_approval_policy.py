"""
Approval policy tests.

Verifies:
- admin approves any amount; approver/manager up to their limit (inclusive)
- employee and auditor never approve
- auditor is read-only everywhere
- legacy stored roles behave as employee without being rewritten
- ownership covers both submitter and requester
"""

import pytest

from pettycash.errors import AuthorizationError, ExceedsApprovalLimit, NotOwner, ReadOnlyRole
from pettycash.models import Transaction, User
from pettycash.permissions import normalize_role, role_has_permission
from pettycash.services import approval_policy


def _user(role, *, limit=None, user_id=1):
    return User(id=user_id, name=role, email=f"{role}@x.test", role=role, approval_limit_cents=limit)


def _txn(submitted_by=1, requested_by=None):
    return Transaction(submitted_by_user_id=submitted_by, requested_by_user_id=requested_by)


class TestRoleNormalization:

    @pytest.mark.parametrize("stored,expected", [
        ("custodian", "employee"),
        ("handler", "employee"),
        ("HANDLER", "employee"),
        ("approver", "approver"),
        ("admin", "admin"),
        (None, "employee"),
        ("pilot", "employee"),
    ])
    def test_normalize_role(self, stored, expected):
        assert normalize_role(stored) == expected

    def test_legacy_role_not_persisted(self, app):
        user = _user("custodian")
        assert user.effective_role == "employee"
        assert user.role == "custodian"

    def test_legacy_role_gets_employee_permissions(self):
        assert role_has_permission("handler", "CREATE_TRANSACTION")
        assert not role_has_permission("handler", "APPROVE_TRANSACTIONS")


class TestApprovalLimits:

    def test_admin_approves_any_amount(self, app):
        approval_policy.ensure_can_approve(_user("admin"), 10**12)

    def test_limit_is_inclusive(self, app):
        approver = _user("approver", limit=5000000)
        approval_policy.ensure_can_approve(approver, 5000000)

    def test_one_cent_over_limit_rejected(self, app):
        approver = _user("approver", limit=5000000)
        with pytest.raises(ExceedsApprovalLimit) as exc:
            approval_policy.ensure_can_approve(approver, 5000001)
        assert exc.value.extra["approval_limit"] == "50000.00"
        assert exc.value.status_code == 403

    def test_no_limit_means_unlimited(self, app):
        approval_policy.ensure_can_approve(_user("manager", limit=None), 10**10)

    def test_manager_limit_applies(self, app):
        with pytest.raises(ExceedsApprovalLimit):
            approval_policy.ensure_can_approve(_user("manager", limit=100), 101)

    @pytest.mark.parametrize("role", ["employee", "custodian"])
    def test_non_approvers_never_approve(self, app, role):
        with pytest.raises(AuthorizationError):
            approval_policy.ensure_can_approve(_user(role, limit=10**9), 1)

    def test_auditor_gets_read_only_error(self, app):
        with pytest.raises(ReadOnlyRole):
            approval_policy.ensure_can_approve(_user("auditor"), 1)


class TestWriterAndOwnership:

    def test_auditor_cannot_write(self, app):
        with pytest.raises(ReadOnlyRole):
            approval_policy.ensure_writer(_user("auditor"))

    @pytest.mark.parametrize("role", ["admin", "manager", "approver", "employee"])
    def test_other_roles_can_write(self, app, role):
        approval_policy.ensure_writer(_user(role))

    def test_submitter_and_requester_are_owners(self):
        txn = _txn(submitted_by=1, requested_by=2)
        assert approval_policy.is_owner(_user("employee", user_id=1), txn)
        assert approval_policy.is_owner(_user("employee", user_id=2), txn)
        assert not approval_policy.is_owner(_user("employee", user_id=3), txn)

    def test_non_owner_rejected(self):
        with pytest.raises(NotOwner):
            approval_policy.ensure_owner_or_admin(_user("employee", user_id=9), _txn(submitted_by=1))

    def test_admin_passes_ownership(self):
        approval_policy.ensure_owner_or_admin(_user("admin", user_id=9), _txn(submitted_by=1))

    def test_strict_submitter_excludes_admin(self):
        with pytest.raises(NotOwner):
            approval_policy.ensure_submitter(_user("admin", user_id=9), _txn(submitted_by=1))

    def test_visibility(self):
        txn = _txn(submitted_by=1)
        assert approval_policy.can_view(_user("auditor", user_id=5), txn)
        assert approval_policy.can_view(_user("approver", user_id=5), txn)
        assert not approval_policy.can_view(_user("employee", user_id=5), txn)
        assert approval_policy.can_view(_user("employee", user_id=1), txn)
