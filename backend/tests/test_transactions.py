"""
Transaction lifecycle tests.

Verifies:
- amounts: pre-tax + tax, GST at the configured rate, legacy flat amount
- the state machine only follows its transition table; paid requires approved
- approval deducts the ledger in the same unit of work; insufficient funds
  leaves the status unchanged
- record payment is idempotent
- resubmission is limited to the configured fields and the submitter
- deletion never reverses the ledger unless compensation is requested
"""

import pytest

from pettycash.errors import (
    ExceedsApprovalLimit,
    InsufficientFunds,
    InvalidTransition,
    NotOwner,
    ReadOnlyRole,
    ValidationError,
)
from pettycash.extensions import db
from pettycash.models import AuditLog, Balance, Transaction
from pettycash.models.expenses import ACCOUNT_BANK, ACCOUNT_PHYSICAL
from pettycash.services import ledger_service, transaction_service as svc


def _current(account_type=ACCOUNT_PHYSICAL) -> int:
    db.session.expire_all()
    return db.session.query(Balance).filter_by(account_type=account_type).one().current_balance_cents


def _status(txn_id) -> str:
    db.session.expire_all()
    return db.session.get(Transaction, txn_id).status


def _create(actor, category, **payload):
    body = {"category_id": category.id, "description": "Printer paper"}
    body.update(payload)
    if "amount" not in body and "pre_tax_amount" not in body:
        body["pre_tax_amount"] = "100.00"
    return svc.create_transaction(actor, body)


# =============================================================================
# AMOUNTS
# =============================================================================


class TestAmounts:

    def test_pre_tax_plus_explicit_tax(self, employee, category):
        txn = _create(employee, category, pre_tax_amount="1000", tax_amount="180")
        assert txn.post_tax_amount_cents == 118000
        assert txn.resolved_amount_cents == 118000
        assert txn.amount_provenance == "computed-pretax-tax"
        assert txn.to_dict()["post_tax_amount"] == "1180.00"

    def test_gst_computed_when_applicable(self, employee, category):
        txn = _create(employee, category, pre_tax_amount="999.99", gst_applicable=True)
        # 18% of 999.99 = 179.9982 -> 180.00
        assert txn.tax_amount_cents == 18000
        assert txn.post_tax_amount_cents == 117999

    def test_no_tax_without_gst(self, employee, category):
        txn = _create(employee, category, pre_tax_amount="250.50")
        assert txn.tax_amount_cents == 0
        assert txn.resolved_amount_cents == 25050

    def test_legacy_flat_amount(self, employee, category):
        txn = _create(employee, category, amount="42.10")
        assert txn.post_tax_amount_cents is None
        assert txn.resolved_amount_cents == 4210
        assert txn.amount_provenance == "legacy-flat"

    def test_half_up_rounding(self, employee, category):
        txn = _create(employee, category, amount="10.005")
        assert txn.resolved_amount_cents == 1001

    def test_amount_required(self, employee, category):
        with pytest.raises(ValidationError):
            svc.create_transaction(employee, {"category_id": category.id})

    def test_zero_amount_rejected(self, employee, category):
        with pytest.raises(ValidationError):
            _create(employee, category, amount="0")

    def test_negative_amount_rejected(self, employee, category):
        with pytest.raises(ValidationError):
            _create(employee, category, pre_tax_amount="-5")

    def test_inactive_category_rejected(self, db_session, employee, category):
        category.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            _create(employee, category)

    def test_numbering_is_sequential(self, employee, category):
        first = _create(employee, category)
        second = _create(employee, category)
        assert first.transaction_number.startswith("PC-")
        assert int(second.transaction_number.rsplit("-", 1)[1]) == int(first.transaction_number.rsplit("-", 1)[1]) + 1

    def test_payment_method_picks_account(self, employee, category):
        assert _create(employee, category).account_type == ACCOUNT_PHYSICAL
        assert _create(employee, category, payment_method="upi").account_type == ACCOUNT_BANK


# =============================================================================
# STATE MACHINE
# =============================================================================


class TestLifecycle:

    def test_scenario_1180_approved_and_deducted(self, db_session, employee, make_user, category, funded):
        approver = make_user("approver", approval_limit_cents=200000)
        txn = _create(employee, category, pre_tax_amount="1000", tax_amount="180")
        assert txn.status == "pending"

        approved = svc.approve_transaction(approver, txn.id)

        assert approved.status == "approved"
        assert approved.ledger_debited is True
        assert approved.approved_by_user_id == approver.id
        assert _current() == 1000000 - 118000

    def test_draft_then_submit(self, employee, category):
        txn = _create(employee, category, submit=False)
        assert txn.status == "draft"
        assert svc.submit_transaction(employee, txn.id).status == "pending"

    def test_forward_then_request_info_then_resubmit(self, employee, approver, category):
        txn = _create(employee, category)
        svc.forward_transaction(approver, txn.id)
        assert _status(txn.id) == "pending_approval"

        svc.request_info(approver, txn.id, "Please attach the invoice")
        db.session.expire_all()
        row = db.session.get(Transaction, txn.id)
        assert row.status == "info_requested"
        assert row.info_requested is True
        assert row.info_request_comment == "Please attach the invoice"

        svc.resubmit_transaction(employee, txn.id, {"description": "Printer paper, invoice attached"})
        db.session.expire_all()
        row = db.session.get(Transaction, txn.id)
        assert row.status == "pending_approval"
        assert row.info_requested is False
        assert row.description == "Printer paper, invoice attached"

    def test_request_info_requires_pending_approval(self, employee, approver, category):
        txn = _create(employee, category)
        with pytest.raises(InvalidTransition):
            svc.request_info(approver, txn.id, "Which vendor?")

    def test_reject_requires_comment(self, employee, approver, category):
        txn = _create(employee, category)
        with pytest.raises(ValidationError):
            svc.reject_transaction(approver, txn.id, "  ")
        rejected = svc.reject_transaction(approver, txn.id, "Personal expense")
        assert rejected.status == "rejected"
        assert rejected.rejection_reason == "Personal expense"

    def test_rejected_is_terminal(self, employee, approver, category, funded):
        txn = _create(employee, category)
        svc.reject_transaction(approver, txn.id, "Duplicate")
        with pytest.raises(InvalidTransition):
            svc.approve_transaction(approver, txn.id)
        with pytest.raises(InvalidTransition):
            svc.record_payment(employee, txn.id)

    def test_paid_unreachable_without_approval(self, employee, admin, category):
        txn = _create(employee, category)
        with pytest.raises(InvalidTransition):
            svc.record_payment(admin, txn.id)
        assert _status(txn.id) == "pending"

    def test_cannot_approve_twice(self, employee, approver, category, funded):
        txn = _create(employee, category)
        svc.approve_transaction(approver, txn.id)
        with pytest.raises(InvalidTransition):
            svc.approve_transaction(approver, txn.id)
        assert _current() == 1000000 - 10000

    def test_employee_cannot_approve(self, employee, category, funded):
        txn = _create(employee, category)
        with pytest.raises(Exception) as exc:
            svc.approve_transaction(employee, txn.id)
        assert exc.value.status_code == 403

    def test_auditor_cannot_create(self, auditor, category):
        with pytest.raises(ReadOnlyRole):
            _create(auditor, category)


class TestApprovalLimitAndFunds:

    def test_limit_boundary(self, employee, approver, category, funded, db_session, admin):
        ledger_service.add_funds(ACCOUNT_PHYSICAL, 10000000, admin.id)
        db_session.commit()

        at_limit = _create(employee, category, amount="50000.00")
        over_limit = _create(employee, category, amount="50000.01")

        assert svc.approve_transaction(approver, at_limit.id).status == "approved"
        with pytest.raises(ExceedsApprovalLimit):
            svc.approve_transaction(approver, over_limit.id)
        assert _status(over_limit.id) == "pending"

    def test_insufficient_funds_leaves_status_unchanged(self, employee, admin, category, funded):
        txn = _create(employee, category, amount="10000.01")
        with pytest.raises(InsufficientFunds):
            svc.approve_transaction(admin, txn.id)

        db.session.expire_all()
        row = db.session.get(Transaction, txn.id)
        assert row.status == "pending"
        assert row.ledger_debited is False
        assert _current() == 1000000

    def test_bank_expense_draws_on_bank(self, employee, admin, category, funded):
        txn = _create(employee, category, amount="100", payment_method="bank_transfer")
        svc.approve_transaction(admin, txn.id)
        assert _current(ACCOUNT_BANK) == 1000000 - 10000
        assert _current(ACCOUNT_PHYSICAL) == 1000000


# =============================================================================
# PAYMENT
# =============================================================================


class TestRecordPayment:

    def test_payment_is_idempotent(self, employee, admin, category, funded):
        txn = _create(employee, category, amount="300")
        svc.approve_transaction(admin, txn.id)

        first = svc.record_payment(employee, txn.id, payment_reference="UTR123")
        paid_at = first.paid_at
        second = svc.record_payment(employee, txn.id, payment_reference="UTR999")

        assert first.status == second.status == "paid"
        assert second.paid_at == paid_at
        assert second.payment_reference == "UTR123"
        # Deducted once, at approval
        assert _current() == 1000000 - 30000
        payments = db.session.query(AuditLog).filter_by(action="transaction_paid", target_id=txn.id).count()
        assert payments == 1

    def test_non_owner_cannot_pay(self, employee, make_user, admin, category, funded):
        other = make_user("employee")
        txn = _create(employee, category)
        svc.approve_transaction(admin, txn.id)
        with pytest.raises(NotOwner):
            svc.record_payment(other, txn.id)


# =============================================================================
# EDIT / RESUBMIT / DELETE
# =============================================================================


class TestEditing:

    def test_owner_edits_pending(self, employee, category):
        txn = _create(employee, category, pre_tax_amount="100")
        updated = svc.update_transaction(employee, txn.id, {"pre_tax_amount": "200", "vendor_name": "Stationers"})
        assert updated.resolved_amount_cents == 20000
        assert updated.vendor_name == "Stationers"

    def test_approved_is_not_editable(self, employee, admin, category, funded):
        txn = _create(employee, category)
        svc.approve_transaction(admin, txn.id)
        with pytest.raises(InvalidTransition):
            svc.update_transaction(admin, txn.id, {"description": "changed"})

    def test_status_is_not_a_writable_field(self, employee, category):
        txn = _create(employee, category)
        with pytest.raises(ValidationError):
            svc.update_transaction(employee, txn.id, {"status": "approved"})

    def test_resubmit_blocks_fields_outside_policy(self, employee, approver, category):
        txn = _create(employee, category)
        svc.forward_transaction(approver, txn.id)
        svc.request_info(approver, txn.id, "Amount looks off")

        with pytest.raises(ValidationError) as exc:
            svc.resubmit_transaction(employee, txn.id, {"pre_tax_amount": "1"})
        assert "pre_tax_amount" in exc.value.message
        assert _status(txn.id) == "info_requested"

    def test_resubmit_only_by_submitter(self, employee, admin, approver, category):
        txn = _create(employee, category)
        svc.forward_transaction(approver, txn.id)
        svc.request_info(approver, txn.id, "Receipt?")
        with pytest.raises(NotOwner):
            svc.resubmit_transaction(admin, txn.id, {})

    def test_resubmit_scope_is_configurable(self, app, employee, approver, category):
        app.config["RESUBMIT_EDITABLE_FIELDS"] = ["description", "pre_tax_amount"]
        txn = _create(employee, category, pre_tax_amount="100")
        svc.forward_transaction(approver, txn.id)
        svc.request_info(approver, txn.id, "Amount looks off")

        svc.resubmit_transaction(employee, txn.id, {"pre_tax_amount": "90"})
        db.session.expire_all()
        assert db.session.get(Transaction, txn.id).resolved_amount_cents == 9000


class TestDelete:

    def test_delete_does_not_reverse_ledger(self, employee, admin, category, funded):
        txn = _create(employee, category, amount="500")
        txn_id = txn.id
        svc.approve_transaction(admin, txn_id)

        result = svc.delete_transaction(admin, txn_id)

        assert result["compensated"] is False
        assert db.session.get(Transaction, txn_id) is None
        assert _current() == 1000000 - 50000
        log = db.session.query(AuditLog).filter_by(action="transaction_deleted").one()
        assert log.changes["ledger_debited"] is True
        assert log.changes["compensated"] is False

    def test_delete_with_compensation_credits_back(self, employee, admin, category, funded):
        txn = _create(employee, category, amount="500")
        svc.approve_transaction(admin, txn.id)

        result = svc.delete_transaction(admin, txn.id, compensate=True)

        assert result["compensated"] is True
        assert _current() == 1000000
        log = db.session.query(AuditLog).filter_by(action="transaction_deleted").one()
        assert log.changes["compensation_requested"] is True

    def test_only_admin_deletes(self, employee, manager, category):
        txn = _create(employee, category)
        with pytest.raises(Exception) as exc:
            svc.delete_transaction(manager, txn.id)
        assert exc.value.status_code == 403
