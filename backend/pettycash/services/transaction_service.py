# Overview: Expense transaction lifecycle; the only code path that changes Transaction.status.

"""
Transaction state machine.

    draft            -> pending
    pending          -> pending_approval | approved | rejected
    pending_approval -> approved | rejected | info_requested
    info_requested   -> pending_approval
    approved         -> paid

rejected and paid are terminal. paid is reachable only from approved.

Every transition is one unit of work: the status change is a conditional
UPDATE (WHERE status IN allowed-from), so two actors racing on the same
transaction cannot both move it. Approval adds the ledger deduction to the same
unit; if the deduction fails the whole unit rolls back and the status is
unchanged. Audit records are emitted after commit.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import or_, update

from ..errors import (
    InsufficientBalance,
    InsufficientFunds,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Category, Transaction, User
from ..models.expenses import (
    PAYMENT_METHODS,
    STATUS_APPROVED,
    STATUS_DRAFT,
    STATUS_INFO_REQUESTED,
    STATUS_PAID,
    STATUS_PENDING,
    STATUS_PENDING_APPROVAL,
    STATUS_REJECTED,
    TRANSACTION_STATUSES,
    account_for_payment_method,
)
from ..permissions import role_has_permission
from ..validation import ModelValidationPolicy, cents_to_str, to_cents, validate_payload
from . import approval_policy, audit_service, file_store, ledger_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import DOC_TRANSACTION, next_document_number
from pettycash.time_utils import utcnow


# action -> (allowed from-states, to-state)
TRANSITIONS = {
    "submit": ((STATUS_DRAFT,), STATUS_PENDING),
    "forward": ((STATUS_PENDING,), STATUS_PENDING_APPROVAL),
    "approve": ((STATUS_PENDING, STATUS_PENDING_APPROVAL), STATUS_APPROVED),
    "reject": ((STATUS_PENDING, STATUS_PENDING_APPROVAL), STATUS_REJECTED),
    "request_info": ((STATUS_PENDING_APPROVAL,), STATUS_INFO_REQUESTED),
    "resubmit": ((STATUS_INFO_REQUESTED,), STATUS_PENDING_APPROVAL),
    "record_payment": ((STATUS_APPROVED,), STATUS_PAID),
}

EDITABLE_STATUSES = (STATUS_DRAFT, STATUS_PENDING)

AMOUNT_FIELDS = ("pre_tax_amount", "tax_amount", "amount")

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={
        "category_id",
        "requested_by_user_id",
        "description",
        "vendor_name",
        "notes",
        "transaction_date",
        "payment_method",
        "gst_applicable",
    },
    required_on_create={"category_id"},
)


# =============================================================================
# Amounts
# =============================================================================

def compute_gst(pre_tax_cents: int) -> int:
    """Tax at GST_RATE_BPS, half-up to the cent. 100000 at 1800 bps -> 18000."""
    rate_bps = current_app.config["GST_RATE_BPS"]
    tax = (Decimal(pre_tax_cents) * Decimal(rate_bps) / Decimal(10000)).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    return int(tax)


def resolve_amounts(raw: dict, *, gst_applicable: bool) -> dict | None:
    """
    Turn API amount fields into the stored cents columns.

    - pre_tax_amount given: tax is the explicit tax_amount if supplied, else
      GST when gst_applicable, else 0; post_tax = pre_tax + tax
    - only amount given: legacy flat amount, no pre/post-tax fields
    - nothing given: None
    """
    pre = to_cents(raw.get("pre_tax_amount"), "pre_tax_amount", allow_zero=False)
    tax = to_cents(raw.get("tax_amount"), "tax_amount")
    flat = to_cents(raw.get("amount"), "amount", allow_zero=False)

    if pre is not None:
        if tax is None:
            tax = compute_gst(pre) if gst_applicable else 0
        return {
            "pre_tax_amount_cents": pre,
            "tax_amount_cents": tax,
            "post_tax_amount_cents": pre + tax,
            "amount_cents": None,
        }
    if tax is not None:
        raise ValidationError("tax_amount requires pre_tax_amount")
    if flat is not None:
        return {
            "pre_tax_amount_cents": None,
            "tax_amount_cents": None,
            "post_tax_amount_cents": None,
            "amount_cents": flat,
        }
    return None


def _split_payload(payload: dict | None) -> tuple[dict, dict, bool | None]:
    """Separate amount fields and the submit flag from column fields."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    fields = dict(payload)
    amounts = {k: fields.pop(k) for k in AMOUNT_FIELDS if k in fields}
    submit = fields.pop("submit", None)
    if submit is not None and not isinstance(submit, bool):
        raise ValidationError("submit must be a boolean")
    return fields, amounts, submit


def _check_references(patch: dict) -> None:
    if "category_id" in patch:
        category = db.session.query(Category).filter_by(id=patch["category_id"]).first()
        if not category:
            raise NotFound("Category not found")
        if not category.is_active:
            raise ValidationError("Category is inactive")
    if patch.get("requested_by_user_id") is not None:
        if not db.session.query(User.id).filter_by(id=patch["requested_by_user_id"]).first():
            raise NotFound("Requested-by user not found")
    if "payment_method" in patch and patch["payment_method"] not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")


# =============================================================================
# Reads
# =============================================================================

def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.query(Transaction).filter_by(id=transaction_id).first()
    if not txn:
        raise NotFound("Transaction not found")
    return txn


def get_visible_transaction(actor: User, transaction_id: int) -> Transaction:
    txn = get_transaction(transaction_id)
    if not approval_policy.can_view(actor, txn):
        approval_policy.ensure_owner(actor, txn)
    return txn


def list_transactions(
    actor: User,
    *,
    status: str | None = None,
    category_id: int | None = None,
    account_type: str | None = None,
    payment_method: str | None = None,
    submitted_by: int | None = None,
    start=None,
    end=None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Transaction], int]:
    query = db.session.query(Transaction)

    if not role_has_permission(actor.role, "VIEW_ALL_TRANSACTIONS"):
        query = query.filter(
            or_(
                Transaction.submitted_by_user_id == actor.id,
                Transaction.requested_by_user_id == actor.id,
            )
        )

    if status:
        if status not in TRANSACTION_STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        query = query.filter(Transaction.status == status)
    if category_id is not None:
        query = query.filter(Transaction.category_id == category_id)
    if account_type:
        query = query.filter(Transaction.account_type == account_type)
    if payment_method:
        query = query.filter(Transaction.payment_method == payment_method)
    if submitted_by is not None:
        query = query.filter(Transaction.submitted_by_user_id == submitted_by)
    if start is not None:
        query = query.filter(Transaction.transaction_date >= start)
    if end is not None:
        query = query.filter(Transaction.transaction_date <= end)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Transaction.description.ilike(like),
                Transaction.vendor_name.ilike(like),
                Transaction.transaction_number.ilike(like),
            )
        )

    page = max(1, page)
    per_page = min(max(1, per_page), 200)
    total = query.count()
    rows = (
        query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return rows, total


# =============================================================================
# Create / update / delete
# =============================================================================

def create_transaction(actor: User, payload: dict) -> Transaction:
    """
    Create an expense. submit=true (default) files it as pending, submit=false
    keeps it as a draft. An amount (pre_tax_amount or legacy amount) and an
    active category are required.
    """
    approval_policy.ensure_writer(actor)

    fields, raw_amounts, submit = _split_payload(payload)
    patch = validate_payload(model=Transaction, payload=fields, policy=TRANSACTION_POLICY, partial=False)
    patch.setdefault("payment_method", "cash")
    _check_references(patch)

    amounts = resolve_amounts(raw_amounts, gst_applicable=bool(patch.get("gst_applicable")))
    if amounts is None:
        raise ValidationError("Missing required fields: amount")

    status = STATUS_DRAFT if submit is False else STATUS_PENDING
    transaction_date = patch.pop("transaction_date", None) or utcnow()

    def _op() -> Transaction:
        txn = Transaction(
            transaction_number=next_document_number(document_type=DOC_TRANSACTION),
            submitted_by_user_id=actor.id,
            status=status,
            account_type=account_for_payment_method(patch["payment_method"]),
            transaction_date=transaction_date,
            **patch,
            **amounts,
        )
        db.session.add(txn)
        db.session.commit()
        return txn

    txn = run_with_retry(_op)
    current_app.logger.info(
        "Transaction %s created by user %s (%s, %s)",
        txn.transaction_number, actor.id, status, cents_to_str(txn.resolved_amount_cents),
    )
    audit_service.record("transaction_created", actor.id, "Transaction", txn.id, txn.to_dict())
    return txn


def _apply_edits(txn: Transaction, patch: dict, raw_amounts: dict) -> dict:
    """Apply validated column edits and amount edits; returns {field: [old, new]}."""
    changes = {}
    for key, value in patch.items():
        old = getattr(txn, key)
        if old != value:
            changes[key] = [str(old) if old is not None else None, str(value) if value is not None else None]
            setattr(txn, key, value)

    if "payment_method" in patch:
        txn.account_type = account_for_payment_method(txn.payment_method)

    if raw_amounts or "gst_applicable" in patch:
        if not raw_amounts and txn.pre_tax_amount_cents is not None:
            # GST flag flipped: recompute from the stored pre-tax amount
            raw_amounts = {"pre_tax_amount": cents_to_str(txn.pre_tax_amount_cents)}
        amounts = resolve_amounts(raw_amounts, gst_applicable=bool(txn.gst_applicable))
        if amounts is not None:
            before = txn.resolved_amount_cents
            for key, value in amounts.items():
                setattr(txn, key, value)
            if before != txn.resolved_amount_cents:
                changes["resolved_amount"] = [cents_to_str(before), cents_to_str(txn.resolved_amount_cents)]
    return changes


def update_transaction(actor: User, transaction_id: int, payload: dict) -> Transaction:
    """Edit a draft or pending expense. Owner or admin."""
    approval_policy.ensure_writer(actor)
    fields, raw_amounts, _ = _split_payload(payload)
    patch = validate_payload(model=Transaction, payload=fields, policy=TRANSACTION_POLICY, partial=True)
    _check_references(patch)

    def _op():
        txn = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if not txn:
            raise NotFound("Transaction not found")
        approval_policy.ensure_owner_or_admin(actor, txn)
        if txn.status not in EDITABLE_STATUSES:
            raise InvalidTransition(f"Cannot edit a transaction in status {txn.status}", status=txn.status)
        changes = _apply_edits(txn, dict(patch), raw_amounts)
        db.session.commit()
        return txn, changes

    txn, changes = run_with_retry(_op)
    audit_service.record("transaction_updated", actor.id, "Transaction", txn.id, changes)
    return txn


def delete_transaction(actor: User, transaction_id: int, *, compensate: bool = False) -> dict:
    """
    Admin-only delete, from any status.

    A deleted transaction whose amount was already deducted does NOT give the
    money back automatically. With compensate=True a compensating credit for
    the resolved amount is added to the ledger in the same unit of work, and
    the audit record says so.
    """
    approval_policy.ensure_writer(actor)
    approval_policy.ensure_admin(actor)

    def _op() -> dict:
        txn = get_transaction(transaction_id)
        snapshot = txn.to_dict()
        amount = txn.resolved_amount_cents
        compensated = False
        if txn.ledger_debited and compensate and amount > 0:
            ledger_service.add_funds(txn.account_type, amount, actor.id)
            compensated = True
        db.session.delete(txn)
        db.session.commit()
        return {"snapshot": snapshot, "compensated": compensated}

    result = run_with_retry(_op)
    snapshot = result["snapshot"]

    if snapshot["ledger_debited"] and not result["compensated"]:
        current_app.logger.warning(
            "Transaction %s deleted after ledger deduction of %s without compensation",
            snapshot["transaction_number"], snapshot["resolved_amount"],
        )
    else:
        current_app.logger.info("Transaction %s deleted by user %s", snapshot["transaction_number"], actor.id)

    audit_service.record(
        "transaction_deleted",
        actor.id,
        "Transaction",
        transaction_id,
        {
            "snapshot": snapshot,
            "ledger_debited": snapshot["ledger_debited"],
            "compensation_requested": compensate,
            "compensated": result["compensated"],
        },
    )
    return result


# =============================================================================
# Transitions
# =============================================================================

def _move(txn: Transaction, action: str, **values) -> None:
    """Conditional status UPDATE; InvalidTransition if someone else moved it first."""
    from_states, to_state = TRANSITIONS[action]
    result = db.session.execute(
        update(Transaction)
        .where(Transaction.id == txn.id, Transaction.status.in_(from_states))
        .values(status=to_state, updated_at=utcnow(), **values)
        .execution_options(synchronize_session="fetch")
    )
    if not result.rowcount:
        raise InvalidTransition(
            f"Cannot {action.replace('_', ' ')} a transaction in status {txn.status}",
            status=txn.status,
        )


def _require_state(txn: Transaction, action: str) -> None:
    from_states, _ = TRANSITIONS[action]
    if txn.status not in from_states:
        raise InvalidTransition(
            f"Cannot {action.replace('_', ' ')} a transaction in status {txn.status}",
            status=txn.status,
        )


def _require_comment(comment: str | None, label: str) -> str:
    comment = (comment or "").strip()
    if not comment:
        raise ValidationError(f"{label} is required")
    return comment


def _finish(txn_id: int, action: str, actor: User, changes: dict) -> Transaction:
    txn = get_transaction(txn_id)
    current_app.logger.info("Transaction %s %s by user %s -> %s", txn.transaction_number, action, actor.id, txn.status)
    audit_service.record(f"transaction_{action}", actor.id, "Transaction", txn.id, changes)
    return txn


def submit_transaction(actor: User, transaction_id: int) -> Transaction:
    """draft -> pending. Owner only."""
    approval_policy.ensure_writer(actor)

    def _op():
        txn = get_transaction(transaction_id)
        approval_policy.ensure_owner(actor, txn)
        _require_state(txn, "submit")
        _move(txn, "submit")
        db.session.commit()

    run_with_retry(_op)
    return _finish(transaction_id, "submitted", actor, {"status": [STATUS_DRAFT, STATUS_PENDING]})


def forward_transaction(actor: User, transaction_id: int) -> Transaction:
    """pending -> pending_approval: escalate to the second approval level."""
    approval_policy.ensure_approver(actor)

    def _op():
        txn = get_transaction(transaction_id)
        _require_state(txn, "forward")
        _move(txn, "forward", escalated_by_user_id=actor.id, escalated_at=utcnow())
        db.session.commit()

    run_with_retry(_op)
    return _finish(transaction_id, "forwarded", actor, {"status": [STATUS_PENDING, STATUS_PENDING_APPROVAL]})


def approve_transaction(actor: User, transaction_id: int, *, comment: str | None = None) -> Transaction:
    """
    pending / pending_approval -> approved, deducting the resolved amount from
    the transaction's account.

    Policy check, status change and deduction commit together. On
    InsufficientBalance everything rolls back and InsufficientFunds is raised.
    """
    approval_policy.ensure_approver(actor)

    def _op():
        txn = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if not txn:
            raise NotFound("Transaction not found")
        _require_state(txn, "approve")

        amount = txn.resolved_amount_cents
        approval_policy.ensure_can_approve(actor, amount)
        previous = txn.status
        account_type = txn.account_type

        _move(txn, "approve", approved_by_user_id=actor.id, approved_at=utcnow(), ledger_debited=True)
        try:
            ledger_service.deduct_funds(account_type, amount, actor.id)
        except InsufficientBalance as exc:
            db.session.rollback()
            raise InsufficientFunds(
                f"Insufficient funds in {account_type} to approve "
                f"{cents_to_str(amount)}",
                **exc.extra,
            )
        db.session.commit()
        return previous, amount

    previous, amount = run_with_retry(_op)
    changes = {"status": [previous, STATUS_APPROVED], "amount": cents_to_str(amount)}
    if comment:
        changes["comment"] = comment
    return _finish(transaction_id, "approved", actor, changes)


def reject_transaction(actor: User, transaction_id: int, comment: str | None) -> Transaction:
    """pending / pending_approval -> rejected. A rejection comment is required."""
    approval_policy.ensure_approver(actor)
    reason = _require_comment(comment, "Rejection comment")

    def _op():
        txn = get_transaction(transaction_id)
        _require_state(txn, "reject")
        previous = txn.status
        _move(txn, "reject", rejected_by_user_id=actor.id, rejected_at=utcnow(), rejection_reason=reason)
        db.session.commit()
        return previous

    previous = run_with_retry(_op)
    return _finish(transaction_id, "rejected", actor, {"status": [previous, STATUS_REJECTED], "reason": reason})


def request_info(actor: User, transaction_id: int, comment: str | None) -> Transaction:
    """pending_approval -> info_requested. A comment is required."""
    approval_policy.ensure_approver(actor)
    comment = _require_comment(comment, "Comment")

    def _op():
        txn = get_transaction(transaction_id)
        _require_state(txn, "request_info")
        _move(
            txn,
            "request_info",
            info_requested=True,
            info_request_comment=comment,
            info_requested_by_user_id=actor.id,
            info_requested_at=utcnow(),
        )
        db.session.commit()

    run_with_retry(_op)
    return _finish(
        transaction_id, "info_requested", actor,
        {"status": [STATUS_PENDING_APPROVAL, STATUS_INFO_REQUESTED], "comment": comment},
    )


def resubmit_transaction(actor: User, transaction_id: int, payload: dict | None = None) -> Transaction:
    """
    info_requested -> pending_approval. Original submitter only.

    Only fields listed in RESUBMIT_EDITABLE_FIELDS may change; anything else in
    the payload is rejected.
    """
    approval_policy.ensure_writer(actor)
    payload = dict(payload or {})
    payload.pop("comment", None)

    editable = set(current_app.config["RESUBMIT_EDITABLE_FIELDS"])
    blocked = sorted(k for k in payload if k not in editable)
    if blocked:
        raise ValidationError(
            f"Fields not editable on resubmission: {', '.join(blocked)}",
            editable_fields=sorted(editable),
        )

    fields, raw_amounts, _ = _split_payload(payload)
    patch = validate_payload(model=Transaction, payload=fields, policy=TRANSACTION_POLICY, partial=True)
    _check_references(patch)

    def _op():
        txn = get_transaction(transaction_id)
        approval_policy.ensure_submitter(actor, txn)
        _require_state(txn, "resubmit")
        changes = _apply_edits(txn, dict(patch), raw_amounts)
        db.session.flush()
        _move(txn, "resubmit", info_requested=False, resubmitted_at=utcnow())
        db.session.commit()
        return changes

    changes = run_with_retry(_op)
    changes["status"] = [STATUS_INFO_REQUESTED, STATUS_PENDING_APPROVAL]
    return _finish(transaction_id, "resubmitted", actor, changes)


def record_payment(
    actor: User,
    transaction_id: int,
    *,
    payment_reference: str | None = None,
) -> Transaction:
    """
    approved -> paid. Admin or owner.

    Idempotent: paying an already-paid transaction is a successful no-op, so
    a retried request never records a second payment.
    """
    approval_policy.ensure_writer(actor)

    def _op() -> bool:
        txn = get_transaction(transaction_id)
        approval_policy.ensure_owner_or_admin(actor, txn)
        if txn.status == STATUS_PAID:
            return False
        _require_state(txn, "record_payment")
        values = {"paid_by_user_id": actor.id, "paid_at": utcnow()}
        if payment_reference:
            values["payment_reference"] = payment_reference.strip()[:120]
        try:
            _move(txn, "record_payment", **values)
        except InvalidTransition:
            db.session.rollback()
            if get_transaction(transaction_id).status == STATUS_PAID:
                return False
            raise
        db.session.commit()
        return True

    changed = run_with_retry(_op)
    if not changed:
        current_app.logger.info("Transaction %s already paid; payment not recorded again", transaction_id)
        return get_transaction(transaction_id)
    return _finish(transaction_id, "paid", actor, {"status": [STATUS_APPROVED, STATUS_PAID]})


# =============================================================================
# Attachments
# =============================================================================

ATTACHMENT_KINDS = {
    "invoice": ("invoices", "invoice_path"),
    "payment_proof": ("payments", "payment_proof_path"),
}


def _path_in_use(path: str) -> bool:
    return db.session.query(Transaction.id).filter(
        or_(Transaction.invoice_path == path, Transaction.payment_proof_path == path)
    ).first() is not None


def attach_file(actor: User, transaction_id: int, kind: str, file_bytes: bytes, filename: str, mimetype: str | None) -> Transaction:
    """Store an invoice or payment proof and link it. Owner, approver or admin."""
    approval_policy.ensure_writer(actor)
    if kind not in ATTACHMENT_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(ATTACHMENT_KINDS)}")
    category, column = ATTACHMENT_KINDS[kind]

    txn = get_transaction(transaction_id)
    if not approval_policy.is_approver(actor):
        approval_policy.ensure_owner_or_admin(actor, txn)
    if txn.status == STATUS_REJECTED:
        raise InvalidTransition("Cannot attach files to a rejected transaction", status=txn.status)

    stored = file_store.store(category, file_bytes, filename, mimetype)

    def _op():
        row = get_transaction(transaction_id)
        previous = getattr(row, column)
        setattr(row, column, stored)
        db.session.commit()
        return previous

    try:
        previous = run_with_retry(_op)
    except Exception:
        file_store.delete(stored)
        raise

    if previous and previous != stored and not _path_in_use(previous):
        file_store.delete(previous)
    audit_service.record("transaction_attachment", actor.id, "Transaction", transaction_id, {column: stored})
    return get_transaction(transaction_id)
