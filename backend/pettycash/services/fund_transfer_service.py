# Overview: Fund transfers into petty cash; each one credits the ledger.

from __future__ import annotations

from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import FundTransfer, User
from ..models.funds import TRANSFER_STATUS_COMPLETED, TRANSFER_TYPES
from ..validation import to_cents
from . import approval_policy, audit_service, ledger_service
from .concurrency import run_with_retry
from .document_service import DOC_FUND_TRANSFER, next_document_number
from pettycash.time_utils import parse_iso_datetime, utcnow


def create_transfer(
    actor: User,
    *,
    transfer_type: str,
    amount,
    reference: str | None = None,
    description: str | None = None,
    transfer_date: str | None = None,
) -> FundTransfer:
    """
    Record money moved into petty cash and credit the matching account
    (bank -> petty_cash_bank, cash -> petty_cash_physical) in the same unit
    of work.
    """
    approval_policy.ensure_writer(actor)

    if transfer_type not in TRANSFER_TYPES:
        raise ValidationError(f"transfer_type must be one of: {', '.join(TRANSFER_TYPES)}")
    amount_cents = to_cents(amount, "amount", allow_zero=False)
    if amount_cents is None:
        raise ValidationError("Missing required fields: amount")
    try:
        when = parse_iso_datetime(transfer_date) if transfer_date else None
    except ValueError:
        raise ValidationError("transfer_date must be an ISO-8601 datetime")

    def _op() -> FundTransfer:
        transfer = FundTransfer(
            transfer_number=next_document_number(document_type=DOC_FUND_TRANSFER),
            transfer_type=transfer_type,
            amount_cents=amount_cents,
            initiated_by_user_id=actor.id,
            transfer_date=when or utcnow(),
            reference=(reference or "").strip()[:120] or None,
            description=(description or "").strip()[:500] or None,
            status=TRANSFER_STATUS_COMPLETED,
        )
        db.session.add(transfer)
        db.session.flush()
        ledger_service.add_funds(transfer.account_type, amount_cents, actor.id)
        db.session.commit()
        return transfer

    transfer = run_with_retry(_op)
    current_app.logger.info("Fund transfer %s recorded by user %s", transfer.transfer_number, actor.id)
    audit_service.record("fund_transfer_created", actor.id, "FundTransfer", transfer.id, transfer.to_dict())
    return transfer


def get_transfer(transfer_id: int) -> FundTransfer:
    transfer = db.session.query(FundTransfer).filter_by(id=transfer_id).first()
    if not transfer:
        raise NotFound("Fund transfer not found")
    return transfer


def list_transfers(
    *,
    transfer_type: str | None = None,
    start=None,
    end=None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[FundTransfer], int]:
    query = db.session.query(FundTransfer)
    if transfer_type:
        query = query.filter(FundTransfer.transfer_type == transfer_type)
    if start is not None:
        query = query.filter(FundTransfer.transfer_date >= start)
    if end is not None:
        query = query.filter(FundTransfer.transfer_date <= end)
    page = max(1, page)
    per_page = min(max(1, per_page), 200)
    total = query.count()
    rows = (
        query.order_by(FundTransfer.transfer_date.desc(), FundTransfer.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return rows, total


def delete_transfer(actor: User, transfer_id: int, *, compensate: bool = False) -> dict:
    """
    Admin-only delete. The credit is not reversed unless compensate=True, in
    which case the amount is deducted again (InsufficientBalance if it has
    already been spent, and nothing is deleted).
    """
    approval_policy.ensure_writer(actor)
    approval_policy.ensure_admin(actor)

    def _op() -> dict:
        transfer = get_transfer(transfer_id)
        snapshot = transfer.to_dict()
        if compensate:
            ledger_service.deduct_funds(transfer.account_type, transfer.amount_cents, actor.id)
        db.session.delete(transfer)
        db.session.commit()
        return {"snapshot": snapshot, "compensated": compensate}

    result = run_with_retry(_op)
    if not compensate:
        current_app.logger.warning(
            "Fund transfer %s deleted without reversing its credit of %s",
            result["snapshot"]["transfer_number"], result["snapshot"]["amount"],
        )
    audit_service.record(
        "fund_transfer_deleted",
        actor.id,
        "FundTransfer",
        transfer_id,
        {"snapshot": result["snapshot"], "compensation_requested": compensate, "compensated": compensate},
    )
    return result
