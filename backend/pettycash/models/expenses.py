from __future__ import annotations

from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from ..validation import cents_to_str
from pettycash.time_utils import to_utc_z


# Transaction lifecycle states
STATUS_DRAFT = "draft"
STATUS_PENDING = "pending"
STATUS_PENDING_APPROVAL = "pending_approval"
STATUS_INFO_REQUESTED = "info_requested"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_PAID = "paid"

TRANSACTION_STATUSES = (
    STATUS_DRAFT,
    STATUS_PENDING,
    STATUS_PENDING_APPROVAL,
    STATUS_INFO_REQUESTED,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_PAID,
)

# Submitted but undecided: counted against available funds
COMMITTED_STATUSES = (STATUS_PENDING, STATUS_PENDING_APPROVAL, STATUS_INFO_REQUESTED)
TERMINAL_STATUSES = (STATUS_REJECTED, STATUS_PAID)

# Ledger accounts
ACCOUNT_BANK = "petty_cash_bank"
ACCOUNT_PHYSICAL = "petty_cash_physical"
ACCOUNT_TYPES = (ACCOUNT_BANK, ACCOUNT_PHYSICAL)

PAYMENT_METHODS = ("cash", "bank_transfer", "upi", "card", "cheque")

PROVENANCE_COMPUTED = "computed-pretax-tax"
PROVENANCE_LEGACY = "legacy-flat"


def account_for_payment_method(payment_method: str | None) -> str:
    """Cash expenses draw on the physical float, everything else on the bank account."""
    return ACCOUNT_PHYSICAL if payment_method == "cash" else ACCOUNT_BANK


class Category(db.Model):
    """Expense category. Name and code are globally unique; code is stored uppercased."""
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        db.UniqueConstraint("code", name="uq_categories_code"),
        db.CheckConstraint("budget_limit_cents >= 0", name="ck_categories_budget_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    code = db.Column(db.String(20), nullable=False)
    description = db.Column(db.String(200), nullable=True)
    budget_limit_cents = db.Column(db.BigInteger, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "description": self.description,
            "budget_limit": cents_to_str(self.budget_limit_cents),
            "is_active": self.is_active,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }


class Transaction(db.Model):
    """
    Expense transaction.

    LIFECYCLE (see services/transaction_service.py):
    draft -> pending -> pending_approval -> approved | rejected | info_requested
    info_requested -> pending_approval (resubmission)
    approved -> paid

    AMOUNTS: post_tax_amount_cents = pre_tax + tax. Rows created before tax
    tracking only carry the flat amount_cents. Every consumer reads
    resolved_amount_cents, which picks exactly one of the two.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_status", "status"),
        db.Index("ix_transactions_account_status", "account_type", "status"),
        db.Index("ix_transactions_submitted_by", "submitted_by_user_id"),
        db.Index("ix_transactions_date", "transaction_date"),
        db.CheckConstraint(
            "coalesce(post_tax_amount_cents, amount_cents, 0) >= 0",
            name="ck_transactions_amount_non_negative",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    submitted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    description = db.Column(db.Text, nullable=True)
    vendor_name = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Amounts (integer cents)
    pre_tax_amount_cents = db.Column(db.BigInteger, nullable=True)
    tax_amount_cents = db.Column(db.BigInteger, nullable=True)
    post_tax_amount_cents = db.Column(db.BigInteger, nullable=True)
    amount_cents = db.Column(db.BigInteger, nullable=True)  # legacy flat amount
    gst_applicable = db.Column(db.Boolean, nullable=False, default=False)

    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    account_type = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(32), nullable=False, default=STATUS_PENDING)

    # Decision trail
    escalated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    escalated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    info_requested = db.Column(db.Boolean, nullable=False, default=False)
    info_request_comment = db.Column(db.Text, nullable=True)
    info_requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    info_requested_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resubmitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_reference = db.Column(db.String(120), nullable=True)

    # True once the ledger deduction for this expense has been applied
    ledger_debited = db.Column(db.Boolean, nullable=False, default=False)

    # File references (relative paths under UPLOAD_FOLDER)
    invoice_path = db.Column(db.String(512), nullable=True)
    payment_proof_path = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    category = db.relationship("Category", backref=db.backref("transactions", lazy=True))
    submitted_by = db.relationship("User", foreign_keys=[submitted_by_user_id])
    requested_by = db.relationship("User", foreign_keys=[requested_by_user_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])
    rejected_by = db.relationship("User", foreign_keys=[rejected_by_user_id])

    @hybrid_property
    def resolved_amount_cents(self):
        if self.post_tax_amount_cents is not None:
            return self.post_tax_amount_cents
        return self.amount_cents or 0

    @resolved_amount_cents.expression
    def resolved_amount_cents(cls):
        return db.func.coalesce(cls.post_tax_amount_cents, cls.amount_cents, 0)

    @property
    def amount_provenance(self) -> str:
        if self.post_tax_amount_cents is not None:
            return PROVENANCE_COMPUTED
        return PROVENANCE_LEGACY

    def is_owned_by(self, user_id: int) -> bool:
        return user_id in (self.submitted_by_user_id, self.requested_by_user_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "category_id": self.category_id,
            "category": {"id": self.category.id, "name": self.category.name, "code": self.category.code}
            if self.category else None,
            "submitted_by": self.submitted_by.to_summary() if self.submitted_by else None,
            "requested_by_user_id": self.requested_by_user_id,
            "description": self.description,
            "vendor_name": self.vendor_name,
            "notes": self.notes,
            "transaction_date": to_utc_z(self.transaction_date),
            "pre_tax_amount": cents_to_str(self.pre_tax_amount_cents),
            "tax_amount": cents_to_str(self.tax_amount_cents),
            "post_tax_amount": cents_to_str(self.post_tax_amount_cents),
            "amount": cents_to_str(self.amount_cents),
            "resolved_amount": cents_to_str(self.resolved_amount_cents),
            "amount_provenance": self.amount_provenance,
            "gst_applicable": self.gst_applicable,
            "payment_method": self.payment_method,
            "account_type": self.account_type,
            "status": self.status,
            "escalated_by_user_id": self.escalated_by_user_id,
            "escalated_at": to_utc_z(self.escalated_at),
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by_user_id": self.rejected_by_user_id,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "info_requested": self.info_requested,
            "info_request_comment": self.info_request_comment,
            "info_requested_at": to_utc_z(self.info_requested_at),
            "paid_by_user_id": self.paid_by_user_id,
            "paid_at": to_utc_z(self.paid_at),
            "payment_reference": self.payment_reference,
            "ledger_debited": self.ledger_debited,
            "invoice_path": self.invoice_path,
            "payment_proof_path": self.payment_proof_path,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-day document sequences.

    WHY: Prevent race conditions when generating transaction and transfer
    numbers. One row per (document_type, sequence_date).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "sequence_date", name="uq_doc_sequences_type_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    sequence_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "sequence_date": self.sequence_date.isoformat(),
            "next_number": self.next_number,
        }
