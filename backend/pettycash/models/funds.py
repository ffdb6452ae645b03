from __future__ import annotations

from ..extensions import db
from ..validation import cents_to_str
from pettycash.time_utils import to_utc_z
from .expenses import ACCOUNT_BANK, ACCOUNT_PHYSICAL


TRANSFER_TYPE_BANK = "bank"
TRANSFER_TYPE_CASH = "cash"
TRANSFER_TYPES = (TRANSFER_TYPE_BANK, TRANSFER_TYPE_CASH)

TRANSFER_STATUS_COMPLETED = "completed"


class Balance(db.Model):
    """
    Running balance of one petty cash account.

    INVARIANTS:
    - current_balance_cents == total_received_cents - total_spent_cents
    - current_balance_cents >= 0 (enforced by CHECK constraint as well)

    Mutated only through services/ledger_service.py. Every mutation bumps
    version so concurrent writers can be detected.
    """
    __tablename__ = "balances"
    __table_args__ = (
        db.UniqueConstraint("account_type", name="uq_balances_account_type"),
        db.CheckConstraint("current_balance_cents >= 0", name="ck_balances_non_negative"),
        db.CheckConstraint("total_received_cents >= 0", name="ck_balances_received_non_negative"),
        db.CheckConstraint("total_spent_cents >= 0", name="ck_balances_spent_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_type = db.Column(db.String(32), nullable=False, index=True)

    current_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_received_cents = db.Column(db.BigInteger, nullable=False, default=0)
    total_spent_cents = db.Column(db.BigInteger, nullable=False, default=0)
    version = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    updated_by = db.relationship("User", foreign_keys=[updated_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_type": self.account_type,
            "current_balance": cents_to_str(self.current_balance_cents),
            "total_received": cents_to_str(self.total_received_cents),
            "total_spent": cents_to_str(self.total_spent_cents),
            "version": self.version,
            "last_updated": to_utc_z(self.last_updated),
            "updated_by": self.updated_by.to_summary() if self.updated_by else None,
        }


class FundTransfer(db.Model):
    """Money moved into petty cash. Completed on creation; credits the ledger."""
    __tablename__ = "fund_transfers"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_fund_transfers_amount_positive"),
        db.Index("ix_fund_transfers_type_status", "transfer_type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transfer_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    transfer_type = db.Column(db.String(16), nullable=False)  # bank, cash
    amount_cents = db.Column(db.BigInteger, nullable=False)

    initiated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    transfer_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    reference = db.Column(db.String(120), nullable=True)
    description = db.Column(db.String(500), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_COMPLETED)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    initiated_by = db.relationship("User", foreign_keys=[initiated_by_user_id])

    @property
    def account_type(self) -> str:
        return ACCOUNT_PHYSICAL if self.transfer_type == TRANSFER_TYPE_CASH else ACCOUNT_BANK

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_number": self.transfer_number,
            "transfer_type": self.transfer_type,
            "account_type": self.account_type,
            "amount": cents_to_str(self.amount_cents),
            "initiated_by": self.initiated_by.to_summary() if self.initiated_by else None,
            "transfer_date": to_utc_z(self.transfer_date),
            "reference": self.reference,
            "description": self.description,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
