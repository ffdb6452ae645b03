from __future__ import annotations

from ..extensions import db
from pettycash.time_utils import to_utc_z


CLIENT_TYPES = ("vendor", "supplier", "contractor", "service_provider", "other")

# 2 state digits, 10-char PAN, entity number, "Z", checksum
GST_NUMBER_PATTERN = r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$"


class Client(db.Model):
    """
    Payee an expense is paid to (vendor, supplier, contractor, ...).

    gst_number is optional but unique when present and stored uppercased.
    Bank details are flat columns; the API nests them under bank_details.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.UniqueConstraint("gst_number", name="uq_clients_gst_number"),
        db.Index("ix_clients_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    gst_number = db.Column(db.String(15), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)
    supply_type = db.Column(db.String(200), nullable=True)
    client_type = db.Column(db.String(32), nullable=False, default="vendor")

    bank_name = db.Column(db.String(120), nullable=True)
    bank_account_number = db.Column(db.String(34), nullable=True)
    bank_ifsc_code = db.Column(db.String(11), nullable=True)
    bank_account_holder = db.Column(db.String(120), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    created_by = db.relationship("User", foreign_keys=[created_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "gst_number": self.gst_number,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "supply_type": self.supply_type,
            "client_type": self.client_type,
            "bank_details": {
                "bank_name": self.bank_name,
                "account_number": self.bank_account_number,
                "ifsc_code": self.bank_ifsc_code,
                "account_holder_name": self.bank_account_holder,
            },
            "notes": self.notes,
            "is_active": self.is_active,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
