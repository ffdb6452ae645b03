# Overview: Vendor / payee directory (clients).

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateResource, NotFound, ValidationError
from ..extensions import db
from ..models import Client, User
from ..models.clients import CLIENT_TYPES, GST_NUMBER_PATTERN
from ..validation import ModelValidationPolicy, validate_payload
from . import approval_policy, audit_service
from .auth_service import EMAIL_RE


GST_RE = re.compile(GST_NUMBER_PATTERN)

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "gst_number", "email", "phone", "address", "supply_type", "client_type",
        "bank_name", "bank_account_number", "bank_ifsc_code", "bank_account_holder",
        "notes", "is_active",
    },
    required_on_create={"name"},
)

# bank_details key -> column
BANK_FIELDS = {
    "bank_name": "bank_name",
    "account_number": "bank_account_number",
    "ifsc_code": "bank_ifsc_code",
    "account_holder_name": "bank_account_holder",
}


def _flatten_bank_details(payload: dict | None) -> dict:
    payload = dict(payload or {})
    if "bank_details" not in payload:
        return payload
    bank = payload.pop("bank_details")
    if bank is None:
        bank = {key: None for key in BANK_FIELDS}
    if not isinstance(bank, dict):
        raise ValidationError("bank_details must be an object")
    for key, value in bank.items():
        if key not in BANK_FIELDS:
            raise ValidationError(f"Unknown bank_details field: {key}")
        payload[BANK_FIELDS[key]] = value
    return payload


def _normalize(patch: dict) -> dict:
    # empty strings on optional fields mean "clear it"
    for key in ("gst_number", "email", "bank_ifsc_code"):
        if patch.get(key) == "":
            patch[key] = None

    if patch.get("gst_number") is not None:
        patch["gst_number"] = patch["gst_number"].upper()
        if not GST_RE.match(patch["gst_number"]):
            raise ValidationError("Please add a valid GST number")
    if patch.get("email") is not None:
        patch["email"] = patch["email"].lower()
        if not EMAIL_RE.match(patch["email"]):
            raise ValidationError("Please add a valid email")
    if patch.get("bank_ifsc_code") is not None:
        patch["bank_ifsc_code"] = patch["bank_ifsc_code"].upper()
    if "client_type" in patch and patch["client_type"] not in CLIENT_TYPES:
        raise ValidationError(f"client_type must be one of: {', '.join(CLIENT_TYPES)}")
    return patch


def _ensure_unique(patch: dict, *, exclude_id: int | None = None) -> None:
    if patch.get("gst_number") is None:
        return
    query = db.session.query(Client).filter(Client.gst_number == patch["gst_number"])
    if exclude_id is not None:
        query = query.filter(Client.id != exclude_id)
    if query.first():
        raise DuplicateResource("Client with this GST number already exists")


def list_clients(
    *,
    search: str | None = None,
    client_type: str | None = None,
    is_active: bool | None = None,
) -> list[Client]:
    """Name-ordered directory; search matches name or GST number, case-insensitive."""
    query = db.session.query(Client)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Client.name.ilike(pattern), Client.gst_number.ilike(pattern)))
    if client_type:
        query = query.filter(Client.client_type == client_type)
    if is_active is not None:
        query = query.filter(Client.is_active.is_(is_active))
    return query.order_by(Client.name.asc(), Client.id.asc()).all()


def get_client(client_id: int) -> Client:
    client = db.session.query(Client).filter_by(id=client_id).first()
    if not client:
        raise NotFound("Client not found")
    return client


def create_client(actor: User, payload: dict) -> Client:
    approval_policy.ensure_writer(actor)
    fields = _flatten_bank_details(payload)
    patch = _normalize(validate_payload(model=Client, payload=fields, policy=CLIENT_POLICY, partial=False))
    _ensure_unique(patch)

    client = Client(created_by_user_id=actor.id, **patch)
    db.session.add(client)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateResource("Client with this GST number already exists")

    current_app.logger.info("Client %s created by user %s", client.name, actor.id)
    audit_service.record("client_created", actor.id, "Client", client.id, client.to_dict())
    return client


def update_client(actor: User, client_id: int, payload: dict) -> Client:
    approval_policy.ensure_writer(actor)
    fields = _flatten_bank_details(payload)
    patch = _normalize(validate_payload(model=Client, payload=fields, policy=CLIENT_POLICY, partial=True))

    client = get_client(client_id)
    _ensure_unique(patch, exclude_id=client.id)

    changes = {}
    for key, value in patch.items():
        if getattr(client, key) != value:
            changes[key] = [getattr(client, key), value]
            setattr(client, key, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateResource("Client with this GST number already exists")

    audit_service.record("client_updated", actor.id, "Client", client.id, changes)
    return client


def delete_client(actor: User, client_id: int) -> None:
    approval_policy.ensure_admin(actor)
    client = get_client(client_id)
    snapshot = client.to_dict()
    db.session.delete(client)
    db.session.commit()
    current_app.logger.info("Client %s deleted by user %s", snapshot["name"], actor.id)
    audit_service.record("client_deleted", actor.id, "Client", client_id, snapshot)
