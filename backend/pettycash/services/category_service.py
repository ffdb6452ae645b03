# Overview: Expense category management.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, DuplicateResource, NotFound, ValidationError
from ..extensions import db
from ..models import Category, Transaction, User
from ..validation import ModelValidationPolicy, to_cents, validate_payload
from . import approval_policy, audit_service


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "code", "description", "is_active"},
    required_on_create={"name", "code"},
)


def _normalize(patch: dict) -> dict:
    if "code" in patch and patch["code"] is not None:
        patch["code"] = patch["code"].upper()
    return patch


def _ensure_unique(patch: dict, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Category)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if "name" in patch and query.filter(db.func.lower(Category.name) == patch["name"].lower()).first():
        raise DuplicateResource("A category with this name already exists")
    if "code" in patch and query.filter(Category.code == patch["code"]).first():
        raise DuplicateResource("A category with this code already exists")


def _split_budget(payload: dict | None) -> tuple[dict, int | None, bool]:
    payload = dict(payload or {})
    has_budget = "budget_limit" in payload
    budget = to_cents(payload.pop("budget_limit", None), "budget_limit") if has_budget else None
    return payload, budget, has_budget


def list_categories(*, include_inactive: bool = False) -> list[Category]:
    query = db.session.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.name.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id).first()
    if not category:
        raise NotFound("Category not found")
    return category


def create_category(actor: User, payload: dict) -> Category:
    approval_policy.ensure_writer(actor)
    fields, budget, _ = _split_budget(payload)
    patch = _normalize(validate_payload(model=Category, payload=fields, policy=CATEGORY_POLICY, partial=False))
    _ensure_unique(patch)

    category = Category(budget_limit_cents=budget or 0, created_by_user_id=actor.id, **patch)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateResource("A category with this name or code already exists")

    current_app.logger.info("Category %s (%s) created by user %s", category.name, category.code, actor.id)
    audit_service.record("category_created", actor.id, "Category", category.id, category.to_dict())
    return category


def update_category(actor: User, category_id: int, payload: dict) -> Category:
    approval_policy.ensure_writer(actor)
    fields, budget, has_budget = _split_budget(payload)
    patch = _normalize(validate_payload(model=Category, payload=fields, policy=CATEGORY_POLICY, partial=True))

    category = get_category(category_id)
    _ensure_unique(patch, exclude_id=category.id)

    changes = {}
    for key, value in patch.items():
        if getattr(category, key) != value:
            changes[key] = [getattr(category, key), value]
            setattr(category, key, value)
    if has_budget:
        if budget is None:
            raise ValidationError("budget_limit cannot be null")
        if budget != category.budget_limit_cents:
            changes["budget_limit_cents"] = [category.budget_limit_cents, budget]
            category.budget_limit_cents = budget

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateResource("A category with this name or code already exists")

    audit_service.record("category_updated", actor.id, "Category", category.id, changes)
    return category


def delete_category(actor: User, category_id: int) -> None:
    """Categories referenced by transactions cannot be deleted; deactivate them instead."""
    approval_policy.ensure_writer(actor)
    category = get_category(category_id)
    in_use = db.session.query(Transaction.id).filter(Transaction.category_id == category.id).first()
    if in_use:
        raise ConflictError("Category is used by existing transactions. Deactivate it instead.")

    snapshot = category.to_dict()
    db.session.delete(category)
    db.session.commit()
    current_app.logger.info("Category %s deleted by user %s", snapshot["name"], actor.id)
    audit_service.record("category_deleted", actor.id, "Category", category_id, snapshot)
