# Overview: User administration (create, edit, role change, deactivate) and self-service profile.

from __future__ import annotations

from flask import current_app

from ..errors import AuthorizationError, NotFound, ValidationError
from ..extensions import db
from ..models import User
from ..permissions import ROLE_ADMIN, ROLES
from ..validation import ModelValidationPolicy, cents_to_str, to_cents, validate_payload
from . import approval_policy, audit_service, auth_service, login_throttle_service, session_service


USER_ADMIN_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "department", "role", "manager_id"},
)

PROFILE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "department"},
)


def get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


def list_users(
    *,
    role: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
) -> list[User]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(User.name.ilike(like), User.email.ilike(like)))
    return query.order_by(User.name.asc()).all()


def _guard_admin_target(actor: User, role: str | None, target: User | None = None) -> None:
    """Only admins may create admins or edit them."""
    if approval_policy.is_admin(actor):
        return
    if role == ROLE_ADMIN or (target is not None and target.effective_role == ROLE_ADMIN):
        raise AuthorizationError("Only admins can manage admin accounts")


def _approval_limit(payload: dict) -> tuple[bool, int | None]:
    if "approval_limit" not in payload:
        return False, None
    return True, to_cents(payload.get("approval_limit"), "approval_limit")


def create_user(actor: User, payload: dict) -> User:
    approval_policy.ensure_writer(actor)
    payload = dict(payload or {})
    role = (payload.get("role") or "employee").strip().lower()
    _guard_admin_target(actor, role)
    _, limit = _approval_limit(payload)

    manager_id = payload.get("manager_id")
    if manager_id is not None:
        get_user(manager_id)

    user = auth_service.create_user(
        name=payload.get("name"),
        email=payload.get("email"),
        password=payload.get("password") or None,
        role=role,
        phone=payload.get("phone"),
        department=payload.get("department"),
        approval_limit_cents=limit,
        manager_id=manager_id,
        created_by_user_id=actor.id,
    )

    audit_service.record_user_activity(
        "created",
        target_user=user.to_summary(),
        performed_by=actor.to_summary(),
        details={"new": {"role": user.role, "approval_limit": cents_to_str(limit)}},
    )
    audit_service.record("user_created", actor.id, "User", user.id, {"email": user.email, "role": user.role})
    return user


def update_user(actor: User, user_id: int, payload: dict) -> User:
    """
    Admin/manager edit. Role change is a single field update; legacy stored
    roles are replaced only when the role is explicitly changed.
    """
    approval_policy.ensure_writer(actor)
    payload = dict(payload or {})
    has_limit, limit = _approval_limit(payload)
    payload.pop("approval_limit", None)

    patch = validate_payload(model=User, payload=payload, policy=USER_ADMIN_POLICY, partial=True)
    if "role" in patch:
        patch["role"] = patch["role"].lower()
        if patch["role"] not in ROLES:
            raise ValidationError(f"Invalid role: {patch['role']}")
    if patch.get("manager_id") is not None:
        if patch["manager_id"] == user_id:
            raise ValidationError("A user cannot be their own manager")
        get_user(patch["manager_id"])

    user = get_user(user_id)
    _guard_admin_target(actor, patch.get("role"), user)

    previous = {"role": user.role, "approval_limit": cents_to_str(user.approval_limit_cents)}
    changes = []
    for key, value in patch.items():
        if getattr(user, key) != value:
            changes.append(key)
            setattr(user, key, value)
    if has_limit and limit != user.approval_limit_cents:
        changes.append("approval_limit")
        user.approval_limit_cents = limit

    db.session.commit()

    if changes:
        action = "role_changed" if "role" in changes else "updated"
        audit_service.record_user_activity(
            action,
            target_user=user.to_summary(),
            performed_by=actor.to_summary(),
            details={
                "previous": previous,
                "new": {"role": user.role, "approval_limit": cents_to_str(user.approval_limit_cents)},
                "changes": changes,
            },
        )
        audit_service.record("user_updated", actor.id, "User", user.id, {"changes": changes})
        if "role" in changes:
            current_app.logger.info("User %s role changed %s -> %s by %s", user.id, previous["role"], user.role, actor.id)
    return user


def set_active(actor: User, user_id: int, active: bool) -> User:
    """Soft deactivate / reactivate. Deactivation revokes every session."""
    approval_policy.ensure_writer(actor)
    user = get_user(user_id)
    if user.id == actor.id and not active:
        raise ValidationError("You cannot deactivate your own account")
    _guard_admin_target(actor, None, user)

    if user.is_active == active:
        return user

    user.is_active = active
    db.session.commit()
    if not active:
        session_service.revoke_all_user_sessions(user.id, "User account deactivated")

    action = "reactivated" if active else "deactivated"
    audit_service.record_user_activity(action, target_user=user.to_summary(), performed_by=actor.to_summary())
    audit_service.record(f"user_{action}", actor.id, "User", user.id)
    current_app.logger.info("User %s %s by %s", user.id, action, actor.id)
    return user


def unlock_user(actor: User, user_id: int) -> User:
    approval_policy.ensure_writer(actor)
    user = get_user(user_id)
    login_throttle_service.unlock_account(user.id)
    audit_service.record("user_unlocked", actor.id, "User", user.id)
    db.session.refresh(user)
    return user


def update_profile(user: User, payload: dict) -> User:
    """Self-service: name, phone and department only."""
    patch = validate_payload(model=User, payload=payload, policy=PROFILE_POLICY, partial=True)
    changes = []
    for key, value in patch.items():
        if getattr(user, key) != value:
            changes.append(key)
            setattr(user, key, value)
    db.session.commit()
    if changes:
        audit_service.record_user_activity(
            "updated",
            target_user=user.to_summary(),
            performed_by=user.to_summary(),
            details={"changes": changes},
        )
    return user
