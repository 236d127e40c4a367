# Overview: Service-layer operations for user accounts; role hierarchy and password resets.

"""
User management.

Hierarchy:
- SUPER_ADMIN may create and edit users of any role.
- ADMIN may create and edit SALES and WAREHOUSE users only, and may not
  move them into another role outside that set.
- Nobody may deactivate their own account.

Users are never deleted; deactivating a user revokes their sessions.
"""

from __future__ import annotations

import re

from flask import current_app

from .. import permissions
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import User
from ..validation import ModelValidationPolicy, validate_payload
from . import activity_service
from .auth_service import hash_password, normalize_email
from .concurrency import atomic
from .session_service import revoke_all_user_sessions


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

USER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "role"},
    required_on_create={"name", "email", "role"},
)


def _normalize_user_patch(patch: dict) -> dict:
    if "email" in patch:
        patch["email"] = normalize_email(patch["email"])
        if not EMAIL_RE.match(patch["email"]):
            raise ValidationError("Invalid email address")
    if "role" in patch:
        patch["role"] = patch["role"].upper()
        if patch["role"] not in permissions.ROLES:
            raise ValidationError(f"role must be one of {', '.join(permissions.ROLES)}")
    return patch


def _email_taken(email: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(User.id).filter(User.email == email)
    if exclude_id:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def _require_manageable(actor: User, target: User, new_role: str | None = None) -> None:
    if not permissions.can_manage_role(actor.role, target.role, new_role):
        raise PermissionDeniedError("You do not have permission to edit this user")


def list_users(actor: User) -> list[dict]:
    """SUPER_ADMIN sees everyone; ADMIN sees SALES and WAREHOUSE users."""
    roles = permissions.manageable_roles(actor.role)
    if not roles:
        return []
    users = (
        db.session.query(User)
        .filter(User.role.in_(roles))
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
    return [u.to_dict() for u in users]


def get_visible_user(actor: User, user_id: int) -> User:
    user = get_user(user_id)
    if user.id != actor.id and user.role not in permissions.manageable_roles(actor.role):
        raise NotFoundError("User not found")
    return user


def create_user(payload: dict, *, actor: User | None = None) -> User:
    """
    Create a user. actor=None is used by CLI bootstrap commands, which may
    create any role.
    """
    if payload is None or not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    password = payload.pop("password", None)

    patch = _normalize_user_patch(
        validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
    )
    if actor is not None and patch["role"] not in permissions.manageable_roles(actor.role):
        raise PermissionDeniedError("You do not have permission to create this type of user")

    password_hash = hash_password(password)

    with atomic("Failed to create user"):
        if _email_taken(patch["email"]):
            raise ConflictError("Email already exists")
        user = User(password_hash=password_hash, is_active=True, **patch)
        db.session.add(user)
        db.session.flush()

        if actor is not None:
            activity_service.log_activity(
                user_id=actor.id,
                action=activity_service.CREATE_USER,
                entity_type="User",
                entity_id=user.id,
                details={"email": user.email, "role": user.role},
            )

    current_app.logger.info("User %s created with role %s", user.email, user.role)
    return user


def update_user(user_id: int, payload: dict, *, actor: User) -> User:
    patch = _normalize_user_patch(
        validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
    )
    if not patch:
        raise ValidationError("No fields to update")

    with atomic("Failed to update user"):
        user = get_user(user_id)
        _require_manageable(actor, user, patch.get("role"))
        if "email" in patch and _email_taken(patch["email"], exclude_id=user.id):
            raise ConflictError("Email already exists")
        for key, value in patch.items():
            setattr(user, key, value)

        activity_service.log_activity(
            user_id=actor.id,
            action=activity_service.UPDATE_USER,
            entity_type="User",
            entity_id=user.id,
            details={"email": user.email, "role": user.role},
        )

    return user


def toggle_user_status(user_id: int, *, actor: User) -> User:
    with atomic("Failed to update user status"):
        user = get_user(user_id)
        _require_manageable(actor, user)
        if user.id == actor.id:
            raise ValidationError("You cannot deactivate your own account")

        user.is_active = not user.is_active
        if not user.is_active:
            revoke_all_user_sessions(user.id, reason="User account deactivated")

        activity_service.log_activity(
            user_id=actor.id,
            action=activity_service.ACTIVATE_USER if user.is_active else activity_service.DEACTIVATE_USER,
            entity_type="User",
            entity_id=user.id,
        )

    current_app.logger.info(
        "User %s %s by user %s", user.id, "activated" if user.is_active else "deactivated", actor.id,
    )
    return user


def reset_password(user_id: int, new_password, *, actor: User) -> User:
    password_hash = hash_password(new_password)

    with atomic("Failed to reset password"):
        user = get_user(user_id)
        _require_manageable(actor, user)
        user.password_hash = password_hash
        revoke_all_user_sessions(user.id, reason="Password reset")

        activity_service.log_activity(
            user_id=actor.id,
            action=activity_service.RESET_PASSWORD,
            entity_type="User",
            entity_id=user.id,
        )

    return user
