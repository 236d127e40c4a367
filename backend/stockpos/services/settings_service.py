# Overview: Service-layer operations for the company profile; supplies document number prefixes.

from __future__ import annotations

import re

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import CompanyProfile
from ..validation import ModelValidationPolicy, validate_payload
from . import activity_service
from .concurrency import atomic, lock_for_update


PREFIX_RE = re.compile(r"^[A-Z0-9]{1,10}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

PROFILE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "address",
        "phone",
        "email",
        "tax_number",
        "invoice_prefix",
        "stock_entry_prefix",
    },
)


def get_company_profile(*, for_update: bool = False) -> CompanyProfile:
    """
    Return the single company profile row, adding the default one if missing.

    Never commits. A freshly added row is flushed so callers inside a
    transaction can read its prefixes.
    """
    query = db.session.query(CompanyProfile).order_by(CompanyProfile.id.asc())
    if for_update:
        query = lock_for_update(query)
    profile = query.first()
    if profile is None:
        profile = CompanyProfile(name="My Company", invoice_prefix="INV", stock_entry_prefix="SE")
        db.session.add(profile)
        db.session.flush()
    return profile


def _normalize_profile_patch(patch: dict) -> dict:
    for field in ("invoice_prefix", "stock_entry_prefix"):
        if field in patch:
            value = (patch[field] or "").upper()
            if not PREFIX_RE.match(value):
                raise ValidationError(f"{field} must be 1-10 letters or digits")
            patch[field] = value
    if patch.get("email") and not EMAIL_RE.match(patch["email"]):
        raise ValidationError("email is not a valid email address")
    return patch


def update_company_profile(data: dict, *, user_id: int) -> CompanyProfile:
    patch = _normalize_profile_patch(
        validate_payload(model=CompanyProfile, payload=data, policy=PROFILE_POLICY, partial=True)
    )
    if not patch:
        raise ValidationError("No fields to update")

    with atomic("Failed to update company profile"):
        profile = get_company_profile(for_update=True)
        for key, value in patch.items():
            setattr(profile, key, value)
        db.session.flush()
        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.UPDATE_COMPANY_PROFILE,
            entity_type="CompanyProfile",
            entity_id=profile.id,
            details={"fields": sorted(patch)},
        )

    current_app.logger.info("Company profile updated by user %s: %s", user_id, sorted(patch))
    return profile
