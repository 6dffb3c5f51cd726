"""Signed waiver capture.

A signed waiver is a write-once legal record: the resolved text the signer
agreed to is frozen in ``rendered_content`` together with the template
version, and later template edits never reach it.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from waiver_app.core.settings import settings
from waiver_app.db import commit_session
from waiver_app.exceptions import NotFoundException, ValidationException
from waiver_app.models.waiver import SignedWaiver, WaiverTemplateVersion
from waiver_app.schemas.waiver import MembershipDetails, SignedWaiverCreate
from waiver_app.services import audit, guardian, merge_fields, placeholders, waiver_templates
from waiver_app.services.waiver_pdf import WaiverPdfInput, pdf_input_from_record
from waiver_app.utils.datetime import utc_now

logger = logging.getLogger("waiver_app.signed_waivers")


def signing_errors(payload: SignedWaiverCreate, guardian_required: bool) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if not (payload.signature_data_url or "").strip():
        errors["signature_data_url"] = "Signature is required"
    if not (payload.signed_by_name or "").strip():
        errors["signed_by_name"] = "Signer name is required"
    if not payload.agreed:
        errors["agreed"] = "You must agree to the waiver terms"
    errors.update(guardian.signer_errors(guardian_required, payload.signed_by_relationship, payload.signed_by_email))
    return errors


def build_signed_waiver(
    db: Session,
    organization_id: str,
    payload: SignedWaiverCreate,
    as_of: Optional[datetime] = None,
) -> SignedWaiver:
    """Validate a signing submission and persist the frozen record.

    Raises NotFoundException for an unknown or deleted template and
    ValidationException (with field errors) before anything is written.
    """
    signed_at = as_of or utc_now()
    template = waiver_templates.get_template(db, organization_id, payload.waiver_template_id)
    if not template.is_active:
        raise ValidationException(
            "Waiver template is inactive",
            {"waiver_template_id": "This waiver is no longer accepting signatures"},
        )

    guardian_required = guardian.requires_guardian(template, payload.member_date_of_birth, signed_at)
    errors = signing_errors(payload, guardian_required)
    if errors:
        logger.info(f"Rejected signing of template {template.id}: {sorted(errors)}")
        raise ValidationException.for_fields(errors)

    policy = placeholders.UnresolvedPolicy.from_setting(settings.unresolved_placeholder_policy)
    defaults = merge_fields.org_defaults(db, organization_id)
    resolution = placeholders.resolve(template.content, defaults, payload.overrides, policy)
    if resolution.unresolved_keys:
        logger.warning(
            f"Template {template.id} signed with unresolved merge fields: {', '.join(resolution.unresolved_keys)}"
        )

    age = None
    if payload.member_date_of_birth is not None:
        age = guardian.calculate_age(payload.member_date_of_birth, signed_at)

    record = SignedWaiver(
        organization_id=organization_id,
        waiver_template_id=template.id,
        template_version_used=template.current_version,
        member_id=payload.member_id,
        member_membership_id=payload.member_membership_id,
        signature_data_url=payload.signature_data_url,
        signed_by_name=payload.signed_by_name.strip(),
        signed_by_relationship=payload.signed_by_relationship or guardian.SELF,
        signed_by_email=payload.signed_by_email,
        member_first_name=payload.member_first_name,
        member_last_name=payload.member_last_name,
        member_email=payload.member_email,
        member_date_of_birth=payload.member_date_of_birth,
        member_age_at_signing=age,
        rendered_content=resolution.resolved_content,
        organization_name=merge_fields.organization_name(defaults),
        ip_address=payload.ip_address,
        user_agent=payload.user_agent,
        signed_at=signed_at,
    )
    db.add(record)
    commit_session(db, "save signed waiver")
    db.refresh(record)
    audit.log_waiver_signed(
        organization_id,
        record.id,
        template.id,
        record.template_version_used,
        record.member_id,
        record.signed_by_relationship,
    )
    return record


def get_signed_waiver(db: Session, organization_id: str, signed_waiver_id: str) -> SignedWaiver:
    record = (
        db.query(SignedWaiver)
        .filter(SignedWaiver.id == signed_waiver_id, SignedWaiver.organization_id == organization_id)
        .first()
    )
    if not record:
        raise NotFoundException("Signed waiver not found")
    return record


def list_for_member(db: Session, organization_id: str, member_id: str) -> List[SignedWaiver]:
    return (
        db.query(SignedWaiver)
        .filter(SignedWaiver.organization_id == organization_id, SignedWaiver.member_id == member_id)
        .order_by(SignedWaiver.signed_at.desc())
        .all()
    )


def signed_version_name(db: Session, record: SignedWaiver) -> str:
    """Template name as it read in the version the member signed."""
    version = (
        db.query(WaiverTemplateVersion)
        .filter(
            WaiverTemplateVersion.template_id == record.waiver_template_id,
            WaiverTemplateVersion.version == record.template_version_used,
        )
        .first()
    )
    return version.name if version else "Waiver"


def pdf_input(db: Session, record: SignedWaiver, membership: Optional[MembershipDetails] = None) -> WaiverPdfInput:
    """Renderer input for a stored record, using the names frozen at signing.

    Rows without an organization name snapshot fall back to the live
    ``academy_name`` merge field.
    """
    organization_name = record.organization_name
    if not organization_name:
        organization_name = merge_fields.organization_name(merge_fields.org_defaults(db, record.organization_id))
    return pdf_input_from_record(record, organization_name, signed_version_name(db, record), membership)
