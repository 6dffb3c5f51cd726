"""Waiver template store and membership-plan associations."""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from waiver_app.db import commit_session
from waiver_app.exceptions import NotFoundException
from waiver_app.models.waiver import MembershipWaiver, SignedWaiver, WaiverTemplate
from waiver_app.schemas.waiver import WaiverTemplateCreate, WaiverTemplateUpdate
from waiver_app.services import audit, template_versions
from waiver_app.utils.datetime import utc_now

logger = logging.getLogger("waiver_app.waiver_templates")


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or "waiver"


def _active_filter(query, organization_id: str):
    return query.filter(
        WaiverTemplate.organization_id == organization_id,
        WaiverTemplate.deleted_at.is_(None),
    )


def list_templates(db: Session, organization_id: str, active_only: bool = False) -> List[WaiverTemplate]:
    q = _active_filter(db.query(WaiverTemplate), organization_id)
    if active_only:
        q = q.filter(WaiverTemplate.is_active.is_(True))
    return q.order_by(WaiverTemplate.sort_order, WaiverTemplate.name).all()


def template_stats(db: Session, organization_id: str, template_ids: List[str]) -> Dict[str, Tuple[int, int]]:
    """``{template_id: (signed_count, membership_count)}`` for the given templates."""
    if not template_ids:
        return {}
    signed = dict(
        db.query(SignedWaiver.waiver_template_id, func.count(SignedWaiver.id))
        .filter(
            SignedWaiver.organization_id == organization_id,
            SignedWaiver.waiver_template_id.in_(template_ids),
        )
        .group_by(SignedWaiver.waiver_template_id)
        .all()
    )
    plans = dict(
        db.query(MembershipWaiver.waiver_template_id, func.count(MembershipWaiver.membership_plan_id))
        .filter(MembershipWaiver.waiver_template_id.in_(template_ids))
        .group_by(MembershipWaiver.waiver_template_id)
        .all()
    )
    return {tid: (signed.get(tid, 0), plans.get(tid, 0)) for tid in template_ids}


def get_template(db: Session, organization_id: str, template_id: str, include_deleted: bool = False) -> WaiverTemplate:
    q = db.query(WaiverTemplate).filter(
        WaiverTemplate.id == template_id,
        WaiverTemplate.organization_id == organization_id,
    )
    if not include_deleted:
        q = q.filter(WaiverTemplate.deleted_at.is_(None))
    tpl = q.first()
    if not tpl:
        raise NotFoundException("Waiver template not found")
    return tpl


def get_default_template(db: Session, organization_id: str) -> WaiverTemplate:
    tpl = (
        _active_filter(db.query(WaiverTemplate), organization_id)
        .filter(WaiverTemplate.is_default.is_(True), WaiverTemplate.is_active.is_(True))
        .first()
    )
    if not tpl:
        raise NotFoundException("No default waiver template configured")
    return tpl


def _clear_other_defaults(db: Session, organization_id: str, keep_id: Optional[str]) -> None:
    q = _active_filter(db.query(WaiverTemplate), organization_id).filter(WaiverTemplate.is_default.is_(True))
    if keep_id:
        q = q.filter(WaiverTemplate.id != keep_id)
    for other in q.all():
        other.is_default = False


def create_template(
    db: Session, organization_id: str, data: WaiverTemplateCreate, actor_id: Optional[str] = None
) -> WaiverTemplate:
    last = (
        _active_filter(db.query(WaiverTemplate), organization_id)
        .order_by(WaiverTemplate.sort_order.desc())
        .first()
    )
    tpl = WaiverTemplate(
        organization_id=organization_id,
        name=data.name,
        slug=slugify(data.name),
        content=data.content,
        description=data.description,
        is_active=data.is_active,
        is_default=data.is_default,
        requires_guardian=data.requires_guardian,
        guardian_age_threshold=data.guardian_age_threshold,
        sort_order=(last.sort_order + 1) if last else 0,
    )
    db.add(tpl)
    db.flush()
    if tpl.is_default:
        _clear_other_defaults(db, organization_id, tpl.id)
    template_versions.record_initial_version(db, tpl, actor_id)
    commit_session(db, "create waiver template")
    db.refresh(tpl)
    audit.log_template_create(organization_id, actor_id, tpl.id, tpl.name)
    return tpl


def update_template(
    db: Session,
    organization_id: str,
    template_id: str,
    data: WaiverTemplateUpdate,
    actor_id: Optional[str] = None,
) -> WaiverTemplate:
    """Apply a partial update.

    Changes to name, content or guardian policy go through the version
    manager; the remaining settings are updated in place.
    """
    tpl = get_template(db, organization_id, template_id)
    changes = data.model_dump(exclude_unset=True)

    versioned = {
        field: changes[field]
        for field in template_versions.VERSIONED_FIELDS
        if changes.get(field) is not None and changes[field] != getattr(tpl, field)
    }
    version_created = False
    if versioned:
        content = versioned.pop("content", None)
        template_versions.create_version(db, tpl.id, content, actor_id, **versioned)
        if "name" in versioned:
            tpl.slug = slugify(tpl.name)
        version_created = True

    if "description" in changes:
        tpl.description = changes["description"]
    for field in ("is_active", "sort_order"):
        if changes.get(field) is not None:
            setattr(tpl, field, changes[field])
    if changes.get("is_default") is not None:
        tpl.is_default = changes["is_default"]
        if tpl.is_default:
            _clear_other_defaults(db, organization_id, tpl.id)

    commit_session(db, "update waiver template")
    db.refresh(tpl)
    audit.log_template_update(organization_id, actor_id, tpl.id, tpl.current_version, version_created)
    return tpl


def delete_template(db: Session, organization_id: str, template_id: str, actor_id: Optional[str] = None) -> None:
    """Soft delete. Version history and signed waivers stay untouched."""
    tpl = get_template(db, organization_id, template_id)
    tpl.deleted_at = utc_now()
    tpl.is_default = False
    commit_session(db, "delete waiver template")
    audit.log_template_delete(organization_id, actor_id, tpl.id)


# Membership plan associations

def _plan_links(db: Session, organization_id: str, plan_id: str):
    return (
        db.query(MembershipWaiver)
        .join(WaiverTemplate, WaiverTemplate.id == MembershipWaiver.waiver_template_id)
        .filter(
            MembershipWaiver.membership_plan_id == plan_id,
            WaiverTemplate.organization_id == organization_id,
        )
    )


def get_waivers_for_membership(db: Session, organization_id: str, plan_id: str) -> List[WaiverTemplate]:
    """Active templates a signer of ``plan_id`` must accept, in association order."""
    return (
        db.query(WaiverTemplate)
        .join(MembershipWaiver, MembershipWaiver.waiver_template_id == WaiverTemplate.id)
        .filter(
            MembershipWaiver.membership_plan_id == plan_id,
            WaiverTemplate.organization_id == organization_id,
            WaiverTemplate.deleted_at.is_(None),
            WaiverTemplate.is_active.is_(True),
        )
        .order_by(MembershipWaiver.sort_order, WaiverTemplate.name)
        .all()
    )


def membership_plan_ids_for_template(db: Session, organization_id: str, template_id: str) -> List[str]:
    """Plans that link ``template_id``, in plan id order."""
    get_template(db, organization_id, template_id)
    rows = (
        db.query(MembershipWaiver.membership_plan_id)
        .filter(MembershipWaiver.waiver_template_id == template_id)
        .order_by(MembershipWaiver.membership_plan_id)
        .all()
    )
    return [plan_id for (plan_id,) in rows]


def set_membership_waivers(db: Session, organization_id: str, plan_id: str, template_ids: List[str]) -> List[WaiverTemplate]:
    """Replace the plan's waiver list; order of ``template_ids`` becomes the signing order."""
    unique_ids = list(dict.fromkeys(template_ids))
    for template_id in unique_ids:
        get_template(db, organization_id, template_id)

    for link in _plan_links(db, organization_id, plan_id).all():
        db.delete(link)
    db.flush()
    for index, template_id in enumerate(unique_ids):
        db.add(MembershipWaiver(membership_plan_id=plan_id, waiver_template_id=template_id, sort_order=index))
    commit_session(db, "update membership waivers")
    logger.info(f"Plan {plan_id} now requires {len(unique_ids)} waiver(s)")
    return get_waivers_for_membership(db, organization_id, plan_id)


def add_membership_waiver(
    db: Session, organization_id: str, plan_id: str, template_id: str, is_required: bool = True
) -> List[WaiverTemplate]:
    get_template(db, organization_id, template_id)
    links = _plan_links(db, organization_id, plan_id).order_by(MembershipWaiver.sort_order).all()
    existing = next((link for link in links if link.waiver_template_id == template_id), None)
    if existing:
        existing.is_required = is_required
    else:
        next_order = (links[-1].sort_order + 1) if links else 0
        db.add(MembershipWaiver(
            membership_plan_id=plan_id,
            waiver_template_id=template_id,
            is_required=is_required,
            sort_order=next_order,
        ))
    commit_session(db, "update membership waivers")
    return get_waivers_for_membership(db, organization_id, plan_id)


def remove_membership_waiver(db: Session, organization_id: str, plan_id: str, template_id: str) -> List[WaiverTemplate]:
    link = (
        _plan_links(db, organization_id, plan_id)
        .filter(MembershipWaiver.waiver_template_id == template_id)
        .first()
    )
    if not link:
        raise NotFoundException("Waiver is not linked to this membership plan")
    db.delete(link)
    commit_session(db, "update membership waivers")
    return get_waivers_for_membership(db, organization_id, plan_id)
