from fastapi import APIRouter, Depends, Body, Response
from sqlalchemy.orm import Session
from typing import Optional, List

from waiver_app.core.settings import settings
from waiver_app.db import get_db
from waiver_app.exceptions import NotFoundException
from waiver_app.schemas.waiver import (
    WaiverTemplateCreate, WaiverTemplateUpdate, WaiverTemplateOut, TemplateVersionOut,
    WaiverTemplateWithStatsOut, TemplateMembershipsOut,
    ResolvePlaceholdersRequest, ResolvePlaceholdersOut, PreviewOut,
    GuardianCheckRequest, GuardianCheckOut,
    MembershipWaiversSet, MembershipWaiverAdd, MembershipWaiversOut,
    SignedWaiverCreate, SignedWaiverOut, MembershipDetails, WaiverPreviewPdfRequest,
)
from waiver_app.services import (
    guardian, merge_fields, placeholders, signed_waivers, template_versions, waiver_templates,
)
from waiver_app.services.auth import get_organization_id, get_actor_id
from waiver_app.services.waiver_pdf import WaiverPdfInput, waiver_pdf_response
from waiver_app.utils.datetime import utc_now

router = APIRouter(prefix="/waivers", tags=["Waivers"])


def _policy() -> placeholders.UnresolvedPolicy:
    return placeholders.UnresolvedPolicy.from_setting(settings.unresolved_placeholder_policy)


def _membership_out(plan_id: str, waivers) -> MembershipWaiversOut:
    return MembershipWaiversOut(
        membership_plan_id=plan_id,
        waivers=[WaiverTemplateOut.model_validate(w) for w in waivers],
    )


def _with_stats(db: Session, org_id: str, templates) -> List[WaiverTemplateWithStatsOut]:
    stats = waiver_templates.template_stats(db, org_id, [t.id for t in templates])
    out = []
    for tpl in templates:
        signed_count, membership_count = stats[tpl.id]
        out.append(WaiverTemplateWithStatsOut(
            **WaiverTemplateOut.model_validate(tpl).model_dump(),
            signed_count=signed_count,
            membership_count=membership_count,
        ))
    return out


# Template Endpoints
@router.get("/templates", response_model=List[WaiverTemplateWithStatsOut])
def list_templates(active_only: bool = False, db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    return _with_stats(db, org_id, waiver_templates.list_templates(db, org_id, active_only=active_only))


@router.post("/templates", response_model=WaiverTemplateOut, status_code=201)
def create_template(
    data: WaiverTemplateCreate,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return waiver_templates.create_template(db, org_id, data, actor_id)


@router.get("/templates/default", response_model=WaiverTemplateOut)
def get_default_template(db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    return waiver_templates.get_default_template(db, org_id)


@router.get("/templates/{template_id}", response_model=WaiverTemplateWithStatsOut)
def get_template(template_id: str, db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    return _with_stats(db, org_id, [waiver_templates.get_template(db, org_id, template_id)])[0]


@router.get("/templates/{template_id}/memberships", response_model=TemplateMembershipsOut)
def get_template_memberships(template_id: str, db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    plan_ids = waiver_templates.membership_plan_ids_for_template(db, org_id, template_id)
    return TemplateMembershipsOut(template_id=template_id, membership_plan_ids=plan_ids)


@router.patch("/templates/{template_id}", response_model=WaiverTemplateOut)
def update_template(
    template_id: str,
    data: WaiverTemplateUpdate,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return waiver_templates.update_template(db, org_id, template_id, data, actor_id)


@router.delete("/templates/{template_id}", status_code=204)
def delete_template(
    template_id: str,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    waiver_templates.delete_template(db, org_id, template_id, actor_id)
    return Response(status_code=204)


# Version history
@router.get("/templates/{template_id}/versions", response_model=List[TemplateVersionOut])
def list_versions(template_id: str, db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    waiver_templates.get_template(db, org_id, template_id, include_deleted=True)
    return template_versions.list_versions(db, template_id)


@router.get("/versions/{version_id}", response_model=TemplateVersionOut)
def get_version(version_id: str, db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    version = template_versions.get_version(db, version_id)
    if version.template.organization_id != org_id:
        raise NotFoundException("Template version not found")
    return version


# Resolution and authoring aids
@router.post("/templates/{template_id}/resolve", response_model=ResolvePlaceholdersOut)
def resolve_template(
    template_id: str,
    body: Optional[ResolvePlaceholdersRequest] = None,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
):
    overrides = body.overrides if body else None
    tpl = waiver_templates.get_template(db, org_id, template_id)
    result = placeholders.resolve(tpl.content, merge_fields.org_defaults(db, org_id), overrides, _policy())
    return ResolvePlaceholdersOut(
        template_id=tpl.id,
        template_version=tpl.current_version,
        resolved_content=result.resolved_content,
        unresolved_keys=result.unresolved_keys,
    )


@router.post("/templates/{template_id}/preview", response_model=PreviewOut)
def preview_template(
    template_id: str,
    body: Optional[ResolvePlaceholdersRequest] = None,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
):
    overrides = body.overrides if body else None
    tpl = waiver_templates.get_template(db, org_id, template_id)
    result = placeholders.render_preview_html(tpl.content, merge_fields.org_defaults(db, org_id), overrides)
    return PreviewOut(template_id=tpl.id, html=result.resolved_content, unresolved_keys=result.unresolved_keys)


@router.post("/templates/{template_id}/preview-pdf")
def preview_template_pdf(
    template_id: str,
    body: WaiverPreviewPdfRequest,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
):
    """Unsigned PDF of the template as a member would see it."""
    tpl = waiver_templates.get_template(db, org_id, template_id)
    defaults = merge_fields.org_defaults(db, org_id)
    result = placeholders.resolve(tpl.content, defaults, body.overrides, _policy())
    data = WaiverPdfInput(
        organization_name=merge_fields.organization_name(defaults),
        waiver_name=tpl.name,
        waiver_version=tpl.current_version,
        rendered_content=result.resolved_content,
        member_first_name=body.member_first_name,
        member_last_name=body.member_last_name,
        member_email=body.member_email,
        signature_data_url="",
        signed_by_name=f"{body.member_first_name} {body.member_last_name}",
        signed_at=utc_now(),
        membership=body.membership,
    )
    return waiver_pdf_response(data)


@router.post("/templates/{template_id}/guardian-check", response_model=GuardianCheckOut)
def guardian_check(
    template_id: str,
    body: GuardianCheckRequest,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
):
    tpl = waiver_templates.get_template(db, org_id, template_id)
    today = utc_now()
    age = guardian.calculate_age(body.member_date_of_birth, today) if body.member_date_of_birth else None
    return GuardianCheckOut(
        requires_guardian=guardian.requires_guardian(tpl, body.member_date_of_birth, today),
        member_age=age,
        guardian_age_threshold=tpl.guardian_age_threshold,
    )


# Membership plan associations
@router.get("/memberships/{plan_id}", response_model=MembershipWaiversOut)
def get_membership_waivers(plan_id: str, db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    waivers = waiver_templates.get_waivers_for_membership(db, org_id, plan_id)
    return _membership_out(plan_id, waivers)


@router.put("/memberships/{plan_id}", response_model=MembershipWaiversOut)
def set_membership_waivers(
    plan_id: str,
    body: MembershipWaiversSet,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
):
    waivers = waiver_templates.set_membership_waivers(db, org_id, plan_id, body.waiver_template_ids)
    return _membership_out(plan_id, waivers)


@router.post("/memberships/{plan_id}/templates", response_model=MembershipWaiversOut)
def add_membership_waiver(
    plan_id: str,
    body: MembershipWaiverAdd,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
):
    waivers = waiver_templates.add_membership_waiver(db, org_id, plan_id, body.waiver_template_id, body.is_required)
    return _membership_out(plan_id, waivers)


@router.delete("/memberships/{plan_id}/templates/{template_id}", response_model=MembershipWaiversOut)
def remove_membership_waiver(
    plan_id: str,
    template_id: str,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
):
    waivers = waiver_templates.remove_membership_waiver(db, org_id, plan_id, template_id)
    return _membership_out(plan_id, waivers)


# Signed waivers
@router.post("/signed", response_model=SignedWaiverOut, status_code=201)
def sign_waiver(payload: SignedWaiverCreate, db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    return signed_waivers.build_signed_waiver(db, org_id, payload)


@router.get("/signed/{signed_waiver_id}", response_model=SignedWaiverOut)
def get_signed_waiver(signed_waiver_id: str, db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    return signed_waivers.get_signed_waiver(db, org_id, signed_waiver_id)


@router.get("/members/{member_id}/signed", response_model=List[SignedWaiverOut])
def list_member_waivers(member_id: str, db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    return signed_waivers.list_for_member(db, org_id, member_id)


def _signed_pdf(db: Session, org_id: str, signed_waiver_id: str, membership: Optional[MembershipDetails]):
    record = signed_waivers.get_signed_waiver(db, org_id, signed_waiver_id)
    return waiver_pdf_response(signed_waivers.pdf_input(db, record, membership))


@router.get("/signed/{signed_waiver_id}/pdf")
def download_signed_waiver_pdf(signed_waiver_id: str, db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    return _signed_pdf(db, org_id, signed_waiver_id, None)


@router.post("/signed/{signed_waiver_id}/pdf")
def download_signed_waiver_pdf_with_membership(
    signed_waiver_id: str,
    membership: Optional[MembershipDetails] = Body(None),
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
):
    """Same document, with the membership plan and pricing the caller supplies."""
    return _signed_pdf(db, org_id, signed_waiver_id, membership)
