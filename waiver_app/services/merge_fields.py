"""Organization-scoped merge field definitions."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from waiver_app.core.settings import settings
from waiver_app.db import commit_session
from waiver_app.exceptions import NotFoundException, ValidationException
from waiver_app.models.merge_field import WaiverMergeField
from waiver_app.schemas.merge_field import MergeFieldCreate, MergeFieldUpdate
from waiver_app.services import audit
from waiver_app.services.placeholders import merge_field_key_error

logger = logging.getLogger("waiver_app.merge_fields")

ORGANIZATION_NAME_KEY = "academy_name"


def list_merge_fields(db: Session, organization_id: str) -> List[WaiverMergeField]:
    return (
        db.query(WaiverMergeField)
        .filter(WaiverMergeField.organization_id == organization_id)
        .order_by(WaiverMergeField.sort_order, WaiverMergeField.key)
        .all()
    )


def get_merge_field(db: Session, organization_id: str, merge_field_id: str) -> WaiverMergeField:
    row = (
        db.query(WaiverMergeField)
        .filter(WaiverMergeField.id == merge_field_id, WaiverMergeField.organization_id == organization_id)
        .first()
    )
    if not row:
        raise NotFoundException("Merge field not found")
    return row


def org_defaults(db: Session, organization_id: str) -> Dict[str, str]:
    """key -> default value for every merge field the organization defines."""
    return {f.key: f.default_value for f in list_merge_fields(db, organization_id)}


def organization_name(defaults: Dict[str, str]) -> str:
    return defaults.get(ORGANIZATION_NAME_KEY) or settings.default_organization_name


def create_merge_field(
    db: Session, organization_id: str, data: MergeFieldCreate, actor_id: Optional[str] = None
) -> WaiverMergeField:
    error = merge_field_key_error(data.key)
    if error:
        raise ValidationException(error, {"key": error})
    duplicate = (
        db.query(WaiverMergeField)
        .filter(WaiverMergeField.organization_id == organization_id, WaiverMergeField.key == data.key)
        .first()
    )
    if duplicate:
        message = f"A merge field with key '{data.key}' already exists"
        raise ValidationException(message, {"key": message})

    last = (
        db.query(WaiverMergeField)
        .filter(WaiverMergeField.organization_id == organization_id)
        .order_by(WaiverMergeField.sort_order.desc())
        .first()
    )
    row = WaiverMergeField(
        organization_id=organization_id,
        key=data.key,
        label=data.label,
        default_value=data.default_value,
        description=data.description,
        sort_order=(last.sort_order + 1) if last else 0,
    )
    db.add(row)
    commit_session(db, "create merge field")
    db.refresh(row)
    audit.log_merge_field_change(organization_id, actor_id, "create", row.id, row.key)
    return row


def update_merge_field(
    db: Session, organization_id: str, merge_field_id: str, data: MergeFieldUpdate, actor_id: Optional[str] = None
) -> WaiverMergeField:
    row = get_merge_field(db, organization_id, merge_field_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None and field != "description":
            continue
        setattr(row, field, value)
    commit_session(db, "update merge field")
    db.refresh(row)
    audit.log_merge_field_change(organization_id, actor_id, "update", row.id, row.key)
    return row


def delete_merge_field(db: Session, organization_id: str, merge_field_id: str, actor_id: Optional[str] = None) -> None:
    # Templates that still use the key keep the token; resolution reports it as unresolved.
    row = get_merge_field(db, organization_id, merge_field_id)
    key = row.key
    db.delete(row)
    commit_session(db, "delete merge field")
    audit.log_merge_field_change(organization_id, actor_id, "delete", merge_field_id, key)
