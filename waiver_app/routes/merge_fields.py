from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from typing import Optional, List

from waiver_app.db import get_db
from waiver_app.schemas.merge_field import MergeFieldCreate, MergeFieldUpdate, MergeFieldOut
from waiver_app.services import merge_fields
from waiver_app.services.auth import get_organization_id, get_actor_id

router = APIRouter(prefix="/waivers/merge-fields", tags=["Merge Fields"])


@router.get("", response_model=List[MergeFieldOut])
def list_merge_fields(db: Session = Depends(get_db), org_id: str = Depends(get_organization_id)):
    return merge_fields.list_merge_fields(db, org_id)


@router.post("", response_model=MergeFieldOut, status_code=201)
def create_merge_field(
    data: MergeFieldCreate,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return merge_fields.create_merge_field(db, org_id, data, actor_id)


@router.patch("/{merge_field_id}", response_model=MergeFieldOut)
def update_merge_field(
    merge_field_id: str,
    data: MergeFieldUpdate,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return merge_fields.update_merge_field(db, org_id, merge_field_id, data, actor_id)


@router.delete("/{merge_field_id}", status_code=204)
def delete_merge_field(
    merge_field_id: str,
    db: Session = Depends(get_db),
    org_id: str = Depends(get_organization_id),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    merge_fields.delete_merge_field(db, org_id, merge_field_id, actor_id)
    return Response(status_code=204)
