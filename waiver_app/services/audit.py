"""Audit logging helper functions for key waiver events.

Standard single-line logs so they are easy to index.
"""
from __future__ import annotations
import logging
from typing import Optional, Any

from waiver_app.utils.datetime import utc_now

_logger = logging.getLogger("waiver_app.audit")


def _emit(event: str, organization_id: str, actor_id: Optional[str] = None, **data: Any):
    payload = {"ts": utc_now().isoformat(), "event": event, "organization_id": organization_id}
    if actor_id:
        payload["actor_id"] = actor_id
    payload.update(data)
    parts = [f"{k}={repr(v)}" for k, v in payload.items()]
    _logger.info("AUDIT " + " ".join(parts))

# Public convenience wrappers

def log_template_create(organization_id: str, actor_id: Optional[str], template_id: str, name: str):
    _emit("waiver_template.create", organization_id, actor_id, template_id=template_id, name=name)

def log_template_update(organization_id: str, actor_id: Optional[str], template_id: str, version: int, version_created: bool):
    _emit("waiver_template.update", organization_id, actor_id, template_id=template_id, version=version, version_created=version_created)

def log_template_delete(organization_id: str, actor_id: Optional[str], template_id: str):
    _emit("waiver_template.delete", organization_id, actor_id, template_id=template_id)

def log_merge_field_change(organization_id: str, actor_id: Optional[str], action: str, merge_field_id: str, key: str):
    _emit(f"merge_field.{action}", organization_id, actor_id, merge_field_id=merge_field_id, key=key)

def log_waiver_signed(organization_id: str, signed_waiver_id: str, template_id: str, template_version: int,
                      member_id: str, relationship: str):
    _emit(
        "waiver.signed",
        organization_id,
        signed_waiver_id=signed_waiver_id,
        template_id=template_id,
        template_version=template_version,
        member_id=member_id,
        relationship=relationship,
    )
