"""Append-only version history for waiver templates.

This module is the only writer of ``WaiverTemplateVersion`` rows and of
``WaiverTemplate.current_version``. Callers own the transaction: functions
here flush but never commit, so the version row and the template row land in
the same commit.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from waiver_app.exceptions import NotFoundException
from waiver_app.models.waiver import WaiverTemplate, WaiverTemplateVersion

logger = logging.getLogger("waiver_app.template_versions")

VERSIONED_FIELDS = ("name", "content", "requires_guardian", "guardian_age_threshold")


def _snapshot(template: WaiverTemplate, version: int, actor: Optional[str]) -> WaiverTemplateVersion:
    return WaiverTemplateVersion(
        template_id=template.id,
        version=version,
        name=template.name,
        content_snapshot=template.content,
        requires_guardian=template.requires_guardian,
        guardian_age_threshold=template.guardian_age_threshold,
        created_by=actor,
    )


def record_initial_version(db: Session, template: WaiverTemplate, actor: Optional[str] = None) -> WaiverTemplateVersion:
    """Store version 1 for a template that was just added to the session."""
    if template.id is None:
        db.flush()
    template.current_version = 1
    row = _snapshot(template, 1, actor)
    db.add(row)
    db.flush()
    return row


def create_version(
    db: Session,
    template_id: str,
    content: Optional[str] = None,
    actor: Optional[str] = None,
    **settings,
) -> WaiverTemplateVersion:
    """Apply a content/settings edit and append the resulting snapshot.

    ``settings`` accepts any of ``name``, ``requires_guardian`` and
    ``guardian_age_threshold``. The new version number is the template's
    current version plus one.
    """
    template = (
        db.query(WaiverTemplate)
        .filter(WaiverTemplate.id == template_id, WaiverTemplate.deleted_at.is_(None))
        .first()
    )
    if not template:
        raise NotFoundException("Waiver template not found")

    unknown = set(settings) - set(VERSIONED_FIELDS)
    if unknown:
        raise TypeError(f"Unversioned template fields: {', '.join(sorted(unknown))}")

    if content is not None:
        template.content = content
    for field, value in settings.items():
        if value is not None:
            setattr(template, field, value)

    next_version = (template.current_version or 0) + 1
    template.current_version = next_version
    row = _snapshot(template, next_version, actor)
    db.add(row)
    db.flush()
    logger.info(f"Template {template.id} advanced to version {next_version}")
    return row


def list_versions(db: Session, template_id: str) -> List[WaiverTemplateVersion]:
    """Full history, newest first. Available for soft-deleted templates too."""
    exists = db.query(WaiverTemplate.id).filter(WaiverTemplate.id == template_id).first()
    if not exists:
        raise NotFoundException("Waiver template not found")
    return (
        db.query(WaiverTemplateVersion)
        .filter(WaiverTemplateVersion.template_id == template_id)
        .order_by(WaiverTemplateVersion.version.desc())
        .all()
    )


def get_version(db: Session, version_id: str) -> WaiverTemplateVersion:
    row = db.query(WaiverTemplateVersion).filter(WaiverTemplateVersion.id == version_id).first()
    if not row:
        raise NotFoundException("Template version not found")
    return row
