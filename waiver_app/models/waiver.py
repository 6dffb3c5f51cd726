from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Date, Text, ForeignKey,
    UniqueConstraint, Index, event,
)
from sqlalchemy.orm import relationship
from waiver_app.db import Base
from waiver_app.utils.datetime import utc_now
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


def _now():
    return utc_now()


class WaiverTemplate(Base):
    __tablename__ = 'waiver_templates'
    id = Column(String, primary_key=True, default=_uuid)
    organization_id = Column(String, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(120), nullable=False)
    content = Column(Text, nullable=False)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    requires_guardian = Column(Boolean, default=True, nullable=False)
    guardian_age_threshold = Column(Integer, default=16, nullable=False)
    # Advanced only by services.template_versions together with a new version row
    current_version = Column(Integer, default=1, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)
    # Soft delete; versions and signed waivers are kept
    deleted_at = Column(DateTime, nullable=True)

    versions = relationship(
        "WaiverTemplateVersion",
        back_populates="template",
        order_by="WaiverTemplateVersion.version.desc()",
    )


class WaiverTemplateVersion(Base):
    __tablename__ = 'waiver_template_versions'
    __table_args__ = (
        UniqueConstraint('template_id', 'version', name='uq_waiver_template_version'),
    )
    id = Column(String, primary_key=True, default=_uuid)
    template_id = Column(String, ForeignKey('waiver_templates.id'), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    name = Column(String(100), nullable=False)
    content_snapshot = Column(Text, nullable=False)
    requires_guardian = Column(Boolean, nullable=False)
    guardian_age_threshold = Column(Integer, nullable=False)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    template = relationship("WaiverTemplate", back_populates="versions")


class MembershipWaiver(Base):
    """Links an external membership plan to the waivers a new member signs."""
    __tablename__ = 'membership_waivers'
    membership_plan_id = Column(String, primary_key=True)
    waiver_template_id = Column(String, ForeignKey('waiver_templates.id'), primary_key=True)
    is_required = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)


class SignedWaiver(Base):
    __tablename__ = 'signed_waivers'
    __table_args__ = (
        Index('ix_signed_waivers_member', 'member_id'),
    )
    id = Column(String, primary_key=True, default=_uuid)
    organization_id = Column(String, nullable=False, index=True)
    waiver_template_id = Column(String, ForeignKey('waiver_templates.id'), nullable=False)
    template_version_used = Column(Integer, nullable=False)
    member_id = Column(String, nullable=False)
    member_membership_id = Column(String, nullable=True)
    signature_data_url = Column(Text, nullable=False)
    signed_by_name = Column(String(100), nullable=False)
    signed_by_relationship = Column(String(20), nullable=False, default='self')
    signed_by_email = Column(String, nullable=True)
    member_first_name = Column(String, nullable=False)
    member_last_name = Column(String, nullable=False)
    member_email = Column(String, nullable=False)
    member_date_of_birth = Column(Date, nullable=True)
    member_age_at_signing = Column(Integer, nullable=True)
    # Exact text shown to the signer; never re-derived from the live template
    rendered_content = Column(Text, nullable=False)
    organization_name = Column(String(500), nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    signed_at = Column(DateTime, default=_now, nullable=False)


class ImmutableRecordError(Exception):
    pass


@event.listens_for(SignedWaiver, 'before_update')
def prevent_signed_waiver_update(mapper, connection, target):
    """Signed waivers are write-once legal records."""
    raise ImmutableRecordError(f"SignedWaiver {target.id} is write-once. Updates are prohibited.")


@event.listens_for(SignedWaiver, 'before_delete')
def prevent_signed_waiver_delete(mapper, connection, target):
    raise ImmutableRecordError(f"SignedWaiver {target.id} is write-once. Deletions are prohibited.")
