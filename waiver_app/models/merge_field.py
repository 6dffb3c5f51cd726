from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint
from waiver_app.db import Base
from datetime import datetime, UTC
import uuid


class WaiverMergeField(Base):
    """Organization-scoped value substituted into waiver text as ``<key>``."""
    __tablename__ = 'waiver_merge_fields'
    __table_args__ = (
        UniqueConstraint('organization_id', 'key', name='uq_merge_field_org_key'),
    )
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String, nullable=False, index=True)
    key = Column(String(50), nullable=False)
    label = Column(String(100), nullable=False)
    default_value = Column(String(500), nullable=False)
    description = Column(String(500), nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC), nullable=False)
