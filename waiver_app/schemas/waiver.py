from pydantic import BaseModel, Field, EmailStr, field_validator
from typing import Optional, Dict, List, Literal
from datetime import date, datetime

CONTENT_MIN_LENGTH = 100
CONTENT_MAX_LENGTH = 50000
GUARDIAN_AGE_MIN = 13
GUARDIAN_AGE_MAX = 21

SignerRelationship = Literal["self", "parent", "guardian", "legal_guardian"]


class WaiverTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    content: str = Field(min_length=CONTENT_MIN_LENGTH, max_length=CONTENT_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=500)
    is_active: bool = True
    is_default: bool = False
    requires_guardian: bool = True
    guardian_age_threshold: int = Field(16, ge=GUARDIAN_AGE_MIN, le=GUARDIAN_AGE_MAX)

    @field_validator('name')
    def name_not_blank(cls, v):
        if not v.strip():
            raise ValueError('Name is required')
        return v


class WaiverTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    content: Optional[str] = Field(None, min_length=CONTENT_MIN_LENGTH, max_length=CONTENT_MAX_LENGTH)
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None
    requires_guardian: Optional[bool] = None
    guardian_age_threshold: Optional[int] = Field(None, ge=GUARDIAN_AGE_MIN, le=GUARDIAN_AGE_MAX)
    sort_order: Optional[int] = None


class WaiverTemplateOut(BaseModel):
    id: str
    organization_id: str
    name: str
    slug: str
    content: str
    description: Optional[str]
    is_active: bool
    is_default: bool
    requires_guardian: bool
    guardian_age_threshold: int
    current_version: int
    sort_order: int
    created_at: datetime
    updated_at: datetime

    model_config = {
        'from_attributes': True
    }


class WaiverTemplateWithStatsOut(WaiverTemplateOut):
    signed_count: int = 0
    membership_count: int = 0


class TemplateMembershipsOut(BaseModel):
    template_id: str
    membership_plan_ids: List[str]


class TemplateVersionOut(BaseModel):
    id: str
    template_id: str
    version: int
    name: str
    content_snapshot: str
    requires_guardian: bool
    guardian_age_threshold: int
    created_by: Optional[str]
    created_at: datetime

    model_config = {
        'from_attributes': True
    }


class ResolvePlaceholdersRequest(BaseModel):
    overrides: Optional[Dict[str, str]] = None


class ResolvePlaceholdersOut(BaseModel):
    template_id: str
    template_version: int
    resolved_content: str
    unresolved_keys: List[str] = []


class PreviewOut(BaseModel):
    template_id: str
    html: str
    unresolved_keys: List[str] = []


class GuardianCheckRequest(BaseModel):
    member_date_of_birth: Optional[date] = None


class GuardianCheckOut(BaseModel):
    requires_guardian: bool
    member_age: Optional[int]
    guardian_age_threshold: int


class MembershipWaiversSet(BaseModel):
    waiver_template_ids: List[str]


class MembershipWaiverAdd(BaseModel):
    waiver_template_id: str
    is_required: bool = True


class MembershipWaiversOut(BaseModel):
    membership_plan_id: str
    waivers: List[WaiverTemplateOut]


class MembershipDetails(BaseModel):
    """Plan and pricing shown on the PDF; owned by the billing system."""
    plan_name: Optional[str] = None
    price: Optional[float] = None
    frequency: Optional[str] = None
    contract_length: Optional[str] = None
    signup_fee: Optional[float] = None
    is_trial: Optional[bool] = None
    coupon_code: Optional[str] = None
    coupon_type: Optional[str] = None
    coupon_amount: Optional[str] = None
    coupon_discounted_price: Optional[float] = None


class SignedWaiverCreate(BaseModel):
    # Signature, name and agreement are checked by the record builder so the
    # client gets field-level messages alongside guardian errors.
    waiver_template_id: str
    member_id: str
    member_membership_id: Optional[str] = None
    signature_data_url: Optional[str] = None
    signed_by_name: Optional[str] = Field(None, max_length=100)
    signed_by_email: Optional[EmailStr] = None
    signed_by_relationship: Optional[SignerRelationship] = None
    agreed: bool = False
    member_first_name: str = Field(min_length=1)
    member_last_name: str = Field(min_length=1)
    member_email: EmailStr
    member_date_of_birth: Optional[date] = None
    overrides: Optional[Dict[str, str]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class SignedWaiverOut(BaseModel):
    id: str
    organization_id: str
    waiver_template_id: str
    template_version_used: int
    member_id: str
    member_membership_id: Optional[str]
    signature_data_url: str
    signed_by_name: str
    signed_by_relationship: str
    signed_by_email: Optional[str]
    member_first_name: str
    member_last_name: str
    member_email: str
    member_date_of_birth: Optional[date]
    member_age_at_signing: Optional[int]
    rendered_content: str
    organization_name: Optional[str] = None
    ip_address: Optional[str]
    user_agent: Optional[str]
    signed_at: datetime

    model_config = {
        'from_attributes': True
    }


class WaiverPreviewPdfRequest(BaseModel):
    member_first_name: str = Field(min_length=1)
    member_last_name: str = Field(min_length=1)
    member_email: str = ""
    overrides: Optional[Dict[str, str]] = None
    membership: Optional[MembershipDetails] = None
