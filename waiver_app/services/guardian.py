from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Optional, Protocol

from waiver_app.core.settings import settings

SELF = "self"
GUARDIAN_RELATIONSHIPS = frozenset({"parent", "guardian", "legal_guardian"})
SIGNER_RELATIONSHIPS = GUARDIAN_RELATIONSHIPS | {SELF}


class GuardianPolicy(Protocol):
    requires_guardian: bool
    guardian_age_threshold: int


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def calculate_age(date_of_birth: date | datetime, as_of: date | datetime) -> int:
    """Whole years between the two dates, counting a birthday only once reached."""
    dob = _as_date(date_of_birth)
    today = _as_date(as_of)
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def requires_guardian(
    template: GuardianPolicy,
    member_date_of_birth: Optional[date | datetime],
    as_of: date | datetime,
    dob_unknown_requires_guardian: Optional[bool] = None,
) -> bool:
    if not template.requires_guardian:
        return False
    if member_date_of_birth is None:
        if dob_unknown_requires_guardian is None:
            dob_unknown_requires_guardian = settings.guardian_required_when_dob_unknown
        return dob_unknown_requires_guardian
    return calculate_age(member_date_of_birth, as_of) < template.guardian_age_threshold


def signer_errors(guardian_required: bool, relationship: Optional[str], guardian_email: Optional[str]) -> Dict[str, str]:
    """Field errors for the signer's relationship and guardian contact."""
    errors: Dict[str, str] = {}
    if guardian_required:
        if relationship not in GUARDIAN_RELATIONSHIPS:
            errors["signed_by_relationship"] = "A parent or legal guardian must sign for this member"
        if not (guardian_email or "").strip():
            errors["signed_by_email"] = "Guardian email is required"
    elif relationship not in (None, SELF):
        errors["signed_by_relationship"] = "Members old enough to sign must sign for themselves"
    return errors
