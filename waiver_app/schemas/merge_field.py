from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime

from waiver_app.services.placeholders import merge_field_key_error


class MergeFieldCreate(BaseModel):
    key: str
    label: str = Field(min_length=1, max_length=100)
    default_value: str = Field(min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator('key')
    def key_shape(cls, v):
        error = merge_field_key_error(v)
        if error:
            raise ValueError(error)
        return v


class MergeFieldUpdate(BaseModel):
    # key is immutable; templates reference it by name
    label: Optional[str] = Field(None, min_length=1, max_length=100)
    default_value: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=500)
    sort_order: Optional[int] = None


class MergeFieldOut(BaseModel):
    id: str
    organization_id: str
    key: str
    label: str
    default_value: str
    description: Optional[str]
    sort_order: int
    created_at: datetime
    updated_at: datetime

    model_config = {
        'from_attributes': True
    }
