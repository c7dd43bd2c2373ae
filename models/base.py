"""
Base Pydantic models for request validation and sanitization
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

import bleach
from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.fields import FieldModel

ConstraintType = Literal["none", "ip", "field"]


class BaseDBModel(BaseModel):
    """Base model with common validation and sanitization methods"""
    # Allow population by both snake_case and camelCase aliases
    model_config = ConfigDict(populate_by_name=True)

    @field_validator('*', mode='before')
    def sanitize_strings(cls, v, info):
        """Sanitize string inputs to prevent XSS attacks"""
        if isinstance(v, str) and info.field_name:
            return bleach.clean(v.strip(), strip=True)
        return v


@dataclass(frozen=True)
class RequestContext:
    """Transport metadata attached to a public submission."""
    ip: Optional[str] = None
    user_agent: Optional[str] = None


class TermsFields(BaseDBModel):
    """Terms-and-conditions configuration shared by create and update payloads"""
    show_terms_checkbox: Optional[bool] = Field(default=None, alias="showTermsCheckbox")
    terms_text: Optional[str] = Field(default=None, alias="termsText")
    terms_secondary_text: Optional[str] = Field(default=None, alias="termsSecondaryText")
    terms_link_url: Optional[str] = Field(default=None, alias="termsLinkUrl")
    terms_link_text: Optional[str] = Field(default=None, alias="termsLinkText")


class FormCreate(TermsFields):
    """Payload for creating a form"""
    title: str
    description: Optional[str] = None
    fields: List[FieldModel] = Field(default_factory=list)
    is_active: bool = Field(default=True, alias="isActive")
    banner_url: Optional[str] = Field(default=None, alias="bannerUrl")
    unique_constraint_type: ConstraintType = Field(default="none", alias="uniqueConstraintType")
    unique_constraint_field: Optional[str] = Field(default=None, alias="uniqueConstraintField")
    show_qr_code: bool = Field(default=False, alias="showQrCode")
    send_email_notification: bool = Field(default=False, alias="sendEmailNotification")

    @field_validator('title')
    def validate_title(cls, v):
        if not v:
            raise ValueError('Title is required')
        if len(v) > 255:
            raise ValueError('Title must be at most 255 characters')
        return v


class FormUpdate(TermsFields):
    """Partial update of a form's content; only fields that were sent are applied"""
    title: Optional[str] = None
    description: Optional[str] = None
    fields: Optional[List[FieldModel]] = None
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    banner_url: Optional[str] = Field(default=None, alias="bannerUrl")

    @field_validator('title')
    def validate_title(cls, v):
        if v is not None and not v:
            raise ValueError('Title cannot be empty')
        return v


class FormSettingsUpdate(BaseDBModel):
    """Partial settings update; keys left out of the request keep their stored value"""
    unique_constraint_type: Optional[ConstraintType] = Field(default=None, alias="uniqueConstraintType")
    unique_constraint_field: Optional[str] = Field(default=None, alias="uniqueConstraintField")
    show_qr_code: Optional[bool] = Field(default=None, alias="showQrCode")
    send_email_notification: Optional[bool] = Field(default=None, alias="sendEmailNotification")


class DisplayUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    is_displayed: bool = Field(alias="isDisplayed")


class SubmissionCreate(BaseDBModel):
    """Public submission payload: {formId, responses}"""
    form_id: str = Field(alias="formId")
    responses: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('form_id')
    def validate_form_id(cls, v):
        if not v:
            raise ValueError('Form ID is required')
        return v


class SubmissionUpdate(BaseModel):
    responses: Dict[str, Any]
