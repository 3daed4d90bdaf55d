"""Pydantic models for inbound events and commands."""

import re
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import ValidationFailure
from ..nurturing.engagement import EngagementType
from ..storage.models import Actor, LeadSource, LeadStatus, StaffMember, StaffRole

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_input(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Validate raw input, raising ValidationFailure on bad data."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ValidationFailure(str(e)) from e


def _actor_for(user_id: Optional[str]) -> Actor:
    return Actor.user(user_id) if user_id else Actor.system()


class LeadCaptureEvent(BaseModel):
    """A new inquiry or website session for a prospective patient."""

    source: LeadSource = LeadSource.WEBSITE
    source_detail: Optional[str] = None
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None

    website_visits: int = Field(1, ge=0)
    page_views: int = Field(1, ge=0)
    time_on_site_seconds: int = Field(0, ge=0)
    last_page_viewed: Optional[str] = None
    form_abandoned: bool = False

    notes: Optional[str] = None
    campaign_id: Optional[str] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        value = value.strip().lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("invalid email format")
        return value

    @field_validator("phone")
    @classmethod
    def _valid_phone(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        digits = "".join(c for c in value if c.isdigit())
        if len(digits) < 7:
            raise ValueError("phone number needs at least 7 digits")
        return digits


class EngagementEvent(BaseModel):
    """An interaction with a nurture message."""

    lead_id: int
    event: EngagementType
    step_number: Optional[int] = Field(None, ge=1)
    link_url: Optional[str] = None
    reply_content: Optional[str] = None


class StatusChangeCommand(BaseModel):
    """A manual status change by a staff member."""

    lead_id: int
    status: LeadStatus
    user_id: Optional[str] = None
    notes: Optional[str] = None

    @property
    def actor(self) -> Actor:
        return _actor_for(self.user_id)


class ConversionEvent(BaseModel):
    """Confirmation that a lead became a patient."""

    lead_id: int
    customer_id: str = Field(..., min_length=1)
    conversion_value: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def actor(self) -> Actor:
        return _actor_for(self.user_id)


class StaffRosterEntry(BaseModel):
    """One member of a roster snapshot."""

    id: str = Field(..., min_length=1)
    name: str = ""
    role: StaffRole = StaffRole.STAFF
    is_active: bool = True
    email: Optional[str] = None

    def to_member(self) -> StaffMember:
        return StaffMember(
            id=self.id,
            name=self.name,
            role=self.role,
            is_active=self.is_active,
            email=self.email,
        )
