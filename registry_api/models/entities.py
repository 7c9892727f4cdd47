# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the Civil Registry platform.
"""

from datetime import date, datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from .base import BaseEntity, generate_object_id, utc_now
from .enums import (
    AppRole,
    ChangeEventType,
    RegistrationStatus,
    RegistrationType,
    REVIEWABLE_STATUSES,
    SessionEventType,
)
from ..exceptions import StateException, ValidationException


OPTIONAL_TEXT_FIELDS = (
    'person_gender',
    'parent_guardian_name',
    'parent_guardian_id',
    'hospital_facility',
    'doctor_name',
    'additional_notes',
)


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class RegistrationRecord(BaseEntity):
    """A citizen's birth or death registration request."""

    user_id: str = Field(..., min_length=1, description="Owning citizen")
    registration_type: RegistrationType = Field(..., description="Birth or death")
    person_full_name: str = Field(..., description="Full name of the registered person")
    person_date_of_event: date = Field(..., description="Date of birth or death")
    person_place_of_event: str = Field(..., description="Place of birth or death")
    person_gender: Optional[str] = Field(None, description="Gender")
    parent_guardian_name: Optional[str] = Field(None, description="Parent or guardian name")
    parent_guardian_id: Optional[str] = Field(None, description="Parent or guardian national ID")
    hospital_facility: Optional[str] = Field(None, description="Hospital or facility")
    doctor_name: Optional[str] = Field(None, description="Attending doctor")
    additional_notes: Optional[str] = Field(None, description="Free-form notes")
    status: RegistrationStatus = Field(default=RegistrationStatus.PENDING, description="Review status")
    reviewed_by: Optional[str] = Field(None, description="Reviewer user ID")
    reviewed_at: Optional[datetime] = Field(None, description="Review timestamp")
    rejection_reason: Optional[str] = Field(None, description="Reason for rejection")

    @field_validator('person_full_name', 'person_place_of_event')
    @classmethod
    def validate_required_text(cls, v):
        """Required text must survive trimming."""
        if not v.strip():
            raise ValueError('Value cannot be empty')
        return v.strip()

    @field_validator(*OPTIONAL_TEXT_FIELDS, 'rejection_reason', mode='before')
    @classmethod
    def normalize_optional_text(cls, v):
        """Blank optional strings are stored as null."""
        return _blank_to_none(v)

    @model_validator(mode='after')
    def validate_review_fields(self):
        """Validate status-dependent fields."""
        rejected = self.status == RegistrationStatus.REJECTED
        if rejected != bool(self.rejection_reason):
            raise ValueError('rejection_reason is required exactly when status is rejected')

        terminal = self.status in (RegistrationStatus.APPROVED, RegistrationStatus.REJECTED)
        if (self.reviewed_by is not None) != terminal or (self.reviewed_at is not None) != terminal:
            raise ValueError('reviewed_by and reviewed_at are set exactly when the record is reviewed')

        return self

    def is_terminal(self) -> bool:
        return RegistrationStatus(self.status).is_terminal

    def can_review(self) -> bool:
        """Check if the record can still be approved or rejected."""
        return self.status in REVIEWABLE_STATUSES

    def _transition(self, **changes) -> 'RegistrationRecord':
        data = self.model_dump()
        data.update(changes)
        data['updated_at'] = utc_now()
        return RegistrationRecord.model_validate(data)

    def approve(self, reviewer_id: str) -> 'RegistrationRecord':
        """Return the approved copy of this record."""
        if not self.can_review():
            raise StateException(
                f"Registration cannot be approved from status '{self.status}'",
                current_status=self.status
            )
        now = utc_now()
        return self._transition(
            status=RegistrationStatus.APPROVED,
            reviewed_by=reviewer_id,
            reviewed_at=now,
        )

    def reject(self, reviewer_id: str, reason: str) -> 'RegistrationRecord':
        """Return the rejected copy of this record."""
        if not reason or not reason.strip():
            raise ValidationException('Please provide a rejection reason', field='reason')
        if not self.can_review():
            raise StateException(
                f"Registration cannot be rejected from status '{self.status}'",
                current_status=self.status
            )
        return self._transition(
            status=RegistrationStatus.REJECTED,
            reviewed_by=reviewer_id,
            reviewed_at=utc_now(),
            rejection_reason=reason.strip(),
        )

    def mark_under_review(self) -> 'RegistrationRecord':
        """Return the copy of this record moved into review."""
        if self.status != RegistrationStatus.PENDING:
            raise StateException(
                f"Only pending registrations can be moved under review (status '{self.status}')",
                current_status=self.status
            )
        return self._transition(status=RegistrationStatus.UNDER_REVIEW)

    def to_document(self) -> Dict[str, Any]:
        document = super().to_document()
        # BSON has no date type
        document['person_date_of_event'] = self.person_date_of_event.isoformat()
        return document


class UserRole(BaseEntity):
    """Role assignment, one per user."""

    user_id: str = Field(..., description="User ID")
    role: AppRole = Field(default=AppRole.CITIZEN, description="Assigned role")


class Document(BaseEntity):
    """Metadata of a document attached to a registration."""

    registration_id: str = Field(..., description="Registration the document supports")
    uploaded_by: str = Field(..., description="Uploader user ID")
    file_name: str = Field(..., min_length=1, max_length=255, description="Original file name")
    file_path: str = Field(..., min_length=1, description="Storage path")
    file_type: Optional[str] = Field(None, description="MIME type")

    @field_validator('file_name', 'file_path')
    @classmethod
    def validate_not_blank(cls, v):
        if not v.strip():
            raise ValueError('Value cannot be empty')
        return v.strip()


class Profile(BaseEntity):
    """Citizen profile, keyed by the user ID."""

    full_name: Optional[str] = Field(None, max_length=200, description="Full name")
    national_id: Optional[str] = Field(None, max_length=50, description="National ID")
    phone: Optional[str] = Field(None, max_length=50, description="Phone number")

    @field_validator('full_name', 'national_id', 'phone', mode='before')
    @classmethod
    def normalize_optional_text(cls, v):
        return _blank_to_none(v)


class UserAccount(BaseEntity):
    """Credential record held by the auth provider."""

    email: str = Field(..., description="User email address")
    password_hash: str = Field(..., description="Hashed password")
    last_sign_in_at: Optional[datetime] = Field(None, description="Last sign-in timestamp")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate email format."""
        import re
        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, v.strip().lower()):
            raise ValueError('Invalid email format')
        return v.strip().lower()


class AuditLog(BaseModel):
    """Audit log entry for compliance and accountability."""

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    timestamp: datetime = Field(default_factory=utc_now, description="Action timestamp")
    user_id: str = Field(..., description="User who performed the action")
    entity: str = Field(..., description="Entity type")
    entity_id: str = Field(..., description="Entity identifier")
    action: str = Field(..., description="Action performed")
    before: Optional[Dict[str, Any]] = Field(None, description="State before action")
    after: Optional[Dict[str, Any]] = Field(None, description="State after action")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    session_id: Optional[str] = Field(None, description="Session identifier")
    trace_id: Optional[str] = Field(None, description="OpenTelemetry trace ID")
    span_id: Optional[str] = Field(None, description="OpenTelemetry span ID")

    model_config = ConfigDict(
        use_enum_values=True
    )

    @field_validator('entity')
    @classmethod
    def validate_entity(cls, v):
        """Validate entity type."""
        valid_entities = ['registration', 'document', 'profile', 'user', 'session']
        if v not in valid_entities:
            raise ValueError(f'Invalid entity type: {v}')
        return v

    @field_validator('action')
    @classmethod
    def validate_action(cls, v):
        """Validate action type."""
        valid_actions = [
            'create', 'update', 'approve', 'reject', 'review',
            'attach_document', 'login', 'logout'
        ]
        if v not in valid_actions:
            raise ValueError(f'Invalid action type: {v}')
        return v


class SessionContext(BaseModel):
    """Authenticated session passed explicitly into every service call."""

    user_id: str = Field(..., description="Authenticated user ID")
    role: AppRole = Field(..., description="Role resolved when the session was loaded")
    session_id: str = Field(..., description="Session identifier (JWT sid claim)")
    email: Optional[str] = Field(None, description="User email")
    token_payload: Optional[Dict[str, Any]] = Field(None, description="Original JWT payload")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")

    model_config = ConfigDict(
        use_enum_values=True
    )

    @property
    def is_admin(self) -> bool:
        return self.role == AppRole.ADMIN


class ChangeEvent(BaseModel):
    """'Something changed' signal for a stored table. Carries no row data."""

    table: str = Field(..., description="Collection name")
    event_type: ChangeEventType = Field(..., description="Change kind")
    record_id: Optional[str] = Field(None, description="Changed row ID")
    occurred_at: datetime = Field(default_factory=utc_now, description="Change timestamp")

    model_config = ConfigDict(
        use_enum_values=True
    )

    @property
    def routing_key(self) -> str:
        return f"{self.table}.{self.event_type}"


class SessionEvent(BaseModel):
    """Session state change emitted by the session service."""

    event_type: SessionEventType = Field(..., description="Session change kind")
    session: Optional[SessionContext] = Field(None, description="Session after the change, if any")
    user_id: Optional[str] = Field(None, description="User the event concerns")
    session_id: Optional[str] = Field(None, description="Session the event concerns")
    occurred_at: datetime = Field(default_factory=utc_now, description="Event timestamp")

    model_config = ConfigDict(
        use_enum_values=True
    )
