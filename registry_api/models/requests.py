# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints.
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator


class UpdateProfileRequest(BaseModel):
    """Request model for updating the caller's profile."""

    full_name: Optional[str] = Field(None, max_length=200, description="Full name")
    national_id: Optional[str] = Field(None, max_length=50, description="National ID")
    phone: Optional[str] = Field(None, max_length=50, description="Phone number")


class LoginRequest(BaseModel):
    """Request model for user login."""

    email: str = Field(..., description="User email address")
    password: str = Field(..., description="User password")

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Normalize email."""
        return v.strip().lower()


class SignUpRequest(LoginRequest):
    """Request model for citizen self-service sign-up."""

    password: str = Field(..., min_length=8, description="User password")
    full_name: Optional[str] = Field(None, max_length=200, description="Full name for the profile")


class RefreshTokenRequest(BaseModel):
    """Request model for token refresh."""

    refresh_token: str = Field(..., description="Refresh token")


class RegistrationPath(BaseModel):
    """Path parameters addressing one registration."""

    registration_id: str = Field(..., description="Registration ID")


class RegistrationSearchQuery(BaseModel):
    """Query parameters for the admin review queue."""

    search: Optional[str] = Field(None, description="Case-insensitive match on name or place")


class RejectRegistrationRequest(BaseModel):
    """Request model for rejecting a registration."""

    reason: str = Field(..., max_length=500, description="Reason shown to the citizen")
