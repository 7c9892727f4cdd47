# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models for API endpoints with HAL support.
"""

from typing import Optional
from pydantic import BaseModel, Field


class HalLink(BaseModel):
    """HAL link representation."""

    href: str = Field(..., description="Link URL")
    method: Optional[str] = Field(None, description="HTTP method")
    type: Optional[str] = Field(None, description="Content type")
    title: Optional[str] = Field(None, description="Link title")
    templated: Optional[bool] = Field(None, description="Whether URL is templated")


class RegistrationStats(BaseModel):
    """Counters shown above the admin review queue."""

    pending_review: int = Field(..., description="Pending or under review")
    approved: int = Field(..., description="Approved registrations")
    rejected: int = Field(..., description="Rejected registrations")
    total: int = Field(..., description="All registrations")
