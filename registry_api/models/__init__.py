# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the Civil Registry platform.
"""

# Base models
from .base import BaseEntity

# Enumerations
from .enums import (
    RegistrationStatus,
    RegistrationType,
    AppRole,
    Surface,
    ChangeEventType,
    SessionEventType
)

# Core entities
from .entities import (
    RegistrationRecord,
    UserRole,
    Document,
    Profile,
    UserAccount,
    AuditLog,
    SessionContext,
    ChangeEvent,
    SessionEvent
)

# Request models
from .requests import (
    UpdateProfileRequest,
    LoginRequest,
    SignUpRequest,
    RefreshTokenRequest,
    RegistrationPath,
    RegistrationSearchQuery,
    RejectRegistrationRequest
)

# Response models
from .responses import (
    HalLink,
    RegistrationStats
)

__all__ = [
    # Base models
    "BaseEntity",

    # Enumerations
    "RegistrationStatus",
    "RegistrationType",
    "AppRole",
    "Surface",
    "ChangeEventType",
    "SessionEventType",

    # Core entities
    "RegistrationRecord",
    "UserRole",
    "Document",
    "Profile",
    "UserAccount",
    "AuditLog",
    "SessionContext",
    "ChangeEvent",
    "SessionEvent",

    # Request models
    "UpdateProfileRequest",
    "LoginRequest",
    "SignUpRequest",
    "RefreshTokenRequest",
    "RejectRegistrationRequest",
    "RegistrationPath",
    "RegistrationSearchQuery",

    # Response models
    "HalLink",
    "RegistrationStats"
]
