# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the Civil Registry platform.
"""

from enum import Enum


class RegistrationStatus(str, Enum):
    """Registration review lifecycle status."""
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (RegistrationStatus.APPROVED, RegistrationStatus.REJECTED)


# Statuses from which a reviewer may approve or reject.
REVIEWABLE_STATUSES = (RegistrationStatus.PENDING, RegistrationStatus.UNDER_REVIEW)


class RegistrationType(str, Enum):
    """Kind of certificate requested."""
    BIRTH = "birth"
    DEATH = "death"


class AppRole(str, Enum):
    """Role assigned to a user identity."""
    CITIZEN = "citizen"
    ADMIN = "admin"


class Surface(str, Enum):
    """Entry surface guarded by the access control gate."""
    CITIZEN = "citizen"
    ADMIN = "admin"


class ChangeEventType(str, Enum):
    """Row change kinds carried by the change notification channel."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SessionEventType(str, Enum):
    """Session state changes emitted by the auth provider."""
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    SESSION_REVOKED = "SESSION_REVOKED"
