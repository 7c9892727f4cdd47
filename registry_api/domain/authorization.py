# SPDX-License-Identifier: Apache-2.0

"""
Authorization domain logic for the citizen and admin surfaces.

This module contains pure functions for the access control gate, record
visibility and role-dependent HAL affordances.
"""

from typing import List, Optional
from dataclasses import dataclass
from ..models.entities import RegistrationRecord, SessionContext
from ..models.enums import AppRole, RegistrationStatus, Surface


DEFAULT_CITIZEN_ENTRY_POINT = "/auth"
DEFAULT_ADMIN_ENTRY_POINT = "/admin-auth"


@dataclass
class GateDecision:
    """Result of an access control gate evaluation."""
    allowed: bool
    sign_out: bool = False
    redirect_to: Optional[str] = None
    reason: Optional[str] = None


def evaluate_gate(
    surface: Surface,
    session: Optional[SessionContext],
    citizen_entry_point: str = DEFAULT_CITIZEN_ENTRY_POINT,
    admin_entry_point: str = DEFAULT_ADMIN_ENTRY_POINT
) -> GateDecision:
    """
    Decide whether a session may enter a surface.

    Args:
        surface: Citizen dashboard or admin console
        session: Current session, None when signed out
        citizen_entry_point: Redirect target for the citizen surface
        admin_entry_point: Redirect target for the admin surface

    Returns:
        GateDecision; a wrong-role session on the admin surface is also
        marked for sign-out
    """
    surface = Surface(surface)

    if surface == Surface.CITIZEN:
        if session is None:
            return GateDecision(
                allowed=False,
                redirect_to=citizen_entry_point,
                reason="Authentication required"
            )
        return GateDecision(allowed=True)

    if session is None:
        return GateDecision(
            allowed=False,
            redirect_to=admin_entry_point,
            reason="Authentication required"
        )

    if session.role != AppRole.ADMIN:
        return GateDecision(
            allowed=False,
            sign_out=True,
            redirect_to=admin_entry_point,
            reason="Unauthorized: Admin access only"
        )

    return GateDecision(allowed=True)


def can_read_registration(session: SessionContext, record: RegistrationRecord) -> bool:
    """Owners read their own records; admins read everything."""
    return session.is_admin or record.user_id == session.user_id


def registration_actions(session: SessionContext, record: RegistrationRecord) -> List[str]:
    """
    Actions available on a record for the given session.

    Args:
        session: Caller's session
        record: Registration being rendered

    Returns:
        Action names in display order
    """
    actions = []
    if not can_read_registration(session, record):
        return actions

    actions.append("documents")

    if session.is_admin and record.can_review():
        if record.status == RegistrationStatus.PENDING:
            actions.append("review")
        actions.extend(["approve", "reject"])

    if record.status == RegistrationStatus.APPROVED:
        actions.append("certificate")

    return actions
