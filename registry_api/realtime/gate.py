# SPDX-License-Identifier: Apache-2.0

"""
Access control gate that follows session changes.

A gate guards one surface for one client. It re-runs the gate decision on
every session event concerning that client, redirecting and signing out as
the decision requires.
"""

import logging
from typing import Callable, Optional

from .feed import Subscription
from ..exceptions import ServiceUnavailableException
from ..domain.authorization import (
    DEFAULT_ADMIN_ENTRY_POINT,
    DEFAULT_CITIZEN_ENTRY_POINT,
    GateDecision,
    evaluate_gate,
)
from ..models.entities import SessionContext, SessionEvent
from ..models.enums import SessionEventType, Surface

logger = logging.getLogger(__name__)

_ENDING_EVENTS = {SessionEventType.SIGNED_OUT.value, SessionEventType.SESSION_REVOKED.value}


class SessionGate:
    """
    Keeps a surface's access decision current.

    Args:
        session_service: SessionService used to subscribe and sign out
        surface: Surface being guarded
        on_redirect: Called with the entry point when access is denied
        session: Session the client starts with, None when signed out
    """

    def __init__(
        self,
        session_service,
        surface: Surface,
        on_redirect: Callable[[str], None],
        session: Optional[SessionContext] = None,
        citizen_entry_point: str = DEFAULT_CITIZEN_ENTRY_POINT,
        admin_entry_point: str = DEFAULT_ADMIN_ENTRY_POINT
    ):
        self.session_service = session_service
        self.surface = Surface(surface)
        self.on_redirect = on_redirect
        self.session = session
        self.citizen_entry_point = citizen_entry_point
        self.admin_entry_point = admin_entry_point
        self.decision: Optional[GateDecision] = None
        self._subscription: Optional[Subscription] = None

    @property
    def allowed(self) -> bool:
        return bool(self.decision and self.decision.allowed)

    def open(self) -> GateDecision:
        """Subscribe to session events and make the first decision."""
        if self._subscription is None:
            self._subscription = self.session_service.on_session_change(self._on_session_event)
        return self.evaluate()

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def __enter__(self) -> 'SessionGate':
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def evaluate(self) -> GateDecision:
        """Decide on the current session and act on the outcome."""
        decision = evaluate_gate(
            self.surface,
            self.session,
            self.citizen_entry_point,
            self.admin_entry_point
        )
        self.decision = decision

        if decision.sign_out and self.session is not None:
            # Clear first: the sign-out publishes an event back to this gate
            session, self.session = self.session, None
            logger.warning(
                "Session rejected by gate",
                extra={"surface": self.surface.value, "user_id": session.user_id, "reason": decision.reason}
            )
            try:
                self.session_service.sign_out(session, SessionEventType.SESSION_REVOKED)
            except ServiceUnavailableException as e:
                logger.error(f"Session revocation failed: {e.message}", extra={"user_id": session.user_id})

        if not decision.allowed and decision.redirect_to:
            self.on_redirect(decision.redirect_to)
        return decision

    def _concerns(self, event: SessionEvent) -> bool:
        if self.session is None:
            return event.event_type == SessionEventType.SIGNED_IN.value
        if event.session_id is not None:
            return event.session_id == self.session.session_id
        return event.user_id == self.session.user_id

    def _on_session_event(self, event: SessionEvent) -> None:
        if not self._concerns(event):
            return

        if event.event_type in _ENDING_EVENTS:
            self.session = None
        elif event.session is not None:
            self.session = event.session

        logger.debug(
            "Re-evaluating gate",
            extra={"surface": self.surface.value, "event_type": event.event_type}
        )
        self.evaluate()
