# SPDX-License-Identifier: Apache-2.0

"""
Builds live views and gates wired to the application's services.
"""

import logging
import threading
from typing import Callable, Optional

from .feed import ChangeFeed
from .gate import SessionGate
from .views import AdminReviewQueueView, CitizenTrackingView
from ..models.entities import SessionContext
from ..models.enums import Surface
from ..services.amqp import ChangeConsumer, create_amqp_config
from ..services.registrations import COLLECTION, RegistrationService

logger = logging.getLogger(__name__)


class LiveViewFactory:
    """
    Entry point for live surfaces.

    Args:
        session_service: SessionService backing the gates
        registration_service: Store access for the views
        feed: Change feed shared by every view of the process
        debounce_seconds: Quiet period before a refetch
        citizen_entry_point: Sign-in location for citizens
        admin_entry_point: Sign-in location for administrators
    """

    def __init__(
        self,
        session_service,
        registration_service: RegistrationService,
        feed: ChangeFeed,
        debounce_seconds: float = 0.25,
        citizen_entry_point: str = "/auth",
        admin_entry_point: str = "/admin-auth"
    ):
        self.session_service = session_service
        self.registration_service = registration_service
        self.feed = feed
        self.debounce_seconds = debounce_seconds
        self.citizen_entry_point = citizen_entry_point
        self.admin_entry_point = admin_entry_point
        self._consumer: Optional[ChangeConsumer] = None
        self._consumer_thread: Optional[threading.Thread] = None

    def citizen_tracking(self, session: SessionContext, timer_factory: Optional[Callable] = None) -> CitizenTrackingView:
        return CitizenTrackingView(
            session, self.registration_service, self.feed, self.debounce_seconds, timer_factory
        )

    def review_queue(self, session: SessionContext, timer_factory: Optional[Callable] = None) -> AdminReviewQueueView:
        return AdminReviewQueueView(
            session, self.registration_service, self.feed, self.debounce_seconds, timer_factory
        )

    def gate(
        self,
        surface: Surface,
        on_redirect: Callable[[str], None],
        session: Optional[SessionContext] = None
    ) -> SessionGate:
        return SessionGate(
            self.session_service,
            surface,
            on_redirect,
            session=session,
            citizen_entry_point=self.citizen_entry_point,
            admin_entry_point=self.admin_entry_point
        )

    def start_change_consumer(self, amqp_url: str, exchange: Optional[str] = None) -> threading.Thread:
        """
        Forward registration changes published by other processes into the
        local feed, on a daemon thread.
        """
        if self._consumer_thread is not None and self._consumer_thread.is_alive():
            return self._consumer_thread

        self._consumer = ChangeConsumer(create_amqp_config(amqp_url, exchange), self.feed, tables=[COLLECTION])
        self._consumer_thread = threading.Thread(
            target=self._consume,
            name="registry-change-consumer",
            daemon=True
        )
        self._consumer_thread.start()
        logger.info("Change consumer started", extra={"exchange": self._consumer.config.exchange})
        return self._consumer_thread

    def _consume(self) -> None:
        try:
            self._consumer.consume()
        except Exception as e:
            logger.error(f"Change consumer stopped: {e}", exc_info=True)

    def stop_change_consumer(self) -> None:
        if self._consumer is not None:
            self._consumer.stop()
            self._consumer = None
            self._consumer_thread = None
