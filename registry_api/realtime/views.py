# SPDX-License-Identifier: Apache-2.0

"""
Live registration views.

A view opens with a full read, subscribes to ``registrations`` change
notifications and re-runs the full read (debounced) whenever anything in
the table changes. Failures of operator actions surface as transient
notices instead of escaping the view.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from opentelemetry import trace

from .debounce import Debouncer
from .feed import ChangeFeed, Subscription
from ..domain.authorization import registration_actions
from ..domain.registrations import compute_stats, filter_registrations
from ..domain.status import StatusPresentation, present_status
from ..exceptions import CustomException
from ..models.entities import RegistrationRecord, SessionContext
from ..models.enums import RegistrationStatus
from ..models.responses import RegistrationStats
from ..services.registrations import COLLECTION, RegistrationService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class Notice:
    """Transient message shown after an action."""
    level: str
    message: str
    field: Optional[str] = None


@dataclass
class RegistrationRow:
    """One display row of a live view."""
    record: RegistrationRecord
    status: StatusPresentation
    actions: List[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def rejection_reason(self) -> Optional[str]:
        return self.record.rejection_reason


class LiveRegistrationView:
    """Base class for views kept current by change notifications."""

    def __init__(
        self,
        session: SessionContext,
        registration_service: RegistrationService,
        feed: ChangeFeed,
        debounce_seconds: float = 0.25,
        timer_factory: Optional[Callable] = None
    ):
        self.session = session
        self.registration_service = registration_service
        self.feed = feed
        self.rows: List[RegistrationRow] = []
        self.notices: List[Notice] = []
        self.refresh_count = 0
        self._lock = threading.RLock()
        self._subscription: Optional[Subscription] = None
        self._debouncer = Debouncer(debounce_seconds, self.refresh, timer_factory)

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def _fetch(self) -> Iterable[RegistrationRecord]:
        raise NotImplementedError

    def _build_rows(self, records: List[RegistrationRecord]) -> List[RegistrationRow]:
        return [
            RegistrationRow(
                record=record,
                status=present_status(RegistrationStatus(record.status)),
                actions=self._row_actions(record)
            )
            for record in records
        ]

    def _row_actions(self, record: RegistrationRecord) -> List[str]:
        return registration_actions(self.session, record)

    def _apply(self, records: List[RegistrationRecord]) -> None:
        self.rows = self._build_rows(records)

    def open(self) -> 'LiveRegistrationView':
        """Load the initial rows and start listening for changes."""
        if self._subscription is None:
            self._subscription = self.feed.subscribe(COLLECTION, self._on_change)
        self.refresh()
        return self

    def close(self) -> None:
        """Stop listening and drop any pending refetch."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._debouncer.cancel()

    def __enter__(self) -> 'LiveRegistrationView':
        return self.open()

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def _on_change(self, event) -> None:
        logger.debug(
            "Change notification received",
            extra={"view": type(self).__name__, "event_type": event.event_type}
        )
        self._debouncer.trigger()

    def refresh(self) -> None:
        """Re-run the full read and rebuild the rows."""
        with tracer.start_as_current_span("views.refresh") as span:
            span.set_attribute("view.name", type(self).__name__)
            with self._lock:
                try:
                    records = list(self._fetch())
                except CustomException as e:
                    self._notify_error(e)
                    return
                self._apply(records)
                self.refresh_count += 1
                span.set_attribute("view.rows", len(self.rows))

    def flush(self) -> None:
        """Run a pending debounced refetch now."""
        self._debouncer.flush()

    def set_session(self, session: SessionContext) -> None:
        """Swap in a refreshed session and rebuild the rows."""
        self.session = session
        self.refresh()

    def dismiss_notices(self) -> List[Notice]:
        with self._lock:
            notices, self.notices = self.notices, []
        return notices

    def _notify_error(self, error: CustomException) -> None:
        field_name = getattr(error, "field", None)
        self.notices.append(Notice(level="error", message=error.message, field=field_name))
        logger.info(
            "View action failed",
            extra={"view": type(self).__name__, "error_type": error.error_type, "error": error.message}
        )

    def _notify_info(self, message: str) -> None:
        self.notices.append(Notice(level="info", message=message))


class CitizenTrackingView(LiveRegistrationView):
    """A citizen's own registrations with their current status."""

    def _fetch(self) -> Iterable[RegistrationRecord]:
        return self.registration_service.iter_for_citizen(self.session)

    def _row_actions(self, record: RegistrationRecord) -> List[str]:
        return [
            "download_certificate" if action == "certificate" else action
            for action in registration_actions(self.session, record)
        ]

    def download_certificate(self, record_id: str) -> Optional[dict]:
        """Certificate summary of an approved record, None with a notice otherwise."""
        try:
            return self.registration_service.certificate(self.session, record_id)
        except CustomException as e:
            self._notify_error(e)
            return None


class AdminReviewQueueView(LiveRegistrationView):
    """Every registration, searchable, with review actions and counters."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.search_term = ""
        self.records: List[RegistrationRecord] = []
        self.stats = RegistrationStats(pending_review=0, approved=0, rejected=0, total=0)

    def _fetch(self) -> Iterable[RegistrationRecord]:
        return self.registration_service.iter_all(self.session)

    def _apply(self, records: List[RegistrationRecord]) -> None:
        self.records = records
        self.stats = compute_stats(records)
        self.rows = self._build_rows(filter_registrations(records, self.search_term))

    def search(self, term: Optional[str]) -> List[RegistrationRow]:
        """Narrow the rows by name or place; counters keep covering every record."""
        with self._lock:
            self.search_term = term or ""
            self.rows = self._build_rows(filter_registrations(self.records, self.search_term))
            return self.rows

    def _act(self, action: str, operation: Callable[[], RegistrationRecord], success_message: str) -> bool:
        with tracer.start_as_current_span(f"views.{action}"):
            try:
                operation()
            except CustomException as e:
                self._notify_error(e)
                return False
            self._notify_info(success_message)
            return True

    def approve(self, record_id: str) -> bool:
        return self._act(
            "approve",
            lambda: self.registration_service.approve(self.session, record_id),
            "Registration approved"
        )

    def reject(self, record_id: str, reason: Optional[str]) -> bool:
        return self._act(
            "reject",
            lambda: self.registration_service.reject(self.session, record_id, reason or ""),
            "Registration rejected"
        )

    def start_review(self, record_id: str) -> bool:
        return self._act(
            "review",
            lambda: self.registration_service.start_review(self.session, record_id),
            "Registration moved to review"
        )
