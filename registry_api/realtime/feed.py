# SPDX-License-Identifier: Apache-2.0

"""
In-process change feed and the notifier that fans changes out to it.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from opentelemetry import trace

from ..models.entities import ChangeEvent
from ..models.enums import ChangeEventType

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SESSIONS_TOPIC = "auth.sessions"


class Subscription:
    """
    Cancellable handle returned by ChangeFeed.subscribe.

    Use as a context manager to release the subscription on exit.
    """

    def __init__(
        self,
        feed: 'ChangeFeed',
        topic: str,
        callback: Callable[[Any], None],
        event_filter: Optional[Callable[[Any], bool]] = None
    ):
        self._feed = feed
        self.topic = topic
        self.callback = callback
        self.event_filter = event_filter
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop delivery. Safe to call more than once."""
        if self._active:
            self._active = False
            self._feed._remove(self)

    def deliver(self, event: Any) -> bool:
        if not self._active:
            return False
        if self.event_filter is not None and not self.event_filter(event):
            return False
        self.callback(event)
        return True

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.unsubscribe()


class ChangeFeed:
    """Topic-keyed publish/subscribe bus shared by the live views of a process."""

    def __init__(self):
        self._lock = threading.RLock()
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def subscribe(
        self,
        topic: str,
        callback: Callable[[Any], None],
        event_filter: Optional[Callable[[Any], bool]] = None
    ) -> Subscription:
        """
        Register ``callback`` for events published on ``topic``.

        Args:
            topic: Table name, or ``auth.sessions`` for session events
            callback: Called with each event
            event_filter: Optional predicate; events it rejects are skipped

        Returns:
            Subscription handle
        """
        subscription = Subscription(self, topic, callback, event_filter)
        with self._lock:
            self._subscriptions.setdefault(topic, []).append(subscription)
        logger.debug(f"Subscribed to {topic}")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self._subscriptions.get(subscription.topic, [])
            if subscription in subscriptions:
                subscriptions.remove(subscription)
        logger.debug(f"Unsubscribed from {subscription.topic}")

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(topic, []))

    def publish(self, topic: str, event: Any) -> int:
        """
        Deliver an event to every live subscriber of ``topic``.

        Subscriber errors are logged and do not reach the publisher.

        Returns:
            Number of subscribers the event was delivered to
        """
        with self._lock:
            subscriptions = list(self._subscriptions.get(topic, []))

        delivered = 0
        for subscription in subscriptions:
            try:
                if subscription.deliver(event):
                    delivered += 1
            except Exception as e:
                logger.error(
                    "Change subscriber failed",
                    extra={"topic": topic, "error": str(e)},
                    exc_info=True
                )
        return delivered


class ChangeNotifier:
    """
    Emits 'something changed' events after successful writes.

    Events go to the AMQP exchange when a publisher is configured, so live
    views in other processes refresh too, and to the local feed.
    """

    def __init__(self, feed: ChangeFeed, amqp_service=None):
        self.feed = feed
        self.amqp_service = amqp_service

    def notify(self, table: str, event_type: ChangeEventType, record_id: Optional[str] = None) -> ChangeEvent:
        with tracer.start_as_current_span("changes.notify") as span:
            event = ChangeEvent(table=table, event_type=event_type, record_id=record_id)
            span.set_attributes({
                "change.table": table,
                "change.event_type": event.event_type,
                "change.record_id": record_id or ""
            })

            if self.amqp_service is not None:
                # The write already committed; a lost notification only delays other processes
                result = self.amqp_service.publish_change(event)
                span.set_attribute("change.published", result.success)
                if not result.success:
                    logger.warning(
                        "Change notification not published to broker",
                        extra={"table": table, "event_type": event.event_type, "record_id": record_id}
                    )

            delivered = self.feed.publish(table, event)
            span.set_attribute("change.local_subscribers", delivered)
            return event
