"""
REALTIME EVENT BUS

Purpose:
- Push-based delivery of committed inserts / updates / deletes
- Topic-scoped subscriptions (shipments, a user's notifications,
  one shipment's messages)
- Explicit unsubscribe when a view goes away

Requirements:
• Events are published only after the authoritative write commits
• A failing subscriber never blocks delivery to the others
• No polling
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

SHIPMENTS_TOPIC = "shipments"
ISSUES_TOPIC = "issues"


def notifications_topic(user_id: str) -> str:
    return f"notifications:{user_id}"


def messages_topic(shipment_id: str) -> str:
    return f"messages:{shipment_id}"


@dataclass(frozen=True)
class RealtimeEvent:
    topic: str
    event_type: str
    table: str
    record: Dict[str, Any] = field(default_factory=dict)
    old_record: Optional[Dict[str, Any]] = None


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop delivery."""

    def __init__(self, bus: "EventBus", topic: str, callback: Callable[[RealtimeEvent], None]):
        self.bus = bus
        self.topic = topic
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.bus._remove(self)
            self.active = False


class EventBus:
    """In-process pub/sub used by the authoritative backend and client views."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Callable[[RealtimeEvent], None]) -> Subscription:
        subscription = Subscription(self, topic, callback)
        with self._lock:
            self._subscribers.setdefault(topic, []).append(subscription)
        logger.debug(f"Subscribed to {topic}")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.topic, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.topic, None)
        logger.debug(f"Unsubscribed from {subscription.topic}")

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    def publish(self, event: RealtimeEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(event.topic, []))

        for subscription in subscribers:
            try:
                subscription.callback(event)
            except Exception:
                logger.exception(
                    f"Realtime subscriber failed on {event.topic} {event.event_type}"
                )
