"""
REALTIME SYNC

Purpose:
- Wire a signed-in session's local state to the realtime event bus
- Shipments: merge pushed updates, reload on insert / delete
- Notifications: idempotent merge into the user's inbox
- Messages: only for the conversation currently open

Requirements:
• Subscriptions are released on stop() / close_conversation()
• A handler failure is logged by the bus and never blocks other views
"""

import logging
from typing import Callable, List, Optional

from shipexpress.core.tracking import status_label
from shipexpress.realtime.event_bus import (
    DELETE,
    INSERT,
    SHIPMENTS_TOPIC,
    UPDATE,
    EventBus,
    RealtimeEvent,
    Subscription,
    messages_topic,
    notifications_topic,
)

logger = logging.getLogger(__name__)


class RealtimeSync:

    def __init__(self, bus: EventBus, store=None, inbox=None, toasts=None):
        self.bus = bus
        self.store = store
        self.inbox = inbox
        self.toasts = toasts
        self._subscriptions: List[Subscription] = []
        self._conversation = None
        self._conversation_subscription: Optional[Subscription] = None
        self._status_listeners: List[Callable[[str, str, str], None]] = []

    @property
    def running(self) -> bool:
        return bool(self._subscriptions)

    def on_status_change(self, listener: Callable[[str, str, str], None]) -> None:
        """listener(shipment_id, old_status, new_status) for pushed status changes."""
        self._status_listeners.append(listener)

    def start(self) -> None:
        if self.running:
            return
        if self.store is not None:
            self._subscriptions.append(self.bus.subscribe(SHIPMENTS_TOPIC, self._handle_shipment))
        if self.inbox is not None:
            self._subscriptions.append(
                self.bus.subscribe(notifications_topic(self.inbox.user_id), self._handle_notification)
            )
        logger.info(f"Realtime sync started ({len(self._subscriptions)} subscription(s))")

    def stop(self) -> None:
        self.close_conversation()
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        logger.info("Realtime sync stopped")

    # ──────────────────────────────────────────────────────
    # Conversations
    # ──────────────────────────────────────────────────────

    def open_conversation(self, conversation) -> None:
        self.close_conversation()
        self._conversation = conversation
        self._conversation_subscription = self.bus.subscribe(
            messages_topic(conversation.shipment_id), self._handle_message
        )

    def close_conversation(self) -> None:
        if self._conversation_subscription is not None:
            self._conversation_subscription.unsubscribe()
        self._conversation_subscription = None
        self._conversation = None

    # ──────────────────────────────────────────────────────
    # Handlers
    # ──────────────────────────────────────────────────────

    def _handle_shipment(self, event: RealtimeEvent) -> None:
        if event.event_type == UPDATE:
            previous = self.store.apply_remote_update(event.record)
            if previous is not None:
                self._announce(event.record["id"], previous, event.record.get("status"))
        elif event.event_type in (INSERT, DELETE):
            # Inserts can reorder the list and deletes remove rows; reload everything
            self.store.refresh()

    def _announce(self, shipment_id: str, old_status: str, new_status: str) -> None:
        label = status_label(new_status)
        logger.info(f"Shipment {shipment_id} pushed: {old_status} → {new_status}")
        if self.toasts is not None:
            self.toasts.info(f"Shipment {shipment_id} is now {label}")
        for listener in self._status_listeners:
            listener(shipment_id, old_status, new_status)

    def _handle_notification(self, event: RealtimeEvent) -> None:
        if event.event_type == INSERT:
            if self.inbox.apply_remote_insert(event.record) and self.toasts is not None:
                self.toasts.info(event.record.get("title", "New notification"))
        elif event.event_type == UPDATE:
            self.inbox.apply_remote_update(event.record)
        elif event.event_type == DELETE:
            self.inbox.fetch()

    def _handle_message(self, event: RealtimeEvent) -> None:
        if self._conversation is not None and event.event_type == INSERT:
            self._conversation.apply_remote_message(event.record)
