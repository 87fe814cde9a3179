"""
IN-PROCESS AUTHORITATIVE STORE

Purpose:
- Single writer for shipments, notifications, messages, issues, profiles
- Conditional (compare-status) shipment updates for multi-actor races
- Publishes committed changes on the realtime event bus

Design:
- One lock guards every table; events are published after the lock is released
- Records are copied on the way in and on the way out
"""

import copy
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from shipexpress.core.errors import InvalidTransitionError, NotFoundError
from shipexpress.core.id_generator import parse_shipment_number
from shipexpress.realtime.event_bus import (
    DELETE,
    INSERT,
    ISSUES_TOPIC,
    SHIPMENTS_TOPIC,
    UPDATE,
    EventBus,
    RealtimeEvent,
    messages_topic,
    notifications_topic,
)
from shipexpress.storage.backend import ConflictError, StorageBackend

logger = logging.getLogger(__name__)


def _shipment_sort_key(record: Dict[str, Any]):
    return (
        record.get("date") or "",
        record.get("created_at") or "",
        parse_shipment_number(record.get("id", "")),
    )


class MemoryBackend(StorageBackend):

    def __init__(self, bus: Optional[EventBus] = None, clock: Callable[[], datetime] = datetime.now):
        self.bus = bus
        self.clock = clock
        self._lock = threading.RLock()
        self._shipments: Dict[str, Dict[str, Any]] = {}
        self._notifications: Dict[str, Dict[str, Any]] = {}
        self._messages: List[Dict[str, Any]] = []
        self._issues: Dict[str, Dict[str, Any]] = {}
        self._profiles: Dict[str, Dict[str, Any]] = {}
        self._last_keys: Dict[str, str] = {}

    # ──────────────────────────────────────────────────────
    # Hooks
    # ──────────────────────────────────────────────────────

    def _record_mutation(
        self,
        table: str,
        op: str,
        record: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> None:
        """Called under the lock after every committed write."""
        pass

    def _publish(self, topic: str, event_type: str, table: str, record, old_record=None) -> None:
        if self.bus is None:
            return
        self.bus.publish(RealtimeEvent(
            topic=topic,
            event_type=event_type,
            table=table,
            record=copy.deepcopy(record),
            old_record=copy.deepcopy(old_record),
        ))

    def _now(self) -> str:
        return self.clock().isoformat()

    def connect_realtime(self, bus: EventBus) -> None:
        if self.bus is None:
            self.bus = bus
        elif self.bus is not bus:
            raise ValueError("Backend already publishes to a different event bus")

    # ──────────────────────────────────────────────────────
    # Shipments
    # ──────────────────────────────────────────────────────

    def list_shipments(self) -> List[Dict[str, Any]]:
        with self._lock:
            records = [copy.deepcopy(r) for r in self._shipments.values()]
        records.sort(key=_shipment_sort_key, reverse=True)
        return records

    def get_shipment(self, shipment_id: str) -> Dict[str, Any]:
        with self._lock:
            if shipment_id not in self._shipments:
                raise NotFoundError("Shipment", shipment_id)
            return copy.deepcopy(self._shipments[shipment_id])

    def insert_shipment(self, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            shipment_id = record["id"]
            if shipment_id in self._shipments:
                raise ConflictError(f"Shipment '{shipment_id}' already exists")
            stored = copy.deepcopy(record)
            stored.setdefault("created_at", self._now())
            self._shipments[shipment_id] = stored
            self._record_mutation("shipments", INSERT, stored)
            result = copy.deepcopy(stored)

        logger.info(f"Inserted shipment {shipment_id}")
        self._publish(SHIPMENTS_TOPIC, INSERT, "shipments", result)
        return result

    def update_shipment(
        self,
        shipment_id: str,
        fields: Dict[str, Any],
        expected_status: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            if shipment_id not in self._shipments:
                raise NotFoundError("Shipment", shipment_id)

            # Only the newest key per shipment is kept, the same as the hosted column
            if idempotency_key and self._last_keys.get(shipment_id) == idempotency_key:
                logger.info(f"Update {idempotency_key} on {shipment_id} already applied")
                return copy.deepcopy(self._shipments[shipment_id])

            current = self._shipments[shipment_id]
            if expected_status is not None and current["status"] != expected_status:
                raise InvalidTransitionError(
                    f"Shipment {shipment_id} is '{current['status']}', expected '{expected_status}'",
                    current_state=current["status"],
                    target_state=fields.get("status"),
                )

            old_record = copy.deepcopy(current)
            current.update(copy.deepcopy(fields))
            self._record_mutation("shipments", UPDATE, current, idempotency_key)
            result = copy.deepcopy(current)
            if idempotency_key:
                self._last_keys[shipment_id] = idempotency_key

        self._publish(SHIPMENTS_TOPIC, UPDATE, "shipments", result, old_record)
        return result

    # ──────────────────────────────────────────────────────
    # Notifications
    # ──────────────────────────────────────────────────────

    def insert_notification(self, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            stored = copy.deepcopy(record)
            stored["id"] = stored.get("id") or str(uuid.uuid4())
            stored.setdefault("created_at", self._now())
            stored.setdefault("read", False)
            if stored["id"] in self._notifications:
                raise ConflictError(f"Notification '{stored['id']}' already exists")
            self._notifications[stored["id"]] = stored
            self._record_mutation("notifications", INSERT, stored)
            result = copy.deepcopy(stored)

        self._publish(notifications_topic(result["user_id"]), INSERT, "notifications", result)
        return result

    def list_notifications(self, user_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            records = [
                copy.deepcopy(n) for n in self._notifications.values()
                if n["user_id"] == user_id
            ]
        records.sort(key=lambda n: n.get("created_at") or "", reverse=True)
        return records

    def update_notification(self, notification_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if notification_id not in self._notifications:
                raise NotFoundError("Notification", notification_id)
            stored = self._notifications[notification_id]
            stored.update(copy.deepcopy(fields))
            self._record_mutation("notifications", UPDATE, stored)
            result = copy.deepcopy(stored)

        self._publish(notifications_topic(result["user_id"]), UPDATE, "notifications", result)
        return result

    def delete_notifications(self, user_id: str) -> int:
        with self._lock:
            doomed = [nid for nid, n in self._notifications.items() if n["user_id"] == user_id]
            for nid in doomed:
                self._record_mutation("notifications", DELETE, self._notifications.pop(nid))
        return len(doomed)

    # ──────────────────────────────────────────────────────
    # Messages
    # ──────────────────────────────────────────────────────

    def insert_message(self, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            client_ref = record.get("client_ref")
            if client_ref:
                for existing in self._messages:
                    if existing.get("client_ref") == client_ref:
                        return copy.deepcopy(existing)

            stored = copy.deepcopy(record)
            stored["id"] = str(uuid.uuid4())
            stored["created_at"] = self._now()
            self._messages.append(stored)
            self._record_mutation("messages", INSERT, stored)
            result = copy.deepcopy(stored)

        self._publish(messages_topic(result["shipment_id"]), INSERT, "messages", result)
        return result

    def list_messages(self, shipment_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            records = [copy.deepcopy(m) for m in self._messages if m["shipment_id"] == shipment_id]
        # Stable sort keeps insertion order for identical timestamps
        records.sort(key=lambda m: m.get("created_at") or "")
        return records

    # ──────────────────────────────────────────────────────
    # Issues
    # ──────────────────────────────────────────────────────

    def insert_issue(self, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            stored = copy.deepcopy(record)
            stored["id"] = stored.get("id") or str(uuid.uuid4())
            stored.setdefault("created_at", self._now())
            self._issues[stored["id"]] = stored
            self._record_mutation("issues", INSERT, stored)
            result = copy.deepcopy(stored)

        self._publish(ISSUES_TOPIC, INSERT, "issues", result)
        return result

    def get_issue(self, issue_id: str) -> Dict[str, Any]:
        with self._lock:
            if issue_id not in self._issues:
                raise NotFoundError("Issue", issue_id)
            return copy.deepcopy(self._issues[issue_id])

    def list_issues(self, shipment_id: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            records = [
                copy.deepcopy(i) for i in self._issues.values()
                if shipment_id is None or i["shipment_id"] == shipment_id
            ]
        records.sort(key=lambda i: i.get("created_at") or "", reverse=True)
        return records

    def update_issue(
        self,
        issue_id: str,
        fields: Dict[str, Any],
        expected_status: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._lock:
            if issue_id not in self._issues:
                raise NotFoundError("Issue", issue_id)
            stored = self._issues[issue_id]
            if expected_status is not None and stored["status"] != expected_status:
                raise InvalidTransitionError(
                    f"Issue {issue_id} is '{stored['status']}', expected '{expected_status}'",
                    current_state=stored["status"],
                    target_state=fields.get("status"),
                )
            old_record = copy.deepcopy(stored)
            stored.update(copy.deepcopy(fields))
            self._record_mutation("issues", UPDATE, stored)
            result = copy.deepcopy(stored)

        self._publish(ISSUES_TOPIC, UPDATE, "issues", result, old_record)
        return result

    # ──────────────────────────────────────────────────────
    # Profiles
    # ──────────────────────────────────────────────────────

    def insert_profile(self, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if record["id"] in self._profiles:
                raise ConflictError(f"Profile '{record['id']}' already exists")
            stored = copy.deepcopy(record)
            self._profiles[stored["id"]] = stored
            self._record_mutation("profiles", INSERT, stored)
            return copy.deepcopy(stored)

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        with self._lock:
            if user_id not in self._profiles:
                raise NotFoundError("Profile", user_id)
            return copy.deepcopy(self._profiles[user_id])

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            if user_id not in self._profiles:
                raise NotFoundError("Profile", user_id)
            stored = self._profiles[user_id]
            stored.update(copy.deepcopy(fields))
            self._record_mutation("profiles", UPDATE, stored)
            return copy.deepcopy(stored)

    def list_profiles(self, role: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                copy.deepcopy(p) for p in self._profiles.values()
                if role is None or p.get("role") == role
            ]
