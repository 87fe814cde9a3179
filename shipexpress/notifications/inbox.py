"""
NOTIFICATION INBOX

Purpose:
- One user's notification list (newest first) and unread counter
- Mark as read / clear all, persisted before the local copy changes
- Idempotent merge of realtime inserts

Invariant:
    unread_count == number of notifications with read == False
Checked after every fetch and every local mutation.
"""

import logging
from typing import Any, Dict, List, Optional

from shipexpress.core.errors import NotFoundError
from shipexpress.core.models import Notification
from shipexpress.storage.backend import StorageBackend, with_retries

logger = logging.getLogger(__name__)


class NotificationInbox:

    def __init__(self, backend: StorageBackend, user_id: str):
        self.backend = backend
        self.user_id = user_id
        self._notifications: List[Notification] = []
        self._unread_count = 0

    @property
    def notifications(self) -> List[Notification]:
        return list(self._notifications)

    @property
    def unread_count(self) -> int:
        return self._unread_count

    def _find(self, notification_id: str) -> Optional[Notification]:
        for notification in self._notifications:
            if notification.id == notification_id:
                return notification
        return None

    def _verify_unread(self) -> None:
        actual = sum(1 for n in self._notifications if not n.read)
        if actual != self._unread_count:
            logger.warning(
                f"Unread counter drift for {self.user_id}: counter={self._unread_count}, actual={actual}"
            )
            self._unread_count = actual

    # ──────────────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────────────

    def fetch(self) -> List[Notification]:
        records = with_retries(
            lambda: self.backend.list_notifications(self.user_id),
            description=f"fetch notifications for {self.user_id}",
        )
        self._notifications = [Notification.from_dict(r) for r in records]
        self._unread_count = sum(1 for n in self._notifications if not n.read)
        self._verify_unread()
        return self.notifications

    # ──────────────────────────────────────────────────────
    # Mutations
    # ──────────────────────────────────────────────────────

    def mark_as_read(self, notification_id: str) -> Notification:
        notification = self._find(notification_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)

        if notification.read:
            return notification

        stored = Notification.from_dict(
            with_retries(
                lambda: self.backend.update_notification(notification_id, {"read": True}),
                description=f"mark notification {notification_id} read",
            )
        )

        # Re-check after the round trip; a realtime update may have got here first
        if not notification.read:
            notification.read = True
            self._unread_count = max(0, self._unread_count - 1)
        self._verify_unread()
        return stored

    def clear_notifications(self) -> int:
        deleted = self.backend.delete_notifications(self.user_id)
        self._notifications = []
        self._unread_count = 0
        self._verify_unread()
        logger.info(f"Cleared {deleted} notification(s) for {self.user_id}")
        return deleted

    # ──────────────────────────────────────────────────────
    # Realtime merges
    # ──────────────────────────────────────────────────────

    def apply_remote_insert(self, record: Dict[str, Any]) -> bool:
        """Prepend a pushed notification once; replays are ignored."""
        if record.get("user_id") != self.user_id:
            return False
        if self._find(record["id"]) is not None:
            return False

        notification = Notification.from_dict(record)
        self._notifications.insert(0, notification)
        if not notification.read:
            self._unread_count += 1
        self._verify_unread()
        return True

    def apply_remote_update(self, record: Dict[str, Any]) -> bool:
        """Read flag changed elsewhere (another tab or device)."""
        notification = self._find(record.get("id"))
        if notification is None:
            return False

        now_read = bool(record.get("read", notification.read))
        if now_read and not notification.read:
            self._unread_count = max(0, self._unread_count - 1)
        elif notification.read and not now_read:
            self._unread_count += 1
        notification.read = now_read
        self._verify_unread()
        return True
