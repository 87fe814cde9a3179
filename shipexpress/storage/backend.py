"""
PERSISTENCE CONTRACT

Purpose:
- The only boundary between the tracking core and whatever stores the data
- Shared retry helper for transient transport failures

Requirements:
• Reads return plain dictionaries (column name → value)
• Writes are fallible with TransportError, distinct from NotFoundError
• Conditional shipment updates reject stale writers
• Repeated idempotency keys are treated as already applied
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from shipexpress import config
from shipexpress.core.errors import TransportError

logger = logging.getLogger(__name__)


class ConflictError(TransportError):
    """Insert collided with an existing primary key."""

    def __init__(self, message: str):
        super().__init__(message, retryable=False, outcome_unknown=False)


def with_retries(
    operation: Callable[[], Any],
    description: str,
    retries: int = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Run operation, retrying retryable TransportErrors with exponential backoff.

    Only call this for idempotent operations. The last error is re-raised
    once retries are exhausted.
    """
    retries = config.MAX_RETRIES if retries is None else retries

    for attempt in range(retries + 1):
        try:
            return operation()
        except TransportError as e:
            if not e.retryable or attempt >= retries:
                raise
            logger.warning(
                f"{description} failed (attempt {attempt + 1}/{retries + 1}): {e}; retrying"
            )
            sleep(2 ** attempt)  # Exponential backoff


class StorageBackend:
    """Persistence interface implemented by every backend."""

    # ── Shipments ──────────────────────────────────────────

    def list_shipments(self) -> List[Dict[str, Any]]:
        """All shipments, newest date first."""
        raise NotImplementedError

    def get_shipment(self, shipment_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def insert_shipment(self, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def update_shipment(
        self,
        shipment_id: str,
        fields: Dict[str, Any],
        expected_status: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply a partial update and return the stored record.

        With expected_status, the write only applies if the stored status
        still equals it; otherwise InvalidTransitionError is raised.
        """
        raise NotImplementedError

    # ── Notifications ──────────────────────────────────────

    def insert_notification(self, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def list_notifications(self, user_id: str) -> List[Dict[str, Any]]:
        """A user's notifications, newest first."""
        raise NotImplementedError

    def update_notification(self, notification_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def delete_notifications(self, user_id: str) -> int:
        raise NotImplementedError

    # ── Messages ───────────────────────────────────────────

    def insert_message(self, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def list_messages(self, shipment_id: str) -> List[Dict[str, Any]]:
        """A shipment's messages, oldest first."""
        raise NotImplementedError

    # ── Issues ─────────────────────────────────────────────

    def insert_issue(self, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def get_issue(self, issue_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def list_issues(self, shipment_id: Optional[str] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def update_issue(
        self,
        issue_id: str,
        fields: Dict[str, Any],
        expected_status: Optional[str] = None,
    ) -> Dict[str, Any]:
        raise NotImplementedError

    # ── Profiles ───────────────────────────────────────────

    def insert_profile(self, record: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def list_profiles(self, role: Optional[str] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    # ── Realtime ───────────────────────────────────────────

    def connect_realtime(self, bus) -> None:
        """Start delivering committed changes to bus."""
        pass

    def disconnect_realtime(self) -> None:
        pass
