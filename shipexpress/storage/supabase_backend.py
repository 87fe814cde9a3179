"""
HOSTED DATABASE ADAPTER (Supabase)

Purpose:
- Same persistence contract as the in-process store, over the hosted database
- Map client failures to TransportError with an honest outcome flag
- Forward the hosted change feed to the in-process event bus

Requirements:
• Never hardcode API keys (use os.getenv)
• Timeout protection on every call
• Reads retried with backoff; writes left to the caller's retry policy
• Conditional updates filter on the expected status (.eq("status", expected))
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, ClientOptions, create_client

from shipexpress import config
from shipexpress.core.errors import InvalidTransitionError, NotFoundError, TransportError
from shipexpress.realtime.event_bus import EventBus
from shipexpress.realtime.supabase_bridge import RealtimeBridge
from shipexpress.storage.backend import ConflictError, StorageBackend, with_retries

logger = logging.getLogger(__name__)

IDEMPOTENCY_COLUMN = "last_idempotency_key"
UNIQUE_VIOLATION = "23505"

_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Process-wide client built from SUPABASE_URL / SUPABASE_KEY on first use."""
    global _client
    if _client is None:
        if not config.SUPABASE_URL or not config.SUPABASE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be configured")
        _client = create_client(
            config.SUPABASE_URL,
            config.SUPABASE_KEY,
            options=ClientOptions(
                postgrest_client_timeout=config.API_TIMEOUT,
                storage_client_timeout=config.API_TIMEOUT,
            ),
        )
    return _client


class SupabaseBackend(StorageBackend):

    def __init__(self, client: Optional[Client] = None, bridge_factory=RealtimeBridge, sleep=time.sleep):
        self.client = client or get_supabase_client()
        self.sleep = sleep
        self.bridge_factory = bridge_factory
        self._bridge: Optional[RealtimeBridge] = None

    # ──────────────────────────────────────────────────────
    # Query plumbing
    # ──────────────────────────────────────────────────────

    def _execute(self, query, description: str, is_write: bool) -> List[Dict[str, Any]]:
        try:
            return query.execute().data or []
        except APIError as e:
            logger.error(f"{description} rejected: {e.code} - {e.message}")
            if e.code == UNIQUE_VIOLATION:
                raise ConflictError(f"{description} conflicted: {e.message}") from e
            raise TransportError(
                f"{description} rejected: {e.message}", retryable=False, outcome_unknown=False
            ) from e
        except httpx.ConnectError as e:
            logger.error(f"{description} could not connect: {str(e)}")
            raise TransportError(
                f"{description} could not connect: {e}", retryable=True, outcome_unknown=False
            ) from e
        except httpx.TimeoutException as e:
            logger.error(f"{description} timed out")
            raise TransportError(
                f"{description} timed out", retryable=True, outcome_unknown=is_write
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"{description} error: {str(e)}")
            raise TransportError(
                f"{description} failed: {e}", retryable=True, outcome_unknown=is_write
            ) from e

    def _select(self, table: str, filters: Optional[Dict[str, str]] = None, order=()) -> List[Dict[str, Any]]:
        def run():
            query = self.client.table(table).select("*")
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            for column, desc in order:
                query = query.order(column, desc=desc)
            return self._execute(query, f"select {table}", is_write=False)

        return with_retries(run, description=f"select {table}", sleep=self.sleep)

    def _select_one(self, table: str, key: str, kind: str) -> Dict[str, Any]:
        rows = self._select(table, {"id": key})
        if not rows:
            raise NotFoundError(kind, key)
        return rows[0]

    def _insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        rows = self._execute(self.client.table(table).insert(record), f"insert {table}", is_write=True)
        return rows[0] if rows else dict(record)

    def _update(self, table: str, filters: Dict[str, str], fields: Dict[str, Any]) -> List[Dict[str, Any]]:
        query = self.client.table(table).update(fields)
        for column, value in filters.items():
            query = query.eq(column, value)
        return self._execute(query, f"update {table}", is_write=True)

    # ──────────────────────────────────────────────────────
    # Realtime
    # ──────────────────────────────────────────────────────

    def connect_realtime(self, bus: EventBus) -> None:
        if self._bridge is not None:
            return
        bridge = self.bridge_factory(bus)
        bridge.start()
        self._bridge = bridge

    def disconnect_realtime(self) -> None:
        if self._bridge is None:
            return
        bridge, self._bridge = self._bridge, None
        bridge.stop()

    # ──────────────────────────────────────────────────────
    # Shipments
    # ──────────────────────────────────────────────────────

    def list_shipments(self) -> List[Dict[str, Any]]:
        return self._select("shipments", order=(("date", True), ("created_at", True)))

    def get_shipment(self, shipment_id: str) -> Dict[str, Any]:
        return self._select_one("shipments", shipment_id, "Shipment")

    def insert_shipment(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return self._insert("shipments", record)

    def update_shipment(
        self,
        shipment_id: str,
        fields: Dict[str, Any],
        expected_status: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        filters = {"id": shipment_id}
        if expected_status is not None:
            filters["status"] = expected_status

        payload = dict(fields)
        if idempotency_key:
            payload[IDEMPOTENCY_COLUMN] = idempotency_key

        rows = self._update("shipments", filters, payload)
        if rows:
            return rows[0]

        # Nothing matched: missing row, a replay of our own write, or a lost race
        current = self.get_shipment(shipment_id)
        if idempotency_key and current.get(IDEMPOTENCY_COLUMN) == idempotency_key:
            logger.info(f"Update {idempotency_key} on {shipment_id} already applied")
            return current
        raise InvalidTransitionError(
            f"Shipment {shipment_id} is '{current.get('status')}', expected '{expected_status}'",
            current_state=current.get("status"),
            target_state=fields.get("status"),
        )

    # ──────────────────────────────────────────────────────
    # Notifications
    # ──────────────────────────────────────────────────────

    def insert_notification(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return self._insert("notifications", record)

    def list_notifications(self, user_id: str) -> List[Dict[str, Any]]:
        return self._select("notifications", {"user_id": user_id}, order=(("created_at", True),))

    def update_notification(self, notification_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        rows = self._update("notifications", {"id": notification_id}, fields)
        if not rows:
            raise NotFoundError("Notification", notification_id)
        return rows[0]

    def delete_notifications(self, user_id: str) -> int:
        query = self.client.table("notifications").delete().eq("user_id", user_id)
        return len(self._execute(query, "delete notifications", is_write=True))

    # ──────────────────────────────────────────────────────
    # Messages
    # ──────────────────────────────────────────────────────

    def insert_message(self, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self._insert("messages", record)
        except ConflictError:
            # client_ref is unique: a retried send returns the first copy
            rows = self._select("messages", {"client_ref": record.get("client_ref")})
            if not rows:
                raise
            return rows[0]

    def list_messages(self, shipment_id: str) -> List[Dict[str, Any]]:
        return self._select("messages", {"shipment_id": shipment_id}, order=(("created_at", False),))

    # ──────────────────────────────────────────────────────
    # Issues
    # ──────────────────────────────────────────────────────

    def insert_issue(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return self._insert("issues", record)

    def get_issue(self, issue_id: str) -> Dict[str, Any]:
        return self._select_one("issues", issue_id, "Issue")

    def list_issues(self, shipment_id: Optional[str] = None) -> List[Dict[str, Any]]:
        filters = {"shipment_id": shipment_id} if shipment_id is not None else None
        return self._select("issues", filters, order=(("created_at", True),))

    def update_issue(
        self,
        issue_id: str,
        fields: Dict[str, Any],
        expected_status: Optional[str] = None,
    ) -> Dict[str, Any]:
        filters = {"id": issue_id}
        if expected_status is not None:
            filters["status"] = expected_status
        rows = self._update("issues", filters, fields)
        if rows:
            return rows[0]

        current = self.get_issue(issue_id)
        raise InvalidTransitionError(
            f"Issue {issue_id} is '{current.get('status')}', expected '{expected_status}'",
            current_state=current.get("status"),
            target_state=fields.get("status"),
        )

    # ──────────────────────────────────────────────────────
    # Profiles
    # ──────────────────────────────────────────────────────

    def insert_profile(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return self._insert("profiles", record)

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        return self._select_one("profiles", user_id, "Profile")

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        rows = self._update("profiles", {"id": user_id}, fields)
        if not rows:
            raise NotFoundError("Profile", user_id)
        return rows[0]

    def list_profiles(self, role: Optional[str] = None) -> List[Dict[str, Any]]:
        filters = {"role": role} if role is not None else None
        return self._select("profiles", filters)
