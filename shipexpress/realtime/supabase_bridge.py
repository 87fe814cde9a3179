"""
HOSTED CHANGE FEED BRIDGE

Purpose:
- Subscribe to the hosted database's postgres_changes feed
- Re-publish every change on the in-process EventBus, on the same topics
  the in-process store publishes to

Requirements:
• Realtime is only offered by the async client, so the bridge runs its own
  event loop on a background thread
• Changes that cannot be routed to a topic are logged and dropped
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Dict, Optional

from supabase import acreate_client

from shipexpress import config
from shipexpress.core.errors import TransportError
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

logger = logging.getLogger(__name__)

CHANNEL_NAME = "shipexpress-changes"
SCHEMA = "public"
WATCHED_TABLES = ("shipments", "notifications", "messages", "issues")


def topic_for(table: str, record: Dict[str, Any]) -> Optional[str]:
    if table == "shipments":
        return SHIPMENTS_TOPIC
    if table == "issues":
        return ISSUES_TOPIC
    if table == "notifications" and record.get("user_id"):
        return notifications_topic(record["user_id"])
    if table == "messages" and record.get("shipment_id"):
        return messages_topic(record["shipment_id"])
    return None


def event_from_payload(payload: Dict[str, Any]) -> Optional[RealtimeEvent]:
    """
    Convert one postgres_changes payload into a RealtimeEvent.

    Accepts both the wrapped shape ({"data": {"type", "table", "record",
    "old_record"}}) and the flat one ({"eventType", "table", "new", "old"}).
    """
    data = payload.get("data", payload)
    event_type = data.get("type") or data.get("eventType")
    if event_type not in (INSERT, UPDATE, DELETE):
        return None

    table = data.get("table")
    record = data.get("record") or data.get("new") or {}
    old_record = data.get("old_record") or data.get("old") or None

    topic = topic_for(table, record or old_record or {})
    if topic is None:
        return None
    return RealtimeEvent(
        topic=topic,
        event_type=event_type,
        table=table,
        record=record,
        old_record=old_record,
    )


class RealtimeBridge:

    def __init__(
        self,
        bus: EventBus,
        url: Optional[str] = None,
        key: Optional[str] = None,
        client_factory=acreate_client,
        timeout: Optional[int] = None,
    ):
        self.bus = bus
        self.url = url or config.SUPABASE_URL
        self.key = key or config.SUPABASE_KEY
        self.client_factory = client_factory
        self.timeout = timeout or config.API_TIMEOUT

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._client = None
        self._channel = None

    @property
    def running(self) -> bool:
        return self._thread is not None

    def start(self) -> None:
        if self.running:
            return
        if not self.url or not self.key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be configured")

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="shipexpress-realtime", daemon=True
        )
        self._thread.start()

        try:
            self._run(self._subscribe())
        except Exception:
            self._shutdown_loop()
            raise
        logger.info(f"Realtime bridge subscribed to {', '.join(WATCHED_TABLES)}")

    def stop(self) -> None:
        if not self.running:
            return
        try:
            if self._channel is not None:
                self._run(self._client.remove_channel(self._channel))
        finally:
            self._shutdown_loop()
        logger.info("Realtime bridge stopped")

    # ──────────────────────────────────────────────────────
    # Event loop plumbing
    # ──────────────────────────────────────────────────────

    def _run(self, coro):
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            raise TransportError(
                "Realtime subscription timed out", retryable=True, outcome_unknown=False
            ) from e

    def _shutdown_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()
        self._loop = None
        self._thread = None
        self._client = None
        self._channel = None

    async def _subscribe(self) -> None:
        self._client = await self.client_factory(self.url, self.key)
        channel = self._client.channel(CHANNEL_NAME)
        for table in WATCHED_TABLES:
            channel.on_postgres_changes("*", callback=self._forward, table=table, schema=SCHEMA)
        await channel.subscribe()
        self._channel = channel

    def _forward(self, payload: Dict[str, Any]) -> None:
        event = event_from_payload(payload)
        if event is None:
            logger.debug(f"Dropping unroutable change: {payload}")
            return
        self.bus.publish(event)
