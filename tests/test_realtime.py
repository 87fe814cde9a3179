import pytest

from shipexpress import config
from shipexpress.core.models import CurrentUser
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
from shipexpress.realtime.supabase_bridge import WATCHED_TABLES, RealtimeBridge, event_from_payload
from shipexpress.services import build_services
from shipexpress.storage.memory_backend import MemoryBackend

from conftest import PROFILES


# ──────────────────────────────────────────────────────
# Event bus
# ──────────────────────────────────────────────────────

def test_failing_subscriber_does_not_block_others():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("render failed")

    bus.subscribe("shipments", broken)
    bus.subscribe("shipments", received.append)
    bus.publish(RealtimeEvent("shipments", INSERT, "shipments", {"id": "SHP001"}))

    assert [e.record["id"] for e in received] == ["SHP001"]


def test_unsubscribe_stops_delivery():
    bus = EventBus()
    received = []
    subscription = bus.subscribe("messages:SHP001", received.append)

    subscription.unsubscribe()
    subscription.unsubscribe()
    bus.publish(RealtimeEvent("messages:SHP001", INSERT, "messages", {"id": "m1"}))

    assert received == []
    assert bus.subscriber_count("messages:SHP001") == 0


def test_topics_are_scoped():
    bus = EventBus()
    received = []
    bus.subscribe(notifications_topic("CUS001"), received.append)
    bus.publish(RealtimeEvent(notifications_topic("CUS002"), INSERT, "notifications", {"id": "n1"}))
    assert received == []


def test_backend_publishes_committed_writes(created, staff_store, bus, backend):
    events = []
    bus.subscribe(SHIPMENTS_TOPIC, events.append)

    staff_store.approve_shipment(created.id)

    [event] = events
    assert event.record["status"] == "approved"
    assert event.old_record["status"] == "pending_approval"


# ──────────────────────────────────────────────────────
# Session sync
# ──────────────────────────────────────────────────────

@pytest.fixture
def customer_session(backend, bus, clock):
    services = build_services(backend, CurrentUser("CUS001", "kwame@example.com"), bus=bus, clock=clock)
    services.start()
    yield services
    services.close()


def test_pushed_status_change_reaches_customer(customer_session, staff_store, draft):
    shipment = customer_session.shipments.create_shipment(draft)
    changes = []
    customer_session.sync.on_status_change(lambda *change: changes.append(change))

    staff_store.approve_shipment(shipment.id)

    assert customer_session.shipments.get_shipment(shipment.id).status == "approved"
    assert changes == [(shipment.id, "pending_approval", "approved")]
    texts = [t.text for t in customer_session.toasts.toasts]
    assert f"Shipment {shipment.id} is now Approved" in texts
    # The inbox was updated by push, without a fetch
    assert [n.title for n in customer_session.inbox.notifications] == ["Shipment Approved", "Shipment Created"]
    assert customer_session.inbox.unread_count == 2


def test_inserts_from_other_sessions_reload_list(customer_session, store_for, draft):
    store_for("CUS002").create_shipment(draft)
    assert [s.customer_id for s in customer_session.shipments.list_shipments()] == ["CUS002"]


def test_notification_delete_event_refetches(customer_session, draft, backend, bus):
    customer_session.shipments.create_shipment(draft)
    assert customer_session.inbox.unread_count == 1

    backend.delete_notifications("CUS001")
    bus.publish(RealtimeEvent(notifications_topic("CUS001"), DELETE, "notifications", {}))

    assert customer_session.inbox.notifications == []
    assert customer_session.inbox.unread_count == 0


def test_open_conversation_receives_messages(customer_session, draft, advance, backend, bus, clock):
    shipment = customer_session.shipments.create_shipment(draft)
    advance(shipment.id, "assigned")
    conversation = customer_session.open_conversation(shipment.id)

    agent_session = build_services(backend, CurrentUser("AGT001"), bus=bus, clock=clock)
    agent_session.messaging.send_message(shipment.id, "CUS001", "Picking up at 3pm")

    assert [m.content for m in conversation.messages] == ["Picking up at 3pm"]

    customer_session.sync.close_conversation()
    assert bus.subscriber_count(messages_topic(shipment.id)) == 0


def test_stop_releases_subscriptions(backend, bus, clock):
    services = build_services(backend, CurrentUser("STF001"), bus=bus, clock=clock)
    services.start()
    assert bus.subscriber_count(SHIPMENTS_TOPIC) == 1
    assert bus.subscriber_count(notifications_topic("STF001")) == 1

    services.close()
    assert bus.subscriber_count(SHIPMENTS_TOPIC) == 0
    assert bus.subscriber_count(notifications_topic("STF001")) == 0
    assert not services.sync.running


def test_pushed_location_only_update(customer_session, advance, agent_store, draft):
    shipment = customer_session.shipments.create_shipment(draft)
    advance(shipment.id, "in_transit")
    held = customer_session.shipments.get_shipment(shipment.id)
    toasts_before = len(customer_session.toasts.toasts)
    changes = []
    customer_session.sync.on_status_change(lambda *change: changes.append(change))

    agent_store.update_current_location(shipment.id, 6.2, -1.3)

    moved = customer_session.shipments.get_shipment(shipment.id)
    assert (moved.current_lat, moved.current_lng) == (6.2, -1.3)
    assert moved.status == "in_transit"
    assert len(moved.history) == len(held.history)
    assert changes == []
    assert len(customer_session.toasts.toasts) == toasts_before


# ──────────────────────────────────────────────────────
# Hosted change feed bridge
# ──────────────────────────────────────────────────────

def hosted_change(event_type, table, record, old_record=None):
    return {
        "data": {
            "type": event_type,
            "schema": "public",
            "table": table,
            "record": record,
            "old_record": old_record,
            "commit_timestamp": "2026-10-18T09:00:00Z",
        },
        "ids": [1],
    }


@pytest.mark.parametrize("table, record, topic", [
    ("shipments", {"id": "SHP001"}, SHIPMENTS_TOPIC),
    ("issues", {"id": "ISS1"}, ISSUES_TOPIC),
    ("notifications", {"id": "n1", "user_id": "CUS001"}, notifications_topic("CUS001")),
    ("messages", {"id": "m1", "shipment_id": "SHP001"}, messages_topic("SHP001")),
])
def test_hosted_changes_map_to_local_topics(table, record, topic):
    event = event_from_payload(hosted_change(INSERT, table, record))
    assert (event.topic, event.event_type, event.table, event.record) == (topic, INSERT, table, record)


def test_hosted_change_flat_payload_and_delete():
    event = event_from_payload({
        "eventType": DELETE, "table": "notifications", "new": {}, "old": {"id": "n1", "user_id": "CUS002"},
    })
    assert event.topic == notifications_topic("CUS002")
    assert event.old_record == {"id": "n1", "user_id": "CUS002"}


def test_unroutable_hosted_changes_are_dropped():
    assert event_from_payload(hosted_change("TRUNCATE", "shipments", {})) is None
    assert event_from_payload(hosted_change(DELETE, "notifications", {}, {"id": "n1"})) is None
    assert event_from_payload(hosted_change(INSERT, "audit_log", {"id": 1})) is None


class FakeChannel:

    def __init__(self, name):
        self.name = name
        self.handlers = {}
        self.subscribed = False

    def on_postgres_changes(self, event, callback, table="*", schema="public", filter=None):
        self.handlers[table] = (event, schema, callback)
        return self

    async def subscribe(self, callback=None):
        self.subscribed = True
        return self


class FakeAsyncClient:

    def __init__(self):
        self.channels = []
        self.removed = []

    def channel(self, name):
        self.channels.append(FakeChannel(name))
        return self.channels[-1]

    async def remove_channel(self, channel):
        self.removed.append(channel)


@pytest.fixture
def bridged():
    client = FakeAsyncClient()
    seen = []

    async def connect(url, key):
        seen.append((url, key))
        return client

    bus = EventBus()
    bridge = RealtimeBridge(bus, url="https://project.supabase.co", key="anon-key", client_factory=connect)
    bridge.start()
    yield bridge, client, bus, seen
    bridge.stop()


def test_bridge_subscribes_to_watched_tables(bridged):
    bridge, client, _, seen = bridged

    assert bridge.running
    assert seen == [("https://project.supabase.co", "anon-key")]
    [channel] = client.channels
    assert channel.subscribed
    assert sorted(channel.handlers) == sorted(WATCHED_TABLES)
    assert all(event == "*" and schema == "public" for event, schema, _ in channel.handlers.values())


def test_bridge_publishes_hosted_changes(bridged):
    bridge, client, bus, _ = bridged
    received = []
    bus.subscribe(SHIPMENTS_TOPIC, received.append)

    _, _, callback = client.channels[0].handlers["shipments"]
    callback(hosted_change(UPDATE, "shipments", {"id": "SHP001", "status": "approved"}, {"id": "SHP001"}))

    [event] = received
    assert event.event_type == UPDATE
    assert event.record["status"] == "approved"


def test_bridge_stop_removes_channel():
    client = FakeAsyncClient()

    async def connect(url, key):
        return client

    bridge = RealtimeBridge(EventBus(), url="https://project.supabase.co", key="anon-key", client_factory=connect)
    bridge.start()
    bridge.start()
    bridge.stop()

    assert client.removed == client.channels
    assert len(client.channels) == 1
    assert not bridge.running


def test_bridge_requires_configuration(monkeypatch):
    monkeypatch.setattr(config, "SUPABASE_URL", None)
    monkeypatch.setattr(config, "SUPABASE_KEY", None)
    bridge = RealtimeBridge(EventBus(), client_factory=None)
    with pytest.raises(ValueError):
        bridge.start()
    assert not bridge.running


class FeedRecordingBackend(MemoryBackend):

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.feed = []

    def connect_realtime(self, bus):
        super().connect_realtime(bus)
        self.feed.append("connect")

    def disconnect_realtime(self):
        self.feed.append("disconnect")


def test_session_connects_backend_feed(bus, clock):
    backend = FeedRecordingBackend(clock=clock)
    for profile in PROFILES:
        backend.insert_profile(profile)

    services = build_services(backend, CurrentUser("STF001"), bus=bus, clock=clock)
    services.start()
    assert backend.feed == ["connect"]
    assert backend.bus is bus

    services.close()
    assert backend.feed == ["connect", "disconnect"]


def test_in_process_backend_refuses_second_bus(backend):
    with pytest.raises(ValueError):
        backend.connect_realtime(EventBus())
