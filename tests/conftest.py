from datetime import datetime, timedelta

import pytest

from shipexpress.core.models import ShipmentDraft, UserProfile
from shipexpress.core.shipment_store import ShipmentStore
from shipexpress.notifications.dispatcher import NotificationDispatcher
from shipexpress.realtime.event_bus import EventBus
from shipexpress.storage.memory_backend import MemoryBackend

PROFILES = [
    {"id": "CUS001", "name": "Kwame Mensah", "role": "customer", "phone": "+233 24 111 0001"},
    {"id": "CUS002", "name": "Abena Osei", "role": "customer", "phone": "+233 24 111 0002"},
    {"id": "STF001", "name": "Efua Mensah", "role": "staff", "phone": "+233 20 555 0100"},
    {"id": "ADM001", "name": "Nana Owusu", "role": "admin", "phone": "+233 20 555 0001"},
    {"id": "AGT001", "name": "Kofi Boateng", "role": "agent", "phone": "+233 20 555 0123"},
    {"id": "AGT002", "name": "Yaw Addo", "role": "agent", "phone": "+233 20 555 0124"},
]


class FakeClock:
    """Deterministic clock; every reading is one minute after the previous one."""

    def __init__(self, start=datetime(2026, 1, 20, 9, 0), step=timedelta(minutes=1)):
        self.now = start
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current


def no_sleep(seconds):
    pass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def backend(bus, clock):
    backend = MemoryBackend(bus=bus, clock=clock)
    for profile in PROFILES:
        backend.insert_profile(profile)
    return backend


@pytest.fixture
def dispatcher(backend, clock):
    return NotificationDispatcher(backend, clock=clock)


@pytest.fixture
def store_for(backend, dispatcher, clock):
    def build(user_id, **kwargs):
        actor = UserProfile.from_dict(backend.get_profile(user_id))
        kwargs.setdefault("dispatcher", dispatcher)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("sleep", no_sleep)
        return ShipmentStore(backend, actor, **kwargs)
    return build


@pytest.fixture
def customer_store(store_for):
    return store_for("CUS001")


@pytest.fixture
def staff_store(store_for):
    return store_for("STF001")


@pytest.fixture
def admin_store(store_for):
    return store_for("ADM001")


@pytest.fixture
def agent_store(store_for):
    return store_for("AGT001")


@pytest.fixture
def draft():
    return ShipmentDraft(
        item_name="Electronics",
        weight="2.5",
        destination_city="Kumasi",
        destination_address="12 Prempeh II St, Adum",
        recipient_name="Akosua Frimpong",
        recipient_phone="+233 24 000 1111",
        from_lat=5.6037,
        from_lng=-0.1870,
        to_lat=6.6885,
        to_lng=-1.6244,
    )


@pytest.fixture
def created(customer_store, draft):
    """A freshly created shipment (SHP001, pending approval)."""
    return customer_store.create_shipment(draft)


@pytest.fixture
def advance(staff_store, agent_store):
    """Drive a shipment forward with AGT001 as the assigned agent."""
    steps = [
        ("approved", lambda sid: staff_store.approve_shipment(sid)),
        ("assigned", lambda sid: staff_store.assign_agent(sid, "Kofi Boateng", "AGT001")),
        ("accepted", lambda sid: agent_store.accept_request(sid)),
        ("picked_up", lambda sid: agent_store.confirm_pickup(sid)),
        ("in_transit", lambda sid: agent_store.mark_in_transit(sid)),
        ("delivered", lambda sid: agent_store.mark_delivered(sid, "https://cdn.example/proof.jpg")),
    ]

    def drive(shipment_id, until):
        shipment = None
        for status, step in steps:
            shipment = step(shipment_id)
            if status == until:
                return shipment
        raise ValueError(f"Unknown target status {until}")

    return drive
