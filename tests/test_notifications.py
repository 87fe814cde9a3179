import pytest

from shipexpress.core.errors import NotFoundError, ShipExpressError, TransportError, ValidationError
from shipexpress.core.models import Message
from shipexpress.notifications.dispatcher import NotificationDispatcher
from shipexpress.notifications.inbox import NotificationInbox
from shipexpress.notifications.templates import (
    TEMPLATE_REGISTRY,
    Audience,
    NotificationType,
    get_template,
)
from shipexpress.notifications.toasts import ERROR, SUCCESS, ToastLog, run_action


# ──────────────────────────────────────────────────────
# Templates & dispatcher
# ──────────────────────────────────────────────────────

def test_templates_are_registered():
    template = get_template("PACKAGE_DELIVERED")
    assert template.type == NotificationType.SUCCESS
    assert template.audience == Audience.CUSTOMER
    assert all(t.type.value in ("info", "success", "warning") for t in TEMPLATE_REGISTRY.values())

    with pytest.raises(KeyError):
        get_template("NOPE")


def test_notification_record_shape(created, backend):
    record = backend.list_notifications("CUS001")[0]

    assert record["user_id"] == "CUS001"
    assert record["title"] == "Shipment Created"
    assert record["message"] == "Your shipment SHP001 to Kumasi is awaiting approval."
    assert record["type"] == "success"
    assert record["read"] is False
    assert record["shipment_id"] == "SHP001"


def test_message_preview_is_truncated(backend, dispatcher):
    message = Message(
        id="m1", shipment_id="SHP001", sender_id="CUS001", receiver_id="AGT001", content="x" * 100,
    )
    [notification] = dispatcher.on_message(message)

    assert notification.user_id == "AGT001"
    assert notification.message.endswith("x…")
    assert len(notification.message) == len("New message about shipment SHP001: ") + 60


class BrokenNotifications:
    """Backend whose notification table is unreachable."""

    def __init__(self, backend):
        self.backend = backend

    def __getattr__(self, name):
        return getattr(self.backend, name)

    def insert_notification(self, record):
        raise TransportError("notifications down", retryable=False)


def test_failed_notification_never_undoes_transition(created, store_for, backend, clock):
    dispatcher = NotificationDispatcher(BrokenNotifications(backend), clock=clock)
    staff = store_for("STF001", dispatcher=dispatcher)

    approved = staff.approve_shipment(created.id)

    assert approved.status == "approved"
    assert backend.get_shipment(created.id)["status"] == "approved"


# ──────────────────────────────────────────────────────
# Inbox
# ──────────────────────────────────────────────────────

@pytest.fixture
def inbox(backend):
    return NotificationInbox(backend, "CUS001")


def test_fetch_counts_unread(created, advance, inbox):
    advance(created.id, "assigned")
    notifications = inbox.fetch()

    assert [n.title for n in notifications] == ["Agent Assigned", "Shipment Approved", "Shipment Created"]
    assert inbox.unread_count == 3


def test_mark_as_read_decrements_once(created, inbox, backend):
    inbox.fetch()
    notification_id = inbox.notifications[0].id

    inbox.mark_as_read(notification_id)
    inbox.mark_as_read(notification_id)

    assert inbox.unread_count == 0
    assert backend.list_notifications("CUS001")[0]["read"] is True


def test_mark_unknown_notification(inbox):
    inbox.fetch()
    with pytest.raises(NotFoundError):
        inbox.mark_as_read("missing")
    assert inbox.unread_count == 0


def test_clear_notifications(created, inbox, backend):
    inbox.fetch()
    assert inbox.clear_notifications() == 1
    assert inbox.notifications == []
    assert inbox.unread_count == 0
    assert backend.list_notifications("CUS001") == []
    # Other users keep theirs
    assert len(backend.list_notifications("STF001")) == 1


def test_remote_insert_is_idempotent(created, inbox, backend, staff_store):
    inbox.fetch()
    staff_store.approve_shipment(created.id)
    record = backend.list_notifications("CUS001")[0]

    assert inbox.apply_remote_insert(record) is True
    assert inbox.apply_remote_insert(record) is False
    assert inbox.unread_count == 2
    assert inbox.notifications[0].title == "Shipment Approved"

    # Someone else's notification is not ours to show
    other = backend.list_notifications("STF001")[0]
    assert inbox.apply_remote_insert(other) is False


def test_remote_read_update(created, inbox, backend):
    inbox.fetch()
    record = backend.update_notification(inbox.notifications[0].id, {"read": True})

    assert inbox.apply_remote_update(record) is True
    assert inbox.apply_remote_update(record) is True
    assert inbox.unread_count == 0


def test_unread_counter_matches_list(created, advance, inbox):
    advance(created.id, "in_transit")
    inbox.fetch()
    for notification in inbox.notifications[::2]:
        inbox.mark_as_read(notification.id)
    assert inbox.unread_count == sum(1 for n in inbox.notifications if not n.read)


# ──────────────────────────────────────────────────────
# Toasts
# ──────────────────────────────────────────────────────

def test_toast_log_is_bounded():
    toasts = ToastLog(limit=3)
    for i in range(5):
        toasts.info(f"notice {i}")
    assert [t.text for t in toasts.toasts] == ["notice 2", "notice 3", "notice 4"]
    assert len(toasts.drain()) == 3
    assert toasts.toasts == []


def test_run_action_turns_domain_errors_into_toasts():
    toasts = ToastLog()
    seen = []
    toasts.add_listener(seen.append)

    def failing():
        raise ValidationError("item_name", "Item Name is required")

    assert run_action(toasts, failing) is None
    assert run_action(toasts, lambda x: x * 2, 21, success_message="Done") == 42

    assert [(t.level, t.text) for t in seen] == [(ERROR, "Item Name is required"), (SUCCESS, "Done")]


def test_run_action_propagates_programming_errors():
    def broken():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        run_action(ToastLog(), broken)
    assert issubclass(ValidationError, ShipExpressError)
