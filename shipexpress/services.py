"""
SESSION SERVICES

Explicit container for one signed-in user's services, built against a
single storage backend. Replaces ambient singletons: everything a view
needs is reachable from here and torn down by close().
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from shipexpress.core.issues import IssueDesk
from shipexpress.core.models import CurrentUser, UserProfile
from shipexpress.core.profiles import ProfileService
from shipexpress.core.shipment_store import ShipmentStore
from shipexpress.messaging.channel import MessagingChannel
from shipexpress.messaging.conversation import Conversation
from shipexpress.notifications.dispatcher import NotificationDispatcher
from shipexpress.notifications.inbox import NotificationInbox
from shipexpress.notifications.toasts import ToastLog
from shipexpress.realtime.event_bus import EventBus
from shipexpress.realtime.sync import RealtimeSync
from shipexpress.storage.backend import StorageBackend
from shipexpress.storage.blob_storage import SupabaseBlobStorage
from shipexpress.storage.supabase_backend import SupabaseBackend

logger = logging.getLogger(__name__)


@dataclass
class ShipExpressServices:
    backend: StorageBackend
    current_user: CurrentUser
    profile: UserProfile
    profiles: ProfileService
    dispatcher: NotificationDispatcher
    shipments: ShipmentStore
    inbox: NotificationInbox
    messaging: MessagingChannel
    issues: IssueDesk
    toasts: ToastLog
    sync: Optional[RealtimeSync] = None

    def start(self) -> None:
        """Initial load, then realtime subscriptions."""
        self.shipments.refresh()
        self.inbox.fetch()
        if self.sync is not None:
            self.backend.connect_realtime(self.sync.bus)
            self.sync.start()

    def open_conversation(self, shipment_id: str) -> Conversation:
        conversation = Conversation(self.messaging, shipment_id)
        conversation.load()
        if self.sync is not None:
            self.sync.open_conversation(conversation)
        return conversation

    def close(self) -> None:
        if self.sync is not None:
            self.sync.stop()
            self.backend.disconnect_realtime()
        logger.info(f"Session closed for {self.current_user.id}")


def build_services(
    backend: StorageBackend,
    current_user: CurrentUser,
    bus: Optional[EventBus] = None,
    blob_storage=None,
    clock: Callable[[], datetime] = datetime.now,
) -> ShipExpressServices:
    profiles = ProfileService(backend, current_user, blob_storage=blob_storage)
    profile = profiles.get_profile()

    dispatcher = NotificationDispatcher(backend, clock=clock)
    shipments = ShipmentStore(backend, profile, dispatcher=dispatcher, blob_storage=blob_storage, clock=clock)
    inbox = NotificationInbox(backend, current_user.id)
    toasts = ToastLog()

    sync = None
    if bus is not None:
        sync = RealtimeSync(bus, store=shipments, inbox=inbox, toasts=toasts)

    logger.info(f"Services ready for {profile.name} ({profile.role})")
    return ShipExpressServices(
        backend=backend,
        current_user=current_user,
        profile=profile,
        profiles=profiles,
        dispatcher=dispatcher,
        shipments=shipments,
        inbox=inbox,
        messaging=MessagingChannel(backend, profile, dispatcher=dispatcher),
        issues=IssueDesk(backend, profile, dispatcher=dispatcher, clock=clock),
        toasts=toasts,
        sync=sync,
    )


def build_hosted_services(
    current_user: CurrentUser,
    client=None,
    clock: Callable[[], datetime] = datetime.now,
) -> ShipExpressServices:
    """Services against the hosted database, its storage bucket and its change feed."""
    backend = SupabaseBackend(client)
    return build_services(
        backend,
        current_user,
        bus=EventBus(),
        blob_storage=SupabaseBlobStorage(backend.client),
        clock=clock,
    )
