# shipexpress/messaging/conversation.py

import logging
from typing import Any, Dict, List

from shipexpress.core.errors import ShipExpressError, TransportError
from shipexpress.core.models import Message
from shipexpress.messaging.channel import MessagingChannel, new_client_ref

logger = logging.getLogger(__name__)


class Conversation:
    """
    Client-side view of one shipment's conversation.

    Sends are shown immediately as pending and reconciled with the stored
    copy, whether that arrives as the send result or as a realtime echo.
    Each message appears exactly once.
    """

    def __init__(self, channel: MessagingChannel, shipment_id: str):
        self.channel = channel
        self.shipment_id = shipment_id
        self._messages: List[Message] = []

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    def load(self) -> List[Message]:
        stored = self.channel.fetch_messages(self.shipment_id)
        stored_refs = {m.client_ref for m in stored if m.client_ref}
        pending = [m for m in self._messages if m.pending and m.client_ref not in stored_refs]
        self._messages = stored + pending
        return self.messages

    def _index_of(self, message_id=None, client_ref=None) -> int:
        for index, message in enumerate(self._messages):
            if message_id is not None and message.id == message_id:
                return index
            if client_ref is not None and message.client_ref == client_ref:
                return index
        return -1

    def _reconcile(self, stored: Message) -> Message:
        index = self._index_of(message_id=stored.id)
        if index < 0 and stored.client_ref:
            index = self._index_of(client_ref=stored.client_ref)
        if index < 0:
            self._messages.append(stored)
        else:
            self._messages[index] = stored
        return stored

    def send(self, receiver_id: str, content: str) -> Message:
        client_ref = new_client_ref()
        optimistic = Message(
            id=None,
            shipment_id=self.shipment_id,
            sender_id=self.channel.actor.id,
            receiver_id=receiver_id,
            content=(content or "").strip(),
            client_ref=client_ref,
            pending=True,
        )
        self._messages.append(optimistic)

        try:
            stored = self.channel.send_message(self.shipment_id, receiver_id, content, client_ref=client_ref)
        except TransportError as e:
            if not e.outcome_unknown:
                self._drop_pending(client_ref)
            else:
                logger.warning(f"Send on {self.shipment_id} has unknown outcome; keeping pending copy")
            raise
        except ShipExpressError:
            self._drop_pending(client_ref)
            raise

        return self._reconcile(stored)

    def _drop_pending(self, client_ref: str) -> None:
        self._messages = [
            m for m in self._messages if not (m.pending and m.client_ref == client_ref)
        ]

    def apply_remote_message(self, record: Dict[str, Any]) -> bool:
        """Merge a pushed message; returns False for replays and other shipments."""
        if record.get("shipment_id") != self.shipment_id:
            return False
        if record.get("id") and self._index_of(message_id=record["id"]) >= 0:
            return False
        self._reconcile(Message.from_dict(record))
        return True
