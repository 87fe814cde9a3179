"""
SHIPMENT MESSAGING CHANNEL

Purpose:
- Per-shipment chat between the customer and the assigned agent
- Append-only; ordered by creation time
- Each sent message notifies the receiver

Requirements:
• Every send carries a client reference so a retried send is stored once
• Only the shipment's customer or assigned agent may post
"""

import logging
import uuid
from typing import List, Optional

from shipexpress.core.errors import AuthorizationError, ValidationError
from shipexpress.core.models import Message, Shipment, UserProfile
from shipexpress.core.role_guard import AGENT, CUSTOMER
from shipexpress.storage.backend import StorageBackend, with_retries

logger = logging.getLogger(__name__)


def new_client_ref() -> str:
    return str(uuid.uuid4())


class MessagingChannel:

    def __init__(self, backend: StorageBackend, actor: UserProfile, dispatcher=None):
        self.backend = backend
        self.actor = actor
        self.dispatcher = dispatcher

    def counterpart_for(self, shipment: Shipment) -> Optional[str]:
        """The other party of a shipment's conversation, from the actor's side."""
        if self.actor.role == CUSTOMER:
            return shipment.agent_id
        if self.actor.role == AGENT:
            return shipment.customer_id
        return None

    def _check_participant(self, shipment: Shipment) -> None:
        participants = {shipment.customer_id, shipment.agent_id} - {None}
        if self.actor.id not in participants:
            raise AuthorizationError(
                f"User '{self.actor.id}' is not part of the conversation on {shipment.id}"
            )

    def send_message(
        self,
        shipment_id: str,
        receiver_id: str,
        content: str,
        client_ref: Optional[str] = None,
    ) -> Message:
        if not content or not content.strip():
            raise ValidationError("content", "Message cannot be empty")
        if not receiver_id:
            raise ValidationError("receiver_id", "Message needs a receiver")

        shipment = Shipment.from_dict(self.backend.get_shipment(shipment_id))
        self._check_participant(shipment)

        record = {
            "shipment_id": shipment_id,
            "sender_id": self.actor.id,
            "receiver_id": receiver_id,
            "content": content.strip(),
            "client_ref": client_ref or new_client_ref(),
        }

        # Inserts are de-duplicated on client_ref, so retrying is safe
        stored = with_retries(
            lambda: self.backend.insert_message(record),
            description=f"send message on {shipment_id}",
        )
        message = Message.from_dict(stored)
        logger.info(f"Message {message.id} on {shipment_id}: {self.actor.id} → {receiver_id}")

        if self.dispatcher is not None:
            self.dispatcher.on_message(message)
        return message

    def fetch_messages(self, shipment_id: str) -> List[Message]:
        records = with_retries(
            lambda: self.backend.list_messages(shipment_id),
            description=f"fetch messages for {shipment_id}",
        )
        return [Message.from_dict(r) for r in records]
