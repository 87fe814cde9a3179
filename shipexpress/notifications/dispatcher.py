"""
NOTIFICATION DISPATCHER

Purpose:
- Event-driven notification creation
- Audience resolution (owner, assigned agent, back office, direct)
- Template-based messaging

Requirements:
• Triggered only by committed events (transitions, issues, messages)
• One notification record per recipient user
• A failed notification never undoes the event that caused it
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from shipexpress.core.errors import ShipExpressError
from shipexpress.core.lifecycle import ShipmentStatus
from shipexpress.core.models import Issue, Message, Notification, Shipment
from shipexpress.core.role_guard import BACK_OFFICE_ROLES
from shipexpress.notifications.templates import (
    STATUS_TEMPLATES,
    Audience,
    NotificationTemplate,
    get_template,
)
from shipexpress.storage.backend import StorageBackend

logger = logging.getLogger(__name__)

MESSAGE_PREVIEW_LENGTH = 60


def _shipment_context(shipment: Shipment) -> Dict[str, Any]:
    return {
        "shipment_id": shipment.id,
        "customer_name": shipment.customer_name,
        "from_city": shipment.from_city,
        "to_city": shipment.to_city,
        "agent_name": shipment.agent_name or "Your agent",
        "recipient_name": shipment.recipient_name or "the recipient",
        "reason": "",
    }


class NotificationDispatcher:

    def __init__(self, backend: StorageBackend, clock: Callable[[], datetime] = datetime.now):
        self.backend = backend
        self.clock = clock

    # ──────────────────────────────────────────────────────
    # Core emission
    # ──────────────────────────────────────────────────────

    def notify(
        self,
        user_id: str,
        template: NotificationTemplate,
        context: Dict[str, Any],
        shipment_id: Optional[str] = None,
    ) -> Optional[Notification]:
        """Create one notification for one user; returns None if it could not be stored."""
        record = {
            "user_id": user_id,
            "title": template.title,
            "message": template.format(**context).strip(),
            "type": template.type.value,
            "read": False,
            "created_at": self.clock().isoformat(),
            "shipment_id": shipment_id,
        }

        try:
            stored = self.backend.insert_notification(record)
        except ShipExpressError as e:
            logger.error(f"Failed to notify {user_id} ({template.title}): {e}")
            return None

        return Notification.from_dict(stored)

    def _recipients(self, audience: Audience, shipment: Optional[Shipment], direct: Iterable[str]) -> List[str]:
        if audience == Audience.CUSTOMER:
            return [shipment.customer_id] if shipment and shipment.customer_id else []
        if audience == Audience.AGENT:
            return [shipment.agent_id] if shipment and shipment.agent_id else []
        if audience == Audience.BACK_OFFICE:
            try:
                profiles = [p for role in BACK_OFFICE_ROLES for p in self.backend.list_profiles(role)]
            except ShipExpressError as e:
                logger.error(f"Could not resolve back-office recipients: {e}")
                return []
            return [p["id"] for p in profiles]
        return [user_id for user_id in direct if user_id]

    def dispatch(
        self,
        template_name: str,
        context: Dict[str, Any],
        shipment: Optional[Shipment] = None,
        direct: Iterable[str] = (),
        shipment_id: Optional[str] = None,
    ) -> List[Notification]:
        template = get_template(template_name)
        recipients = self._recipients(template.audience, shipment, direct)

        notifications = []
        for user_id in dict.fromkeys(recipients):  # de-duplicate, keep order
            notification = self.notify(
                user_id,
                template,
                context,
                shipment_id=shipment_id or (shipment.id if shipment else None),
            )
            if notification is not None:
                notifications.append(notification)
        return notifications

    # ──────────────────────────────────────────────────────
    # Event handlers
    # ──────────────────────────────────────────────────────

    def on_status_change(
        self,
        shipment: Shipment,
        template_names: Optional[List[str]] = None,
        reason: str = "",
    ) -> List[Notification]:
        """Notify everyone affected by a shipment entering its current status."""
        names = template_names or STATUS_TEMPLATES.get(ShipmentStatus(shipment.status), [])
        context = _shipment_context(shipment)
        context["reason"] = reason

        notifications = []
        for name in names:
            notifications.extend(self.dispatch(name, context, shipment=shipment))

        logger.info(
            f"Dispatched {len(notifications)} notification(s) for {shipment.id} → {shipment.status}"
        )
        return notifications

    def on_issue_reported(self, issue: Issue, shipment: Shipment) -> List[Notification]:
        context = _shipment_context(shipment)
        context["issue_type"] = issue.issue_type.replace("_", " ")
        return self.dispatch("ISSUE_REPORTED", context, shipment=shipment)

    def on_issue_resolved(self, issue: Issue) -> List[Notification]:
        return self.dispatch(
            "ISSUE_RESOLVED",
            {"shipment_id": issue.shipment_id},
            direct=[issue.user_id],
            shipment_id=issue.shipment_id,
        )

    def on_message(self, message: Message) -> List[Notification]:
        preview = message.content
        if len(preview) > MESSAGE_PREVIEW_LENGTH:
            preview = preview[:MESSAGE_PREVIEW_LENGTH - 1] + "…"
        return self.dispatch(
            "NEW_MESSAGE",
            {"shipment_id": message.shipment_id, "preview": preview},
            direct=[message.receiver_id],
            shipment_id=message.shipment_id,
        )
