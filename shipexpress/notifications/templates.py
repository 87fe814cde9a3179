"""
NOTIFICATION TEMPLATES

Purpose:
- Centralized message templates
- Consistent notification formatting
- Type classification (info / success / warning)
- Audience routing (customer, assigned agent, back office, explicit user)

Requirements:
• Immutable templates
• Explicit audience per template
• Human-readable messages
"""

from enum import Enum
from typing import Dict, List

from shipexpress.core.lifecycle import ShipmentStatus


class NotificationType(str, Enum):
    """Notification types rendered by the notification center."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"


class Audience(str, Enum):
    CUSTOMER = "customer"          # shipment owner
    AGENT = "agent"                # assigned agent
    BACK_OFFICE = "back_office"    # every staff and admin profile
    DIRECT = "direct"              # user id supplied by the caller


class NotificationTemplate:
    """Base notification template."""

    def __init__(
        self,
        title: str,
        message_template: str,
        type: NotificationType,
        audience: Audience,
    ):
        self.title = title
        self.message_template = message_template
        self.type = type
        self.audience = audience

    def format(self, **kwargs) -> str:
        return self.message_template.format(**kwargs)


# ────────────────────────────────────────────────────────────
# SHIPMENT LIFECYCLE
# ────────────────────────────────────────────────────────────

SHIPMENT_CREATED_TO_CUSTOMER = NotificationTemplate(
    title="Shipment Created",
    message_template="Your shipment {shipment_id} to {to_city} is awaiting approval.",
    type=NotificationType.SUCCESS,
    audience=Audience.CUSTOMER,
)

SHIPMENT_CREATED_TO_STAFF = NotificationTemplate(
    title="New Shipment Request",
    message_template="{customer_name} created shipment {shipment_id} ({from_city} → {to_city}).",
    type=NotificationType.INFO,
    audience=Audience.BACK_OFFICE,
)

SHIPMENT_APPROVED = NotificationTemplate(
    title="Shipment Approved",
    message_template="Your shipment {shipment_id} has been approved.",
    type=NotificationType.SUCCESS,
    audience=Audience.CUSTOMER,
)

SHIPMENT_REJECTED = NotificationTemplate(
    title="Shipment Rejected",
    message_template="Your shipment {shipment_id} was rejected. {reason}",
    type=NotificationType.WARNING,
    audience=Audience.CUSTOMER,
)

AGENT_ASSIGNED_TO_CUSTOMER = NotificationTemplate(
    title="Agent Assigned",
    message_template="{agent_name} will handle your shipment {shipment_id}.",
    type=NotificationType.INFO,
    audience=Audience.CUSTOMER,
)

AGENT_ASSIGNED_TO_AGENT = NotificationTemplate(
    title="New Delivery Request",
    message_template="Shipment {shipment_id} ({from_city} → {to_city}) has been assigned to you.",
    type=NotificationType.INFO,
    audience=Audience.AGENT,
)

REQUEST_ACCEPTED = NotificationTemplate(
    title="Request Accepted",
    message_template="{agent_name} accepted your shipment {shipment_id}.",
    type=NotificationType.INFO,
    audience=Audience.CUSTOMER,
)

PACKAGE_PICKED_UP = NotificationTemplate(
    title="Package Picked Up",
    message_template="Your package {shipment_id} has been picked up.",
    type=NotificationType.INFO,
    audience=Audience.CUSTOMER,
)

PACKAGE_IN_TRANSIT = NotificationTemplate(
    title="In Transit",
    message_template="Your package {shipment_id} is on the way to {to_city}.",
    type=NotificationType.INFO,
    audience=Audience.CUSTOMER,
)

PACKAGE_DELIVERED = NotificationTemplate(
    title="Delivered",
    message_template="Your package {shipment_id} was delivered to {recipient_name}.",
    type=NotificationType.SUCCESS,
    audience=Audience.CUSTOMER,
)

SHIPMENT_CANCELLED_TO_CUSTOMER = NotificationTemplate(
    title="Shipment Cancelled",
    message_template="Your shipment {shipment_id} has been cancelled. {reason}",
    type=NotificationType.WARNING,
    audience=Audience.CUSTOMER,
)

SHIPMENT_CANCELLED_TO_AGENT = NotificationTemplate(
    title="Delivery Cancelled",
    message_template="Shipment {shipment_id} has been cancelled and removed from your tasks.",
    type=NotificationType.WARNING,
    audience=Audience.AGENT,
)


# ────────────────────────────────────────────────────────────
# ISSUES & MESSAGES
# ────────────────────────────────────────────────────────────

ISSUE_REPORTED = NotificationTemplate(
    title="Issue Reported",
    message_template="{customer_name} reported '{issue_type}' on shipment {shipment_id}.",
    type=NotificationType.WARNING,
    audience=Audience.BACK_OFFICE,
)

ISSUE_RESOLVED = NotificationTemplate(
    title="Issue Resolved",
    message_template="Your report on shipment {shipment_id} has been resolved.",
    type=NotificationType.SUCCESS,
    audience=Audience.DIRECT,
)

NEW_MESSAGE = NotificationTemplate(
    title="New Message",
    message_template="New message about shipment {shipment_id}: {preview}",
    type=NotificationType.INFO,
    audience=Audience.DIRECT,
)


# ────────────────────────────────────────────────────────────
# TEMPLATE REGISTRY
# ────────────────────────────────────────────────────────────

TEMPLATE_REGISTRY: Dict[str, NotificationTemplate] = {
    "SHIPMENT_CREATED_TO_CUSTOMER": SHIPMENT_CREATED_TO_CUSTOMER,
    "SHIPMENT_CREATED_TO_STAFF": SHIPMENT_CREATED_TO_STAFF,
    "SHIPMENT_APPROVED": SHIPMENT_APPROVED,
    "SHIPMENT_REJECTED": SHIPMENT_REJECTED,
    "AGENT_ASSIGNED_TO_CUSTOMER": AGENT_ASSIGNED_TO_CUSTOMER,
    "AGENT_ASSIGNED_TO_AGENT": AGENT_ASSIGNED_TO_AGENT,
    "REQUEST_ACCEPTED": REQUEST_ACCEPTED,
    "PACKAGE_PICKED_UP": PACKAGE_PICKED_UP,
    "PACKAGE_IN_TRANSIT": PACKAGE_IN_TRANSIT,
    "PACKAGE_DELIVERED": PACKAGE_DELIVERED,
    "SHIPMENT_CANCELLED_TO_CUSTOMER": SHIPMENT_CANCELLED_TO_CUSTOMER,
    "SHIPMENT_CANCELLED_TO_AGENT": SHIPMENT_CANCELLED_TO_AGENT,
    "ISSUE_REPORTED": ISSUE_REPORTED,
    "ISSUE_RESOLVED": ISSUE_RESOLVED,
    "NEW_MESSAGE": NEW_MESSAGE,
}

# Templates fired when a shipment enters a status
STATUS_TEMPLATES: Dict[ShipmentStatus, List[str]] = {
    ShipmentStatus.PENDING_APPROVAL: ["SHIPMENT_CREATED_TO_CUSTOMER", "SHIPMENT_CREATED_TO_STAFF"],
    ShipmentStatus.APPROVED: ["SHIPMENT_APPROVED"],
    ShipmentStatus.ASSIGNED: ["AGENT_ASSIGNED_TO_CUSTOMER", "AGENT_ASSIGNED_TO_AGENT"],
    ShipmentStatus.ACCEPTED: ["REQUEST_ACCEPTED"],
    ShipmentStatus.PICKED_UP: ["PACKAGE_PICKED_UP"],
    ShipmentStatus.IN_TRANSIT: ["PACKAGE_IN_TRANSIT"],
    ShipmentStatus.DELIVERED: ["PACKAGE_DELIVERED"],
    ShipmentStatus.CANCELLED: ["SHIPMENT_CANCELLED_TO_CUSTOMER", "SHIPMENT_CANCELLED_TO_AGENT"],
}


def get_template(template_name: str) -> NotificationTemplate:
    """
    Get template by name.

    Raises:
        KeyError: If template not found
    """
    if template_name not in TEMPLATE_REGISTRY:
        raise KeyError(f"Template '{template_name}' not found in registry")
    return TEMPLATE_REGISTRY[template_name]
