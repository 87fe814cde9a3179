"""
DOMAIN RECORDS

Purpose:
- Plain records for shipments and everything attached to them
- Stable dictionary form used by every storage backend and realtime event

Notes:
- Dictionary keys are the persisted column names (snake_case)
- Shipment.history is a HistoryLedger, serialized as a list of entries
"""

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional

from shipexpress.core.history import HistoryLedger


NOTIFICATION_TYPES = ("info", "success", "warning")

ISSUE_OPEN = "open"
ISSUE_RESOLVED = "resolved"

ISSUE_TYPES = (
    "delayed_delivery",
    "damaged_package",
    "lost_package",
    "wrong_address",
    "agent_conduct",
    "other",
)


@dataclass
class Shipment:
    id: str
    customer_name: str
    from_city: str
    to_city: str
    status: str
    price: str
    date: str
    description: str = ""
    customer_id: Optional[str] = None
    customer_phone: Optional[str] = None
    weight: Optional[str] = None
    dimensions: Optional[str] = None
    item_notes: Optional[str] = None
    pickup_address: Optional[str] = None
    delivery_address: Optional[str] = None
    recipient_name: Optional[str] = None
    recipient_phone: Optional[str] = None
    from_lat: Optional[float] = None
    from_lng: Optional[float] = None
    to_lat: Optional[float] = None
    to_lng: Optional[float] = None
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None
    agent_name: Optional[str] = None
    agent_id: Optional[str] = None
    agent_phone: Optional[str] = None
    delivery_photo_url: Optional[str] = None
    created_at: Optional[str] = None
    history: HistoryLedger = field(default_factory=HistoryLedger)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["history"] = self.history.to_list()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Shipment":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["history"] = HistoryLedger.from_list(data.get("history") or [])
        return cls(**values)

    def copy(self, **changes) -> "Shipment":
        """Independent copy; the history ledger is never shared between copies."""
        changes.setdefault("history", self.history.copy())
        return replace(self, **changes)


@dataclass
class Notification:
    id: str
    user_id: str
    title: str
    message: str
    type: str = "info"
    read: bool = False
    created_at: Optional[str] = None
    shipment_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "read": self.read,
            "created_at": self.created_at,
            "shipment_id": self.shipment_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            title=data["title"],
            message=data["message"],
            type=data.get("type", "info"),
            read=bool(data.get("read", False)),
            created_at=data.get("created_at"),
            shipment_id=data.get("shipment_id"),
        )


@dataclass
class Message:
    id: Optional[str]
    shipment_id: str
    sender_id: str
    receiver_id: str
    content: str
    created_at: Optional[str] = None
    client_ref: Optional[str] = None  # correlation id of the optimistic copy
    pending: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "shipment_id": self.shipment_id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "content": self.content,
            "created_at": self.created_at,
            "client_ref": self.client_ref,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=data.get("id"),
            shipment_id=data["shipment_id"],
            sender_id=data["sender_id"],
            receiver_id=data["receiver_id"],
            content=data["content"],
            created_at=data.get("created_at"),
            client_ref=data.get("client_ref"),
        )


@dataclass
class Issue:
    id: str
    shipment_id: str
    user_id: str
    issue_type: str
    description: str
    status: str = ISSUE_OPEN
    created_at: Optional[str] = None
    resolved_at: Optional[str] = None
    resolved_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Issue":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class UserProfile:
    id: str
    name: str
    role: str
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated identity; role and profile are looked up by id."""
    id: str
    email: Optional[str] = None


@dataclass
class ShipmentDraft:
    """Customer-entered data from the create-shipment form."""
    item_name: str = ""
    weight: str = ""
    destination_city: str = ""
    destination_address: str = ""
    recipient_name: str = ""
    recipient_phone: str = ""
    pickup_type: str = "office"
    pickup_address: str = ""
    description: str = ""
    dimensions: str = ""
    from_lat: Optional[float] = None
    from_lng: Optional[float] = None
    to_lat: Optional[float] = None
    to_lng: Optional[float] = None
