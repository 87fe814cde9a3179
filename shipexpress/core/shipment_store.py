"""
SHIPMENT STORE

Purpose:
- Local replica of the shipment collection for one signed-in user
- The only way to change a shipment's status
- Every status change appends exactly one history entry

Flow for a transition:
    role check → precondition check → build next record (+ history entry)
    → conditional write to the authoritative backend (expected_status)
    → commit to the local replica → notify affected users

Requirements:
• Nothing is committed locally before the authoritative write succeeds
• Stale writers are rejected by the backend and the local copy is refetched
• Retries only for idempotent writes (automatic key or caller-supplied key)
• A write with unknown outcome marks the shipment stale instead of guessing
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from shipexpress import config
from shipexpress.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    ShipExpressError,
    TransportError,
    ValidationError,
)
from shipexpress.core.fare import PICKUP_TYPE_OFFICE, quote_price
from shipexpress.core.history import HistoryLedger, ShipmentHistory, format_history_date
from shipexpress.core.id_generator import next_shipment_id, parse_shipment_number
from shipexpress.core.lifecycle import (
    LIFECYCLE_TRANSITIONS,
    TERMINAL_STATES,
    ShipmentStatus,
    validate_transition,
)
from shipexpress.core.models import Shipment, ShipmentDraft, UserProfile
from shipexpress.core.role_guard import (
    AGENT,
    validate_agent_ownership,
    validate_role_authority,
)
from shipexpress.core.validation import validate_coordinates, validate_shipment_draft
from shipexpress.storage.backend import ConflictError, StorageBackend, with_retries

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 5

IN_TRANSIT_LOCATION = "In Transit"


@dataclass(frozen=True)
class TransitionRule:
    sources: FrozenSet[ShipmentStatus]
    target: ShipmentStatus
    description: str
    # Safe to retry under an automatic key derived from the history position
    auto_idempotent: bool = True


NON_TERMINAL = frozenset(s for s in LIFECYCLE_TRANSITIONS if s is not None and s not in TERMINAL_STATES)

TRANSITION_RULES: Dict[str, TransitionRule] = {
    "approve_shipment": TransitionRule(
        frozenset({ShipmentStatus.PENDING_APPROVAL}), ShipmentStatus.APPROVED, "Approved by staff"
    ),
    "reject_shipment": TransitionRule(
        frozenset({ShipmentStatus.PENDING_APPROVAL}), ShipmentStatus.CANCELLED, "Shipment rejected by staff"
    ),
    "cancel_shipment": TransitionRule(
        NON_TERMINAL, ShipmentStatus.CANCELLED, "Shipment cancelled"
    ),
    "assign_agent": TransitionRule(
        frozenset({ShipmentStatus.APPROVED}), ShipmentStatus.ASSIGNED, "Agent {agent_name} assigned",
        auto_idempotent=False,
    ),
    "accept_request": TransitionRule(
        frozenset({ShipmentStatus.ASSIGNED}), ShipmentStatus.ACCEPTED, "Request accepted by agent"
    ),
    "confirm_pickup": TransitionRule(
        frozenset({ShipmentStatus.ACCEPTED}), ShipmentStatus.PICKED_UP, "Package picked up by agent"
    ),
    "mark_in_transit": TransitionRule(
        frozenset({ShipmentStatus.PICKED_UP}), ShipmentStatus.IN_TRANSIT, "Package is on the way"
    ),
    "mark_delivered": TransitionRule(
        frozenset({ShipmentStatus.IN_TRANSIT}), ShipmentStatus.DELIVERED, "Package delivered to recipient",
        auto_idempotent=False,
    ),
}

ACTIVE_AGENT_STATES = frozenset({
    ShipmentStatus.ASSIGNED,
    ShipmentStatus.ACCEPTED,
    ShipmentStatus.PICKED_UP,
    ShipmentStatus.IN_TRANSIT,
})


class ShipmentStore:

    def __init__(
        self,
        backend: StorageBackend,
        actor: UserProfile,
        dispatcher=None,
        blob_storage=None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
        origin_city: Optional[str] = None,
    ):
        self.backend = backend
        self.actor = actor
        self.dispatcher = dispatcher
        self.blob_storage = blob_storage
        self.clock = clock
        self.sleep = sleep
        self.origin_city = origin_city or config.ORIGIN_CITY
        self._shipments: Dict[str, Shipment] = {}
        self._stale: Set[str] = set()

    # ──────────────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────────────

    def refresh(self) -> List[Shipment]:
        """Replace the local replica with the authoritative collection."""
        records = with_retries(
            self.backend.list_shipments, description="list shipments", sleep=self.sleep
        )
        self._shipments = {r["id"]: Shipment.from_dict(r) for r in records}
        self._stale.clear()
        logger.info(f"Loaded {len(self._shipments)} shipments")
        return self.list_shipments()

    def refresh_shipment(self, shipment_id: str) -> Shipment:
        record = with_retries(
            lambda: self.backend.get_shipment(shipment_id),
            description=f"get shipment {shipment_id}",
            sleep=self.sleep,
        )
        shipment = Shipment.from_dict(record)
        self._shipments[shipment_id] = shipment
        self._stale.discard(shipment_id)
        return shipment

    def get_shipment(self, shipment_id: str) -> Shipment:
        if shipment_id in self._stale or shipment_id not in self._shipments:
            return self.refresh_shipment(shipment_id)
        return self._shipments[shipment_id]

    def is_stale(self, shipment_id: str) -> bool:
        return shipment_id in self._stale

    def list_shipments(
        self,
        status: Optional[str] = None,
        city: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[Shipment]:
        """Local shipments, newest date first, optionally filtered."""
        shipments = list(self._shipments.values())

        if status is not None:
            shipments = [s for s in shipments if s.status == status]
        if city is not None:
            shipments = [s for s in shipments if city in (s.from_city, s.to_city)]
        if query:
            needle = query.lower()
            shipments = [
                s for s in shipments
                if needle in s.id.lower()
                or needle in (s.customer_name or "").lower()
                or needle in (s.to_city or "").lower()
            ]

        shipments.sort(
            key=lambda s: (s.date or "", s.created_at or "", parse_shipment_number(s.id)),
            reverse=True,
        )
        return shipments

    def shipments_for_customer(self, customer_id: Optional[str] = None) -> List[Shipment]:
        customer_id = customer_id or self.actor.id
        return [s for s in self.list_shipments() if s.customer_id == customer_id]

    def agent_tasks(self, agent_id: Optional[str] = None) -> Tuple[List[Shipment], List[Shipment]]:
        """(active, completed) shipments for an agent."""
        agent_id = agent_id or self.actor.id
        mine = [s for s in self.list_shipments() if s.agent_id == agent_id]
        active = [s for s in mine if ShipmentStatus(s.status) in ACTIVE_AGENT_STATES]
        completed = [s for s in mine if s.status == ShipmentStatus.DELIVERED]
        return active, completed

    # ──────────────────────────────────────────────────────
    # Creation
    # ──────────────────────────────────────────────────────

    def create_shipment(self, draft: ShipmentDraft) -> Shipment:
        validate_role_authority(self.actor.role, "create_shipment")
        validate_shipment_draft(draft)

        now = self.clock()
        from_city = (
            f"{self.origin_city} Office" if draft.pickup_type == PICKUP_TYPE_OFFICE else self.origin_city
        )
        history = HistoryLedger()
        history.append(ShipmentHistory(
            status=ShipmentStatus.PENDING_APPROVAL.value,
            date=format_history_date(now),
            location=from_city,
            description="Shipment created",
        ))

        shipment = Shipment(
            id="",
            customer_name=self.actor.name,
            customer_phone=self.actor.phone,
            customer_id=self.actor.id,
            from_city=from_city,
            to_city=draft.destination_city.strip(),
            status=ShipmentStatus.PENDING_APPROVAL.value,
            price=quote_price(draft.pickup_type),
            date=now.strftime("%Y-%m-%d"),
            created_at=now.isoformat(),
            description=draft.item_name.strip(),
            weight=f"{draft.weight} kg",
            dimensions=draft.dimensions.strip() or None,
            item_notes=draft.description.strip() or None,
            pickup_address=draft.pickup_address.strip() or f"{self.origin_city} Office Drop-off",
            delivery_address=draft.destination_address.strip(),
            recipient_name=draft.recipient_name.strip(),
            recipient_phone=draft.recipient_phone.strip(),
            from_lat=draft.from_lat,
            from_lng=draft.from_lng,
            to_lat=draft.to_lat,
            to_lng=draft.to_lng,
            history=history,
        )

        stored = self._insert_with_new_id(shipment)
        created = Shipment.from_dict(stored)
        self._shipments[created.id] = created
        logger.info(f"Shipment {created.id} created by {self.actor.id} ({created.from_city} → {created.to_city})")

        if self.dispatcher is not None:
            self.dispatcher.on_status_change(created)
        return created

    def _insert_with_new_id(self, shipment: Shipment) -> dict:
        """
        Allocate an ID and insert; on a primary-key collision, re-read the
        authoritative ID set and try the next number.
        """
        known_ids = set(self._shipments)
        known_ids.update(r["id"] for r in with_retries(
            self.backend.list_shipments, description="list shipments", sleep=self.sleep
        ))

        for attempt in range(MAX_ID_ATTEMPTS):
            record = shipment.copy(id=next_shipment_id(known_ids)).to_dict()
            try:
                return self.backend.insert_shipment(record)
            except ConflictError:
                logger.warning(f"Shipment ID {record['id']} already taken (attempt {attempt + 1})")
                known_ids.add(record["id"])
                known_ids.update(r["id"] for r in self.backend.list_shipments())

        raise TransportError(
            f"Could not allocate a shipment ID after {MAX_ID_ATTEMPTS} attempts", retryable=True
        )

    # ──────────────────────────────────────────────────────
    # Transitions
    # ──────────────────────────────────────────────────────

    def _history_date(self, shipment: Shipment) -> str:
        stamp = format_history_date(self.clock())
        last = shipment.history.last
        # Clocks on different clients drift; never let the ledger go backwards
        if last is not None and stamp < last.date:
            return last.date
        return stamp

    def _transition(
        self,
        operation: str,
        shipment_id: str,
        location: Optional[str] = None,
        fields: Optional[dict] = None,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        template_names: Optional[List[str]] = None,
        reason: str = "",
    ) -> Shipment:
        rule = TRANSITION_RULES[operation]
        validate_role_authority(self.actor.role, operation)

        shipment = self.get_shipment(shipment_id)
        if ShipmentStatus(shipment.status) not in rule.sources:
            # The local copy may be behind the authoritative one
            shipment = self.refresh_shipment(shipment_id)
        if self.actor.role == AGENT:
            validate_agent_ownership(self.actor.id, operation, shipment)

        if ShipmentStatus(shipment.status) not in rule.sources:
            raise InvalidTransitionError(
                f"Cannot {operation.replace('_', ' ')} {shipment_id}: status is '{shipment.status}'",
                current_state=shipment.status,
                target_state=rule.target.value,
            )
        validate_transition(shipment.status, rule.target)

        fields = dict(fields or {})
        updated = shipment.copy(status=rule.target.value, **fields)
        updated.history.append(ShipmentHistory(
            status=rule.target.value,
            date=self._history_date(shipment),
            location=location or shipment.from_city,
            description=description or rule.description.format(**fields),
        ))
        fields["status"] = rule.target.value
        fields["history"] = updated.history.to_list()

        if idempotency_key is None and rule.auto_idempotent:
            idempotency_key = f"{shipment_id}:{operation}:{len(shipment.history)}"

        def write():
            return self.backend.update_shipment(
                shipment_id,
                fields,
                expected_status=shipment.status,
                idempotency_key=idempotency_key,
            )

        try:
            if idempotency_key:
                stored = with_retries(write, description=f"{operation} {shipment_id}", sleep=self.sleep)
            else:
                stored = write()
        except InvalidTransitionError:
            # Another actor moved the shipment first; drop our stale copy
            logger.warning(f"{operation} on {shipment_id} lost a race; refetching")
            self._refetch_quietly(shipment_id)
            raise
        except TransportError as e:
            if e.outcome_unknown:
                self._stale.add(shipment_id)
                logger.error(f"{operation} on {shipment_id} has unknown outcome: {e}")
            raise

        committed = Shipment.from_dict(stored)
        self._shipments[shipment_id] = committed
        self._stale.discard(shipment_id)
        logger.info(f"{shipment_id}: {shipment.status} → {committed.status} by {self.actor.id}")

        if self.dispatcher is not None:
            self.dispatcher.on_status_change(committed, template_names=template_names, reason=reason)
        return committed

    def _refetch_quietly(self, shipment_id: str) -> None:
        try:
            self.refresh_shipment(shipment_id)
        except ShipExpressError as e:
            self._stale.add(shipment_id)
            logger.error(f"Refetch of {shipment_id} failed: {e}")

    def approve_shipment(self, shipment_id: str) -> Shipment:
        return self._transition("approve_shipment", shipment_id)

    def reject_shipment(self, shipment_id: str, reason: str = "") -> Shipment:
        description = "Shipment rejected by staff"
        if reason:
            description = f"{description}: {reason}"
        return self._transition(
            "reject_shipment",
            shipment_id,
            description=description,
            template_names=["SHIPMENT_REJECTED"],
            reason=reason,
        )

    def cancel_shipment(self, shipment_id: str, reason: str = "") -> Shipment:
        description = f"Shipment cancelled: {reason}" if reason else None
        return self._transition("cancel_shipment", shipment_id, description=description, reason=reason)

    def assign_agent(
        self,
        shipment_id: str,
        agent_name: str,
        agent_id: str,
        agent_phone: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Shipment:
        validate_role_authority(self.actor.role, "assign_agent")
        if not agent_name or not agent_id:
            raise ValidationError("agent_id", "Agent name and ID are required")
        if agent_phone is None:
            agent_phone = self._agent_phone(agent_id)

        return self._transition(
            "assign_agent",
            shipment_id,
            fields={"agent_name": agent_name, "agent_id": agent_id, "agent_phone": agent_phone},
            idempotency_key=idempotency_key,
        )

    def _agent_phone(self, agent_id: str) -> Optional[str]:
        try:
            profile = self.backend.get_profile(agent_id)
        except NotFoundError:
            logger.warning(f"No profile for agent {agent_id}; assigning without phone")
            return None
        if profile.get("role") != AGENT:
            raise ValidationError("agent_id", f"User '{agent_id}' is not an agent")
        return profile.get("phone")

    def accept_request(self, shipment_id: str) -> Shipment:
        return self._transition("accept_request", shipment_id)

    def confirm_pickup(self, shipment_id: str) -> Shipment:
        return self._transition("confirm_pickup", shipment_id)

    def mark_in_transit(self, shipment_id: str, lat: Optional[float] = None, lng: Optional[float] = None) -> Shipment:
        shipment = self.get_shipment(shipment_id)
        if lat is None or lng is None:
            lat, lng = shipment.from_lat, shipment.from_lng
        else:
            validate_coordinates(lat, lng)

        return self._transition(
            "mark_in_transit",
            shipment_id,
            location=IN_TRANSIT_LOCATION,
            fields={"current_lat": lat, "current_lng": lng},
        )

    def mark_delivered(self, shipment_id: str, photo_url: str, idempotency_key: Optional[str] = None) -> Shipment:
        if not photo_url:
            raise ValidationError("delivery_photo_url", "Delivery photo is required")
        shipment = self.get_shipment(shipment_id)
        return self._transition(
            "mark_delivered",
            shipment_id,
            location=shipment.to_city,
            fields={"delivery_photo_url": photo_url},
            idempotency_key=idempotency_key,
        )

    def upload_delivery_photo(self, data: bytes, filename: str) -> str:
        if self.blob_storage is None:
            raise ValidationError("delivery_photo_url", "No blob storage configured for delivery photos")
        return self.blob_storage.upload(data, filename, folder="delivery-proofs")

    # ──────────────────────────────────────────────────────
    # Telemetry
    # ──────────────────────────────────────────────────────

    def update_current_location(self, shipment_id: str, lat: float, lng: float) -> Shipment:
        """
        Overwrite the live position of an in-transit shipment.

        Last value wins; no history entry and no notification.
        """
        validate_role_authority(self.actor.role, "update_current_location")
        validate_coordinates(lat, lng)

        shipment = self.get_shipment(shipment_id)
        validate_agent_ownership(self.actor.id, "update_current_location", shipment)
        if shipment.status != ShipmentStatus.IN_TRANSIT:
            raise InvalidTransitionError(
                f"Location updates need an in-transit shipment; {shipment_id} is '{shipment.status}'",
                current_state=shipment.status,
            )

        stored = with_retries(
            lambda: self.backend.update_shipment(
                shipment_id,
                {"current_lat": lat, "current_lng": lng},
                expected_status=ShipmentStatus.IN_TRANSIT.value,
            ),
            description=f"location update {shipment_id}",
            sleep=self.sleep,
        )
        updated = Shipment.from_dict(stored)
        self._shipments[shipment_id] = updated
        logger.debug(f"{shipment_id} at ({lat}, {lng})")
        return updated

    # ──────────────────────────────────────────────────────
    # Realtime merges
    # ──────────────────────────────────────────────────────

    def apply_remote_update(self, record: dict) -> Optional[str]:
        """
        Shallow-merge a pushed update into the local copy (remote wins per field).

        Returns the previously held status when the merge changed it, else None.
        A pushed record with a shorter history than ours is older than what we
        hold and is dropped whole.
        """
        shipment_id = record.get("id")
        if not shipment_id:
            return None

        local = self._shipments.get(shipment_id)
        if local is None:
            self._shipments[shipment_id] = Shipment.from_dict(record)
            self._stale.discard(shipment_id)
            return None

        if "history" in record and len(record["history"] or []) < len(local.history):
            logger.debug(f"Ignoring out-of-date update for {shipment_id}")
            return None

        merged = local.to_dict()
        merged.update(record)
        updated = Shipment.from_dict(merged)
        self._shipments[shipment_id] = updated
        self._stale.discard(shipment_id)

        if updated.status != local.status:
            return local.status
        return None

    def forget(self, shipment_id: str) -> None:
        self._shipments.pop(shipment_id, None)
        self._stale.discard(shipment_id)
