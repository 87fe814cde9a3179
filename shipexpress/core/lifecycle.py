# shipexpress/core/lifecycle.py

from enum import Enum
from typing import Set

from shipexpress.core.errors import InvalidTransitionError


class ShipmentStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Single source of truth for lifecycle transitions
LIFECYCLE_TRANSITIONS = {
    None: {ShipmentStatus.PENDING_APPROVAL},  # virtual initial state

    ShipmentStatus.PENDING_APPROVAL: {ShipmentStatus.APPROVED, ShipmentStatus.CANCELLED},
    ShipmentStatus.APPROVED: {ShipmentStatus.ASSIGNED, ShipmentStatus.CANCELLED},
    ShipmentStatus.ASSIGNED: {ShipmentStatus.ACCEPTED, ShipmentStatus.CANCELLED},
    ShipmentStatus.ACCEPTED: {ShipmentStatus.PICKED_UP, ShipmentStatus.CANCELLED},
    ShipmentStatus.PICKED_UP: {ShipmentStatus.IN_TRANSIT, ShipmentStatus.CANCELLED},
    ShipmentStatus.IN_TRANSIT: {ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED},
    ShipmentStatus.DELIVERED: set(),  # Terminal state
    ShipmentStatus.CANCELLED: set(),  # Terminal state
}

TERMINAL_STATES = frozenset(
    status for status, targets in LIFECYCLE_TRANSITIONS.items()
    if status is not None and not targets
)

# Statuses in which a customer-facing agent is attached to the shipment
AGENT_VISIBLE_STATES = frozenset({
    ShipmentStatus.ASSIGNED,
    ShipmentStatus.ACCEPTED,
    ShipmentStatus.PICKED_UP,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.DELIVERED,
})


def allowed_next_states(current_state) -> Set[ShipmentStatus]:
    if current_state is not None:
        current_state = ShipmentStatus(current_state)
    return set(LIFECYCLE_TRANSITIONS.get(current_state, set()))


def is_terminal(status) -> bool:
    return ShipmentStatus(status) in TERMINAL_STATES


def validate_transition(current_state, next_state) -> None:
    """
    Validate whether a lifecycle transition is allowed.

    Raises InvalidTransitionError if invalid.
    """
    try:
        current = ShipmentStatus(current_state) if current_state is not None else None
        target = ShipmentStatus(next_state)
    except ValueError as e:
        raise InvalidTransitionError(str(e), current_state, next_state) from e

    if target not in LIFECYCLE_TRANSITIONS[current]:
        label = current.value if current is not None else "NONE"
        raise InvalidTransitionError(
            f"Invalid transition: {label} → {target.value}",
            current_state=current_state,
            target_state=next_state,
        )
