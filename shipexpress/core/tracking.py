# shipexpress/core/tracking.py

from typing import Dict, List

from shipexpress.core.lifecycle import ShipmentStatus
from shipexpress.core.models import Shipment

STATUS_LABELS = {
    ShipmentStatus.PENDING_APPROVAL: "Pending Approval",
    ShipmentStatus.APPROVED: "Approved",
    ShipmentStatus.ASSIGNED: "Agent Assigned",
    ShipmentStatus.ACCEPTED: "Accepted",
    ShipmentStatus.PICKED_UP: "Picked Up",
    ShipmentStatus.IN_TRANSIT: "In Transit",
    ShipmentStatus.DELIVERED: "Delivered",
    ShipmentStatus.CANCELLED: "Cancelled",
}

# Timeline shown on the tracking screen, in lifecycle order
TRACKING_STEPS = [
    (ShipmentStatus.PENDING_APPROVAL, "Pending Approval", "Waiting for staff approval"),
    (ShipmentStatus.APPROVED, "Approved", "Approved by staff"),
    (ShipmentStatus.ASSIGNED, "Agent Assigned", "Delivery agent assigned"),
    (ShipmentStatus.ACCEPTED, "Request Accepted", "Agent accepted the request"),
    (ShipmentStatus.PICKED_UP, "Picked Up", "Package collected by agent"),
    (ShipmentStatus.IN_TRANSIT, "In Transit", "On the way to destination"),
    (ShipmentStatus.DELIVERED, "Delivered", "Package delivered"),
]

COMPLETED = "completed"
ACTIVE = "active"
PENDING = "pending"


def status_label(status) -> str:
    return STATUS_LABELS.get(ShipmentStatus(status), str(status))


def tracking_steps(shipment: Shipment) -> List[Dict[str, str]]:
    """
    Timeline for a tracking screen.

    Steps up to the current status are completed, the current one is active
    (delivered counts as completed), later ones are pending. Timestamps come
    from the history ledger. A cancelled shipment keeps the steps it reached
    and gets a final cancelled step.
    """
    reached = {entry.status: entry.date for entry in shipment.history}
    status = ShipmentStatus(shipment.status)
    order = [s for s, _, _ in TRACKING_STEPS]

    if status == ShipmentStatus.CANCELLED:
        current_index = max((order.index(ShipmentStatus(s)) for s in reached if s in order), default=0)
    else:
        current_index = order.index(status)

    steps = [{
        "title": "Order Placed",
        "description": "Shipment created",
        "state": COMPLETED,
        "timestamp": shipment.history[0].date if len(shipment.history) else shipment.date,
    }]

    for index, (step_status, title, description) in enumerate(TRACKING_STEPS):
        if index < current_index:
            state = COMPLETED
        elif index == current_index:
            state = COMPLETED if status in (ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED) else ACTIVE
        else:
            state = PENDING
        steps.append({
            "title": title,
            "description": description,
            "state": state,
            "timestamp": reached.get(step_status.value, ""),
        })

    if status == ShipmentStatus.CANCELLED:
        steps.append({
            "title": "Cancelled",
            "description": shipment.history.last.description if shipment.history.last else "Shipment cancelled",
            "state": COMPLETED,
            "timestamp": reached.get(ShipmentStatus.CANCELLED.value, ""),
        })

    return steps
