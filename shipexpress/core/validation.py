# shipexpress/core/validation.py

import math

from shipexpress.core.errors import ValidationError
from shipexpress.core.fare import PICKUP_TYPE_HOME, PICKUP_TYPE_OFFICE
from shipexpress.core.models import ShipmentDraft


def _require(value, field: str, label: str) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(field, f"{label} is required")


def _as_number(value, field: str, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(field, f"{label} must be a number, got '{value}'")
    if not math.isfinite(number):
        raise ValidationError(field, f"{label} must be a finite number, got '{value}'")
    return number


def validate_coordinates(lat, lng) -> None:
    if lat is None or lng is None:
        raise ValidationError("coordinates", "Latitude and longitude are required")
    if not -90 <= _as_number(lat, "lat", "Latitude") <= 90:
        raise ValidationError("lat", f"Latitude {lat} out of range")
    if not -180 <= _as_number(lng, "lng", "Longitude") <= 180:
        raise ValidationError("lng", f"Longitude {lng} out of range")


def validate_shipment_draft(draft: ShipmentDraft) -> None:
    """
    Validate the create-shipment form before anything is persisted.

    Checks run in form order (item, pickup, destination) so the first
    error reported is the one the customer sees first.
    """
    # Item details
    _require(draft.item_name, "item_name", "Item Name")
    _require(draft.weight, "weight", "Weight")
    if _as_number(draft.weight, "weight", "Weight") <= 0:
        raise ValidationError("weight", "Weight must be greater than zero")

    # Pickup details
    if draft.pickup_type not in (PICKUP_TYPE_OFFICE, PICKUP_TYPE_HOME):
        raise ValidationError("pickup_type", f"Unknown pickup type '{draft.pickup_type}'")
    if draft.pickup_type == PICKUP_TYPE_HOME:
        _require(draft.pickup_address, "pickup_address", "Pickup Address")

    # Destination details
    _require(draft.destination_city, "destination_city", "Destination City")
    _require(draft.destination_address, "destination_address", "Destination Address")
    _require(draft.recipient_name, "recipient_name", "Recipient Name")
    _require(draft.recipient_phone, "recipient_phone", "Recipient Phone")

    for lat, lng in ((draft.from_lat, draft.from_lng), (draft.to_lat, draft.to_lng)):
        if lat is not None or lng is not None:
            validate_coordinates(lat, lng)
