"""
Seed the local JSON-lines store with demo profiles and shipments.

Usage:
    python scripts/seed_shipments.py [data_dir]
"""

import sys
from datetime import datetime, timedelta

from shipexpress.config import configure_logging
from shipexpress.core.history import HistoryLedger, ShipmentHistory, format_history_date
from shipexpress.core.lifecycle import ShipmentStatus
from shipexpress.core.models import Shipment
from shipexpress.storage.backend import ConflictError
from shipexpress.storage.jsonl_backend import JsonlBackend

PROFILES = [
    {"id": "CUS001", "name": "Kwame Mensah", "role": "customer", "phone": "+233 24 111 0001"},
    {"id": "CUS002", "name": "Abena Osei", "role": "customer", "phone": "+233 24 111 0002"},
    {"id": "CUS003", "name": "Kojo Asante", "role": "customer", "phone": "+233 24 111 0003"},
    {"id": "CUS004", "name": "Ama Darko", "role": "customer", "phone": "+233 24 111 0004"},
    {"id": "CUS005", "name": "Samuel Appiah", "role": "customer", "phone": "+233 24 111 0005"},
    {"id": "STF001", "name": "Efua Mensah", "role": "staff", "phone": "+233 20 555 0100"},
    {"id": "ADM001", "name": "Nana Owusu", "role": "admin", "phone": "+233 20 555 0001"},
    {"id": "AGT001", "name": "Kofi Boateng", "role": "agent", "phone": "+233 20 555 0123"},
    {"id": "AGT002", "name": "Yaw Addo", "role": "agent", "phone": "+233 20 555 0124"},
]

# (id, customer, from, to, status, agent, price, date, description)
SHIPMENTS = [
    ("SHP001", "CUS001", "Accra", "Kumasi", ShipmentStatus.PENDING_APPROVAL, None, "₵75.00", "2026-01-18", "Electronics"),
    ("SHP002", "CUS002", "Tamale", "Takoradi", ShipmentStatus.APPROVED, None, "₵120.00", "2026-01-17", "Documents"),
    ("SHP003", "CUS003", "Tema", "Cape Coast", ShipmentStatus.ASSIGNED, "AGT001", "₵65.50", "2026-01-18", "Clothing"),
    ("SHP004", "CUS004", "Kumasi", "Sunyani", ShipmentStatus.IN_TRANSIT, "AGT002", "₵90.00", "2026-01-16", "Spare Parts"),
    ("SHP005", "CUS005", "Takoradi", "Accra", ShipmentStatus.DELIVERED, "AGT001", "₵55.00", "2026-01-15", "Books"),
]

# Live position for shipments on the road, proof photo for delivered ones
EXTRAS = {
    "SHP004": {"current_lat": 7.0125, "current_lng": -1.9860},
    "SHP005": {"delivery_photo_url": "https://cdn.example/deliveries/SHP005-proof.jpg"},
}

PATH = [
    (ShipmentStatus.PENDING_APPROVAL, "Shipment created"),
    (ShipmentStatus.APPROVED, "Approved by staff"),
    (ShipmentStatus.ASSIGNED, "Agent {agent} assigned"),
    (ShipmentStatus.ACCEPTED, "Request accepted by agent"),
    (ShipmentStatus.PICKED_UP, "Package picked up by agent"),
    (ShipmentStatus.IN_TRANSIT, "Package is on the way"),
    (ShipmentStatus.DELIVERED, "Package delivered to recipient"),
]


def build_history(status, from_city, to_city, agent_name, day):
    history = HistoryLedger()
    moment = datetime.strptime(day, "%Y-%m-%d").replace(hour=8)
    for step, description in PATH:
        location = from_city
        if step == ShipmentStatus.IN_TRANSIT:
            location = "In Transit"
        elif step == ShipmentStatus.DELIVERED:
            location = to_city
        history.append(ShipmentHistory(
            status=step.value,
            date=format_history_date(moment),
            location=location,
            description=description.format(agent=agent_name),
        ))
        if step == status:
            break
        moment += timedelta(hours=2)
    return history


def main(data_dir=None):
    configure_logging()
    backend = JsonlBackend(data_dir=data_dir)
    profiles = {p["id"]: p for p in PROFILES}

    print("🚀 Seeding profiles...")
    for profile in PROFILES:
        try:
            backend.insert_profile(profile)
        except ConflictError:
            print(f"Profile {profile['id']} already present, skipping")

    print("🚀 Seeding shipments...")
    for shipment_id, customer_id, from_city, to_city, status, agent_id, price, day, description in SHIPMENTS:
        agent = profiles.get(agent_id) if agent_id else None
        customer = profiles[customer_id]
        shipment = Shipment(
            id=shipment_id,
            customer_name=customer["name"],
            customer_id=customer_id,
            customer_phone=customer["phone"],
            from_city=from_city,
            to_city=to_city,
            status=status.value,
            price=price,
            date=day,
            description=description,
            agent_name=agent["name"] if agent else None,
            agent_id=agent_id,
            agent_phone=agent["phone"] if agent else None,
            history=build_history(status, from_city, to_city, agent["name"] if agent else None, day),
        ).copy(**EXTRAS.get(shipment_id, {}))
        try:
            backend.insert_shipment(shipment.to_dict())
            print(f"Seeded {shipment_id} ({status.value})")
        except ConflictError:
            print(f"Shipment {shipment_id} already present, skipping")

    print("✅ Seeding complete")


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else None)
