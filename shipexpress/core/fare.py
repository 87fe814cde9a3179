"""
Static fare formula shown on the create-shipment summary.

Base fare + weight charge (+ pickup charge for home pickup), plus 15% VAT.
This is a fixed tariff, not a pricing engine.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict

CURRENCY_SYMBOL = "₵"

BASE_FARE = Decimal("45")
WEIGHT_CHARGE = Decimal("12")
PICKUP_CHARGE = Decimal("8")
VAT_RATE = Decimal("0.15")

PICKUP_TYPE_OFFICE = "office"
PICKUP_TYPE_HOME = "pickup"


def fare_breakdown(pickup_type: str) -> Dict[str, Decimal]:
    subtotal = BASE_FARE + WEIGHT_CHARGE
    pickup = PICKUP_CHARGE if pickup_type == PICKUP_TYPE_HOME else Decimal("0")
    subtotal += pickup
    vat = (subtotal * VAT_RATE).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return {
        "base_fare": BASE_FARE,
        "weight_charge": WEIGHT_CHARGE,
        "pickup_charge": pickup,
        "vat": vat,
        "total": subtotal + vat,
    }


def format_price(amount: Decimal) -> str:
    return f"{CURRENCY_SYMBOL}{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}"


def quote_price(pickup_type: str) -> str:
    """Formatted total, e.g. ₵65.55 for office drop-off, ₵74.75 for pickup."""
    return format_price(fare_breakdown(pickup_type)["total"])
