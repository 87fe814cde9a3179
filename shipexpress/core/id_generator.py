"""
SHIPMENT ID ALLOCATION

Format:
SHP###  (SHP001, SHP002, ... SHP999, SHP1000, ...)

Requirements:
• NO manual ID input
• Never reuse a number already present, even after gaps
• The authoritative store re-checks uniqueness on insert
"""

import re
from typing import Iterable

SHIPMENT_ID_PREFIX = "SHP"
SHIPMENT_ID_WIDTH = 3

_ID_PATTERN = re.compile(rf"^{SHIPMENT_ID_PREFIX}(\d+)$")


def parse_shipment_number(shipment_id: str) -> int:
    """Return the numeric part of a shipment ID, or 0 if it is not SHP###."""
    match = _ID_PATTERN.match(shipment_id or "")
    return int(match.group(1)) if match else 0


def format_shipment_id(number: int) -> str:
    return f"{SHIPMENT_ID_PREFIX}{number:0{SHIPMENT_ID_WIDTH}d}"


def next_shipment_id(existing_ids: Iterable[str]) -> str:
    """
    Allocate the next shipment ID.

    Uses one past the highest number in use rather than the collection size,
    so a shipment missing from a partial listing can never be shadowed.

    Examples:
        >>> next_shipment_id(["SHP001", "SHP005"])
        'SHP006'
        >>> next_shipment_id([])
        'SHP001'
    """
    highest = max((parse_shipment_number(i) for i in existing_ids), default=0)
    return format_shipment_id(highest + 1)
