"""
SHIPMENT HISTORY LEDGER

Purpose:
- Append-only per-shipment audit trail
- One entry per status transition
- Canonical order is insertion order (oldest first)

Requirements:
• append() is the only mutator
• Entries are never reordered or removed
• Timestamps formatted YYYY-MM-DD HH:MM
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

HISTORY_DATE_FORMAT = "%Y-%m-%d %H:%M"


def format_history_date(moment: datetime) -> str:
    return moment.strftime(HISTORY_DATE_FORMAT)


@dataclass(frozen=True)
class ShipmentHistory:
    """One status transition."""
    status: str
    date: str
    location: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "date": self.date,
            "location": self.location,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShipmentHistory":
        return cls(
            status=data["status"],
            date=data["date"],
            location=data.get("location", ""),
            description=data.get("description", ""),
        )


class HistoryLedger:
    """Append-only list of ShipmentHistory entries."""

    def __init__(self, entries=None):
        self._entries: List[ShipmentHistory] = list(entries or [])

    def append(self, entry: ShipmentHistory) -> None:
        if self._entries and entry.date < self._entries[-1].date:
            raise ValueError(
                f"History entry dated {entry.date} precedes last entry {self._entries[-1].date}"
            )
        self._entries.append(entry)

    @property
    def entries(self) -> Tuple[ShipmentHistory, ...]:
        return tuple(self._entries)

    @property
    def last(self) -> Optional[ShipmentHistory]:
        return self._entries[-1] if self._entries else None

    def newest_first(self) -> List[ShipmentHistory]:
        """Display order for timelines; does not change the ledger."""
        return list(reversed(self._entries))

    def copy(self) -> "HistoryLedger":
        return HistoryLedger(self._entries)

    def to_list(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries]

    @classmethod
    def from_list(cls, items) -> "HistoryLedger":
        return cls(
            item if isinstance(item, ShipmentHistory) else ShipmentHistory.from_dict(item)
            for item in items
        )

    def __iter__(self) -> Iterator[ShipmentHistory]:
        return iter(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index) -> ShipmentHistory:
        return self._entries[index]

    def __eq__(self, other) -> bool:
        if not isinstance(other, HistoryLedger):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"HistoryLedger({len(self._entries)} entries)"
