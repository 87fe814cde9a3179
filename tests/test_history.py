from datetime import datetime

import pytest

from shipexpress.core.history import HistoryLedger, ShipmentHistory, format_history_date


def entry(status, date, location="Accra", description=""):
    return ShipmentHistory(status=status, date=date, location=location, description=description)


def test_format_history_date():
    assert format_history_date(datetime(2026, 1, 18, 14, 5, 59)) == "2026-01-18 14:05"


def test_append_keeps_insertion_order():
    ledger = HistoryLedger()
    ledger.append(entry("pending_approval", "2026-01-18 09:00"))
    ledger.append(entry("approved", "2026-01-18 09:00"))
    ledger.append(entry("assigned", "2026-01-18 10:30"))

    assert [e.status for e in ledger] == ["pending_approval", "approved", "assigned"]
    assert ledger.last.status == "assigned"
    assert [e.status for e in ledger.newest_first()] == ["assigned", "approved", "pending_approval"]
    # Display order never touches the ledger
    assert ledger[0].status == "pending_approval"


def test_append_rejects_backdated_entry():
    ledger = HistoryLedger([entry("pending_approval", "2026-01-18 09:00")])
    with pytest.raises(ValueError):
        ledger.append(entry("approved", "2026-01-17 23:59"))
    assert len(ledger) == 1


def test_copy_is_independent():
    ledger = HistoryLedger([entry("pending_approval", "2026-01-18 09:00")])
    clone = ledger.copy()
    clone.append(entry("approved", "2026-01-18 09:10"))

    assert len(ledger) == 1
    assert len(clone) == 2
    assert ledger != clone


def test_list_round_trip():
    ledger = HistoryLedger([
        entry("pending_approval", "2026-01-18 09:00", description="Shipment created"),
        entry("approved", "2026-01-18 09:10", description="Approved by staff"),
    ])
    assert HistoryLedger.from_list(ledger.to_list()) == ledger
    assert ledger.to_list()[1] == {
        "status": "approved",
        "date": "2026-01-18 09:10",
        "location": "Accra",
        "description": "Approved by staff",
    }
