from shipexpress.core.tracking import ACTIVE, COMPLETED, PENDING, status_label, tracking_steps


def test_status_label():
    assert status_label("in_transit") == "In Transit"
    assert status_label("assigned") == "Agent Assigned"


def test_steps_for_in_transit(created, advance):
    shipment = advance(created.id, "in_transit")
    steps = tracking_steps(shipment)

    assert steps[0]["title"] == "Order Placed"
    assert steps[0]["timestamp"] == shipment.history[0].date
    states = [s["state"] for s in steps[1:]]
    assert states == [COMPLETED] * 5 + [ACTIVE, PENDING]
    assert steps[6]["timestamp"] == shipment.history.last.date
    assert steps[7]["timestamp"] == ""


def test_steps_for_delivered(created, advance):
    shipment = advance(created.id, "delivered")
    assert all(s["state"] == COMPLETED for s in tracking_steps(shipment))


def test_steps_for_cancelled(created, advance, admin_store):
    advance(created.id, "assigned")
    shipment = admin_store.cancel_shipment(created.id, reason="Customer request")
    steps = tracking_steps(shipment)

    assert steps[-1]["title"] == "Cancelled"
    assert steps[-1]["description"] == "Shipment cancelled: Customer request"
    assert steps[3]["title"] == "Agent Assigned"
    assert steps[3]["state"] == COMPLETED
    assert steps[4]["state"] == PENDING
