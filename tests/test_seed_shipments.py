import importlib.util
from pathlib import Path

from shipexpress.core.lifecycle import validate_transition
from shipexpress.storage.jsonl_backend import JsonlBackend

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "seed_shipments.py"


def load_script():
    spec = importlib.util.spec_from_file_location("seed_shipments", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_seed_creates_demo_data(tmp_path):
    seed = load_script()
    seed.main(tmp_path)
    # Running twice is harmless
    seed.main(tmp_path)

    backend = JsonlBackend(data_dir=tmp_path)
    shipments = {s["id"]: s for s in backend.list_shipments()}

    assert sorted(shipments) == ["SHP001", "SHP002", "SHP003", "SHP004", "SHP005"]
    assert shipments["SHP004"]["status"] == "in_transit"
    assert shipments["SHP004"]["agent_name"] == "Yaw Addo"
    assert shipments["SHP003"]["agent_phone"] == "+233 20 555 0123"
    assert shipments["SHP005"]["price"] == "₵55.00"
    assert (shipments["SHP004"]["current_lat"], shipments["SHP004"]["current_lng"]) == (7.0125, -1.9860)
    assert shipments["SHP005"]["delivery_photo_url"].startswith("https://")
    assert shipments["SHP003"]["current_lat"] is None
    assert shipments["SHP003"]["delivery_photo_url"] is None

    for record in shipments.values():
        history = record["history"]
        assert history[-1]["status"] == record["status"]
        validate_transition(None, history[0]["status"])
        for previous, current in zip(history, history[1:]):
            validate_transition(previous["status"], current["status"])
            assert previous["date"] <= current["date"]
