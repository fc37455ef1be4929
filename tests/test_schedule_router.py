import asyncio
import datetime

from tests.conftest import create_test_client
from planner import main, schedule_router
from planner.models import EntityRecord
from planner.store import InMemoryEntityStore

DAY = datetime.date(2024, 5, 1)
RECT = {"left": 0, "width": 100}


def register(entities, itinerary_id="it1"):
    store = InMemoryEntityStore(entities)
    schedule_router.registry.register_memory_store(itinerary_id, store)
    return store


def default_entities():
    return [
        EntityRecord(id="A", date=DAY, start_time="12:00", end_time="13:00", title="Lunch"),
        EntityRecord(id="B", date=DAY, start_time="09:00", end_time="10:00", title="Museum"),
        EntityRecord(id="C", title="Backlog walk", duration_hint=45),
    ]


def test_grid_projects_entities():
    register(default_entities())
    client = create_test_client()
    resp = client.get("/schedule/it1/grid")
    assert resp.status_code == 200
    data = resp.json()
    assert data["interval"] == 30
    assert len(data["slots"]) == 36
    assert data["days"][0] == "2024-05-01"
    positions = {item["id"]: item["position"] for item in data["scheduled"]}
    assert positions["B"] == {"day": 0, "start_slot": 6, "span": 2}
    assert "C" not in positions


def test_grid_view_can_be_moved():
    register(default_entities())
    client = create_test_client()
    resp = client.get("/schedule/it1/grid", params={"start_date": "2024-05-02", "days": 2})
    assert resp.status_code == 200
    assert resp.json()["days"] == ["2024-05-02", "2024-05-03"]
    assert resp.json()["scheduled"] == []


def test_unknown_itinerary_is_404():
    client = create_test_client()
    resp = client.get("/schedule/nope/grid")
    assert resp.status_code == 404


def test_drag_flow_trims_and_reports():
    store = register(default_entities())
    client = create_test_client()

    start = client.post("/schedule/it1/drag/start", json={"active_id": "A"})
    assert start.status_code == 200
    assert start.json()["accepted"] is True

    over = client.post("/schedule/it1/drag/over", json={
        "active_id": "A", "over_id": "slot-0-6", "pointer_x": 10, "column_rect": RECT,
    })
    preview = over.json()["preview"]
    assert preview["slot_index"] == 6
    assert preview["mode"] == "trim"
    assert preview["has_time_overlap"] is True
    assert preview["trim_preview_by_id"] == {"B": None}

    status = client.get("/schedule/it1/preview").json()
    assert status["active_entity"]["id"] == "A"
    assert status["is_saving"] is False

    end = client.post("/schedule/it1/drag/end", json={"active_id": "A"})
    body = end.json()
    assert body["result"]["success"] is True
    assert body["result"]["unscheduled_ids"] == ["B"]
    assert [n["message"] for n in body["notifications"]] == ["Moved, and 1 overlapping item(s) were trimmed"]
    assert body["preview"] is None

    stored = asyncio.run(store.load_snapshot())
    assert next(e for e in stored.entities if e.id == "A").start_time == "09:00:00"


def test_drag_cancel_clears_preview():
    register(default_entities())
    client = create_test_client()
    client.post("/schedule/it1/drag/start", json={"active_id": "A"})
    client.post("/schedule/it1/drag/move", json={"active_id": "A", "over_id": "slot-0-10"})
    resp = client.post("/schedule/it1/drag/cancel", json={"active_id": "A"})
    assert resp.status_code == 200
    assert resp.json()["preview"] is None
    assert client.get("/schedule/it1/preview").json()["active_entity"] is None


def test_drag_start_unknown_entity_is_404():
    register(default_entities())
    client = create_test_client()
    resp = client.post("/schedule/it1/drag/start", json={"active_id": "ghost"})
    assert resp.status_code == 404


def test_invalid_drag_phase_is_422():
    register(default_entities())
    client = create_test_client()
    resp = client.post("/schedule/it1/drag/jump", json={"active_id": "A"})
    assert resp.status_code == 422


def test_resize_endpoint():
    register(default_entities())
    client = create_test_client()
    resp = client.post("/schedule/it1/resize", json={"entity_id": "B", "new_duration": 90})
    assert resp.status_code == 200
    body = resp.json()
    assert body["result"]["success"] is True
    assert body["result"]["message"] == "Resized to 90 minutes"

    by_pixels = client.post("/schedule/it1/resize", json={"entity_id": "B", "delta_px": -32})
    assert by_pixels.json()["result"]["message"] == "Resized to 60 minutes"


def test_resize_validation():
    register(default_entities())
    client = create_test_client()
    assert client.post("/schedule/it1/resize", json={"entity_id": "ghost", "new_duration": 60}).status_code == 404
    assert client.post("/schedule/it1/resize", json={"entity_id": "B"}).status_code == 422
    both = {"entity_id": "B", "new_duration": 60, "delta_px": 32}
    assert client.post("/schedule/it1/resize", json=both).status_code == 422


def test_health_check():
    result = asyncio.run(main.health_check())
    assert result["status"] == "healthy"
