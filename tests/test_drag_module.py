import datetime

from planner.collaborators import DeclaredDurationEstimator, WindowConflictDetector
from planner.drag import (DragInteractionController, DragState, classify_mode,
                          parse_drop_zone_id)
from planner.models import (ColumnRect, DragEvent, DragItemType, DropMode,
                            EntityKind, EntityRecord, TimeGridConfig, TrimPreview)
from planner.resolution import ConflictResolutionEngine
from planner.time_grid import build_slots

DAY = datetime.date(2024, 5, 1)
CONFIG = TimeGridConfig(interval=30, start_hour=8, end_hour=20)
RECT = ColumnRect(left=100, width=200)


def make_entity(entity_id, start="09:00", end="10:00", **kwargs):
    return EntityRecord(id=entity_id, date=DAY, start_time=start, end_time=end, **kwargs)


def make_controller(entities, detector=None, estimator=None):
    controller = DragInteractionController(
        CONFIG,
        build_slots(CONFIG),
        [DAY],
        detector or WindowConflictDetector(business_start="00:00", business_end="24:00"),
        estimator or DeclaredDurationEstimator(default_minutes=60),
    )
    return controller, ConflictResolutionEngine(CONFIG, entities)


def over(active_id, zone, pointer_x=None, item_type=DragItemType.SCHEDULED):
    return DragEvent(active_id=active_id, item_type=item_type, over_id=zone, pointer_x=pointer_x, column_rect=RECT)


def test_parse_drop_zone_id():
    assert parse_drop_zone_id("slot-2-14") == (2, 14)
    assert parse_drop_zone_id("slot-0-0") == (0, 0)
    assert parse_drop_zone_id("slot-a-1") is None
    assert parse_drop_zone_id("trash") is None
    assert parse_drop_zone_id(None) is None


def test_classify_mode_uses_column_midpoint():
    assert classify_mode(250, RECT) == DropMode.OVERLAP
    assert classify_mode(150, RECT) == DropMode.TRIM
    assert classify_mode(200, RECT) == DropMode.TRIM
    assert classify_mode(None, RECT) == DropMode.TRIM
    assert classify_mode(250, None) == DropMode.TRIM


def test_only_one_gesture_at_a_time():
    controller, resolution = make_controller([make_entity("A"), make_entity("B", "12:00", "13:00")])
    assert controller.on_drag_start(DragEvent(active_id="A"), resolution)
    assert not controller.on_drag_start(DragEvent(active_id="B"), resolution)
    assert controller.active_entity.id == "A"
    assert controller.state == DragState.DRAGGING


def test_drag_start_rejects_unknown_entity():
    controller, resolution = make_controller([make_entity("A")])
    assert not controller.on_drag_start(DragEvent(active_id="missing"), resolution)
    assert controller.state == DragState.IDLE


def test_drag_over_computes_trim_preview():
    entities = [make_entity("A", "12:00", "13:30"), make_entity("B", "09:30", "10:00"), make_entity("D", "10:00", "11:00")]
    controller, resolution = make_controller(entities)
    controller.on_drag_start(DragEvent(active_id="A"), resolution)

    info = controller.on_drag_over(over("A", "slot-0-2", pointer_x=120))
    assert info.mode == DropMode.TRIM
    assert (info.day_index, info.slot_index, info.span_slots) == (0, 2, 3)
    assert info.has_time_overlap
    assert info.trim_preview_by_id == {"B": None, "D": TrimPreview(start_slot=5, span=1)}
    assert controller.drag_over_info == info


def test_drag_over_in_overlap_mode_has_no_trim_preview():
    entities = [make_entity("A", "12:00", "13:30"), make_entity("B", "09:30", "10:00")]
    controller, resolution = make_controller(entities)
    controller.on_drag_start(DragEvent(active_id="A"), resolution)
    info = controller.on_drag_move(over("A", "slot-0-2", pointer_x=280))
    assert info.mode == DropMode.OVERLAP
    assert info.has_time_overlap
    assert info.trim_preview_by_id == {}


def test_drag_over_clamps_slot_index_to_grid():
    controller, resolution = make_controller([make_entity("A", "09:00", "10:30")])
    controller.on_drag_start(DragEvent(active_id="A"), resolution)
    info = controller.on_drag_over(over("A", "slot-0-25"))
    assert info.slot_index == 23
    assert info.slot_index + info.span_slots == 26


def test_invalid_drop_zone_clears_preview():
    controller, resolution = make_controller([make_entity("A")])
    controller.on_drag_start(DragEvent(active_id="A"), resolution)
    assert controller.on_drag_over(over("A", "slot-0-2")) is not None
    assert controller.on_drag_over(over("A", "sidebar")) is None
    assert controller.drag_over_info is None
    assert controller.on_drag_over(over("A", "slot-3-2")) is None
    assert controller.on_drag_over(over("A", "slot-0-99")) is None


def test_note_drags_are_forced_to_overlap():
    entities = [make_entity("N", "12:00", "13:00", kind=EntityKind.NOTE), make_entity("B")]
    controller, resolution = make_controller(entities)
    controller.on_drag_start(DragEvent(active_id="N", item_type=DragItemType.SCHEDULED), resolution)
    info = controller.on_drag_over(over("N", "slot-0-2", pointer_x=120))
    assert info.mode == DropMode.OVERLAP
    assert info.trim_preview_by_id == {}


def test_unplaced_item_uses_estimated_duration():
    class DummyEstimator:
        def __init__(self):
            self.calls = []

        def estimate(self, entity, target_slot, target_date):
            self.calls.append((entity.id, target_slot, target_date))
            return 45

    estimator = DummyEstimator()
    controller, resolution = make_controller([EntityRecord(id="W")], estimator=estimator)
    controller.on_drag_start(DragEvent(active_id="W", item_type=DragItemType.UNPLACED), resolution)
    info = controller.on_drag_over(over("W", "slot-0-4"))
    assert info.span_slots == 2
    assert controller.active_duration == 45
    assert estimator.calls[-1][2] == DAY


def test_blocking_conflict_sets_has_conflict():
    detector = WindowConflictDetector(business_start="09:00", business_end="17:00")
    controller, resolution = make_controller([make_entity("A")], detector=detector)
    controller.on_drag_start(DragEvent(active_id="A"), resolution)
    assert controller.on_drag_over(over("A", "slot-0-0")).has_conflict
    assert not controller.on_drag_over(over("A", "slot-0-4")).has_conflict


def test_drag_end_returns_drop_request_with_live_mode():
    controller, resolution = make_controller([make_entity("A"), make_entity("B", "12:00", "13:00")])
    controller.on_drag_start(DragEvent(active_id="A"), resolution)
    controller.on_drag_over(over("A", "slot-0-8", pointer_x=290))
    request = controller.on_drag_end(DragEvent(active_id="A"))
    assert request.entity_id == "A"
    assert request.mode == DropMode.OVERLAP
    assert request.date == DAY
    assert request.start_minutes == 12 * 60
    assert request.duration_minutes == 60
    assert controller.state == DragState.IDLE
    assert controller.drag_over_info is None


def test_drag_end_without_preview_returns_none():
    controller, resolution = make_controller([make_entity("A")])
    controller.on_drag_start(DragEvent(active_id="A"), resolution)
    assert controller.on_drag_end(DragEvent(active_id="A")) is None
    assert controller.state == DragState.IDLE


def test_drag_cancel_discards_state():
    controller, resolution = make_controller([make_entity("A")])
    controller.on_drag_start(DragEvent(active_id="A"), resolution)
    controller.on_drag_over(over("A", "slot-0-2"))
    controller.on_drag_cancel(DragEvent(active_id="A"))
    assert controller.state == DragState.IDLE
    assert controller.drag_over_info is None
    assert controller.active_entity is None
    assert controller.active_group == []


def test_conflict_detector_sees_only_the_target_day():
    class DummyDetector:
        def __init__(self):
            self.seen = []

        def detect_conflicts(self, entities, date, start_minutes, duration_minutes, identity_key=None, exclude_ids=()):
            self.seen.append([entity.id for entity in entities])
            return []

    detector = DummyDetector()
    entities = [
        make_entity("A"),
        make_entity("B", "12:00", "13:00"),
        make_entity("N", "14:00", "15:00", kind=EntityKind.NOTE),
        EntityRecord(id="next", date=DAY + datetime.timedelta(days=1), start_time="09:00", end_time="10:00"),
        EntityRecord(id="loose"),
    ]
    controller, resolution = make_controller(entities, detector=detector)
    controller.on_drag_start(DragEvent(active_id="A"), resolution)

    controller.on_drag_over(over("A", "slot-0-6"))
    assert detector.seen == [["A", "B"]]
