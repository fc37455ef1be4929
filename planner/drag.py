# planner/drag.py

import logging
import re
import datetime as dt
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .alternatives import get_alternative_group_key
from .collaborators import (AbstractConflictDetector, AbstractDurationEstimator,
                            has_blocking_conflict)
from .models import (ColumnRect, DragEvent, DragItemType, DragOverInfo,
                     DropMode, DropRequest, EntityKind, EntityRecord,
                     TimeGridConfig, TimeSlot, TrimPreview,
                     minutes_to_time_string)
from .resolution import ConflictResolutionEngine
from .time_grid import span_for_duration, time_to_slot_index

logger = logging.getLogger(__name__)

DROP_ZONE_PATTERN = re.compile(r'^slot-(\d+)-(\d+)$')


def parse_drop_zone_id(over_id: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parses 'slot-<day>-<slot>' into (day_index, slot_index); None when malformed."""
    if not over_id:
        return None
    match = DROP_ZONE_PATTERN.match(str(over_id).strip())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def classify_mode(pointer_x: Optional[float], column_rect: Optional[ColumnRect]) -> DropMode:
    """Right of the column midpoint means overlap; left of it, or no pointer, means trim."""
    if pointer_x is None or column_rect is None:
        return DropMode.TRIM
    return DropMode.OVERLAP if pointer_x > column_rect.midpoint else DropMode.TRIM


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


class DragInteractionController:
    """
    Turns drag signals into a live drop preview and, on drop, a DropRequest.

    One gesture at a time: Idle -> Dragging -> Idle. The resolution engine is
    built from the entities known when the gesture starts and is only used
    read-only here.
    """

    def __init__(
        self,
        config: TimeGridConfig,
        slots: Sequence[TimeSlot],
        days: Sequence[dt.date],
        conflict_detector: AbstractConflictDetector,
        duration_estimator: AbstractDurationEstimator,
    ):
        self.config = config
        self.slots = list(slots)
        self.days = list(days)
        self.conflict_detector = conflict_detector
        self.duration_estimator = duration_estimator
        self._reset()

    def _reset(self) -> None:
        self.state = DragState.IDLE
        self._active: Optional[EntityRecord] = None
        self._item_type: Optional[DragItemType] = None
        self._group: List[str] = []
        self._duration: int = 0
        self._resolution: Optional[ConflictResolutionEngine] = None
        self._preview: Optional[DragOverInfo] = None

    # --- Read-only state ---

    @property
    def is_dragging(self) -> bool:
        return self.state == DragState.DRAGGING

    @property
    def drag_over_info(self) -> Optional[DragOverInfo]:
        return self._preview

    @property
    def active_entity(self) -> Optional[EntityRecord]:
        return self._active

    @property
    def active_group(self) -> List[str]:
        return list(self._group)

    @property
    def active_duration(self) -> int:
        return self._duration

    # --- Gesture handlers ---

    def on_drag_start(self, event: DragEvent, resolution: ConflictResolutionEngine) -> bool:
        """
        Starts a gesture for the entity named by the event.

        Returns False when a gesture is already active or the entity is unknown.
        """
        if self.is_dragging:
            logger.warning(f"Ignoring drag start for {event.active_id}: {self._active.id} is already being dragged")
            return False
        entity = resolution.get_entity(event.active_id)
        if entity is None:
            logger.warning(f"Ignoring drag start for unknown entity {event.active_id}")
            return False

        item_type = event.item_type
        if entity.kind == EntityKind.NOTE:
            item_type = DragItemType.NOTE
        elif not entity.is_scheduled:
            item_type = DragItemType.UNPLACED

        self.state = DragState.DRAGGING
        self._active = entity
        self._item_type = item_type
        self._resolution = resolution
        self._group = resolution.dragged_group(entity.id) or [entity.id]
        if item_type == DragItemType.UNPLACED:
            self._duration = self.duration_estimator.estimate(entity, None, None)
        else:
            self._duration = entity.duration_minutes or self.config.interval
        logger.info(f"Drag started for {entity.id} ({item_type.value}, group={self._group}, {self._duration} min)")
        return True

    def on_drag_over(self, event: DragEvent) -> Optional[DragOverInfo]:
        return self._update_preview(event)

    def on_drag_move(self, event: DragEvent) -> Optional[DragOverInfo]:
        return self._update_preview(event)

    def on_drag_end(self, event: DragEvent) -> Optional[DropRequest]:
        """
        Finishes the gesture and returns the drop to resolve, or None if there is nothing to drop.

        The mode is the one computed by the last over/move event.
        """
        if not self.is_dragging or event.active_id != self._active.id:
            logger.warning(f"Ignoring drag end for {event.active_id}: no matching gesture")
            return None
        preview = self._preview
        request = None
        if preview is not None:
            slot = self.slots[preview.slot_index]
            request = DropRequest(
                entity_id=self._active.id,
                item_type=self._item_type,
                date=self.days[preview.day_index],
                day_index=preview.day_index,
                slot_index=preview.slot_index,
                start_minutes=slot.minutes,
                duration_minutes=self._duration,
                mode=preview.mode,
            )
            logger.info(f"Drop of {request.entity_id} at {request.date} {slot.time_string} ({request.mode.value})")
        else:
            logger.info(f"Drag of {self._active.id} ended outside the grid")
        self._reset()
        return request

    def on_drag_cancel(self, event: Optional[DragEvent] = None) -> None:
        if self.is_dragging:
            logger.info(f"Drag of {self._active.id} cancelled")
        self._reset()

    # --- Preview computation ---

    def _update_preview(self, event: DragEvent) -> Optional[DragOverInfo]:
        if not self.is_dragging or event.active_id != self._active.id:
            return None

        target = parse_drop_zone_id(event.over_id)
        if target is None or not self.slots:
            self._preview = None
            return None
        day_index, slot_index = target
        if day_index >= len(self.days) or slot_index >= len(self.slots):
            self._preview = None
            return None

        date = self.days[day_index]
        if self._item_type == DragItemType.UNPLACED:
            self._duration = self.duration_estimator.estimate(self._active, self.slots[slot_index], date)

        span = min(span_for_duration(self._duration, self.config.interval), len(self.slots))
        slot_index = min(slot_index, len(self.slots) - span)

        if self._item_type == DragItemType.NOTE:
            mode = DropMode.OVERLAP
        else:
            mode = classify_mode(event.pointer_x, event.column_rect)

        start_minutes = self.slots[slot_index].minutes
        has_time_overlap = self._resolution.has_time_overlap(self._active.id, date, start_minutes, self._duration)
        conflicts = self.conflict_detector.detect_conflicts(
            self._resolution.day_entities(date),
            date,
            start_minutes,
            self._duration,
            identity_key=get_alternative_group_key(self._active),
            exclude_ids=self._group,
        )

        trim_preview: Dict[str, Optional[TrimPreview]] = {}
        if mode == DropMode.TRIM and has_time_overlap:
            for entity_id, trimmed in self._resolution.preview_trim(self._active.id, date, start_minutes, self._duration).items():
                trim_preview[entity_id] = self._to_trim_preview(trimmed)

        self._preview = DragOverInfo(
            day_index=day_index,
            slot_index=slot_index,
            span_slots=span,
            has_conflict=has_blocking_conflict(conflicts),
            mode=mode,
            has_time_overlap=has_time_overlap,
            trim_preview_by_id=trim_preview,
        )
        logger.debug(f"Drag preview for {self._active.id}: {self._preview}")
        return self._preview

    def _to_trim_preview(self, trimmed: Optional[Tuple[int, int]]) -> Optional[TrimPreview]:
        if trimmed is None:
            return None
        start_slot = time_to_slot_index(minutes_to_time_string(trimmed[0]), self.slots)
        end_slot = time_to_slot_index(minutes_to_time_string(trimmed[1]), self.slots)
        return TrimPreview(start_slot=start_slot, span=max(1, end_slot - start_slot))
