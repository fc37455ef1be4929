# planner/resolution.py

import logging
import datetime as dt
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .alternatives import AlternativeGroupResolver, get_alternative_group_key
from .models import (DropMode, EntityKind, EntityRecord, MutationPlan,
                     PlanOperation, ResizeEdge, Slot, SlotMerge,
                     TimeGridConfig, TimeRange)
from .time_grid import snap_duration, snap_to_interval
from .timeline import DayTimeline, ScheduledItem

logger = logging.getLogger(__name__)

MinuteRange = Tuple[int, int]


def trim_range(start: int, end: int, cut_start: int, cut_end: int) -> Optional[MinuteRange]:
    """
    Trims [start, end) so it no longer intersects [cut_start, cut_end).

    Returns the range unchanged when it does not intersect, None when nothing
    usable remains (fully covered, or an edge shrink would leave no time), and
    otherwise the shrunk range. When the cut lies strictly inside the range only
    the longer remaining side is kept; on a tie the earlier side wins.
    """
    if end <= cut_start or start >= cut_end:
        return start, end
    if start >= cut_start and end <= cut_end:
        return None

    if start < cut_start and end > cut_end:
        before = cut_start - start
        after = end - cut_end
        trimmed = (start, cut_start) if before >= after else (cut_end, end)
    elif start < cut_start:
        trimmed = (start, cut_start)
    else:
        trimmed = (cut_end, end)

    if trimmed[1] <= trimmed[0]:
        return None
    return trimmed


class ConflictResolutionEngine:
    """
    Computes the mutations a drop or resize implies.

    Works on a snapshot of entities and slots and never touches external
    state: every public method returns a plan (or a read-only answer).
    Only activities take part in conflicts; notes are never trimmed and never
    become alternatives.
    """

    def __init__(
        self,
        config: TimeGridConfig,
        entities: Iterable[EntityRecord],
        slots: Iterable[Slot] = (),
        resolver: Optional[AlternativeGroupResolver] = None,
    ):
        self.config = config
        entities = list(entities)
        self._entities: Dict[str, EntityRecord] = {entity.id: entity for entity in entities}
        self.resolver = resolver or AlternativeGroupResolver(entities, list(slots))
        self._timelines: Dict[dt.date, DayTimeline] = {}

    @property
    def entities(self) -> List[EntityRecord]:
        return list(self._entities.values())

    def get_entity(self, entity_id: str) -> Optional[EntityRecord]:
        entity = self._entities.get(entity_id)
        if entity is None or entity.is_deleted:
            return None
        return entity

    def timeline_for(self, date: dt.date) -> DayTimeline:
        timeline = self._timelines.get(date)
        if timeline is None:
            timeline = DayTimeline(
                entity for entity in self._entities.values()
                if not entity.is_deleted
                and entity.kind == EntityKind.ACTIVITY
                and entity.is_scheduled
                and entity.date == date
            )
            self._timelines[date] = timeline
        return timeline

    def day_entities(self, date: dt.date) -> List[EntityRecord]:
        """Scheduled activities of one day, in timeline order."""
        return [item.entity for item in self.timeline_for(date).get_all_items()]

    def dragged_group(self, entity_id: str) -> List[str]:
        return self.resolver.resolve_group(entity_id)

    # --- Normalization ---

    def normalize_placement(self, start_minutes: int, duration_minutes: int) -> Optional[MinuteRange]:
        """
        Rounds the duration up to whole intervals, snaps the start to the grid and
        fits the range into the day window.

        The start is shifted backward rather than truncating the duration; only a
        duration longer than the whole window is cut to the window. Returns None
        for a zero-length window.
        """
        day_start = self.config.day_start_minutes
        day_end = self.config.day_end_minutes
        interval = self.config.interval
        window = day_end - day_start
        if window < interval:
            return None

        duration = snap_duration(duration_minutes, interval)
        if duration > window:
            duration = window - window % interval
        start = snap_to_interval(start_minutes, interval)
        start = min(max(start, day_start), day_end - duration)
        return start, start + duration

    # --- Read-only queries ---

    def find_time_overlaps(
        self,
        date: dt.date,
        start_minutes: int,
        end_minutes: int,
        exclude_ids: Sequence[str] = (),
    ) -> List[EntityRecord]:
        return [item.entity for item in self._overlapping_items(date, start_minutes, end_minutes, exclude_ids)]

    def _overlapping_items(self, date: dt.date, start_minutes: int, end_minutes: int, exclude_ids: Sequence[str] = ()) -> List[ScheduledItem]:
        if end_minutes <= start_minutes:
            return []
        excluded = set(exclude_ids)
        return [
            item
            for item in self.timeline_for(date).find_overlapping_items(start_minutes, end_minutes)
            if item.entity.id not in excluded
        ]

    def has_time_overlap(self, entity_id: str, date: dt.date, start_minutes: int, duration_minutes: int) -> bool:
        placement = self.normalize_placement(start_minutes, duration_minutes)
        if placement is None:
            return False
        group = self.dragged_group(entity_id) or [entity_id]
        return bool(self.find_time_overlaps(date, placement[0], placement[1], group))

    def preview_trim(
        self,
        entity_id: str,
        date: dt.date,
        start_minutes: int,
        duration_minutes: int,
    ) -> Dict[str, Optional[MinuteRange]]:
        """Returns the new range (or None) of every entity a trim drop would change."""
        placement = self.normalize_placement(start_minutes, duration_minutes)
        if placement is None:
            return {}
        group = self.dragged_group(entity_id) or [entity_id]
        return self._trim_overlapping(date, placement, group)

    def _trim_overlapping(self, date: dt.date, placement: MinuteRange, group: List[str]) -> Dict[str, Optional[MinuteRange]]:
        cut_start, cut_end = placement
        results: Dict[str, Optional[MinuteRange]] = {}
        for other in self.find_time_overlaps(date, cut_start, cut_end, group):
            current = (other.start_minutes, other.end_minutes)
            trimmed = trim_range(current[0], current[1], cut_start, cut_end)
            if trimmed != current:
                results[other.id] = trimmed
        return results

    # --- Plans ---

    def plan_drop(
        self,
        entity_id: str,
        date: dt.date,
        start_minutes: int,
        duration_minutes: int,
        mode: DropMode,
    ) -> MutationPlan:
        """
        Plans a drop of the entity (and its alternative group) at the given start.

        Unknown ids and a degenerate day window produce an empty plan.
        """
        entity = self.get_entity(entity_id)
        if entity is None:
            logger.warning(f"Cannot plan drop for unknown entity {entity_id}")
            return MutationPlan(mode=mode)
        placement = self.normalize_placement(start_minutes, duration_minutes)
        if placement is None:
            logger.warning("Cannot plan drop: the grid has no usable day window")
            return MutationPlan(mode=mode)

        group = self.dragged_group(entity_id) or [entity_id]
        if entity.kind == EntityKind.NOTE:
            return self._plan_plain(group, date, placement, DropMode.OVERLAP)
        if mode == DropMode.TRIM:
            return self._plan_trim(group, date, placement)
        return self._plan_overlap(group, date, placement)

    def _plan_plain(self, group: List[str], date: dt.date, placement: MinuteRange, mode: DropMode) -> MutationPlan:
        new_range = TimeRange.from_minutes(date, *placement)
        return MutationPlan(
            operation=PlanOperation.MOVE,
            mode=mode,
            dragged_ids=list(group),
            changes={member_id: new_range for member_id in group},
        )

    def _plan_trim(self, group: List[str], date: dt.date, placement: MinuteRange) -> MutationPlan:
        plan = self._plan_plain(group, date, placement, DropMode.TRIM)
        for other_id, trimmed in self._trim_overlapping(date, placement, group).items():
            plan.changes[other_id] = TimeRange.from_minutes(date, *trimmed) if trimmed else None
        logger.debug(f"Trim plan for {group}: {plan.changes}")
        return plan

    def _plan_overlap(self, group: List[str], date: dt.date, placement: MinuteRange) -> MutationPlan:
        target = self.find_merge_candidate(group, date, placement)
        if target is None:
            logger.info(f"No eligible alternative target for {group}; placing without grouping")
            return self._plan_plain(group, date, placement, DropMode.OVERLAP)

        slot = self.resolver.valid_slot_for_entity(target.id)
        target_range = slot.time_range() if slot is not None else target.time_range()
        return MutationPlan(
            operation=PlanOperation.MOVE,
            mode=DropMode.OVERLAP,
            dragged_ids=list(group),
            changes={member_id: target_range for member_id in group},
            merge=SlotMerge(
                target_entity_id=target.id,
                target_slot_id=slot.slot_id if slot is not None else None,
                merge_entity_ids=list(group),
            ),
        )

    def find_merge_candidate(self, group: List[str], date: dt.date, placement: MinuteRange) -> Optional[EntityRecord]:
        """
        Picks the overlapping activity sharing the most time with the placement.

        Candidates whose own alternative group contains an identity key of the
        dragged group are skipped. Ties go to the earliest candidate on the timeline.
        """
        dragged_keys = {get_alternative_group_key(self._entities.get(member_id)) for member_id in group}
        dragged_keys.discard(None)

        best: Optional[EntityRecord] = None
        best_overlap = 0
        for item in self._overlapping_items(date, placement[0], placement[1], group):
            candidate = item.entity
            candidate_group = self.resolver.resolve_group(candidate.id) or [candidate.id]
            candidate_keys = {get_alternative_group_key(self._entities.get(member_id)) for member_id in candidate_group}
            if dragged_keys & candidate_keys:
                logger.debug(f"Skipping {candidate.id}: same identity as the dragged group")
                continue
            overlap = item.overlap_minutes(*placement)
            if overlap > best_overlap:
                best, best_overlap = candidate, overlap
        return best

    def plan_resize(self, entity_id: str, new_duration: int, edge: ResizeEdge) -> MutationPlan:
        """
        Plans a resize from the top or bottom handle for the entity's whole group.

        The duration snaps to the nearest interval multiple, never below one
        interval; the held edge stays fixed and the moved edge is clamped to the day
        window. A resize that changes nothing produces an empty plan.
        """
        entity = self.get_entity(entity_id)
        if entity is None or not entity.is_scheduled:
            logger.warning(f"Cannot plan resize for unknown or unscheduled entity {entity_id}")
            return MutationPlan(operation=PlanOperation.RESIZE)

        interval = self.config.interval
        day_start = self.config.day_start_minutes
        day_end = self.config.day_end_minutes
        if day_end - day_start < interval:
            return MutationPlan(operation=PlanOperation.RESIZE)

        duration = snap_duration(new_duration, interval, round_up=False)
        if edge == ResizeEdge.BOTTOM:
            anchor = min(max(entity.start_minutes, day_start), day_end - interval)
            room = day_end - anchor
            duration = min(duration, room - room % interval)
            new_start, new_end = anchor, anchor + duration
        else:
            anchor = max(min(entity.end_minutes, day_end), day_start + interval)
            room = anchor - day_start
            duration = min(duration, room - room % interval)
            new_start, new_end = anchor - duration, anchor

        if (new_start, new_end) == (entity.start_minutes, entity.end_minutes):
            return MutationPlan(operation=PlanOperation.RESIZE)

        group = self.dragged_group(entity_id) or [entity_id]
        new_range = TimeRange.from_minutes(entity.date, new_start, new_end)
        return MutationPlan(
            operation=PlanOperation.RESIZE,
            dragged_ids=list(group),
            changes={member_id: new_range for member_id in group},
        )
