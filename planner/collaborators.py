# planner/collaborators.py

import logging
import datetime as dt
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

from .alternatives import get_alternative_group_key
from .models import (Conflict, ConflictSeverity, ConflictType, EntityKind,
                     EntityRecord, TimeSlot, minutes_to_time_string,
                     parse_time_to_minutes)
from .settings import settings

logger = logging.getLogger(__name__)


# --- Conflict detection ---

class AbstractConflictDetector(ABC):
    """Reports conflicts for a candidate placement."""

    @abstractmethod
    def detect_conflicts(
        self,
        entities: Iterable[EntityRecord],
        date: dt.date,
        start_minutes: int,
        duration_minutes: int,
        identity_key: Optional[str] = None,
        exclude_ids: Sequence[str] = (),
    ) -> List[Conflict]:
        """
        Args:
            entities: Activities scheduled on the candidate day.
            date: Day of the candidate placement.
            start_minutes: Candidate start in minutes since midnight.
            duration_minutes: Candidate duration.
            identity_key: Identity key of the dragged item, if any.
            exclude_ids: Entities to ignore (the dragged item and its group).
        """
        pass


def has_blocking_conflict(conflicts: Iterable[Conflict]) -> bool:
    """True when a high-severity conflict other than a plain time overlap is present."""
    return any(
        conflict.severity == ConflictSeverity.HIGH and conflict.type != ConflictType.TIME_OVERLAP
        for conflict in conflicts
    )


class WindowConflictDetector(AbstractConflictDetector):
    """
    Default detector based on business hours and travel buffers.

    time_overlap (medium): another activity shares part of the range.
    business_hours (high): the range leaves the configured business hours.
    travel_buffer (low): an adjacent activity at a different place leaves
    less than the configured buffer between the two.
    """

    def __init__(
        self,
        business_start: str = settings.BUSINESS_HOURS_START,
        business_end: str = settings.BUSINESS_HOURS_END,
        travel_buffer_minutes: int = settings.TRAVEL_BUFFER_MINUTES,
    ):
        self.business_start = parse_time_to_minutes(business_start)
        self.business_end = parse_time_to_minutes(business_end)
        self.travel_buffer_minutes = travel_buffer_minutes

    def detect_conflicts(
        self,
        entities: Iterable[EntityRecord],
        date: dt.date,
        start_minutes: int,
        duration_minutes: int,
        identity_key: Optional[str] = None,
        exclude_ids: Sequence[str] = (),
    ) -> List[Conflict]:
        end_minutes = start_minutes + max(0, duration_minutes)
        excluded = set(exclude_ids)
        conflicts: List[Conflict] = []

        if start_minutes < self.business_start or end_minutes > self.business_end:
            conflicts.append(Conflict(
                type=ConflictType.BUSINESS_HOURS,
                severity=ConflictSeverity.HIGH,
                message=(f"{minutes_to_time_string(start_minutes)[:5]}-{minutes_to_time_string(end_minutes)[:5]} "
                         f"is outside business hours"),
            ))

        same_day = [
            entity for entity in entities
            if entity.id not in excluded
            and not entity.is_deleted
            and entity.kind == EntityKind.ACTIVITY
            and entity.is_scheduled
            and entity.date == date
        ]

        overlapping = [e.id for e in same_day if e.start_minutes < end_minutes and e.end_minutes > start_minutes]
        if overlapping:
            conflicts.append(Conflict(
                type=ConflictType.TIME_OVERLAP,
                severity=ConflictSeverity.MEDIUM,
                message=f"Overlaps {len(overlapping)} scheduled item(s)",
                entity_ids=overlapping,
            ))

        if self.travel_buffer_minutes > 0:
            too_close = []
            for entity in same_day:
                if entity.id in overlapping:
                    continue
                if identity_key is not None and get_alternative_group_key(entity) == identity_key:
                    continue
                gap = max(entity.start_minutes - end_minutes, start_minutes - entity.end_minutes)
                if 0 <= gap < self.travel_buffer_minutes:
                    too_close.append(entity.id)
            if too_close:
                conflicts.append(Conflict(
                    type=ConflictType.TRAVEL_BUFFER,
                    severity=ConflictSeverity.LOW,
                    message=f"Less than {self.travel_buffer_minutes} minutes of travel time to an adjacent item",
                    entity_ids=too_close,
                ))

        return conflicts


# --- Duration estimation ---

class AbstractDurationEstimator(ABC):
    """Suggests a duration for an item that has no placement yet."""

    @abstractmethod
    def estimate(self, entity: EntityRecord, target_slot: Optional[TimeSlot], target_date: Optional[dt.date]) -> int:
        """Returns the estimated duration in minutes."""
        pass


class DeclaredDurationEstimator(AbstractDurationEstimator):
    """Uses the item's declared duration, then its current length, then the configured default."""

    def __init__(self, default_minutes: int = settings.DEFAULT_ACTIVITY_DURATION_MINUTES):
        self.default_minutes = default_minutes

    def estimate(self, entity: EntityRecord, target_slot: Optional[TimeSlot], target_date: Optional[dt.date]) -> int:
        if entity.duration_hint:
            return entity.duration_hint
        if entity.duration_minutes:
            return entity.duration_minutes
        return self.default_minutes
