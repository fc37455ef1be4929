# planner/projector.py

import logging
import datetime as dt
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from .alternatives import AlternativeGroupResolver
from .models import (AllDayMarker, EntityRecord, GridPosition,
                     ScheduledEntity, TimeSlot)
from .time_grid import time_to_slot_index

logger = logging.getLogger(__name__)


class ProjectionResult(BaseModel):
    """Entities placed on the slotted grid plus the all-day markers of the view."""
    scheduled: List[ScheduledEntity] = Field(default_factory=list)
    all_day: List[AllDayMarker] = Field(default_factory=list)


def build_view_days(start_date: dt.date, num_days: int) -> List[dt.date]:
    return [start_date + dt.timedelta(days=offset) for offset in range(max(0, num_days))]


def project_entity(
    entity: EntityRecord,
    day_index: int,
    slots: Sequence[TimeSlot],
) -> Optional[ScheduledEntity]:
    """Places one timed entity on the grid; returns None when the grid is empty."""
    if not slots:
        return None
    start_slot = time_to_slot_index(entity.start_time, slots)
    end_slot = time_to_slot_index(entity.end_time, slots)
    span = max(1, end_slot - start_slot)

    # Keep start_slot + span within the grid, never negative.
    start_slot = max(0, min(start_slot, len(slots) - 1))
    span = max(1, min(span, len(slots) - start_slot))

    return ScheduledEntity(
        id=entity.id,
        kind=entity.kind,
        date=entity.date,
        start_time=entity.start_time,
        end_time=entity.end_time,
        duration=entity.duration_minutes,
        position=GridPosition(day=day_index, start_slot=start_slot, span=span),
        place_id=entity.place_id,
        activity_id=entity.activity_id,
        title=entity.title,
    )


def project_entities(
    entities: Iterable[EntityRecord],
    days: Sequence[dt.date],
    slots: Sequence[TimeSlot],
    resolver: Optional[AlternativeGroupResolver] = None,
) -> ProjectionResult:
    """
    Projects entity records onto the visible days of the grid.

    Records outside the view, deleted records and records without a date are
    skipped. Records without start and end become all-day markers. Only the
    primary member of an alternative slot is placed on the grid.
    """
    entities = list(entities)
    if resolver is None:
        resolver = AlternativeGroupResolver(entities)
    day_lookup: Dict[dt.date, int] = {day: index for index, day in enumerate(days)}
    result = ProjectionResult()

    for entity in entities:
        if entity.is_deleted or entity.date is None:
            continue
        day_index = day_lookup.get(entity.date)
        if day_index is None:
            continue

        if entity.start_time is None and entity.end_time is None:
            result.all_day.append(AllDayMarker(id=entity.id, date=entity.date, day=day_index, title=entity.title))
            continue
        if not entity.has_times:
            logger.debug(f"Skipping {entity.id}: only one of start/end is set")
            continue
        if not resolver.is_primary(entity.id):
            continue

        projected = project_entity(entity, day_index, slots)
        if projected is not None:
            result.scheduled.append(projected)

    logger.debug(f"Projected {len(result.scheduled)} entities and {len(result.all_day)} all-day markers")
    return result
