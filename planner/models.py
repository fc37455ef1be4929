# planner/models.py
import datetime as dt
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import (BaseModel, ConfigDict, Field, field_validator,
                      model_validator)

from .settings import settings

MINUTES_PER_DAY = 24 * 60
ALLOWED_INTERVALS = (15, 30, 60)


# --- Time helpers ---

def parse_time_to_minutes(value: Union[str, dt.time]) -> int:
    """
    Converts a time value to minutes since midnight.

    Accepts "H:MM", "HH:MM" and "HH:MM:SS" strings (seconds are ignored) and
    datetime.time objects. "24:00" is accepted as the legacy end-of-day value.

    Raises:
        ValueError: If the value cannot be interpreted as a time of day.
    """
    if isinstance(value, dt.time):
        return value.hour * 60 + value.minute
    parts = str(value).strip().split(':')
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time string: {value!r}")
    try:
        hours, minutes = int(parts[0]), int(parts[1])
        seconds = int(parts[2]) if len(parts) == 3 else 0
    except ValueError:
        raise ValueError(f"Invalid time string: {value!r}")
    if not (0 <= minutes < 60 and 0 <= seconds < 60):
        raise ValueError(f"Invalid time string: {value!r}")
    total = hours * 60 + minutes
    if total < 0 or total > MINUTES_PER_DAY or (total == MINUTES_PER_DAY and seconds):
        raise ValueError(f"Time out of range: {value!r}")
    return total


def minutes_to_time_string(minutes: int) -> str:
    """Formats minutes since midnight as 'HH:MM:SS'."""
    minutes = max(0, min(int(minutes), MINUTES_PER_DAY))
    return f"{minutes // 60:02d}:{minutes % 60:02d}:00"


def normalize_time_string(value: Union[str, dt.time]) -> str:
    return minutes_to_time_string(parse_time_to_minutes(value))


# --- Enums ---

class EntityKind(str, Enum):
    """What a calendar entity represents."""
    ACTIVITY = "activity"
    NOTE = "note"  # freeform note/custom event; never trims and never joins slots


class DragItemType(str, Enum):
    """Declared type of the item being dragged."""
    SCHEDULED = "scheduled"  # already placed on the grid
    UNPLACED = "unplaced"    # backlog item without a placement
    NOTE = "note"


class DropMode(str, Enum):
    """How a drop resolves time conflicts."""
    TRIM = "trim"
    OVERLAP = "overlap"


class ResizeEdge(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"


class PlanOperation(str, Enum):
    MOVE = "move"
    RESIZE = "resize"


class ConflictSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ConflictType(str, Enum):
    TIME_OVERLAP = "time_overlap"
    BUSINESS_HOURS = "business_hours"
    TRAVEL_BUFFER = "travel_buffer"


# --- Grid ---

class TimeGridConfig(BaseModel):
    """Configuration of the discrete time grid shown for each day."""
    interval: int = Field(30, description="Slot length in minutes (15, 30 or 60).")
    start_hour: int = Field(6, ge=0, le=23, description="First hour shown on the grid.")
    end_hour: int = Field(23, ge=0, le=23, description="Last hour shown on the grid (inclusive).")

    @field_validator('interval')
    @classmethod
    def check_interval(cls, v: int) -> int:
        if v not in ALLOWED_INTERVALS:
            raise ValueError(f"interval must be one of {ALLOWED_INTERVALS}")
        return v

    @model_validator(mode='after')
    def check_hours(self):
        if self.start_hour > self.end_hour:
            raise ValueError("start_hour must not be after end_hour")
        return self

    @property
    def day_start_minutes(self) -> int:
        return self.start_hour * 60

    @property
    def day_end_minutes(self) -> int:
        # The last slot starts at end_hour:(60 - interval), so the grid closes on the next hour.
        return (self.end_hour + 1) * 60

    @classmethod
    def from_settings(cls) -> "TimeGridConfig":
        return cls(
            interval=settings.GRID_INTERVAL_MINUTES,
            start_hour=settings.GRID_START_HOUR,
            end_hour=settings.GRID_END_HOUR,
        )


class TimeSlot(BaseModel):
    """One discrete point on the grid."""
    hour: int
    minute: int
    label: str
    is_hour: bool

    @property
    def minutes(self) -> int:
        return self.hour * 60 + self.minute

    @property
    def time_string(self) -> str:
        return minutes_to_time_string(self.minutes)


# --- Stored records ---

class EntityRecord(BaseModel):
    """An activity or note as held by the entity store."""
    id: str = Field(..., description="Unique identifier of the scheduled entity.")
    kind: EntityKind = Field(EntityKind.ACTIVITY, description="Activity or freeform note.")
    date: Optional[dt.date] = Field(None, description="Scheduled day, None for unplaced items.")
    start_time: Optional[str] = Field(None, description="Start time as HH:MM:SS.")
    end_time: Optional[str] = Field(None, description="End time as HH:MM:SS.")
    place_id: Optional[str] = Field(None, description="Underlying place identity.")
    activity_id: Optional[str] = Field(None, description="Underlying activity identity.")
    title: Optional[str] = None
    duration_hint: Optional[int] = Field(None, gt=0, description="Declared duration in minutes, if known.")
    deleted_at: Optional[dt.datetime] = None

    @field_validator('id', 'place_id', 'activity_id', mode='before')
    @classmethod
    def coerce_identifier(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def normalize_time(cls, v):
        if v is None or v == "":
            return None
        return normalize_time_string(v)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def has_times(self) -> bool:
        return self.start_time is not None and self.end_time is not None

    @property
    def is_scheduled(self) -> bool:
        return self.date is not None and self.has_times

    @property
    def start_minutes(self) -> Optional[int]:
        return parse_time_to_minutes(self.start_time) if self.start_time else None

    @property
    def end_minutes(self) -> Optional[int]:
        return parse_time_to_minutes(self.end_time) if self.end_time else None

    @property
    def duration_minutes(self) -> Optional[int]:
        if not self.has_times:
            return None
        return max(0, self.end_minutes - self.start_minutes)

    def time_range(self) -> Optional["TimeRange"]:
        if not self.is_scheduled:
            return None
        return TimeRange(date=self.date, start_time=self.start_time, end_time=self.end_time)


class Slot(BaseModel):
    """A time window hosting mutually-exclusive alternative activities."""
    slot_id: str
    date: dt.date
    start_time: str
    end_time: str
    primary_entity_id: Optional[str] = None
    member_entity_ids: List[str] = Field(default_factory=list)

    @field_validator('slot_id', 'primary_entity_id', mode='before')
    @classmethod
    def coerce_identifier(cls, v):
        return None if v is None else str(v).strip()

    @field_validator('member_entity_ids', mode='before')
    @classmethod
    def coerce_members(cls, v):
        members = []
        for item in v or []:
            item = str(item).strip()
            if item and item not in members:
                members.append(item)
        return members

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def normalize_time(cls, v):
        return normalize_time_string(v)

    @property
    def primary_id(self) -> Optional[str]:
        if self.primary_entity_id:
            return self.primary_entity_id
        return self.member_entity_ids[0] if self.member_entity_ids else None

    def time_range(self) -> "TimeRange":
        return TimeRange(date=self.date, start_time=self.start_time, end_time=self.end_time)


class SlotOption(BaseModel):
    slot_option_id: str
    slot_id: str
    entity_id: str


class MergeResult(BaseModel):
    """What the store returns after joining entities into a slot."""
    slot: Slot
    slot_options: List[SlotOption] = Field(default_factory=list)
    removed_slot_ids: List[str] = Field(default_factory=list)


# --- Projection ---

class GridPosition(BaseModel):
    day: int = Field(..., ge=0, description="Day column index.")
    start_slot: int = Field(..., ge=0)
    span: int = Field(..., ge=1)


class ScheduledEntity(BaseModel):
    """An entity positioned on the slotted grid."""
    id: str
    kind: EntityKind = EntityKind.ACTIVITY
    date: dt.date
    start_time: str
    end_time: str
    duration: int = Field(..., ge=0, description="Minutes between start and end.")
    position: GridPosition
    place_id: Optional[str] = None
    activity_id: Optional[str] = None
    title: Optional[str] = None


class AllDayMarker(BaseModel):
    id: str
    date: dt.date
    day: int
    title: Optional[str] = None


# --- Plans ---

class TimeRange(BaseModel):
    """A concrete placement: date plus start and end time."""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    start_time: str
    end_time: str

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def normalize_time(cls, v):
        return normalize_time_string(v)

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.end_time)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    @classmethod
    def from_minutes(cls, date: dt.date, start: int, end: int) -> "TimeRange":
        return cls(date=date, start_time=minutes_to_time_string(start), end_time=minutes_to_time_string(end))


class SlotMerge(BaseModel):
    """Entities to re-parent as alternatives under the target's slot."""
    target_entity_id: str
    target_slot_id: Optional[str] = Field(None, description="Existing slot of the target, None to create one.")
    merge_entity_ids: List[str] = Field(default_factory=list)


class MutationPlan(BaseModel):
    """
    Every placement change implied by one drop or resize.

    `changes` maps entity ids to their new placement; a None value unschedules
    the entity (it keeps its identity but loses its placement).
    """
    operation: PlanOperation = PlanOperation.MOVE
    mode: Optional[DropMode] = None
    dragged_ids: List[str] = Field(default_factory=list)
    changes: Dict[str, Optional[TimeRange]] = Field(default_factory=dict)
    merge: Optional[SlotMerge] = None

    @property
    def is_empty(self) -> bool:
        return not self.changes and self.merge is None

    @property
    def trimmed_ids(self) -> List[str]:
        return [entity_id for entity_id in self.changes if entity_id not in self.dragged_ids]

    @property
    def unscheduled_ids(self) -> List[str]:
        return [entity_id for entity_id, value in self.changes.items() if value is None]


# --- Drag interaction ---

class ColumnRect(BaseModel):
    """Horizontal extent of the hovered day column, in pixels."""
    left: float
    width: float = Field(..., ge=0)

    @property
    def midpoint(self) -> float:
        return self.left + self.width / 2


class DragEvent(BaseModel):
    """One drag signal (start/over/move/end/cancel) from the pointer layer."""
    active_id: str
    item_type: DragItemType = DragItemType.SCHEDULED
    over_id: Optional[str] = Field(None, description="Hovered drop zone, e.g. 'slot-2-14'.")
    pointer_x: Optional[float] = None
    column_rect: Optional[ColumnRect] = None

    @field_validator('active_id', mode='before')
    @classmethod
    def coerce_identifier(cls, v):
        return str(v).strip()


class TrimPreview(BaseModel):
    start_slot: int
    span: int


class DragOverInfo(BaseModel):
    """Live description of the candidate drop for the active gesture."""
    day_index: int
    slot_index: int
    span_slots: int
    has_conflict: bool = False
    mode: DropMode = DropMode.TRIM
    has_time_overlap: bool = False
    trim_preview_by_id: Dict[str, Optional[TrimPreview]] = Field(default_factory=dict)


class DropRequest(BaseModel):
    """A finalized drop handed from the drag controller to the resolution engine."""
    entity_id: str
    item_type: DragItemType
    date: dt.date
    day_index: int
    slot_index: int
    start_minutes: int
    duration_minutes: int
    mode: DropMode


class Conflict(BaseModel):
    """A conflict reported by a conflict detector."""
    type: ConflictType
    severity: ConflictSeverity
    message: str
    entity_ids: List[str] = Field(default_factory=list)


class ScheduleSnapshot(BaseModel):
    """Every entity and slot of one itinerary at a point in time."""
    entities: List[EntityRecord] = Field(default_factory=list)
    slots: List[Slot] = Field(default_factory=list)
