# planner/schedule_router.py

import logging
import datetime as dt
from enum import Enum
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator

from .commit import CommitResult
from .db import DynamoEntityStore
from .engine import SchedulingEngine
from .models import (AllDayMarker, DragEvent, DragOverInfo, EntityRecord,
                     ResizeEdge, ScheduledEntity, TimeSlot)
from .notifications import CollectingNotificationSink, Notification
from .settings import settings
from .store import (AbstractEntityStore, EntityNotFoundError,
                    InMemoryEntityStore, StoreError)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/schedule",
    tags=["Schedule"],
)


# --- Request / Response Models ---

class DragPhase(str, Enum):
    START = "start"
    OVER = "over"
    MOVE = "move"
    END = "end"
    CANCEL = "cancel"


class GridResponse(BaseModel):
    itinerary_id: str
    interval: int = Field(..., description="Slot length in minutes")
    days: List[dt.date]
    slots: List[TimeSlot]
    scheduled: List[ScheduledEntity]
    all_day: List[AllDayMarker]


class DragResponse(BaseModel):
    itinerary_id: str
    phase: DragPhase
    accepted: bool = Field(True, description="False when the signal was ignored")
    preview: Optional[DragOverInfo] = None
    result: Optional[CommitResult] = Field(None, description="Commit outcome, only for the end phase")
    notifications: List[Notification] = Field(default_factory=list)


class ResizeRequest(BaseModel):
    entity_id: str
    edge: ResizeEdge = ResizeEdge.BOTTOM
    new_duration: Optional[int] = Field(None, gt=0, description="Requested duration in minutes")
    delta_px: Optional[float] = Field(None, description="Vertical handle movement in pixels")

    @model_validator(mode='after')
    def check_one_input(self):
        if (self.new_duration is None) == (self.delta_px is None):
            raise ValueError("Provide exactly one of new_duration or delta_px")
        return self


class CommitResponse(BaseModel):
    itinerary_id: str
    result: CommitResult
    notifications: List[Notification] = Field(default_factory=list)


class PreviewResponse(BaseModel):
    itinerary_id: str
    preview: Optional[DragOverInfo] = None
    is_saving: bool
    active_entity: Optional[EntityRecord] = None
    active_group: List[str] = Field(default_factory=list)


# --- Engine registry ---

class EngineRegistry:
    """Keeps one SchedulingEngine per itinerary for the lifetime of the process."""

    def __init__(self):
        self._engines: Dict[str, SchedulingEngine] = {}
        self._memory_stores: Dict[str, InMemoryEntityStore] = {}

    def register_memory_store(self, itinerary_id: str, store: InMemoryEntityStore) -> None:
        self._memory_stores[itinerary_id] = store
        self._engines.pop(itinerary_id, None)

    def store_for(self, itinerary_id: str) -> AbstractEntityStore:
        """
        Returns the entity store for the itinerary.

        The implementation is selected by the STORE_BACKEND setting.
        """
        backend = settings.STORE_BACKEND.lower()
        if backend == "memory":
            store = self._memory_stores.get(itinerary_id)
            if store is None:
                raise EntityNotFoundError(f"Itinerary {itinerary_id} not found")
            return store
        if backend == "dynamodb":
            return DynamoEntityStore(itinerary_id)
        raise ValueError(f"Store backend '{backend}' not supported")

    async def get(self, itinerary_id: str) -> SchedulingEngine:
        engine = self._engines.get(itinerary_id)
        if engine is None:
            engine = SchedulingEngine(self.store_for(itinerary_id), notifier=CollectingNotificationSink())
            await engine.load()
            if not engine.state.entities:
                raise EntityNotFoundError(f"Itinerary {itinerary_id} has no entities")
            self._engines[itinerary_id] = engine
        return engine

    def clear(self) -> None:
        self._engines.clear()
        self._memory_stores.clear()


registry = EngineRegistry()


async def get_engine(itinerary_id: str) -> SchedulingEngine:
    try:
        return await registry.get(itinerary_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        logger.error(f"Cannot build engine for {itinerary_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except StoreError as e:
        logger.error(f"Cannot load itinerary {itinerary_id}: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Itinerary store unavailable")


def _drain(engine: SchedulingEngine) -> List[Notification]:
    if isinstance(engine.notifier, CollectingNotificationSink):
        return engine.notifier.drain()
    return []


def _require_entity(engine: SchedulingEngine, entity_id: str) -> None:
    entity = engine.state.get_entity(entity_id)
    if entity is None or entity.is_deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Entity {entity_id} not found")


# --- Endpoints ---

@router.get("/{itinerary_id}/grid", response_model=GridResponse)
async def get_grid(
    itinerary_id: str,
    start_date: Optional[dt.date] = Query(None, description="First visible day"),
    days: Optional[int] = Query(None, ge=1, le=31, description="Number of visible days"),
    engine: SchedulingEngine = Depends(get_engine),
):
    """Returns the slots of the grid and every entity projected onto the visible days."""
    if start_date is not None or days is not None:
        engine.set_view(start_date or engine.days[0], days)
    projection = engine.projection()
    return GridResponse(
        itinerary_id=itinerary_id,
        interval=engine.config.interval,
        days=engine.days,
        slots=engine.slots,
        scheduled=projection.scheduled,
        all_day=projection.all_day,
    )


@router.post("/{itinerary_id}/drag/{phase}", response_model=DragResponse)
async def drag(
    itinerary_id: str,
    phase: DragPhase,
    event: DragEvent,
    engine: SchedulingEngine = Depends(get_engine),
):
    """Feeds one drag signal to the engine; the end phase resolves and commits the drop."""
    accepted = True
    result = None
    if phase == DragPhase.START:
        _require_entity(engine, event.active_id)
        accepted = engine.on_drag_start(event)
    elif phase in (DragPhase.OVER, DragPhase.MOVE):
        handler = engine.on_drag_over if phase == DragPhase.OVER else engine.on_drag_move
        accepted = handler(event) is not None
    elif phase == DragPhase.END:
        result = await engine.on_drag_end(event)
        accepted = result is not None
    else:
        engine.on_drag_cancel(event)

    return DragResponse(
        itinerary_id=itinerary_id,
        phase=phase,
        accepted=accepted,
        preview=engine.drag_over_info,
        result=result,
        notifications=_drain(engine),
    )


@router.post("/{itinerary_id}/resize", response_model=CommitResponse)
async def resize(
    itinerary_id: str,
    request: ResizeRequest,
    engine: SchedulingEngine = Depends(get_engine),
):
    """Resizes an entity (and its alternatives) by minutes or by a pixel delta."""
    _require_entity(engine, request.entity_id)
    if request.new_duration is not None:
        result = await engine.resize(request.entity_id, request.new_duration, request.edge)
    else:
        result = await engine.resize_by_pixels(request.entity_id, request.delta_px, request.edge)
    return CommitResponse(itinerary_id=itinerary_id, result=result, notifications=_drain(engine))


@router.get("/{itinerary_id}/preview", response_model=PreviewResponse)
async def get_preview(itinerary_id: str, engine: SchedulingEngine = Depends(get_engine)):
    return PreviewResponse(
        itinerary_id=itinerary_id,
        preview=engine.drag_over_info,
        is_saving=engine.is_saving,
        active_entity=engine.active_entity,
        active_group=engine.active_group,
    )
