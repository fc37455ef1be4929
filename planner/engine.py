# planner/engine.py

import logging
import datetime as dt
from typing import List, Optional

from .alternatives import AlternativeGroupResolver
from .collaborators import (AbstractConflictDetector, AbstractDurationEstimator,
                            DeclaredDurationEstimator, WindowConflictDetector)
from .commit import CommitOutcome, CommitPipeline, CommitResult
from .drag import DragInteractionController
from .models import (DragEvent, DragOverInfo, EntityRecord, MutationPlan,
                     ResizeEdge, TimeGridConfig, TimeSlot)
from .notifications import AbstractNotificationSink, LoggingNotificationSink
from .projector import ProjectionResult, build_view_days, project_entities
from .resolution import ConflictResolutionEngine
from .settings import settings
from .state import ScheduleState
from .store import AbstractEntityStore
from .time_grid import build_slots, pixel_delta_to_slots

logger = logging.getLogger(__name__)


class SchedulingEngine:
    """
    Entry point for placing, moving and resizing items on one itinerary's grid.

    Wires the drag controller, the conflict resolution engine and the commit
    pipeline around a local ScheduleState loaded from the entity store. Errors
    never propagate to the caller: invalid ids and failed saves come back as a
    failed CommitResult together with a notification.
    """

    def __init__(
        self,
        store: AbstractEntityStore,
        config: Optional[TimeGridConfig] = None,
        view_start: Optional[dt.date] = None,
        num_days: int = settings.DEFAULT_VIEW_DAYS,
        conflict_detector: Optional[AbstractConflictDetector] = None,
        duration_estimator: Optional[AbstractDurationEstimator] = None,
        notifier: Optional[AbstractNotificationSink] = None,
    ):
        self.store = store
        self.config = config or TimeGridConfig.from_settings()
        self.slots: List[TimeSlot] = build_slots(self.config)
        self.conflict_detector = conflict_detector or WindowConflictDetector()
        self.duration_estimator = duration_estimator or DeclaredDurationEstimator()
        self.notifier = notifier or LoggingNotificationSink()
        self.state = ScheduleState()
        self.commit_pipeline = CommitPipeline(self.state, store, self.notifier)
        self._view_start = view_start
        self.num_days = num_days
        self.days: List[dt.date] = []
        self.controller = self._new_controller()

    def _new_controller(self) -> DragInteractionController:
        self.days = build_view_days(self._view_start or dt.date.today(), self.num_days)
        return DragInteractionController(
            self.config, self.slots, self.days, self.conflict_detector, self.duration_estimator,
        )

    async def load(self) -> None:
        """Reads the current snapshot from the store; the view starts at the earliest scheduled day if none was set."""
        snapshot = await self.store.load_snapshot()
        self.state.restore(snapshot)
        if self._view_start is None:
            dates = [entity.date for entity in snapshot.entities if entity.date is not None and not entity.is_deleted]
            if dates:
                self._view_start = min(dates)
        self.controller = self._new_controller()
        logger.info(f"Loaded {len(snapshot.entities)} entities and {len(snapshot.slots)} slots")

    def set_view(self, view_start: dt.date, num_days: Optional[int] = None) -> None:
        if self.controller.is_dragging:
            self.controller.on_drag_cancel()
        self._view_start = view_start
        if num_days is not None:
            self.num_days = num_days
        self.controller = self._new_controller()

    def resolution(self) -> ConflictResolutionEngine:
        return ConflictResolutionEngine(self.config, self.state.entities, self.state.slots)

    # --- Read-only state ---

    @property
    def drag_over_info(self) -> Optional[DragOverInfo]:
        return self.controller.drag_over_info

    @property
    def is_saving(self) -> bool:
        return self.commit_pipeline.is_saving

    @property
    def active_entity(self) -> Optional[EntityRecord]:
        return self.controller.active_entity

    @property
    def active_group(self) -> List[str]:
        return self.controller.active_group

    def projection(self) -> ProjectionResult:
        entities = self.state.entities
        resolver = AlternativeGroupResolver(entities, self.state.slots)
        return project_entities(entities, self.days, self.slots, resolver)

    # --- Gestures ---

    def on_drag_start(self, event: DragEvent) -> bool:
        if self.is_saving:
            logger.warning(f"Ignoring drag start for {event.active_id}: a change is still being saved")
            return False
        resolution = self.resolution()
        if resolution.get_entity(event.active_id) is None:
            self.notifier.error("That item could not be found.")
            return False
        return self.controller.on_drag_start(event, resolution)

    def on_drag_over(self, event: DragEvent) -> Optional[DragOverInfo]:
        return self.controller.on_drag_over(event)

    def on_drag_move(self, event: DragEvent) -> Optional[DragOverInfo]:
        return self.controller.on_drag_move(event)

    def on_drag_cancel(self, event: Optional[DragEvent] = None) -> None:
        self.controller.on_drag_cancel(event)

    async def on_drag_end(self, event: DragEvent) -> Optional[CommitResult]:
        """Resolves and commits the drop; None when the gesture ended outside the grid."""
        request = self.controller.on_drag_end(event)
        if request is None:
            return None
        plan = self.resolution().plan_drop(
            request.entity_id, request.date, request.start_minutes, request.duration_minutes, request.mode,
        )
        if plan.is_empty:
            return self._rejected(request.entity_id, plan)
        return await self.commit_pipeline.commit(plan)

    # --- Resize ---

    async def resize(self, entity_id: str, new_duration: int, edge: ResizeEdge) -> CommitResult:
        """Resizes the entity and every alternative sharing its slot."""
        resolution = self.resolution()
        entity = resolution.get_entity(entity_id)
        if entity is None or not entity.is_scheduled:
            return self._rejected(entity_id, MutationPlan())
        plan = resolution.plan_resize(entity_id, new_duration, edge)
        return await self.commit_pipeline.commit(plan)

    async def resize_by_pixels(self, entity_id: str, delta_px: float, edge: ResizeEdge) -> CommitResult:
        """
        Resizes from a vertical handle drag of `delta_px` pixels.

        Dragging the bottom handle down grows the entity; dragging the top handle
        down shrinks it.
        """
        entity = self.state.get_entity(entity_id)
        if entity is None or entity.is_deleted or not entity.is_scheduled:
            return self._rejected(entity_id, MutationPlan())
        delta_slots = pixel_delta_to_slots(delta_px, self.config.interval)
        if edge == ResizeEdge.TOP:
            delta_slots = -delta_slots
        new_duration = entity.duration_minutes + delta_slots * self.config.interval
        return await self.resize(entity_id, new_duration, edge)

    def _rejected(self, entity_id: str, plan: MutationPlan) -> CommitResult:
        logger.warning(f"Rejected change for {entity_id}: item not found or not placeable")
        message = "That item could not be found."
        self.notifier.error(message)
        return CommitResult(success=False, outcome=CommitOutcome.REJECTED, message=message, plan=plan)
