# planner/commit.py

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .alternatives import AlternativeGroupResolver
from .models import (EntityRecord, MutationPlan, PlanOperation,
                     ScheduleSnapshot, Slot, SlotMerge, TimeRange)
from .notifications import AbstractNotificationSink
from .saga import Saga, SagaError
from .state import ScheduleState
from .store import AbstractEntityStore

logger = logging.getLogger(__name__)


class CommitOutcome(str, Enum):
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    SKIPPED = "skipped"  # another commit was still in flight
    NOTHING_TO_DO = "nothing_to_do"
    REJECTED = "rejected"  # the dragged or targeted entity could not be resolved


class CommitResult(BaseModel):
    success: bool
    outcome: CommitOutcome
    message: str
    plan: Optional[MutationPlan] = None
    trimmed_ids: List[str] = Field(default_factory=list)
    unscheduled_ids: List[str] = Field(default_factory=list)
    slot_id: Optional[str] = None
    error: Optional[str] = None


def _uniform_range(plan: MutationPlan, entity_ids: Iterable[str]) -> Optional[TimeRange]:
    """The single non-null range every id receives in the plan, else None."""
    ranges = [plan.changes.get(entity_id) for entity_id in entity_ids]
    if not ranges or any(r is None for r in ranges):
        return None
    if all(r == ranges[0] for r in ranges):
        return ranges[0]
    return None


class CommitPipeline:
    """
    Applies a MutationPlan optimistically and persists it as one saga.

    Writes run one at a time: the dragged slot (or the dragged entities), then
    every trimmed entity, then the slot merge. If any write fails, the writes
    already done are undone in reverse order and the local state goes back to
    the snapshot taken before the plan was applied.
    """

    def __init__(self, state: ScheduleState, store: AbstractEntityStore, notifier: AbstractNotificationSink):
        self.state = state
        self.store = store
        self.notifier = notifier
        self._saving = False

    @property
    def is_saving(self) -> bool:
        return self._saving

    async def commit(self, plan: MutationPlan) -> CommitResult:
        if self._saving:
            logger.warning("Rejecting commit: another change is still being saved")
            return CommitResult(success=False, outcome=CommitOutcome.SKIPPED,
                                message="Another change is still being saved", plan=plan)
        if plan.is_empty:
            return CommitResult(success=True, outcome=CommitOutcome.NOTHING_TO_DO,
                                message="Nothing to change", plan=plan)

        self._saving = True
        try:
            before = self.state.snapshot()
            resolver = AlternativeGroupResolver(before.entities, before.slots)
            provisional_slot_id = self.state.apply_plan(plan)
            saga = self._build_saga(plan, before, resolver, provisional_slot_id)
            logger.info(f"Committing {plan.operation.value} of {plan.dragged_ids} in {len(saga)} step(s)")

            try:
                results = await saga.execute()
            except SagaError as e:
                self.state.restore(before)
                if e.compensation_errors:
                    logger.error(f"Rollback incomplete for {plan.dragged_ids}: {e.compensation_errors}")
                logger.info(f"Rolled back {plan.operation.value} of {plan.dragged_ids} after '{e.step}' failed")
                message = "Could not save the change. It has been undone."
                self.notifier.error(message)
                return CommitResult(success=False, outcome=CommitOutcome.ROLLED_BACK, message=message,
                                    plan=plan, error=str(e.cause))

            slot_id = None
            if plan.merge is not None and results:
                slot_id = results[-1].slot.slot_id
            message = self._success_message(plan)
            self.notifier.success(message)
            return CommitResult(
                success=True,
                outcome=CommitOutcome.COMMITTED,
                message=message,
                plan=plan,
                trimmed_ids=plan.trimmed_ids,
                unscheduled_ids=plan.unscheduled_ids,
                slot_id=slot_id,
            )
        finally:
            self._saving = False

    # --- Saga construction ---

    def _build_saga(
        self,
        plan: MutationPlan,
        before: ScheduleSnapshot,
        resolver: AlternativeGroupResolver,
        provisional_slot_id: Optional[str],
    ) -> Saga:
        before_entities: Dict[str, EntityRecord] = {entity.id: entity for entity in before.entities}
        saga = Saga(name=f"commit-{plan.operation.value}")
        handled = set()

        if plan.merge is None and plan.dragged_ids:
            slot = self._slot_of_group(resolver, plan.dragged_ids)
            new_range = _uniform_range(plan, plan.dragged_ids)
            if slot is not None and new_range is not None:
                self._add_slot_step(saga, slot, new_range)
                handled.update(plan.dragged_ids)
        for entity_id in plan.dragged_ids:
            if entity_id not in handled:
                self._add_entity_step(saga, entity_id, plan.changes.get(entity_id), before_entities.get(entity_id))
                handled.add(entity_id)

        trimmed = plan.trimmed_ids
        for slot in before.slots:
            members = resolver.resolve_group(slot.primary_id) if slot.primary_id else []
            if len(members) < 2 or resolver.valid_slot_for_entity(members[0]) is None:
                continue
            if not all(member_id in trimmed and member_id not in handled for member_id in members):
                continue
            new_range = _uniform_range(plan, members)
            if new_range is not None:
                self._add_slot_step(saga, slot, new_range)
                handled.update(members)
        for entity_id in trimmed:
            if entity_id not in handled:
                self._add_entity_step(saga, entity_id, plan.changes.get(entity_id), before_entities.get(entity_id))
                handled.add(entity_id)

        unscheduled = plan.unscheduled_ids
        if any(set(unscheduled) & set(slot.member_entity_ids) for slot in before.slots):
            self._add_detach_step(saga, unscheduled, before)

        if plan.merge is not None:
            self._add_merge_step(saga, plan.merge, before, provisional_slot_id)
        return saga

    @staticmethod
    def _slot_of_group(resolver: AlternativeGroupResolver, entity_ids: List[str]) -> Optional[Slot]:
        slot = resolver.valid_slot_for_entity(entity_ids[0])
        if slot is None:
            return None
        if set(resolver.resolve_group(entity_ids[0])) != set(entity_ids):
            return None
        return slot

    def _add_slot_step(self, saga: Saga, slot: Slot, new_range: TimeRange) -> None:
        async def action():
            saved = await self.store.update_slot_time(slot.slot_id, new_range.date, new_range.start_time, new_range.end_time)
            self.state.upsert_slot(saved)
            return saved

        async def undo(_saved):
            await self.store.update_slot_time(slot.slot_id, slot.date, slot.start_time, slot.end_time)

        saga.add_step(f"slot:{slot.slot_id}", action, undo)

    def _add_entity_step(self, saga: Saga, entity_id: str, new_range: Optional[TimeRange], previous: Optional[EntityRecord]) -> None:
        async def action():
            if new_range is None:
                saved = await self.store.clear_entity_time(entity_id)
            else:
                saved = await self.store.update_entity_time(entity_id, new_range.date, new_range.start_time, new_range.end_time)
            self.state.upsert_entity(saved)
            return saved

        async def undo(_saved):
            if previous is None or (previous.date is None and not previous.has_times):
                await self.store.clear_entity_time(entity_id)
            else:
                await self.store.update_entity_time(entity_id, previous.date, previous.start_time, previous.end_time)

        saga.add_step(f"entity:{entity_id}", action, undo)

    def _add_detach_step(self, saga: Saga, member_ids: List[str], before: ScheduleSnapshot) -> None:
        affected = [slot for slot in before.slots if set(member_ids) & set(slot.member_entity_ids)]

        async def action():
            return await self.store.detach_from_slot(member_ids)

        async def undo(_removed):
            for slot in affected:
                await self.store.save_slot(slot)

        saga.add_step(f"detach:{','.join(member_ids)}", action, undo)

    def _add_merge_step(self, saga: Saga, merge: SlotMerge, before: ScheduleSnapshot, provisional_slot_id: Optional[str]) -> None:
        involved = set(merge.merge_entity_ids) | {merge.target_entity_id}
        affected = [slot for slot in before.slots if involved & set(slot.member_entity_ids)]
        existing_ids = {slot.slot_id for slot in before.slots}

        async def action():
            result = await self.store.merge_into_slot(merge.target_entity_id, merge.merge_entity_ids)
            self.state.apply_merge_result(result, provisional_slot_id)
            return result

        async def undo(result):
            await self.store.detach_from_slot(merge.merge_entity_ids)
            if result.slot.slot_id not in existing_ids:
                await self.store.delete_slot(result.slot.slot_id)
            for slot in affected:
                await self.store.save_slot(slot)

        saga.add_step(f"merge:{merge.target_entity_id}", action, undo)

    # --- Messages ---

    @staticmethod
    def _success_message(plan: MutationPlan) -> str:
        if plan.operation == PlanOperation.RESIZE:
            first = next((r for r in plan.changes.values() if r is not None), None)
            if first is not None:
                return f"Resized to {first.duration_minutes} minutes"
            return "Resized"
        if plan.merge is not None:
            return "Added as an alternative"
        trimmed = len(plan.trimmed_ids)
        if trimmed:
            return f"Moved, and {trimmed} overlapping item(s) were trimmed"
        return "Moved"
