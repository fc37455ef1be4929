# planner/state.py

import logging
from typing import Dict, List, Optional

from .models import (EntityRecord, MergeResult, MutationPlan,
                     ScheduleSnapshot, Slot, SlotMerge, TimeRange)
from .store import detach_members, merge_members

logger = logging.getLogger(__name__)


class ScheduleState:
    """
    The local copy of an itinerary's entities and slots.

    Plans are applied here optimistically before they are persisted; a
    snapshot taken beforehand restores the exact previous state on rollback.
    """

    def __init__(self, snapshot: Optional[ScheduleSnapshot] = None):
        self._entities: Dict[str, EntityRecord] = {}
        self._slots: Dict[str, Slot] = {}
        if snapshot is not None:
            self.restore(snapshot)

    @property
    def entities(self) -> List[EntityRecord]:
        return list(self._entities.values())

    @property
    def slots(self) -> List[Slot]:
        return list(self._slots.values())

    def get_entity(self, entity_id: str) -> Optional[EntityRecord]:
        return self._entities.get(entity_id)

    def get_slot(self, slot_id: str) -> Optional[Slot]:
        return self._slots.get(slot_id)

    def snapshot(self) -> ScheduleSnapshot:
        return ScheduleSnapshot(
            entities=[entity.model_copy(deep=True) for entity in self._entities.values()],
            slots=[slot.model_copy(deep=True) for slot in self._slots.values()],
        )

    def restore(self, snapshot: ScheduleSnapshot) -> None:
        self._entities = {entity.id: entity.model_copy(deep=True) for entity in snapshot.entities}
        self._slots = {slot.slot_id: slot.model_copy(deep=True) for slot in snapshot.slots}

    # --- Mutations ---

    def set_entity_time(self, entity_id: str, time_range: Optional[TimeRange]) -> None:
        entity = self._entities.get(entity_id)
        if entity is None:
            logger.warning(f"Ignoring placement change for unknown entity {entity_id}")
            return
        if time_range is None:
            update = {'date': None, 'start_time': None, 'end_time': None}
        else:
            update = {'date': time_range.date, 'start_time': time_range.start_time, 'end_time': time_range.end_time}
        self._entities[entity_id] = entity.model_copy(update=update)

    def upsert_entity(self, entity: EntityRecord) -> None:
        self._entities[entity.id] = entity

    def live_members(self, slot: Slot) -> List[str]:
        return [
            member_id for member_id in slot.member_entity_ids
            if member_id in self._entities and not self._entities[member_id].is_deleted
        ]

    def upsert_slot(self, slot: Slot) -> None:
        self._slots[slot.slot_id] = slot
        for member_id in self.live_members(slot):
            self.set_entity_time(member_id, slot.time_range())

    def remove_slots(self, slot_ids: List[str]) -> None:
        for slot_id in slot_ids:
            self._slots.pop(slot_id, None)

    def detach(self, member_ids: List[str]) -> List[str]:
        """Takes members out of their slots; returns the ids of slots removed as a result."""
        changed, removed = detach_members(self._slots.values(), member_ids)
        for slot in changed:
            self._slots[slot.slot_id] = slot
        self.remove_slots(removed)
        return removed

    def apply_plan(self, plan: MutationPlan) -> Optional[str]:
        """
        Applies every placement change of the plan, then its slot merge.

        Returns the id of the provisional slot created for the merge, if any.
        Slots of moved entities follow their members' new time range; unscheduled
        entities leave their slots.
        """
        for entity_id, time_range in plan.changes.items():
            self.set_entity_time(entity_id, time_range)
        self._sync_slot_times(plan)
        if plan.unscheduled_ids:
            self.detach(plan.unscheduled_ids)
        if plan.merge is not None:
            return self.apply_merge(plan.merge)
        return None

    def _sync_slot_times(self, plan: MutationPlan) -> None:
        for slot in list(self._slots.values()):
            members = self.live_members(slot)
            ranges = [plan.changes[m] for m in members if m in plan.changes]
            if not ranges or ranges[0] is None:
                continue
            if len(ranges) == len(members) and all(r == ranges[0] for r in ranges):
                self._slots[slot.slot_id] = slot.model_copy(update={
                    'date': ranges[0].date,
                    'start_time': ranges[0].start_time,
                    'end_time': ranges[0].end_time,
                })

    def apply_merge(self, merge: SlotMerge) -> Optional[str]:
        target = self._entities.get(merge.target_entity_id)
        if target is None or not target.is_scheduled:
            logger.warning(f"Cannot merge into {merge.target_entity_id}: no placed target")
            return None
        slot, changed, removed = merge_members(
            self._slots.values(), target, merge.merge_entity_ids,
            slot_id_factory=lambda: f"pending-{merge.target_entity_id}",
        )
        for other in changed:
            self._slots[other.slot_id] = other
        self.remove_slots(removed)
        self.upsert_slot(slot)
        return slot.slot_id if slot.slot_id.startswith("pending-") else None

    def apply_merge_result(self, result: MergeResult, provisional_slot_id: Optional[str] = None) -> None:
        """Replaces the optimistic merge with what the store actually saved."""
        if provisional_slot_id and provisional_slot_id != result.slot.slot_id:
            self._slots.pop(provisional_slot_id, None)
        self.remove_slots(result.removed_slot_ids)
        self.upsert_slot(result.slot)
