# planner/db/store.py

import asyncio
import logging
import datetime as dt
from typing import List, Optional

from . import entities as entities_db
from . import slots as slots_db
from ..models import (EntityRecord, MergeResult, ScheduleSnapshot, Slot,
                      normalize_time_string)
from ..store import (AbstractEntityStore, EntityNotFoundError,
                     detach_members, merge_members, slot_options_for)

logger = logging.getLogger(__name__)


class DynamoEntityStore(AbstractEntityStore):
    """
    Entity store backed by the entities and slots DynamoDB tables.

    Every item carries the itinerary id as its partition key. boto3 calls are
    blocking, so each one runs in a worker thread.
    """

    def __init__(self, itinerary_id: str):
        self.itinerary_id = itinerary_id

    async def load_snapshot(self) -> ScheduleSnapshot:
        entities = await asyncio.to_thread(entities_db.get_itinerary_entities, self.itinerary_id)
        slots = await asyncio.to_thread(slots_db.get_itinerary_slots, self.itinerary_id)
        return ScheduleSnapshot(entities=entities, slots=slots)

    async def update_entity_time(self, entity_id: str, date: Optional[dt.date], start_time: Optional[str], end_time: Optional[str]) -> EntityRecord:
        return await asyncio.to_thread(
            entities_db.update_entity_times,
            self.itinerary_id,
            entity_id,
            date,
            normalize_time_string(start_time) if start_time else None,
            normalize_time_string(end_time) if end_time else None,
        )

    async def clear_entity_time(self, entity_id: str) -> EntityRecord:
        return await asyncio.to_thread(entities_db.update_entity_times, self.itinerary_id, entity_id, None, None, None)

    async def update_slot_time(self, slot_id: str, date: dt.date, start_time: str, end_time: str) -> Slot:
        slot = await asyncio.to_thread(slots_db.get_slot, self.itinerary_id, slot_id)
        if slot is None:
            raise EntityNotFoundError(f"Slot {slot_id} not found")
        slot = slot.model_copy(update={
            'date': date,
            'start_time': normalize_time_string(start_time),
            'end_time': normalize_time_string(end_time),
        })
        await asyncio.to_thread(slots_db.put_slot, self.itinerary_id, slot)
        await self._align_members(slot)
        return slot

    async def merge_into_slot(self, target_entity_id: str, member_ids: List[str]) -> MergeResult:
        snapshot = await self.load_snapshot()
        known = {entity.id: entity for entity in snapshot.entities if not entity.is_deleted}
        for entity_id in [target_entity_id] + list(member_ids):
            if entity_id not in known:
                raise EntityNotFoundError(f"Entity {entity_id} not found")

        slot, changed, removed = merge_members(snapshot.slots, known[target_entity_id], member_ids)
        for other in changed:
            await asyncio.to_thread(slots_db.put_slot, self.itinerary_id, other)
        for slot_id in removed:
            await asyncio.to_thread(slots_db.delete_slot, self.itinerary_id, slot_id)
        await asyncio.to_thread(slots_db.put_slot, self.itinerary_id, slot)
        await self._align_members(slot)

        logger.info(f"Merged {member_ids} into slot {slot.slot_id} for itinerary {self.itinerary_id}")
        return MergeResult(slot=slot, slot_options=slot_options_for(slot), removed_slot_ids=removed)

    async def detach_from_slot(self, member_ids: List[str]) -> List[str]:
        slots = await asyncio.to_thread(slots_db.get_itinerary_slots, self.itinerary_id)
        changed, removed = detach_members(slots, member_ids)
        for other in changed:
            await asyncio.to_thread(slots_db.put_slot, self.itinerary_id, other)
        for slot_id in removed:
            await asyncio.to_thread(slots_db.delete_slot, self.itinerary_id, slot_id)
        return removed

    async def save_slot(self, slot: Slot) -> Slot:
        return await asyncio.to_thread(slots_db.put_slot, self.itinerary_id, slot)

    async def delete_slot(self, slot_id: str) -> None:
        await asyncio.to_thread(slots_db.delete_slot, self.itinerary_id, slot_id)

    async def _align_members(self, slot: Slot) -> None:
        entities = await asyncio.to_thread(entities_db.get_itinerary_entities, self.itinerary_id)
        live = {entity.id for entity in entities if not entity.is_deleted}
        for member_id in slot.member_entity_ids:
            if member_id not in live:
                continue
            await asyncio.to_thread(
                entities_db.update_entity_times,
                self.itinerary_id, member_id, slot.date, slot.start_time, slot.end_time,
            )
