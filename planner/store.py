# planner/store.py

import logging
import uuid
import datetime as dt
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

from .models import (EntityRecord, MergeResult, ScheduleSnapshot, Slot,
                     SlotOption, normalize_time_string)

logger = logging.getLogger(__name__)


# --- Custom Exceptions ---

class StoreError(Exception):
    """Base exception for entity store errors."""
    pass

class EntityNotFoundError(StoreError):
    """Raised when an entity or slot does not exist in the store."""
    pass

class PersistenceError(StoreError):
    """Raised when the backing store rejects or fails a write."""
    pass


# --- Slot membership helpers shared by every backend ---

def new_slot_id() -> str:
    return f"slot_{uuid.uuid4().hex}"


def slot_options_for(slot: Slot) -> List[SlotOption]:
    return [
        SlotOption(slot_option_id=f"{slot.slot_id}:{entity_id}", slot_id=slot.slot_id, entity_id=entity_id)
        for entity_id in slot.member_entity_ids
    ]


def _without_members(slot: Slot, member_ids: Iterable[str]) -> Slot:
    removed = set(member_ids)
    members = [entity_id for entity_id in slot.member_entity_ids if entity_id not in removed]
    primary = slot.primary_entity_id
    if primary not in members:
        primary = members[0] if members else None
    return slot.model_copy(update={'member_entity_ids': members, 'primary_entity_id': primary})


def detach_members(slots: Iterable[Slot], member_ids: Iterable[str], keep_slot_id: Optional[str] = None) -> Tuple[List[Slot], List[str]]:
    """
    Removes the given members from every slot except `keep_slot_id`.

    Returns (changed slots that still have at least two members, ids of slots
    left with fewer than two members, which must be deleted).
    """
    member_ids = list(member_ids)
    changed: List[Slot] = []
    removed: List[str] = []
    for slot in slots:
        if slot.slot_id == keep_slot_id:
            continue
        if not any(member_id in slot.member_entity_ids for member_id in member_ids):
            continue
        remaining = _without_members(slot, member_ids)
        if len(remaining.member_entity_ids) < 2:
            removed.append(slot.slot_id)
        else:
            changed.append(remaining)
    return changed, removed


def merge_members(
    slots: Iterable[Slot],
    target: EntityRecord,
    member_ids: Iterable[str],
    slot_id_factory=new_slot_id,
) -> Tuple[Slot, List[Slot], List[str]]:
    """
    Joins members into the target's slot, creating it from the target's time range if needed.

    Returns (the target slot, other changed slots, ids of slots to delete).
    Raises:
        EntityNotFoundError: If the target has no placement to build a slot from.
    """
    slots = list(slots)
    target_slot = next((slot for slot in slots if target.id in slot.member_entity_ids), None)
    if target_slot is None:
        if not target.is_scheduled:
            raise EntityNotFoundError(f"Entity {target.id} has no placement to host a slot")
        target_slot = Slot(
            slot_id=slot_id_factory(),
            date=target.date,
            start_time=target.start_time,
            end_time=target.end_time,
            primary_entity_id=target.id,
            member_entity_ids=[target.id],
        )

    incoming = [member_id for member_id in member_ids if member_id != target.id]
    changed, removed = detach_members(slots, incoming, keep_slot_id=target_slot.slot_id)
    members = list(target_slot.member_entity_ids)
    for member_id in incoming:
        if member_id not in members:
            members.append(member_id)
    target_slot = target_slot.model_copy(update={'member_entity_ids': members})
    return target_slot, changed, removed


# --- Abstract Base Class ---

class AbstractEntityStore(ABC):
    """Durable storage of one itinerary's entities and slots."""

    @abstractmethod
    async def load_snapshot(self) -> ScheduleSnapshot:
        """Reads every entity and slot currently stored."""
        pass

    @abstractmethod
    async def update_entity_time(self, entity_id: str, date: Optional[dt.date], start_time: Optional[str], end_time: Optional[str]) -> EntityRecord:
        """Saves an entity's placement and returns the saved record."""
        pass

    @abstractmethod
    async def clear_entity_time(self, entity_id: str) -> EntityRecord:
        """Removes an entity's placement (date, start and end) and returns the saved record."""
        pass

    @abstractmethod
    async def update_slot_time(self, slot_id: str, date: dt.date, start_time: str, end_time: str) -> Slot:
        """Saves a slot's time range, moving every member with it, and returns the saved slot."""
        pass

    @abstractmethod
    async def merge_into_slot(self, target_entity_id: str, member_ids: List[str]) -> MergeResult:
        """
        Re-parents members as alternatives under the target's slot.

        Creates the slot from the target's time range when the target has none,
        aligns member times to the slot and deletes previous slots left with
        fewer than two members.
        """
        pass

    @abstractmethod
    async def detach_from_slot(self, member_ids: List[str]) -> List[str]:
        """Removes members from their slots; returns the ids of slots deleted as a result."""
        pass

    @abstractmethod
    async def save_slot(self, slot: Slot) -> Slot:
        """Writes a slot record as given."""
        pass

    @abstractmethod
    async def delete_slot(self, slot_id: str) -> None:
        pass


# --- In-memory implementation ---

class InMemoryEntityStore(AbstractEntityStore):
    """
    Keeps entities and slots in process memory.

    Used by the 'memory' backend and as the reference behaviour for tests.
    """

    def __init__(self, entities: Iterable[EntityRecord] = (), slots: Iterable[Slot] = ()):
        self._entities: Dict[str, EntityRecord] = {entity.id: entity.model_copy(deep=True) for entity in entities}
        self._slots: Dict[str, Slot] = {slot.slot_id: slot.model_copy(deep=True) for slot in slots}

    def _get_entity(self, entity_id: str) -> EntityRecord:
        entity = self._entities.get(entity_id)
        if entity is None or entity.is_deleted:
            raise EntityNotFoundError(f"Entity {entity_id} not found")
        return entity

    def _get_slot(self, slot_id: str) -> Slot:
        slot = self._slots.get(slot_id)
        if slot is None:
            raise EntityNotFoundError(f"Slot {slot_id} not found")
        return slot

    def _set_time(self, entity_id: str, date: Optional[dt.date], start_time: Optional[str], end_time: Optional[str]) -> EntityRecord:
        entity = self._get_entity(entity_id).model_copy(update={
            'date': date,
            'start_time': normalize_time_string(start_time) if start_time else None,
            'end_time': normalize_time_string(end_time) if end_time else None,
        })
        self._entities[entity_id] = entity
        return entity

    def _align_members(self, slot: Slot) -> None:
        # Soft-deleted members stay listed on the slot but keep their own placement.
        for member_id in slot.member_entity_ids:
            member = self._entities.get(member_id)
            if member is None or member.is_deleted:
                continue
            self._set_time(member_id, slot.date, slot.start_time, slot.end_time)

    async def load_snapshot(self) -> ScheduleSnapshot:
        return ScheduleSnapshot(
            entities=[entity.model_copy(deep=True) for entity in self._entities.values()],
            slots=[slot.model_copy(deep=True) for slot in self._slots.values()],
        )

    async def update_entity_time(self, entity_id: str, date: Optional[dt.date], start_time: Optional[str], end_time: Optional[str]) -> EntityRecord:
        entity = self._set_time(entity_id, date, start_time, end_time)
        logger.debug(f"Stored {entity_id} at {date} {entity.start_time}-{entity.end_time}")
        return entity.model_copy(deep=True)

    async def clear_entity_time(self, entity_id: str) -> EntityRecord:
        entity = self._set_time(entity_id, None, None, None)
        logger.debug(f"Cleared placement of {entity_id}")
        return entity.model_copy(deep=True)

    async def update_slot_time(self, slot_id: str, date: dt.date, start_time: str, end_time: str) -> Slot:
        slot = self._get_slot(slot_id).model_copy(update={
            'date': date,
            'start_time': normalize_time_string(start_time),
            'end_time': normalize_time_string(end_time),
        })
        self._slots[slot_id] = slot
        self._align_members(slot)
        return slot.model_copy(deep=True)

    async def merge_into_slot(self, target_entity_id: str, member_ids: List[str]) -> MergeResult:
        target = self._get_entity(target_entity_id)
        for member_id in member_ids:
            self._get_entity(member_id)

        slot, changed, removed = merge_members(self._slots.values(), target, member_ids)
        for other in changed:
            self._slots[other.slot_id] = other
        for slot_id in removed:
            self._slots.pop(slot_id, None)
        self._slots[slot.slot_id] = slot
        self._align_members(slot)

        logger.info(f"Merged {member_ids} into slot {slot.slot_id} (removed {removed})")
        return MergeResult(slot=slot.model_copy(deep=True), slot_options=slot_options_for(slot), removed_slot_ids=removed)

    async def detach_from_slot(self, member_ids: List[str]) -> List[str]:
        changed, removed = detach_members(self._slots.values(), member_ids)
        for other in changed:
            self._slots[other.slot_id] = other
        for slot_id in removed:
            self._slots.pop(slot_id, None)
        return removed

    async def save_slot(self, slot: Slot) -> Slot:
        self._slots[slot.slot_id] = slot.model_copy(deep=True)
        return slot

    async def delete_slot(self, slot_id: str) -> None:
        self._slots.pop(slot_id, None)
