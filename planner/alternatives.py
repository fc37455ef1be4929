# planner/alternatives.py

import logging
from typing import Dict, Iterable, List, Optional

from .models import EntityRecord, Slot

logger = logging.getLogger(__name__)


def get_alternative_group_key(entity: Optional[EntityRecord]) -> Optional[str]:
    """
    Returns the identity key used to keep an item from becoming an alternative of itself.

    'place:<place_id>' when the entity has a place, else 'activity:<activity_id>',
    else None. Entities without a key can never be grouped by time equality.
    """
    if entity is None:
        return None
    if entity.place_id:
        return f"place:{entity.place_id}"
    if entity.activity_id:
        return f"activity:{entity.activity_id}"
    return None


class AlternativeGroupResolver:
    """
    Determines which entities are alternatives for the same time window.

    Explicit slot records are preferred. Entities that share the exact
    (date, start, end) of another entity but have no slot fall back to a
    time-equality heuristic kept for legacy data. Either way a group whose
    members do not all have distinct identity keys is discarded and the
    entity stands alone.
    """

    def __init__(self, entities: Iterable[EntityRecord], slots: Iterable[Slot] = ()):
        self._entities: Dict[str, EntityRecord] = {entity.id: entity for entity in entities}
        self._slots: Dict[str, Slot] = {slot.slot_id: slot for slot in slots}
        self._slot_by_entity: Dict[str, str] = {}
        for slot in self._slots.values():
            for member_id in slot.member_entity_ids:
                self._slot_by_entity.setdefault(member_id, slot.slot_id)

    def get_entity(self, entity_id: str) -> Optional[EntityRecord]:
        return self._entities.get(entity_id)

    def slot_for_entity(self, entity_id: str) -> Optional[Slot]:
        """Returns the slot record referencing the entity, valid or not."""
        slot_id = self._slot_by_entity.get(entity_id)
        return self._slots.get(slot_id) if slot_id else None

    def valid_slot_for_entity(self, entity_id: str) -> Optional[Slot]:
        """Returns the entity's slot only if its membership passes the identity check."""
        slot = self.slot_for_entity(entity_id)
        if slot is None:
            return None
        members = self._live_members(slot)
        if entity_id not in members:
            return None
        if not self._has_distinct_keys(members):
            logger.warning(f"Slot {slot.slot_id} has duplicate identities among {members}; ignoring it.")
            return None
        return slot

    def resolve_group(self, entity_id: str) -> List[str]:
        """
        Returns the ids of every alternative sharing the entity's time window, the entity included.

        Unknown or deleted ids resolve to an empty group.
        """
        entity = self._entities.get(entity_id)
        if entity is None or entity.is_deleted:
            return []

        slot = self.valid_slot_for_entity(entity_id)
        if slot is not None:
            return self._live_members(slot)

        if self.slot_for_entity(entity_id) is not None:
            # An invalid slot is not replaced by the heuristic: the entity stands alone.
            return [entity_id]

        return self._time_equality_group(entity)

    def is_primary(self, entity_id: str) -> bool:
        """True unless the entity is a non-primary member of a valid slot."""
        slot = self.valid_slot_for_entity(entity_id)
        if slot is None:
            return True
        primary_id = slot.primary_id
        members = self._live_members(slot)
        if primary_id not in members:
            primary_id = members[0] if members else None
        return primary_id == entity_id

    def _live_members(self, slot: Slot) -> List[str]:
        members = []
        for member_id in slot.member_entity_ids:
            member = self._entities.get(member_id)
            if member is not None and not member.is_deleted:
                members.append(member_id)
        return members

    def _has_distinct_keys(self, entity_ids: List[str]) -> bool:
        seen = set()
        for entity_id in entity_ids:
            key = get_alternative_group_key(self._entities.get(entity_id))
            if key is None:
                continue
            if key in seen:
                return False
            seen.add(key)
        return True

    def _time_equality_group(self, entity: EntityRecord) -> List[str]:
        if not entity.is_scheduled or get_alternative_group_key(entity) is None:
            return [entity.id]

        group = [
            other.id for other in self._entities.values()
            if not other.is_deleted
            and other.kind == entity.kind
            and other.date == entity.date
            and other.start_time == entity.start_time
            and other.end_time == entity.end_time
            and other.id not in self._slot_by_entity
            and (other.id == entity.id or get_alternative_group_key(other) is not None)
        ]
        if len(group) > 1 and not self._has_distinct_keys(group):
            logger.warning(f"Time-equality group {group} has duplicate identities; {entity.id} stands alone.")
            return [entity.id]
        return group
