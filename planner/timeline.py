# planner/timeline.py

import bisect
from typing import Iterable, List, Optional

from .models import EntityRecord


class ScheduledItem:
    """
    Represents an entity placed onto a single day's timeline.

    Stores the time boundaries in minutes since midnight and a reference to the
    entity record. Implements comparison methods based on start time for sorting.
    """
    def __init__(self, start_minutes: int, end_minutes: int, entity: Optional[EntityRecord]):
        """
        Initializes a ScheduledItem.

        Args:
            start_minutes: Start of the item in minutes since midnight.
            end_minutes: End of the item in minutes since midnight.
            entity: The entity record being placed.

        Raises:
            ValueError: If end_minutes <= start_minutes.
        """
        if end_minutes <= start_minutes:
            raise ValueError("ScheduledItem end must be after start.")

        self.start_minutes: int = start_minutes
        self.end_minutes: int = end_minutes
        self.entity: Optional[EntityRecord] = entity

    @classmethod
    def from_entity(cls, entity: EntityRecord) -> "ScheduledItem":
        return cls(entity.start_minutes, entity.end_minutes, entity)

    @property
    def entity_id(self) -> Optional[str]:
        return self.entity.id if self.entity is not None else None

    def overlap_minutes(self, start_minutes: int, end_minutes: int) -> int:
        """Length of the intersection with [start_minutes, end_minutes), 0 if disjoint."""
        return max(0, min(self.end_minutes, end_minutes) - max(self.start_minutes, start_minutes))

    # --- Comparison methods for sorting using bisect ---
    def __lt__(self, other: 'ScheduledItem') -> bool:
        # Primarily sort by start, then end, then id as tie-breakers
        if not isinstance(other, ScheduledItem):
            return NotImplemented
        if self.start_minutes != other.start_minutes:
            return self.start_minutes < other.start_minutes
        if self.end_minutes != other.end_minutes:
            return self.end_minutes < other.end_minutes
        return (self.entity_id or "") < (other.entity_id or "")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScheduledItem):
            return NotImplemented
        return (self.start_minutes == other.start_minutes and
                self.end_minutes == other.end_minutes and
                self.entity_id == other.entity_id)

    def __repr__(self) -> str:
        return (f"ScheduledItem(start={self.start_minutes}, "
                f"end={self.end_minutes}, "
                f"entity='{self.entity_id}')")


class DayTimeline:
    """
    Holds the entities scheduled on one day, kept sorted by start time.

    Provides methods to add items and efficiently query for overlapping items.
    """
    def __init__(self, entities: Iterable[EntityRecord] = ()):
        """Initializes the timeline, adding every scheduled entity with a positive length."""
        self._items: List[ScheduledItem] = []
        for entity in entities:
            if entity.has_times and entity.end_minutes > entity.start_minutes:
                self.add_item(ScheduledItem.from_entity(entity))

    def add_item(self, item: ScheduledItem) -> None:
        """
        Adds a ScheduledItem to the timeline, maintaining sorted order.

        Args:
            item: The ScheduledItem to add.
        """
        if not isinstance(item, ScheduledItem):
            raise TypeError("Can only add ScheduledItem objects to the timeline.")
        bisect.insort_left(self._items, item)

    def find_overlapping_items(self, query_start: int, query_end: int) -> List[ScheduledItem]:
        """
        Finds all items on the timeline that overlap with the given query range.

        Overlap definition: an item overlaps if max(item.start, query.start) < min(item.end, query.end).
        Adjacent items (item.end == query.start) do not overlap.

        Args:
            query_start: Start of the query range in minutes.
            query_end: End of the query range in minutes.

        Returns:
            The overlapping items in timeline order.

        Raises:
            ValueError: If query_end <= query_start.
        """
        if query_end <= query_start:
            raise ValueError("Query end must be after query start.")

        # Items starting at or after query_end cannot overlap, so only scan the prefix before it.
        marker = ScheduledItem(query_end, query_end + 1, None)
        potential_end_index = bisect.bisect_left(self._items, marker)

        overlapping_items: List[ScheduledItem] = []
        for i in range(potential_end_index):
            item = self._items[i]
            if item.start_minutes < query_end and item.end_minutes > query_start:
                overlapping_items.append(item)
        return overlapping_items

    def get_all_items(self) -> List[ScheduledItem]:
        """Returns a copy of all items currently on the timeline."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"DayTimeline(items={len(self._items)})"
