# planner/db/__init__.py

from .base import get_dynamodb_resource
from .entities import (
    create_entities_table,
    get_itinerary_entities,
    save_entity,
    update_entity_times,
)
from .slots import (
    create_slots_table,
    delete_slot,
    get_itinerary_slots,
    get_slot,
    put_slot,
)
from .store import DynamoEntityStore

__all__ = [
    'get_dynamodb_resource',
    'create_entities_table',
    'get_itinerary_entities',
    'save_entity',
    'update_entity_times',
    'create_slots_table',
    'delete_slot',
    'get_itinerary_slots',
    'get_slot',
    'put_slot',
    'DynamoEntityStore',
]
