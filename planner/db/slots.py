# planner/db/slots.py

import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from .base import (create_itinerary_table, get_dynamodb_resource,
                   query_itinerary, raise_for_client_error)
from ..models import Slot
from ..settings import settings

logger = logging.getLogger(__name__)

# Initialize table reference
slots_table = get_dynamodb_resource().Table(settings.DYNAMODB_SLOTS_TABLE_NAME)


def create_slots_table():
    """Creates the itinerary slots table if it doesn't exist."""
    create_itinerary_table(settings.DYNAMODB_SLOTS_TABLE_NAME, 'slot_id')


def item_to_slot(item: Dict[str, Any]) -> Slot:
    return Slot(
        slot_id=item['slot_id'],
        date=item['date'],
        start_time=item['start_time'],
        end_time=item['end_time'],
        primary_entity_id=item.get('primary_entity_id'),
        member_entity_ids=list(item.get('member_entity_ids', [])),
    )


def slot_to_item(itinerary_id: str, slot: Slot) -> Dict[str, Any]:
    item = {
        'itinerary_id': itinerary_id,
        'slot_id': slot.slot_id,
        'date': slot.date.isoformat(),
        'start_time': slot.start_time,
        'end_time': slot.end_time,
        'member_entity_ids': list(slot.member_entity_ids),
    }
    if slot.primary_entity_id:
        item['primary_entity_id'] = slot.primary_entity_id
    return item


def get_itinerary_slots(itinerary_id: str) -> List[Slot]:
    items = query_itinerary(slots_table, itinerary_id)
    logger.debug(f"Retrieved {len(items)} slots for itinerary {itinerary_id}")
    return [item_to_slot(item) for item in items]


def get_slot(itinerary_id: str, slot_id: str) -> Optional[Slot]:
    try:
        response = slots_table.get_item(Key={'itinerary_id': itinerary_id, 'slot_id': slot_id}) or {}
    except ClientError as e:
        raise_for_client_error(e, f"slot {slot_id}")
    item = response.get('Item')
    return item_to_slot(item) if item else None


def put_slot(itinerary_id: str, slot: Slot) -> Slot:
    try:
        slots_table.put_item(Item=slot_to_item(itinerary_id, slot))
    except ClientError as e:
        raise_for_client_error(e, f"slot {slot.slot_id}")
    logger.info(f"Saved slot {slot.slot_id} with members {slot.member_entity_ids}")
    return slot


def delete_slot(itinerary_id: str, slot_id: str) -> None:
    try:
        slots_table.delete_item(Key={'itinerary_id': itinerary_id, 'slot_id': slot_id})
    except ClientError as e:
        raise_for_client_error(e, f"slot {slot_id}")
    logger.info(f"Deleted slot {slot_id} from itinerary {itinerary_id}")
