# planner/db/entities.py

import logging
import time
import datetime as dt
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from .base import (create_itinerary_table, get_dynamodb_resource,
                   query_itinerary, raise_for_client_error)
from ..models import EntityRecord
from ..settings import settings

logger = logging.getLogger(__name__)

# Initialize table reference
entities_table = get_dynamodb_resource().Table(settings.DYNAMODB_ENTITIES_TABLE_NAME)


def create_entities_table():
    """Creates the itinerary entities table if it doesn't exist."""
    create_itinerary_table(settings.DYNAMODB_ENTITIES_TABLE_NAME, 'entity_id')


def item_to_entity(item: Dict[str, Any]) -> EntityRecord:
    duration_hint = item.get('duration_hint')
    return EntityRecord(
        id=item['entity_id'],
        kind=item.get('kind', 'activity'),
        date=item.get('date'),
        start_time=item.get('start_time'),
        end_time=item.get('end_time'),
        place_id=item.get('place_id'),
        activity_id=item.get('activity_id'),
        title=item.get('title'),
        duration_hint=int(duration_hint) if duration_hint is not None else None,
        deleted_at=item.get('deleted_at'),
    )


def entity_to_item(itinerary_id: str, entity: EntityRecord) -> Dict[str, Any]:
    item = {
        'itinerary_id': itinerary_id,
        'entity_id': entity.id,
        'kind': entity.kind.value,
        'date': entity.date.isoformat() if entity.date else None,
        'start_time': entity.start_time,
        'end_time': entity.end_time,
        'place_id': entity.place_id,
        'activity_id': entity.activity_id,
        'title': entity.title,
        'duration_hint': entity.duration_hint,
        'deleted_at': entity.deleted_at.isoformat() if entity.deleted_at else None,
    }
    return {key: value for key, value in item.items() if value is not None}


def save_entity(itinerary_id: str, entity: EntityRecord) -> None:
    try:
        entities_table.put_item(Item=entity_to_item(itinerary_id, entity))
        logger.info(f"Saved entity {entity.id} for itinerary {itinerary_id}")
    except ClientError as e:
        raise_for_client_error(e, f"entity {entity.id}")


def get_itinerary_entities(itinerary_id: str) -> List[EntityRecord]:
    items = query_itinerary(entities_table, itinerary_id)
    logger.debug(f"Retrieved {len(items)} entities for itinerary {itinerary_id}")
    return [item_to_entity(item) for item in items]


def update_entity_times(
    itinerary_id: str,
    entity_id: str,
    date: Optional[dt.date],
    start_time: Optional[str],
    end_time: Optional[str],
) -> EntityRecord:
    """
    Sets (or removes, for None values) an entity's date, start and end.

    Returns:
        The saved record.

    Raises:
        EntityNotFoundError: If the entity does not exist.
        PersistenceError: For any other DynamoDB failure.
    """
    fields = {
        'date': date.isoformat() if date else None,
        'start_time': start_time,
        'end_time': end_time,
        'updated_at': int(time.time()),
    }
    set_parts, remove_parts = [], []
    expr_attr_names, expr_attr_values = {}, {}
    for key, value in fields.items():
        attr_name = f"#{key}"
        expr_attr_names[attr_name] = key
        if value is None:
            remove_parts.append(attr_name)
        else:
            attr_value = f":{key}"
            set_parts.append(f"{attr_name} = {attr_value}")
            expr_attr_values[attr_value] = value

    update_expression = "SET " + ", ".join(set_parts)
    if remove_parts:
        update_expression += " REMOVE " + ", ".join(remove_parts)

    try:
        response = entities_table.update_item(
            Key={'itinerary_id': itinerary_id, 'entity_id': entity_id},
            UpdateExpression=update_expression,
            ConditionExpression='attribute_exists(entity_id)',
            ExpressionAttributeNames=expr_attr_names,
            ExpressionAttributeValues=expr_attr_values,
            ReturnValues='ALL_NEW',
        )
    except ClientError as e:
        raise_for_client_error(e, f"entity {entity_id}")

    logger.info(f"Updated times of entity {entity_id} in itinerary {itinerary_id}")
    return item_to_entity(response['Attributes'])
