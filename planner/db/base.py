# planner/db/base.py

import logging

import boto3
from botocore.exceptions import ClientError

from ..settings import settings
from ..store import EntityNotFoundError, PersistenceError

logger = logging.getLogger(__name__)


def get_dynamodb_resource():
    if settings.AWS_DYNAMODB_ENDPOINT_URL:  # For local testing
        logger.info(f"Connecting to DynamoDB Local at {settings.AWS_DYNAMODB_ENDPOINT_URL}")
        return boto3.resource('dynamodb',
                              region_name=settings.AWS_REGION,
                              endpoint_url=settings.AWS_DYNAMODB_ENDPOINT_URL)
    else:  # For AWS environment
        logger.info(f"Connecting to DynamoDB in region {settings.AWS_REGION}")
        return boto3.resource('dynamodb', region_name=settings.AWS_REGION)


def create_itinerary_table(table_name: str, range_key: str) -> None:
    """Creates a table keyed by itinerary_id (HASH) and `range_key` (RANGE) if it doesn't exist."""
    dynamodb = get_dynamodb_resource()
    try:
        table = dynamodb.create_table(
            TableName=table_name,
            KeySchema=[
                {'AttributeName': 'itinerary_id', 'KeyType': 'HASH'},  # Partition key
                {'AttributeName': range_key, 'KeyType': 'RANGE'},  # Sort key
            ],
            AttributeDefinitions=[
                {'AttributeName': 'itinerary_id', 'AttributeType': 'S'},
                {'AttributeName': range_key, 'AttributeType': 'S'},
            ],
            ProvisionedThroughput={
                'ReadCapacityUnits': 5,
                'WriteCapacityUnits': 5,
            }
        )
        table.wait_until_exists()
        logger.info(f"Table {table_name} created successfully.")
    except ClientError as e:
        if e.response['Error']['Code'] == 'ResourceInUseException':
            logger.info(f"Table {table_name} already exists.")
        else:
            logger.error(f"Error creating table {table_name}: {e.response['Error']['Message']}")
            raise PersistenceError(f"Could not create table {table_name}") from e


def query_itinerary(table, itinerary_id: str):
    """Returns every item of the itinerary, following pagination."""
    items = []
    kwargs = {
        'KeyConditionExpression': 'itinerary_id = :iid',
        'ExpressionAttributeValues': {':iid': itinerary_id},
    }
    try:
        while True:
            response = table.query(**kwargs) or {}
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return items
            kwargs['ExclusiveStartKey'] = last_key
    except ClientError as e:
        logger.error(f"Error querying itinerary {itinerary_id}: {e.response['Error']['Message']}")
        raise PersistenceError(f"Could not read itinerary {itinerary_id}") from e


def raise_for_client_error(e: ClientError, what: str) -> None:
    """Translates a boto ClientError into the store's exception types."""
    code = e.response.get('Error', {}).get('Code')
    message = e.response.get('Error', {}).get('Message')
    if code == 'ConditionalCheckFailedException':
        raise EntityNotFoundError(f"{what} not found") from e
    logger.error(f"DynamoDB error for {what}: {code} {message}")
    raise PersistenceError(f"Could not save {what}: {message}") from e
