"""DynamoDB record store for synchronized events."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import StoreError
from processor.models import EventRecord

logger = logging.getLogger(__name__)


class DynamoDBManager:
    """Manager for DynamoDB operations."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    KEY = 'id'

    def __init__(self, table_name: str, region: str = 'us-east-1', dynamodb=None):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table (hash key ``id``)
            region: AWS region of the table
            dynamodb: Optional pre-built boto3 DynamoDB resource
        """
        self.table_name = table_name
        self.dynamodb = dynamodb or boto3.resource('dynamodb', region_name=region)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def get_all_events(self) -> Dict[str, EventRecord]:
        """
        Retrieve all events from DynamoDB using Scan operation.

        Returns:
            Dictionary mapping id to EventRecord objects

        Raises:
            StoreError: If the scan fails
        """
        logger.info("Scanning DynamoDB table for all events")
        events = {}

        for item in self._scan():
            event = self._item_to_record(item)
            if event:
                events[event.id] = event

        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def insert(self, records: Sequence[EventRecord]) -> int:
        """
        Insert records that must not already exist.

        Args:
            records: Records to insert

        Returns:
            Count of inserted records

        Raises:
            StoreError: If a record already exists or a write fails
        """
        timestamp = self._now()
        for record in records:
            try:
                self.table.put_item(
                    Item=self._record_to_item(record, timestamp),
                    ConditionExpression='attribute_not_exists(#id)',
                    ExpressionAttributeNames={'#id': self.KEY}
                )
            except (ClientError, BotoCoreError) as e:
                raise StoreError(f"insert of {record.id} failed: {e}") from e

        logger.info(f"Inserted {len(records)} events")
        return len(records)

    def upsert(self, records: Sequence[EventRecord], conflict_key: str = KEY) -> int:
        """
        Insert or replace records keyed by ``conflict_key``, in batches of 25.

        Args:
            records: Records to write
            conflict_key: Must be the table's hash key

        Returns:
            Count of written records

        Raises:
            ValueError: If ``conflict_key`` is not the table key
            StoreError: If a batch fails
        """
        if conflict_key != self.KEY:
            raise ValueError(f"Table is keyed by '{self.KEY}', not '{conflict_key}'")
        if not records:
            return 0

        logger.info(f"Writing {len(records)} events to DynamoDB")
        timestamp = self._now()
        success_count = 0

        for i in range(0, len(records), self.BATCH_SIZE):
            batch = records[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer(overwrite_by_pkeys=[self.KEY]) as writer:
                    for record in batch:
                        writer.put_item(Item=self._record_to_item(record, timestamp))
            except (ClientError, BotoCoreError) as e:
                raise StoreError(
                    f"Error writing batch {i // self.BATCH_SIZE + 1}: {e}"
                ) from e
            success_count += len(batch)

        logger.info(f"Successfully wrote {success_count} events")
        return success_count

    def update_where_id_in(self, ids: Sequence[str], patch: Dict[str, Any]) -> int:
        """
        Apply ``patch`` to every existing item whose id is in ``ids``.

        Ids with no stored item are skipped, never created.

        Args:
            ids: Record ids to update
            patch: Attribute names and new values

        Returns:
            Count of updated items

        Raises:
            StoreError: If an update fails
        """
        if not ids or not patch:
            return 0

        names = {'#id': self.KEY}
        values = {}
        assignments = []
        for index, (name, value) in enumerate(patch.items()):
            names[f'#f{index}'] = name
            values[f':v{index}'] = value
            assignments.append(f'#f{index} = :v{index}')
        expression = 'SET ' + ', '.join(assignments)

        updated = 0
        for record_id in ids:
            try:
                self.table.update_item(
                    Key={self.KEY: record_id},
                    UpdateExpression=expression,
                    ConditionExpression='attribute_exists(#id)',
                    ExpressionAttributeNames=names,
                    ExpressionAttributeValues=values
                )
                updated += 1
            except ClientError as e:
                if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                    logger.warning(f"Skipped update of missing event {record_id}")
                    continue
                raise StoreError(f"update of {record_id} failed: {e}") from e
            except BotoCoreError as e:
                raise StoreError(f"update of {record_id} failed: {e}") from e

        logger.info(f"Updated {updated} of {len(ids)} events")
        return updated

    def delete_where_all(self) -> int:
        """
        Delete every item in the table, in batches of 25.

        Returns:
            Count of deleted items

        Raises:
            StoreError: If the scan or a batch fails
        """
        keys = [item[self.KEY] for item in self._scan(project_key_only=True)]
        logger.info(f"Deleting {len(keys)} events from DynamoDB")

        for i in range(0, len(keys), self.BATCH_SIZE):
            batch = keys[i:i + self.BATCH_SIZE]
            try:
                with self.table.batch_writer() as writer:
                    for key in batch:
                        writer.delete_item(Key={self.KEY: key})
            except (ClientError, BotoCoreError) as e:
                raise StoreError(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                ) from e

        logger.info(f"Successfully deleted {len(keys)} events")
        return len(keys)

    def _scan(self, project_key_only: bool = False) -> List[Dict[str, Any]]:
        kwargs = {}
        if project_key_only:
            kwargs = {
                'ProjectionExpression': '#id',
                'ExpressionAttributeNames': {'#id': self.KEY}
            }

        try:
            response = self.table.scan(**kwargs)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
                )
                items.extend(response.get('Items', []))
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"Error scanning DynamoDB table: {e}") from e

        return items

    def _item_to_record(self, item: dict) -> EventRecord:
        """
        Convert DynamoDB item to EventRecord object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            EventRecord object or None if conversion fails
        """
        try:
            return EventRecord.from_dict(item)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Failed to convert item to EventRecord: {e}")
            return None

    def _record_to_item(self, record: EventRecord, timestamp: str) -> dict:
        """
        Convert EventRecord object to DynamoDB item.

        Args:
            record: EventRecord object
            timestamp: ISO 8601 write time

        Returns:
            DynamoDB item dictionary without empty optional attributes
        """
        item = {
            key: value for key, value in record.to_dict().items()
            if value is not None
        }
        item['updated_at'] = timestamp
        return item

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
