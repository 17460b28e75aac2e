"""DynamoDB record store for the synchronized agenda."""
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.models import EntityType, PurgeOperation, PutOperation

logger = logging.getLogger(__name__)

Operation = Union[PutOperation, PurgeOperation]
ChangeListener = Callable[[EntityType], None]

PRIMARY_KEYS = ['entity_type', 'record_id']
SYNC_STATE_ID = 'agenda'


class CommitError(Exception):
    """A batch could not be applied to the record store."""


class DynamoDBManager:
    """Record store over a single DynamoDB table keyed by (entity_type, record_id)."""

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region, defaults to the boto3 configuration
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        self._listeners: List[ChangeListener] = []
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def apply_batch(self, operations: Sequence[Operation]) -> int:
        """
        Apply puts and purges in order.

        Args:
            operations: PutOperation and PurgeOperation objects

        Returns:
            Count of records written plus records deleted

        Raises:
            CommitError: If DynamoDB rejects any part of the batch
        """
        puts = [op for op in operations if isinstance(op, PutOperation)]
        purges = [op for op in operations if isinstance(op, PurgeOperation)]
        count = 0

        try:
            if puts:
                with self.table.batch_writer(overwrite_by_pkeys=PRIMARY_KEYS) as writer:
                    for operation in puts:
                        writer.put_item(Item=self._operation_to_item(operation))
                        count += 1
                logger.info(f"Wrote {len(puts)} records")

            for operation in purges:
                count += self._purge(operation)

        except ClientError as e:
            logger.error(f"Error applying batch to {self.table_name}: {e}")
            raise CommitError(str(e)) from e

        return count

    def _purge(self, operation: PurgeOperation) -> int:
        stale_keys = [
            {'entity_type': item['entity_type'], 'record_id': item['record_id']}
            for item in self._query(
                operation.entity_type,
                FilterExpression=Attr('generation_version').ne(operation.version)
            )
        ]

        if stale_keys:
            with self.table.batch_writer() as writer:
                for key in stale_keys:
                    writer.delete_item(Key=key)

        logger.info(
            f"Purged {len(stale_keys)} {operation.entity_type.value} records "
            f"not stamped with version {operation.version}"
        )
        return len(stale_keys)

    def _query(self, entity_type: EntityType, **kwargs) -> List[dict]:
        """Query every item of an entity kind, following pagination."""
        kwargs['KeyConditionExpression'] = Key('entity_type').eq(entity_type.value)
        response = self.table.query(**kwargs)
        items = response.get('Items', [])

        # Handle pagination
        while 'LastEvaluatedKey' in response:
            response = self.table.query(
                ExclusiveStartKey=response['LastEvaluatedKey'], **kwargs
            )
            items.extend(response.get('Items', []))

        return items

    def get_all(self, entity_type: EntityType) -> Dict[str, dict]:
        """
        Retrieve every record of a kind.

        Returns:
            Dictionary mapping record_id to plain attribute dictionaries
        """
        try:
            items = self._query(entity_type)
        except ClientError as e:
            logger.error(f"Error querying {entity_type.value} records: {e}")
            raise
        return {item['record_id']: _from_dynamodb(item) for item in items}

    def get_record(self, entity_type: EntityType, record_id: str) -> Optional[dict]:
        response = self.table.get_item(
            Key={'entity_type': entity_type.value, 'record_id': record_id}
        )
        item = response.get('Item')
        return _from_dynamodb(item) if item else None

    def get_session(self, session_id: str) -> Optional[dict]:
        return self.get_record(EntityType.SESSION, session_id)

    def get_session_starred(self, session_id: str) -> Optional[bool]:
        """
        Read the stored starred flag of a session.

        Returns:
            The flag, or None when the session is not stored

        Raises:
            ClientError: If the session cannot be read
        """
        try:
            session = self.get_session(session_id)
        except ClientError as e:
            logger.error(f"Could not read starred flag of session {session_id}: {e}")
            raise
        if session is None or 'starred' not in session:
            return None
        return bool(session['starred'])

    def set_session_starred(self, session_id: str, starred: bool) -> None:
        self.table.update_item(
            Key={'entity_type': EntityType.SESSION.value, 'record_id': session_id},
            UpdateExpression='SET starred = :starred',
            ConditionExpression=Attr('record_id').exists(),
            ExpressionAttributeValues={':starred': starred}
        )

    def update_session_drafts(self, session_id: str, drafts: str) -> None:
        self.table.update_item(
            Key={'entity_type': EntityType.SESSION.value, 'record_id': session_id},
            UpdateExpression='SET drafts = :drafts',
            ConditionExpression=Attr('record_id').exists(),
            ExpressionAttributeValues={':drafts': drafts}
        )

    def get_sync_state(self) -> Optional[dict]:
        """Return the url, etag and version recorded by the last successful run."""
        try:
            return self.get_record(EntityType.SYNC_STATE, SYNC_STATE_ID)
        except ClientError as e:
            logger.warning(f"Could not read sync state: {e}")
            return None

    def save_sync_state(self, url: str, etag: Optional[str], version: int) -> None:
        item = {
            'entity_type': EntityType.SYNC_STATE.value,
            'record_id': SYNC_STATE_ID,
            'url': url,
            'version': version
        }
        if etag:
            item['etag'] = etag
        self.table.put_item(Item=item)

    def subscribe(self, listener: ChangeListener) -> None:
        """Register a callback invoked by notify_change."""
        self._listeners.append(listener)

    def notify_change(self, entity_type: EntityType) -> None:
        """Tell subscribers that records of ``entity_type`` changed."""
        for listener in list(self._listeners):
            try:
                listener(entity_type)
            except Exception as e:
                logger.warning(f"Change listener failed for {entity_type.value}: {e}")

    def _operation_to_item(self, operation: PutOperation) -> dict:
        """
        Convert a PutOperation to a DynamoDB item.

        Args:
            operation: PutOperation

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'entity_type': operation.entity_type.value,
            'record_id': operation.record_id
        }
        for name, value in operation.attributes.items():
            # Omit unset optional fields
            if value is not None:
                item[name] = value
        return item


def _from_dynamodb(item: dict) -> Dict[str, Any]:
    """Convert DynamoDB Decimals back to ints."""
    return {
        name: int(value) if isinstance(value, Decimal) else value
        for name, value in item.items()
    }
