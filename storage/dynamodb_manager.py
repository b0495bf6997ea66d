"""DynamoDB manager for the remote store."""
import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from processor.models import GeocodeCacheEntry, SyncResult

logger = logging.getLogger(__name__)

EVENTS = 'EVENT'
SPOTS = 'SPOT'
SYNC_META = 'SYNC_META'
SOURCES = 'SOURCE'
GEOCODE = 'GEOCODE'
ROUTES = 'ROUTE'
PLANNER = 'PLANNER'

_KEY_ATTRIBUTES = ('pk', 'sk')


def to_dynamodb(value: Any) -> Any:
    """Convert floats to Decimal so boto3 can serialize them."""
    return json.loads(json.dumps(value), parse_float=Decimal)


def from_dynamodb(value: Any) -> Any:
    """Convert Decimals returned by boto3 back to int/float."""
    if isinstance(value, list):
        return [from_dynamodb(item) for item in value]
    if isinstance(value, dict):
        return {key: from_dynamodb(item) for key, item in value.items()}
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DynamoDBManager:
    """
    Manager for DynamoDB operations.

    All logical tables share one DynamoDB table. The partition key ``pk``
    names the logical table (events, spots, sources, ...) and the sort key
    ``sk`` is the record key within it.
    """

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region (defaults to the boto3 session region)
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    # Generic record operations

    def get_all_records(self, kind: str) -> Dict[str, Dict[str, Any]]:
        """
        Retrieve all records of one logical table.

        Args:
            kind: Logical table name (partition key value)

        Returns:
            Dictionary mapping record key to record payload
        """
        records = {}
        try:
            response = self.table.query(KeyConditionExpression=Key('pk').eq(kind))
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.query(
                    KeyConditionExpression=Key('pk').eq(kind),
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

            for item in items:
                records[item['sk']] = self._item_to_record(item)

            logger.info(f"Retrieved {len(records)} {kind} records from DynamoDB")
            return records

        except ClientError as e:
            logger.error(f"Error querying {kind} records: {e}")
            raise

    def get_record(self, kind: str, key: str) -> Optional[Dict[str, Any]]:
        response = self.table.get_item(Key={'pk': kind, 'sk': key})
        item = response.get('Item')
        return self._item_to_record(item) if item else None

    def put_record(self, kind: str, key: str, record: Dict[str, Any]) -> None:
        self.table.put_item(Item=self._record_to_item(kind, key, record))

    def delete_record(self, kind: str, key: str) -> None:
        self.table.delete_item(Key={'pk': kind, 'sk': key})

    def sync_records(self, kind: str, records: Dict[str, Dict[str, Any]]) -> SyncResult:
        """
        Replace the contents of a logical table with a new record set.

        Compares new records with existing ones, then performs additions,
        updates, and deletions as needed. Records absent from the new set
        are dropped.

        Args:
            kind: Logical table name
            records: Mapping of record key to record payload

        Returns:
            SyncResult with counts of added, updated, deleted records
        """
        logger.info(f"Starting {kind} sync with {len(records)} records")
        errors = []

        try:
            existing = self.get_all_records(kind)

            keys_to_add = [key for key in records if key not in existing]
            keys_to_update = [
                key for key in records
                if key in existing and self._records_differ(records[key], existing[key])
            ]
            keys_to_delete = [key for key in existing if key not in records]

            logger.info(
                f"Sync plan for {kind}: {len(keys_to_add)} to add, "
                f"{len(keys_to_update)} to update, "
                f"{len(keys_to_delete)} to delete"
            )

            added_count = 0
            updated_count = 0
            deleted_count = 0

            if keys_to_add or keys_to_update:
                write_count = self.batch_write_records(
                    kind, {key: records[key] for key in keys_to_add + keys_to_update}
                )
                added_count = min(write_count, len(keys_to_add))
                updated_count = write_count - added_count

            if keys_to_delete:
                deleted_count = self.batch_delete_records(kind, keys_to_delete)

            logger.info(
                f"{kind} sync complete: {added_count} added, {updated_count} updated, "
                f"{deleted_count} deleted"
            )
            return SyncResult(
                added=added_count,
                updated=updated_count,
                deleted=deleted_count,
                errors=errors
            )

        except ClientError as e:
            error_msg = f"Error during {kind} sync operation: {e}"
            logger.error(error_msg)
            errors.append(error_msg)
            return SyncResult(added=0, updated=0, deleted=0, errors=errors)

    def batch_write_records(self, kind: str, records: Dict[str, Dict[str, Any]]) -> int:
        """
        Write records in batches of 25 items.

        Args:
            kind: Logical table name
            records: Mapping of record key to record payload

        Returns:
            Count of successfully written records
        """
        if not records:
            return 0

        success_count = 0
        keys = list(records)

        for i in range(0, len(keys), self.BATCH_SIZE):
            batch = keys[i:i + self.BATCH_SIZE]
            try:
                with self.table.batch_writer() as writer:
                    for key in batch:
                        writer.put_item(Item=self._record_to_item(kind, key, records[key]))
                        success_count += 1
            except ClientError as e:
                logger.error(f"Error writing {kind} batch {i // self.BATCH_SIZE + 1}: {e}")
                continue

        logger.info(f"Successfully wrote {success_count} {kind} records")
        return success_count

    def batch_delete_records(self, kind: str, keys: List[str]) -> int:
        """
        Delete records in batches of 25 items.

        Args:
            kind: Logical table name
            keys: Record keys to delete

        Returns:
            Count of successfully deleted records
        """
        if not keys:
            return 0

        success_count = 0
        for i in range(0, len(keys), self.BATCH_SIZE):
            batch = keys[i:i + self.BATCH_SIZE]
            try:
                with self.table.batch_writer() as writer:
                    for key in batch:
                        writer.delete_item(Key={'pk': kind, 'sk': key})
                        success_count += 1
            except ClientError as e:
                logger.error(f"Error deleting {kind} batch {i // self.BATCH_SIZE + 1}: {e}")
                continue

        logger.info(f"Successfully deleted {success_count} {kind} records")
        return success_count

    # Snapshot tables

    def list_events(self) -> List[Dict[str, Any]]:
        return list(self.get_all_records(EVENTS).values())

    def list_spots(self) -> List[Dict[str, Any]]:
        return list(self.get_all_records(SPOTS).values())

    def get_sync_meta(self, kind: str) -> Optional[Dict[str, Any]]:
        return self.get_record(SYNC_META, kind)

    def save_events(self, events: List[Dict[str, Any]], synced_at: str,
                    source_urls: List[str]) -> SyncResult:
        result = self.sync_records(EVENTS, {event['eventUrl']: event for event in events})
        self.put_record(SYNC_META, 'events', {
            'syncedAt': synced_at,
            'sourceUrls': source_urls,
            'count': len(events),
        })
        return result

    def save_spots(self, spots: List[Dict[str, Any]], synced_at: str,
                   source_urls: List[str]) -> SyncResult:
        result = self.sync_records(SPOTS, {spot['id']: spot for spot in spots})
        self.put_record(SYNC_META, 'spots', {
            'syncedAt': synced_at,
            'sourceUrls': source_urls,
            'count': len(spots),
        })
        return result

    # Sources

    def list_sources(self) -> List[Dict[str, Any]]:
        sources = list(self.get_all_records(SOURCES).values())
        return sorted(sources, key=lambda source: source.get('createdAt', ''))

    def get_source(self, source_id: str) -> Optional[Dict[str, Any]]:
        return self.get_record(SOURCES, source_id)

    def create_source(self, source_type: str, url: str, label: str) -> Dict[str, Any]:
        """
        Create a source, or return the existing one with the same identity.

        Args:
            source_type: "event" or "spot"
            url: Source URL
            label: Display label

        Returns:
            Stored source row
        """
        for existing in self.list_sources():
            if existing.get('sourceType') == source_type and existing.get('url') == url:
                return existing

        now = _now_iso()
        source = {
            'id': uuid.uuid4().hex,
            'sourceType': source_type,
            'url': url,
            'label': label,
            'status': 'active',
            'lastSyncedAt': '',
            'lastError': '',
            'createdAt': now,
            'updatedAt': now,
        }
        self.put_record(SOURCES, source['id'], source)
        return source

    def update_source(self, source_id: str, **changes: Any) -> Optional[Dict[str, Any]]:
        """
        Patch fields on a source row.

        Args:
            source_id: Source identifier
            **changes: camelCase fields to overwrite

        Returns:
            Updated row, or None when the source does not exist
        """
        source = self.get_source(source_id)
        if source is None:
            return None
        source.update(changes)
        source['updatedAt'] = _now_iso()
        self.put_record(SOURCES, source_id, source)
        return source

    def delete_source(self, source_id: str) -> bool:
        if self.get_source(source_id) is None:
            return False
        self.delete_record(SOURCES, source_id)
        return True

    # Caches

    def get_geocode(self, address_key: str) -> Optional[GeocodeCacheEntry]:
        record = self.get_record(GEOCODE, address_key)
        return GeocodeCacheEntry.from_dict(dict(record, addressKey=address_key)) if record else None

    def put_geocode(self, entry: GeocodeCacheEntry) -> None:
        self.put_record(GEOCODE, entry.address_key, dict(entry.to_dict(), updatedAt=_now_iso()))

    def get_route(self, cache_key: str) -> Optional[Dict[str, Any]]:
        return self.get_record(ROUTES, cache_key)

    def put_route(self, cache_key: str, route: Dict[str, Any]) -> None:
        self.put_record(ROUTES, cache_key, dict(route, updatedAt=_now_iso()))

    def get_planner_state(self, key: str) -> Optional[Dict[str, Any]]:
        return self.get_record(PLANNER, key)

    def put_planner_state(self, key: str, planner_by_date: Dict[str, Any]) -> None:
        self.put_record(PLANNER, key, {
            'plannerByDate': planner_by_date,
            'updatedAt': _now_iso(),
        })

    # Item conversion

    def _item_to_record(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """
        Convert a DynamoDB item to a plain record.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Record without key attributes, numbers as int/float
        """
        return {
            key: from_dynamodb(value)
            for key, value in item.items()
            if key not in _KEY_ATTRIBUTES
        }

    def _record_to_item(self, kind: str, key: str, record: Dict[str, Any]) -> Dict[str, Any]:
        item = to_dynamodb(record)
        item['pk'] = kind
        item['sk'] = key
        return item

    def _records_differ(self, new: Dict[str, Any], existing: Dict[str, Any]) -> bool:
        """Compare two records after a DynamoDB number round-trip."""
        return from_dynamodb(to_dynamodb(new)) != existing
