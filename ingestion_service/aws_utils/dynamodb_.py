import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, DecimalException
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import RecordRejected, StoreUnavailableError
from ..store import DEFAULT_QUERY_LIMIT, EventStore, TimeBound, normalize_bound

logger = logging.getLogger(__name__)

BY_DAY_INDEX = "by_day_ts"
BY_USER_INDEX = "by_user_ts"
BY_ANONYMOUS_INDEX = "by_anonymous_ts"

RECENT_SCAN_DAYS = 30


def to_item(record: Dict[str, Any]) -> Dict[str, Any]:
    # DynamoDB rejects floats, numbers must travel as Decimal
    item = json.loads(json.dumps(record), parse_float=Decimal)
    item["ts_day"] = record["client_ts"][:10]
    return item


def from_item(item: Dict[str, Any]) -> Dict[str, Any]:
    record = _from_dynamo(item)
    record.pop("ts_day", None)
    return record


def _from_dynamo(value):
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


class DynamoEventStore(EventStore):
    """
    Event store backed by a single DynamoDB table.

    The table is keyed by ``event_id``; inserts are conditional puts so a
    retried batch never overwrites what is already stored. Time and identity
    scans go through three global secondary indexes, all sorted by
    ``client_ts``.
    """

    def __init__(self, table):
        self._table = table

    @classmethod
    def from_settings(cls, settings) -> "DynamoEventStore":
        boto_config = Config(
            connect_timeout=settings.store_connect_timeout,
            read_timeout=settings.store_read_timeout,
            retries={"max_attempts": settings.store_max_attempts, "mode": "standard"},
        )
        resource = boto3.resource(
            "dynamodb",
            region_name=settings.aws_region,
            endpoint_url=settings.dynamodb_endpoint_url,
            config=boto_config,
        )
        return cls(resource.Table(settings.events_table))

    def insert(self, record: Dict[str, Any]) -> bool:
        try:
            self._table.put_item(
                Item=to_item(record),
                ConditionExpression="attribute_not_exists(event_id)",
            )
            return True

        except (DecimalException, TypeError) as e:
            # boto3's serializer rejects numbers outside DynamoDB's range
            logger.warning(f"Event {record.get('event_id')} is not storable: {e!r}")
            raise RecordRejected("unstorable_record") from e

        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            logger.error(f"DynamoDB put_item failed for event {record.get('event_id')}: {e}")
            raise StoreUnavailableError(str(e)) from e

        except BotoCoreError as e:
            logger.error(f"DynamoDB unreachable: {e}")
            raise StoreUnavailableError(str(e)) from e

    def get(self, event_id: str) -> Optional[Dict[str, Any]]:
        try:
            item = self._table.get_item(Key={"event_id": event_id}).get("Item")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"DynamoDB get_item failed: {e}")
            raise StoreUnavailableError(str(e)) from e
        return from_item(item) if item else None

    def recent(self, limit: int = DEFAULT_QUERY_LIMIT, now: datetime = None) -> List[Dict[str, Any]]:
        # tomorrow first, to pick up clients whose clocks run ahead
        day = (now or datetime.now(timezone.utc)) + timedelta(days=1)
        results: List[Dict[str, Any]] = []

        for _ in range(RECENT_SCAN_DAYS + 1):
            remaining = limit - len(results)
            if remaining <= 0:
                break
            results.extend(
                self._query(BY_DAY_INDEX, "ts_day", day.strftime("%Y-%m-%d"), None, None, remaining)
            )
            day -= timedelta(days=1)

        return results

    def for_user(self, user_id, start=None, end=None, limit=DEFAULT_QUERY_LIMIT):
        return self._query(BY_USER_INDEX, "user_id", user_id, start, end, limit)

    def for_anonymous(self, anonymous_id, start=None, end=None, limit=DEFAULT_QUERY_LIMIT):
        return self._query(BY_ANONYMOUS_INDEX, "anonymous_id", anonymous_id, start, end, limit)

    def ping(self) -> bool:
        try:
            self._table.load()
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"DynamoDB health check failed: {e}")
            return False

    def _query(
        self,
        index: str,
        partition_attr: str,
        partition_value: str,
        start: TimeBound,
        end: TimeBound,
        limit: int,
    ) -> List[Dict[str, Any]]:
        condition = Key(partition_attr).eq(partition_value)
        lower = normalize_bound(start)
        upper = normalize_bound(end)
        if lower and upper:
            condition = condition & Key("client_ts").between(lower, upper)
        elif lower:
            condition = condition & Key("client_ts").gte(lower)
        elif upper:
            condition = condition & Key("client_ts").lte(upper)

        args = {
            "IndexName": index,
            "KeyConditionExpression": condition,
            "ScanIndexForward": False,
            "Limit": limit,
        }
        items: List[Dict[str, Any]] = []

        try:
            while len(items) < limit:
                resp = self._table.query(**args)
                items.extend(resp.get("Items", []))
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                args["ExclusiveStartKey"] = last_key
                args["Limit"] = limit - len(items)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"DynamoDB query on {index} failed: {e}")
            raise StoreUnavailableError(str(e)) from e

        return [from_item(item) for item in items[:limit]]
