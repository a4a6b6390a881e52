from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from ingestion_service.aws_utils.dynamodb_ import (
    BY_DAY_INDEX,
    BY_USER_INDEX,
    DynamoEventStore,
    from_item,
    to_item,
)
from ingestion_service.exceptions import RecordRejected, StoreUnavailableError

from conftest import make_envelope, serializing_table


def client_error(code, operation="PutItem"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def table():
    return MagicMock()


@pytest.fixture
def store(table):
    return DynamoEventStore(table)


def test_insert_is_conditional(store, table):
    record = make_envelope()

    assert store.insert(record) is True

    kwargs = table.put_item.call_args.kwargs
    assert kwargs["ConditionExpression"] == "attribute_not_exists(event_id)"
    assert kwargs["Item"]["ts_day"] == "2026-10-19"


def test_existing_event_is_reported_as_duplicate(store, table):
    table.put_item.side_effect = client_error("ConditionalCheckFailedException")

    assert store.insert(make_envelope()) is False


@pytest.mark.parametrize(
    "error",
    [
        client_error("ProvisionedThroughputExceededException"),
        EndpointConnectionError(endpoint_url="http://dynamodb.local"),
    ],
)
def test_other_failures_mean_store_unavailable(store, table, error):
    table.put_item.side_effect = error

    with pytest.raises(StoreUnavailableError):
        store.insert(make_envelope())


def test_numbers_survive_decimal_conversion():
    record = make_envelope(properties={"price": 9.99, "qty": 3, "nested": [{"ratio": 0.5}]})

    item = to_item(record)
    assert item["properties"]["price"] == Decimal("9.99")

    back = from_item(item)
    assert back == record
    assert isinstance(back["properties"]["qty"], int)


def test_get_returns_plain_record(store, table):
    record = make_envelope()
    table.get_item.return_value = {"Item": to_item(record)}

    assert store.get(record["event_id"]) == record

    table.get_item.return_value = {}
    assert store.get("missing") is None


def test_user_query_follows_pagination(store, table):
    first = [to_item(make_envelope(user_id="u1")) for _ in range(2)]
    second = [to_item(make_envelope(user_id="u1"))]
    table.query.side_effect = [
        {"Items": first, "LastEvaluatedKey": {"event_id": "x"}},
        {"Items": second},
    ]

    records = store.for_user("u1", start="2026-10-01T00:00:00Z", limit=10)

    assert len(records) == 3
    assert all("ts_day" not in r for r in records)
    first_call, second_call = table.query.call_args_list
    assert first_call.kwargs["IndexName"] == BY_USER_INDEX
    assert first_call.kwargs["ScanIndexForward"] is False
    assert second_call.kwargs["ExclusiveStartKey"] == {"event_id": "x"}
    assert second_call.kwargs["Limit"] == 8


def test_recent_walks_back_day_by_day(store, table):
    table.query.side_effect = [
        {"Items": []},
        {"Items": [to_item(make_envelope(client_ts="2026-10-19T09:00:00.000Z"))]},
        {"Items": [to_item(make_envelope(client_ts="2026-10-18T09:00:00.000Z"))] * 3},
    ]

    records = store.recent(limit=3, now=datetime(2026, 10, 19, 10, tzinfo=timezone.utc))

    assert len(records) == 3
    assert table.query.call_count == 3
    assert all(c.kwargs["IndexName"] == BY_DAY_INDEX for c in table.query.call_args_list)


def test_query_failure_is_store_unavailable(store, table):
    table.query.side_effect = client_error("InternalServerError", "Query")

    with pytest.raises(StoreUnavailableError):
        store.for_anonymous("anon-1")


def test_ping(store, table):
    assert store.ping() is True
    table.load.side_effect = client_error("ResourceNotFoundException", "DescribeTable")
    assert store.ping() is False


@pytest.mark.parametrize(
    "value",
    [1e300, 1e-200, 10 ** 40, float("nan"), float("inf")],
)
def test_unstorable_number_rejects_only_that_record(value):
    store = DynamoEventStore(serializing_table())

    assert store.insert(make_envelope(properties={"ok": 1.5})) is True
    with pytest.raises(RecordRejected) as excinfo:
        store.insert(make_envelope(properties={"big": value}))

    assert excinfo.value.reason == "unstorable_record"
