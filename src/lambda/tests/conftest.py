"""
Shared fixtures for the festival Lambda tests.

DynamoDB is replaced by FakeTable, a small in-memory table that evaluates
boto3 condition objects, wrapped in MagicMock so calls can be inspected or
made to fail. Cognito is a plain MagicMock.
"""

import copy
import json
import os
import sys
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

# Make sure src/lambda is on the path
lambda_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if lambda_root not in sys.path:
    sys.path.insert(0, lambda_root)

from common import config, identity, store  # noqa: E402

ADMIN_KEY = "test-admin-key"
USER = "user-123"
OTHER_USER = "user-456"


# ---------------------------------------------------------------------------
# In-memory table
# ---------------------------------------------------------------------------

def client_error(code, operation="PutItem", message=""):
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def _evaluate(condition, item) -> bool:
    expr = condition.get_expression()
    operator, values = expr["operator"], expr["values"]
    if operator == "AND":
        return all(_evaluate(v, item) for v in values)
    if operator == "OR":
        return any(_evaluate(v, item) for v in values)
    if operator == "NOT":
        return not _evaluate(values[0], item)

    name = values[0].name
    if operator == "attribute_exists":
        return name in item
    if operator == "attribute_not_exists":
        return name not in item
    if name not in item:
        return False
    actual = item[name]
    if operator == "=":
        return actual == values[1]
    if operator == "<>":
        return actual != values[1]
    if operator == "<":
        return actual < values[1]
    if operator == "<=":
        return actual <= values[1]
    if operator == ">":
        return actual > values[1]
    if operator == ">=":
        return actual >= values[1]
    if operator == "BETWEEN":
        return values[1] <= actual <= values[2]
    if operator == "IN":
        return actual in values[1]
    if operator == "begins_with":
        return str(actual).startswith(values[1])
    if operator == "contains":
        return actual is not None and values[1] in actual
    raise NotImplementedError(operator)


class FakeTable:
    """Just enough of a boto3 Table resource for the store adapter."""

    def __init__(self):
        self.items: dict[tuple, dict] = {}

    @staticmethod
    def _key(key):
        return key["PK"], key["SK"]

    def get_item(self, Key):
        item = self.items.get(self._key(Key))
        return {"Item": copy.deepcopy(item)} if item else {}

    def put_item(self, Item, ConditionExpression=None):
        key = self._key(Item)
        exists = key in self.items
        if ConditionExpression and (
            ("attribute_not_exists" in ConditionExpression and exists)
            or ("attribute_exists(" in ConditionExpression and not exists)
        ):
            raise client_error("ConditionalCheckFailedException", "PutItem",
                               "The conditional request failed")
        self.items[key] = copy.deepcopy(Item)
        return {}

    def delete_item(self, Key):
        self.items.pop(self._key(Key), None)
        return {}

    def update_item(self, Key, UpdateExpression, ExpressionAttributeValues, ReturnValues=None):
        # only the id counter uses this: ADD lastId :one
        item = self.items.setdefault(self._key(Key), dict(Key))
        item["lastId"] = item.get("lastId", Decimal(0)) + Decimal(ExpressionAttributeValues[":one"])
        return {"Attributes": {"lastId": item["lastId"]}}

    def query(self, KeyConditionExpression, IndexName=None, FilterExpression=None,
              Select=None, ExclusiveStartKey=None):
        matched = [
            copy.deepcopy(item) for item in self.items.values()
            if _evaluate(KeyConditionExpression, item)
            and (FilterExpression is None or _evaluate(FilterExpression, item))
        ]
        if Select == "COUNT":
            return {"Count": len(matched)}
        matched.sort(key=lambda i: (i.get("entitySk", ""), i["SK"]))
        return {"Items": matched, "Count": len(matched)}

    def rows(self, kind):
        """Stored rows of one kind, internal keys included."""
        return [i for i in self.items.values()
                if i.get("entityType") == store.ENTITY_TYPES[kind]]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_table():
    return FakeTable()


@pytest.fixture
def table(fake_table, monkeypatch):
    """The table every store call goes to, as a MagicMock wrapping FakeTable."""
    mock_table = MagicMock(wraps=fake_table)
    mock_table.rows = fake_table.rows
    monkeypatch.setattr(store, "_table", mock_table)
    return mock_table


@pytest.fixture
def cognito(monkeypatch):
    mock_cognito = MagicMock()
    monkeypatch.setattr(identity, "_cognito_client", mock_cognito)
    return mock_cognito


@pytest.fixture(autouse=True)
def _env(monkeypatch, table, cognito):
    monkeypatch.setattr(config, "ADMIN_API_KEY", ADMIN_KEY)
    monkeypatch.setattr(config, "BASE_PATH", "/functions/v1")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_event(method="GET", path="/", body=None, user=USER, admin=False,
                query=None, raw_body=None):
    """Build a minimal API Gateway v2 event."""
    event = {
        "requestContext": {
            "http": {"method": method, "path": path},
        },
        "rawPath": path,
        "headers": {},
        "queryStringParameters": query or {},
    }
    if body is not None:
        event["body"] = json.dumps(body)
    if raw_body is not None:
        event["body"] = raw_body
    if user:
        claims = {"sub": user, "email": f"{user}@festival.test"}
        event["requestContext"]["authorizer"] = {"jwt": {"claims": claims}}
    if admin:
        event["headers"]["x-api-key"] = ADMIN_KEY
    return event


def _parse_response(response):
    """Parse the Lambda response body."""
    assert "statusCode" in response
    assert "body" in response
    body = json.loads(response["body"])
    return response["statusCode"], body


def seed_event(created_by=None, **attrs):
    row = {"name": "Summer Fest", "date_start": "2026-07-01", "date_end": "2026-07-03",
           "featured": False, "created_by": created_by}
    row.update(attrs)
    return store.insert("event", row)


def seed_artist(name="Aurora", **attrs):
    return store.insert("artist", dict({"name": name}, **attrs))


def seed_stage(event_id, name="Main", **attrs):
    return store.insert("stage", dict({"name": name, "event_id": event_id}, **attrs))


def seed_set_time(stage_id, artist_id, start="2026-07-01T20:00:00", end="2026-07-01T21:00:00"):
    return store.insert("set_time", {"stage_id": stage_id, "artist_id": artist_id,
                                     "start_time": start, "end_time": end})
