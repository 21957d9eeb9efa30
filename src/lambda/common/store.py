"""
Persistence adapter over the festival DynamoDB table.

Single-table layout:
  rows             PK = <TYPE>#<id>          SK = META
  id counters      PK = COUNTER              SK = <TYPE>
  unique guards    PK = UNIQUE#<TYPE>        SK = <a>#<b>
  saved events     PK = USER#<sub>           SK = EVENT#<event id>
Rows carry entityType/entitySk for the byEntity GSI used by listings.
"""

import logging
from contextlib import contextmanager
from decimal import Decimal

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from common import config
from common.errors import AccessDenied, Conflict, StoreFailure
from common.saga import Saga

logger = logging.getLogger(__name__)

ENTITY_TYPES = {
    "event": "EVENT",
    "stage": "STAGE",
    "artist": "ARTIST",
    "lineup": "LINEUP",
    "set_time": "SET_TIME",
    "collaboration": "COLLABORATION",
    "group": "GROUP_SCHEDULE",
    "group_member": "GROUP_MEMBER",
}

LABELS = {
    "event": "event",
    "stage": "stage",
    "artist": "artist",
    "lineup": "lineup entry",
    "set_time": "set time",
    "collaboration": "collaboration",
    "group": "group schedule",
    "group_member": "group member",
}

UNIQUE_FIELDS = {
    "lineup": ("event_id", "artist_id"),
    "collaboration": ("set_time_id", "artist_id"),
    "group_member": ("group_id", "user_id"),
}

CONFLICT_MESSAGES = {
    "lineup": "This artist is already in the lineup for this event",
    "collaboration": "This artist is already a collaborator for this set time",
    "group_member": "This user is already a member of this group",
}

# Rows removed along with their parent: kind -> [(child kind, foreign key)]
CASCADES = {
    "event": [("stage", "event_id"), ("lineup", "event_id"), ("group", "event_id")],
    "stage": [("set_time", "stage_id")],
    "set_time": [("collaboration", "set_time_id")],
    "group": [("group_member", "group_id")],
}

SEARCHABLE = {"event", "artist"}

_INTERNAL_KEYS = ("PK", "SK", "entityType", "entitySk", "searchName")

_table = None


def table():
    global _table
    if _table is None:
        # No retries at this layer: a failed call surfaces immediately
        boto_config = BotoConfig(retries={"max_attempts": 1, "mode": "standard"})
        _table = boto3.resource("dynamodb", config=boto_config).Table(config.TABLE_NAME)
    return _table


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@contextmanager
def _translate(action: str, kind: str):
    """Map DynamoDB failures onto the API error taxonomy."""
    label = LABELS.get(kind, kind)
    try:
        yield
    except ClientError as exc:
        err = exc.response.get("Error", {})
        code = err.get("Code", "")
        if code == "ConditionalCheckFailedException":
            raise Conflict(CONFLICT_MESSAGES.get(kind, "Conflict")) from exc
        if code == "AccessDeniedException":
            logger.error("Access denied on %s %s: %s", action, label, err.get("Message", ""))
            raise AccessDenied(
                f"Access policy violation while trying to {action} {label}",
                details=err.get("Message", ""),
                suggestion=(
                    f"Make sure the function role allows this operation on table "
                    f"{config.TABLE_NAME}."
                ),
            ) from exc
        logger.exception("DynamoDB %s failed for %s", action, label)
        raise StoreFailure(f"Failed to {action} {label}") from exc
    except BotoCoreError as exc:
        logger.exception("DynamoDB %s failed for %s", action, label)
        raise StoreFailure(f"Failed to {action} {label}") from exc


def _plain(value):
    """Turn integral Decimals back into ints (recursively)."""
    if isinstance(value, Decimal):
        return int(value) if value == int(value) else value
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def _public(item: dict) -> dict:
    return {k: _plain(v) for k, v in item.items() if k not in _INTERNAL_KEYS}


def _row_key(kind: str, item_id) -> dict:
    return {"PK": f"{ENTITY_TYPES[kind]}#{item_id}", "SK": "META"}


def _unique_key(kind: str, row: dict) -> dict | None:
    fields = UNIQUE_FIELDS.get(kind)
    if not fields:
        return None
    return {
        "PK": f"UNIQUE#{ENTITY_TYPES[kind]}",
        "SK": "#".join(str(row[f]) for f in fields),
    }


def _to_item(kind: str, row: dict) -> dict:
    item = dict(row)
    item.update(_row_key(kind, row["id"]))
    item["entityType"] = ENTITY_TYPES[kind]
    item["entitySk"] = f"{int(row['id']):012d}"
    if kind in SEARCHABLE:
        item["searchName"] = str(row.get("name", "")).lower()
    return item


def next_id(kind: str) -> int:
    """Allocate the next integer id for a kind with an atomic counter."""
    with _translate("allocate an id for", kind):
        resp = table().update_item(
            Key={"PK": "COUNTER", "SK": ENTITY_TYPES[kind]},
            UpdateExpression="ADD lastId :one",
            ExpressionAttributeValues={":one": 1},
            ReturnValues="UPDATED_NEW",
        )
    return int(resp["Attributes"]["lastId"])


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get(kind: str, item_id) -> dict | None:
    with _translate("read", kind):
        resp = table().get_item(Key=_row_key(kind, item_id))
    item = resp.get("Item")
    return _public(item) if item else None


def _entity_query(kind: str, condition=None, **extra) -> dict:
    params = {
        "IndexName": "byEntity",
        "KeyConditionExpression": Key("entityType").eq(ENTITY_TYPES[kind]),
    }
    if condition is not None:
        params["FilterExpression"] = condition
    params.update(extra)
    return params


def query(kind: str, condition=None) -> list[dict]:
    """All rows of a kind matching an optional boto3 condition."""
    params = _entity_query(kind, condition)
    items: list[dict] = []
    with _translate("list", kind):
        while True:
            resp = table().query(**params)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            params["ExclusiveStartKey"] = last_key
    return [_public(i) for i in items]


def count(kind: str, condition=None) -> int:
    """Number of rows of a kind matching the same kind of condition as query()."""
    params = _entity_query(kind, condition, Select="COUNT")
    total = 0
    with _translate("count", kind):
        while True:
            resp = table().query(**params)
            total += int(resp.get("Count", 0))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            params["ExclusiveStartKey"] = last_key
    return total


def where(**equals):
    """AND together equality conditions, skipping None values."""
    condition = None
    for name, value in equals.items():
        if value is None:
            continue
        clause = Attr(name).eq(value)
        condition = clause if condition is None else condition & clause
    return condition


def user_event_ids(user_id: str) -> set[int]:
    """Ids of the events a user has saved."""
    with _translate("read saved events for", "event"):
        resp = table().query(
            KeyConditionExpression=Key("PK").eq(f"USER#{user_id}") & Key("SK").begins_with("EVENT#"),
        )
    ids = set()
    for item in resp.get("Items", []):
        raw = item.get("event_id") or item.get("SK", "").split("#", 1)[-1]
        try:
            ids.add(int(raw))
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed saved event %s for %s", item.get("SK"), user_id)
    return ids


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def _put(kind: str, item: dict, **conditions):
    with _translate("save", kind):
        table().put_item(Item=item, **conditions)


def _delete_key(kind: str, key: dict):
    with _translate("delete", kind):
        table().delete_item(Key=key)


def insert(kind: str, attrs: dict) -> dict:
    """
    Insert a row with a fresh id. Kinds with a uniqueness constraint first
    claim a guard item; a taken guard raises Conflict and nothing is written.
    """
    row = dict(attrs)
    row["id"] = next_id(kind)
    guard = _unique_key(kind, row)

    with Saga(f"insert {LABELS[kind]}") as saga:
        if guard:
            saga.run(
                lambda: _put(kind, dict(guard, rowId=row["id"]),
                             ConditionExpression="attribute_not_exists(PK)"),
                lambda _: _delete_key(kind, guard),
                label="uniqueness guard",
            )
        saga.run(lambda: _put(kind, _to_item(kind, row)), label="row")
    return _public(row)


def update(kind: str, item_id, changes: dict) -> dict | None:
    """Apply whitelisted changes to an existing row; None if it is gone."""
    with _translate("read", kind):
        existing = table().get_item(Key=_row_key(kind, item_id)).get("Item")
    if not existing:
        return None
    existing.update(changes)
    if kind in SEARCHABLE:
        existing["searchName"] = str(existing.get("name", "")).lower()
    try:
        _put(kind, existing, ConditionExpression="attribute_exists(PK)")
    except Conflict:
        logger.warning("%s %s vanished before the update was written", LABELS[kind], item_id)
        return None
    return _public(existing)


def delete(kind: str, row: dict):
    """Delete a row, its dependent rows, and its uniqueness guard."""
    for child_kind, foreign_key in CASCADES.get(kind, []):
        for child in query(child_kind, Attr(foreign_key).eq(row["id"])):
            delete(child_kind, child)
    _delete_key(kind, _row_key(kind, row["id"]))
    guard = _unique_key(kind, row)
    if guard:
        _delete_key(kind, guard)
    logger.info("Deleted %s %s", LABELS.get(kind, kind), row["id"])
