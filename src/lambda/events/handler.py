"""
Festival API: events function
Routes: GET/POST /events, GET/PUT/DELETE /events/{id}
"""

import logging

from boto3.dynamodb.conditions import Attr

from common import config, store
from common.authz import Operation, require
from common.errors import ApiError, NotFound
from common.http import body, dispatch, pick, qs, require_fields
from common.identity import require_user
from common.pagination import page_params, paginate
from common.response import created, ok

logger = logging.getLogger()
logger.setLevel(config.LOG_LEVEL)

EVENT_FIELDS = [
    "name", "date_start", "date_end", "venue", "city", "country",
    "featured", "details", "image_url",
]


def _saved_event_ids(user_id: str) -> set[int]:
    try:
        return store.user_event_ids(user_id)
    except ApiError:
        logger.exception("Failed to fetch saved events for user %s", user_id)
        return set()


def _list_condition(params: dict):
    condition = None
    clauses = []
    if params.get("featured") == "true":
        clauses.append(Attr("featured").eq(True))
    if params.get("search"):
        clauses.append(Attr("searchName").contains(params["search"].lower()))
    if params.get("from"):
        clauses.append(Attr("date_start").gte(params["from"]))
    if params.get("to"):
        clauses.append(Attr("date_end").lte(params["to"]))
    for clause in clauses:
        condition = clause if condition is None else condition & clause
    return condition


def list_events(event, route, principal):
    require_user(principal)
    params = qs(event)
    page, size = page_params(params, config.EVENTS_PAGE_SIZE)

    items = store.query("event", _list_condition(params))
    items.sort(key=lambda e: (e.get("date_start") or "", e["id"]))
    page_items, _ = paginate(items, page, size)

    saved = _saved_event_ids(principal.user_id)
    return ok([dict(e, has_user_event=e["id"] in saved) for e in page_items])


def get_event(event, route, principal):
    require_user(principal)
    access = require(principal, "event", Operation.READ, route.id("event_id"))
    saved = _saved_event_ids(principal.user_id)
    item = access.resource
    return ok(dict(item, has_user_event=item["id"] in saved))


def create_event(event, route, principal):
    require(principal, "event", Operation.CREATE)
    data = body(event)
    require_fields(data, "name", "date_start", "date_end")
    attrs = {f: data.get(f) for f in EVENT_FIELDS}
    attrs["featured"] = bool(data.get("featured", False))
    # Admin requests that also carry a user token record that user as creator
    attrs["created_by"] = principal.user_id
    item = store.insert("event", attrs)
    logger.info("Created event %s", item["id"])
    return created({"success": True, "event": item})


def update_event(event, route, principal):
    event_id = route.id("event_id")
    require(principal, "event", Operation.UPDATE, event_id)
    changes = pick(body(event), EVENT_FIELDS)
    item = store.update("event", event_id, changes)
    if item is None:
        raise NotFound("Event not found")
    return ok({"success": True, "event": item})


def delete_event(event, route, principal):
    access = require(principal, "event", Operation.DELETE, route.id("event_id"))
    store.delete("event", access.resource)
    return ok({"success": True})


HANDLERS = {
    ("event", "list"): list_events,
    ("event", "get"): get_event,
    ("event", "create"): create_event,
    ("event", "update"): update_event,
    ("event", "delete"): delete_event,
}


def handler(event, context):
    """Lambda entry point for the events function."""
    return dispatch(event, "events", HANDLERS)
