"""
Festival API: stages function
Routes: GET/POST /events/{event_id}/stages, PUT/DELETE /stages/{stage_id}
"""

import logging

from common import config, store
from common.authz import Operation, require
from common.errors import NotFound
from common.http import body, dispatch, pick, require_fields
from common.identity import require_user
from common.response import created, ok

logger = logging.getLogger()
logger.setLevel(config.LOG_LEVEL)

STAGE_FIELDS = ["name", "description"]


def list_stages(event, route, principal):
    require_user(principal)
    event_id = route.id("event_id")
    require(principal, "event", Operation.READ, event_id)
    stages = store.query("stage", store.where(event_id=event_id))
    stages.sort(key=lambda s: (s.get("name") or "", s["id"]))
    return ok(stages)


def create_stage(event, route, principal):
    event_id = route.id("event_id")
    data = body(event)
    require_fields(data, "name")
    require(principal, "stage", Operation.CREATE, parent_id=event_id)
    item = store.insert("stage", {
        "name": data["name"],
        "description": data.get("description"),
        "event_id": event_id,
    })
    return created({"success": True, "stage": item})


def update_stage(event, route, principal):
    stage_id = route.id("stage_id")
    require(principal, "stage", Operation.UPDATE, stage_id)
    changes = pick(body(event), STAGE_FIELDS)
    item = store.update("stage", stage_id, changes)
    if item is None:
        raise NotFound("Stage not found")
    return ok({"success": True, "stage": item})


def delete_stage(event, route, principal):
    access = require(principal, "stage", Operation.DELETE, route.id("stage_id"))
    store.delete("stage", access.resource)
    return ok({"success": True})


HANDLERS = {
    ("stage", "list"): list_stages,
    ("stage", "create"): create_stage,
    ("stage", "update"): update_stage,
    ("stage", "delete"): delete_stage,
}


def handler(event, context):
    """Lambda entry point for the stages function."""
    return dispatch(event, "stages", HANDLERS)
