"""
Festival API: group_schedules function
Routes:
  GET/POST   /group-schedules
  GET/PUT/DELETE /group-schedules/{group_id}
  GET/POST   /group-schedules/{group_id}/members
  PUT/DELETE /group-schedules/{group_id}/members/{member_id}
All routes act for the signed-in user; the admin credential alone is not enough.
"""

import logging
from datetime import datetime, timezone

from common import config, store
from common.authz import Operation, membership, require
from common.errors import BadInput, Conflict, NotFound, Unauthorized
from common.http import as_id, body, dispatch, pick, qs, require_fields, require_id
from common.identity import require_user
from common.pagination import page_params, paginate
from common.response import created, ok
from common.saga import Saga

logger = logging.getLogger()
logger.setLevel(config.LOG_LEVEL)

GROUP_FIELDS = ["name"]
EVENT_SUMMARY = ("id", "name", "date_start", "date_end", "venue", "city", "country", "image_url")
MEMBER_STATUSES = {"accepted", "declined"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _members(group_id) -> list[dict]:
    rows = store.query("group_member", store.where(group_id=group_id))
    rows.sort(key=lambda m: m["id"])
    return rows


def _expand(group: dict, events: dict | None = None) -> dict:
    """Attach the event summary and member list to a group row."""
    events = events if events is not None else {}
    event_id = group.get("event_id")
    if event_id not in events:
        row = store.get("event", event_id)
        events[event_id] = {k: row.get(k) for k in EVENT_SUMMARY} if row else None
    return dict(group, event=events[event_id], members=_members(group["id"]))


def _is_manager(principal, group: dict) -> bool:
    if group.get("created_by") == principal.user_id:
        return True
    member = membership(group["id"], principal.user_id)
    return bool(member and member.get("is_admin"))


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------

def list_groups(event, route, principal):
    require_user(principal)
    params = qs(event)
    page, size = page_params(params, config.GROUPS_PAGE_SIZE)

    event_filter = None
    if params.get("event_id"):
        event_filter = as_id(params["event_id"])
        if event_filter is None:
            raise BadInput("Invalid event_id: must be a positive integer")

    groups = {
        g["id"]: g
        for g in store.query("group", store.where(created_by=principal.user_id, event_id=event_filter))
    }
    for member in store.query("group_member", store.where(user_id=principal.user_id)):
        if member["group_id"] in groups:
            continue
        group = store.get("group", member["group_id"])
        if group is None:
            continue
        if event_filter is not None and group.get("event_id") != event_filter:
            continue
        groups[group["id"]] = group

    items = sorted(groups.values(), key=lambda g: (g.get("created_at") or "", g["id"]), reverse=True)
    page_items, pagination = paginate(items, page, size)
    events: dict = {}
    return ok({
        "group_schedules": [_expand(g, events) for g in page_items],
        "pagination": pagination,
    })


def get_group(event, route, principal):
    require_user(principal)
    access = require(principal, "group", Operation.READ, route.id("group_id"))
    return ok(_expand(access.resource))


def create_group(event, route, principal):
    require_user(principal)
    require(principal, "group", Operation.CREATE)
    data = body(event)
    require_fields(data, "name", "event_id")
    event_id = require_id(data, "event_id")
    if store.get("event", event_id) is None:
        raise NotFound("Event not found")

    now = _now()
    with Saga("create group schedule") as saga:
        group = saga.run(
            lambda: store.insert("group", {
                "name": data["name"],
                "event_id": event_id,
                "created_by": principal.user_id,
                "created_at": now,
                "updated_at": now,
            }),
            lambda g: store.delete("group", g),
            label="group",
        )
        saga.run(
            lambda: store.insert("group_member", {
                "group_id": group["id"],
                "user_id": principal.user_id,
                "is_admin": True,
                "status": "accepted",
                "joined_at": now,
                "created_at": now,
            }),
            label="creator membership",
        )

    logger.info("User %s created group schedule %s", principal.user_id, group["id"])
    return created({
        "success": True,
        "group_schedule": group,
        "message": "Group and initial membership created successfully.",
    })


def update_group(event, route, principal):
    require_user(principal)
    group_id = route.id("group_id")
    require(principal, "group", Operation.UPDATE, group_id)
    changes = pick(body(event), GROUP_FIELDS)
    changes["updated_at"] = _now()
    item = store.update("group", group_id, changes)
    if item is None:
        raise NotFound("Group schedule not found or you don't have access")
    return ok({"success": True, "group_schedule": item})


def delete_group(event, route, principal):
    require_user(principal)
    access = require(principal, "group", Operation.DELETE, route.id("group_id"))
    store.delete("group", access.resource)
    return ok({"success": True})


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

def list_members(event, route, principal):
    require_user(principal)
    group_id = route.id("group_id")
    require(principal, "group", Operation.READ, group_id)
    return ok(_members(group_id))


def invite_member(event, route, principal):
    require_user(principal)
    group_id = route.id("group_id")
    data = body(event)
    require_fields(data, "user_id")
    require(principal, "group_member", Operation.CREATE, parent_id=group_id)

    item = store.insert("group_member", {
        "group_id": group_id,
        "user_id": str(data["user_id"]),
        "is_admin": bool(data.get("is_admin", False)),
        "status": "invited",
        "joined_at": None,
        "created_at": _now(),
    })
    logger.info("User %s invited %s to group %s", principal.user_id, item["user_id"], group_id)
    return created({"success": True, "member": item})


def _member_access(principal, route, operation):
    access = require(principal, "group_member", operation, route.id("member_id"))
    if access.resource.get("group_id") != route.id("group_id"):
        raise NotFound("Group member not found")
    return access


def update_member(event, route, principal):
    require_user(principal)
    access = _member_access(principal, route, Operation.UPDATE)
    member, group = access.resource, access.row("group")
    data = body(event)
    is_self = member.get("user_id") == principal.user_id
    is_creator = member.get("user_id") == group.get("created_by")

    changes = {}
    if "status" in data:
        if data["status"] not in MEMBER_STATUSES:
            raise BadInput("Invalid status: must be 'accepted' or 'declined'")
        if not is_self:
            raise Unauthorized()
        if is_creator and data["status"] != "accepted":
            raise Conflict("The group creator's membership cannot be declined")
        changes["status"] = data["status"]
        if data["status"] == "accepted":
            changes["joined_at"] = _now()

    if "is_admin" in data:
        if not _is_manager(principal, group):
            raise Unauthorized()
        if is_creator and not data["is_admin"]:
            raise Conflict("The group creator cannot be demoted")
        changes["is_admin"] = bool(data["is_admin"])

    item = store.update("group_member", member["id"], changes)
    if item is None:
        raise NotFound("Group member not found")
    return ok({"success": True, "member": item})


def remove_member(event, route, principal):
    require_user(principal)
    access = _member_access(principal, route, Operation.DELETE)
    member, group = access.resource, access.row("group")
    if member.get("user_id") == group.get("created_by"):
        raise Conflict("The group creator cannot be removed")
    store.delete("group_member", member)
    return ok({"success": True})


HANDLERS = {
    ("group", "list"): list_groups,
    ("group", "get"): get_group,
    ("group", "create"): create_group,
    ("group", "update"): update_group,
    ("group", "delete"): delete_group,
    ("group_member", "list"): list_members,
    ("group_member", "create"): invite_member,
    ("group_member", "update"): update_member,
    ("group_member", "delete"): remove_member,
}


def handler(event, context):
    """Lambda entry point for the group_schedules function."""
    return dispatch(event, "group_schedules", HANDLERS)
