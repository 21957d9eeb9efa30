"""
Festival API: set_times function
Routes:
  POST   /set_times                              create a set time
  GET    /events/{event_id}/schedule             per-stage schedule
  PUT    /set_times/{id}, DELETE /set_times/{id}
  GET    /set_times/{id}/collaborations          list collaborators
  POST   /set_times/{id}/collaborations          add a collaborator
  DELETE /artist_collaborations/{id}             remove a collaborator
The hyphenated /set-times spelling is accepted everywhere.
"""

import logging

from common import config, store
from common.authz import Operation, require
from common.errors import ApiError, BadInput, NotFound
from common.http import as_id, body, dispatch, pick, require_fields, require_id
from common.identity import require_user
from common.response import created, ok

logger = logging.getLogger()
logger.setLevel(config.LOG_LEVEL)

SET_TIME_FIELDS = ["artist_id", "stage_id", "start_time", "end_time", "notes"]
ARTIST_SUMMARY = ("id", "name", "spotify_id", "image_url")
STAGE_SUMMARY = ("id", "name")


def _summary(row, fields):
    if not row:
        return None
    return {k: row.get(k) for k in fields}


# ---------------------------------------------------------------------------
# Set times
# ---------------------------------------------------------------------------

def create_set_time(event, route, principal):
    data = body(event)
    require_fields(data, "artist_id", "stage_id", "start_time", "end_time")
    artist_id = require_id(data, "artist_id")
    stage_id = require_id(data, "stage_id")

    if store.get("artist", artist_id) is None:
        raise NotFound("Artist not found")
    if store.get("stage", stage_id) is None:
        raise NotFound("Stage not found")
    require(principal, "set_time", Operation.CREATE, parent_id=stage_id)

    item = store.insert("set_time", {
        "artist_id": artist_id,
        "stage_id": stage_id,
        "start_time": data["start_time"],
        "end_time": data["end_time"],
        "notes": data.get("notes"),
    })
    logger.info("Created set time %s on stage %s", item["id"], stage_id)
    return created({"success": True, "set_time": item})


def _collaborators_by_set_time(set_time_ids, artists: dict) -> dict | None:
    """Collaborator artists per set time, or None when they cannot be read."""
    if not set_time_ids:
        return {}
    try:
        rows = store.query("collaboration")
    except ApiError:
        logger.exception("Could not load collaborations; returning schedule without them")
        return None

    result: dict = {}
    for row in rows:
        st_id = row.get("set_time_id")
        if st_id not in set_time_ids:
            continue
        aid = row.get("artist_id")
        if aid not in artists:
            artists[aid] = _summary(store.get("artist", aid), ARTIST_SUMMARY)
        entry = dict(row, artist=artists[aid])
        result.setdefault(st_id, []).append(entry)
    return result


def event_schedule(event, route, principal):
    require_user(principal)
    event_id = route.id("event_id")
    require(principal, "event", Operation.READ, event_id)

    stages = store.query("stage", store.where(event_id=event_id))
    stages.sort(key=lambda s: (s.get("name") or "", s["id"]))

    blocks = []
    artists: dict = {}
    set_times_by_stage = {}
    for stage in stages:
        rows = store.query("set_time", store.where(stage_id=stage["id"]))
        rows.sort(key=lambda r: (r.get("start_time") or "", r["id"]))
        set_times_by_stage[stage["id"]] = rows

    all_ids = {st["id"] for rows in set_times_by_stage.values() for st in rows}
    collaborators = _collaborators_by_set_time(all_ids, artists)

    for stage in stages:
        stage_summary = _summary(stage, STAGE_SUMMARY)
        entries = []
        for st in set_times_by_stage[stage["id"]]:
            aid = st.get("artist_id")
            if aid not in artists:
                artists[aid] = _summary(store.get("artist", aid), ARTIST_SUMMARY)
            entry = dict(st, artist=artists[aid], stage=stage_summary)
            if collaborators is not None:
                entry["collaborators"] = collaborators.get(st["id"], [])
            entries.append(entry)
        blocks.append({"stage": stage, "set_times": entries})
    return ok(blocks)


def update_set_time(event, route, principal):
    set_time_id = route.id("set_time_id")
    access = require(principal, "set_time", Operation.UPDATE, set_time_id)
    changes = pick(body(event), SET_TIME_FIELDS)

    if "stage_id" in changes:
        new_stage = as_id(changes["stage_id"])
        if new_stage is None:
            raise BadInput("Invalid stage_id: must be a positive integer")
        if new_stage != access.resource.get("stage_id"):
            if store.get("stage", new_stage) is None:
                raise NotFound("New stage not found")
            # moving a set time is a create on the destination stage
            require(principal, "set_time", Operation.CREATE, parent_id=new_stage)
        changes["stage_id"] = new_stage

    if "artist_id" in changes:
        new_artist = as_id(changes["artist_id"])
        if new_artist is None:
            raise BadInput("Invalid artist_id: must be a positive integer")
        if store.get("artist", new_artist) is None:
            raise NotFound("Artist not found")
        if store.count("collaboration", store.where(set_time_id=set_time_id, artist_id=new_artist)):
            raise BadInput("Cannot set a collaborator as the main artist")
        changes["artist_id"] = new_artist

    item = store.update("set_time", set_time_id, changes)
    if item is None:
        raise NotFound("Set time not found")
    return ok({"success": True, "set_time": item})


def delete_set_time(event, route, principal):
    access = require(principal, "set_time", Operation.DELETE, route.id("set_time_id"))
    store.delete("set_time", access.resource)
    return ok({"success": True})


# ---------------------------------------------------------------------------
# Collaborations
# ---------------------------------------------------------------------------

def list_collaborations(event, route, principal):
    require_user(principal)
    set_time_id = route.id("set_time_id")
    require(principal, "set_time", Operation.READ, set_time_id)

    rows = store.query("collaboration", store.where(set_time_id=set_time_id))
    rows.sort(key=lambda r: r["id"])
    for row in rows:
        row["artist"] = _summary(store.get("artist", row.get("artist_id")), ARTIST_SUMMARY)
    return ok(rows)


def add_collaboration(event, route, principal):
    set_time_id = route.id("set_time_id")
    data = body(event)
    require_fields(data, "artist_id")
    artist_id = require_id(data, "artist_id")

    set_time = store.get("set_time", set_time_id)
    if set_time is None:
        raise NotFound("Set time not found")
    if set_time.get("artist_id") == artist_id:
        raise BadInput("Cannot add main artist as a collaborator")
    if store.get("artist", artist_id) is None:
        raise NotFound("Artist not found")
    require(principal, "collaboration", Operation.CREATE, parent_id=set_time_id)

    item = store.insert("collaboration", {
        "set_time_id": set_time_id,
        "artist_id": artist_id,
    })
    return created({"success": True, "collaboration": item})


def remove_collaboration(event, route, principal):
    access = require(principal, "collaboration", Operation.DELETE, route.id("collaboration_id"))
    store.delete("collaboration", access.resource)
    return ok({"success": True})


HANDLERS = {
    ("set_time", "create"): create_set_time,
    ("set_time", "list"): event_schedule,
    ("set_time", "update"): update_set_time,
    ("set_time", "delete"): delete_set_time,
    ("collaboration", "list"): list_collaborations,
    ("collaboration", "create"): add_collaboration,
    ("collaboration", "delete"): remove_collaboration,
}


def handler(event, context):
    """Lambda entry point for the set_times function."""
    return dispatch(event, "set_times", HANDLERS)
