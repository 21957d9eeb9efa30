"""
Festival API: lineups function
Routes: POST /lineups, GET /events/{event_id}/lineup (also /lineups/{event_id}/lineup),
DELETE /lineups/{entry_id}
"""

import logging

from common import config, store
from common.authz import Operation, require
from common.errors import NotFound
from common.http import body, dispatch, require_fields, require_id
from common.identity import require_user
from common.response import created, ok

logger = logging.getLogger()
logger.setLevel(config.LOG_LEVEL)

ARTIST_SUMMARY = ("id", "name", "spotify_id", "image_url")


def _artist_summary(artist: dict | None) -> dict | None:
    if not artist:
        return None
    return {k: artist.get(k) for k in ARTIST_SUMMARY}


def _lineup_order(entry: dict):
    # tier ascending (untiered last), headliners first within a tier
    tier = entry.get("tier")
    return (tier is None, tier or 0, not entry.get("is_headliner"), entry["id"])


def add_entry(event, route, principal):
    data = body(event)
    require_fields(data, "event_id", "artist_id")
    event_id = require_id(data, "event_id")
    artist_id = require_id(data, "artist_id")

    if store.get("event", event_id) is None:
        raise NotFound("Event not found")
    if store.get("artist", artist_id) is None:
        raise NotFound("Artist not found")
    require(principal, "lineup", Operation.CREATE, parent_id=event_id)

    item = store.insert("lineup", {
        "event_id": event_id,
        "artist_id": artist_id,
        "is_headliner": bool(data.get("is_headliner", False)),
        "tier": data.get("tier"),
        "announcement_date": data.get("announcement_date"),
    })
    logger.info("Added artist %s to lineup of event %s", artist_id, event_id)
    return created({"success": True, "entry": item})


def list_lineup(event, route, principal):
    require_user(principal)
    event_id = route.id("event_id")
    require(principal, "event", Operation.READ, event_id)

    entries = store.query("lineup", store.where(event_id=event_id))
    entries.sort(key=_lineup_order)
    artists = {}
    for entry in entries:
        aid = entry.get("artist_id")
        if aid not in artists:
            artists[aid] = _artist_summary(store.get("artist", aid))
        entry["artist"] = artists[aid]
    return ok(entries)


def remove_entry(event, route, principal):
    access = require(principal, "lineup", Operation.DELETE, route.id("entry_id"))
    store.delete("lineup", access.resource)
    return ok({"success": True})


HANDLERS = {
    ("lineup", "create"): add_entry,
    ("lineup", "list"): list_lineup,
    ("lineup", "delete"): remove_entry,
}


def handler(event, context):
    """Lambda entry point for the lineups function."""
    return dispatch(event, "lineups", HANDLERS)
