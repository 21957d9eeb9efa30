"""
Festival API: artists function
Routes: GET/POST /artists, GET/PUT/DELETE /artists/{id}
"""

import logging

from boto3.dynamodb.conditions import Attr

from common import config, store
from common.authz import Operation, require
from common.errors import Conflict, NotFound
from common.http import body, dispatch, pick, qs, require_fields
from common.identity import require_user
from common.pagination import page_params, paginate
from common.response import created, ok

logger = logging.getLogger()
logger.setLevel(config.LOG_LEVEL)

ARTIST_FIELDS = [
    "name", "spotify_id", "spotify_url", "followers", "genres",
    "popularity", "image_url", "top_tracks", "related_artists",
]

# Checked in this order; the first kind still referencing the artist blocks deletion
DEPENDENCIES = [
    ("lineup", "lineups", "Cannot delete artist with existing lineup entries"),
    ("set_time", "set_times", "Cannot delete artist with existing set times"),
    ("collaboration", "collaborations", "Cannot delete artist with existing collaborations"),
]


def list_artists(event, route, principal):
    require_user(principal)
    params = qs(event)
    page, size = page_params(params, config.ARTISTS_PAGE_SIZE)

    condition = None
    search = params.get("search")
    if search:
        condition = Attr("searchName").contains(search.lower())

    total = store.count("artist", condition)
    items = store.query("artist", condition)
    items.sort(key=lambda a: ((a.get("name") or "").lower(), a["id"]))
    page_items, pagination = paginate(items, page, size, total_count=total)
    return ok({"artists": page_items, "pagination": pagination})


def get_artist(event, route, principal):
    require_user(principal)
    access = require(principal, "artist", Operation.READ, route.id("artist_id"))
    return ok(access.resource)


def create_artist(event, route, principal):
    require_user(principal)
    require(principal, "artist", Operation.CREATE)
    data = body(event)
    require_fields(data, "name")
    item = store.insert("artist", {f: data.get(f) for f in ARTIST_FIELDS})
    logger.info("Created artist %s (%s)", item["id"], item["name"])
    return created({"success": True, "artist": item})


def update_artist(event, route, principal):
    require_user(principal)
    artist_id = route.id("artist_id")
    require(principal, "artist", Operation.UPDATE, artist_id)
    changes = pick(body(event), ARTIST_FIELDS)
    item = store.update("artist", artist_id, changes)
    if item is None:
        raise NotFound("Artist not found")
    return ok({"success": True, "artist": item})


def delete_artist(event, route, principal):
    artist_id = route.id("artist_id")
    access = require(principal, "artist", Operation.DELETE, artist_id)

    for kind, key, message in DEPENDENCIES:
        refs = store.count(kind, store.where(artist_id=artist_id))
        if refs:
            logger.info("Refusing to delete artist %s: %d %s", artist_id, refs, key)
            raise Conflict(message, dependencies={key: refs})

    store.delete("artist", access.resource)
    return ok({"success": True})


HANDLERS = {
    ("artist", "list"): list_artists,
    ("artist", "get"): get_artist,
    ("artist", "create"): create_artist,
    ("artist", "update"): update_artist,
    ("artist", "delete"): delete_artist,
}


def handler(event, context):
    """Lambda entry point for the artists function."""
    return dispatch(event, "artists", HANDLERS)
