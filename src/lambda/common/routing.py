"""
Resource locator.
Maps (method, path) to a typed Route using an ordered table of path patterns.
"""

import re
from dataclasses import dataclass, field

from common import config
from common.errors import RouteUnmatched

LIST = "list"
CREATE = "create"
GET = "get"
UPDATE = "update"
DELETE = "delete"


@dataclass(frozen=True)
class Route:
    function: str
    kind: str
    operation: str
    ids: dict[str, int] = field(default_factory=dict)

    def id(self, name: str) -> int:
        return self.ids[name]


@dataclass(frozen=True)
class RoutePattern:
    function: str
    kind: str
    template: str
    methods: dict[str, str]
    regex: re.Pattern = field(init=False, repr=False, compare=False)
    depth: int = field(init=False, compare=False)

    def __post_init__(self):
        # {name} only ever matches an all-digit segment
        source = re.sub(r"\{(\w+)\}", r"(?P<\1>\\d+)", self.template)
        object.__setattr__(self, "regex", re.compile(f"^{source}$"))
        object.__setattr__(self, "depth", len(_segments(self.template)))

    def match(self, path: str) -> dict[str, int] | None:
        m = self.regex.match(path)
        if not m:
            return None
        return {k: int(v) for k, v in m.groupdict().items()}


def _segments(path: str) -> list[str]:
    return [p for p in path.strip("/").split("/") if p]


def _pattern(function, kind, template, **methods):
    return RoutePattern(function, kind, template, methods)


# ---------------------------------------------------------------------------
# Route table
# ---------------------------------------------------------------------------

ROUTES = [
    # events
    _pattern("events", "event", "/events", GET=LIST, POST=CREATE),
    _pattern("events", "event", "/events/{event_id}", GET=GET, PUT=UPDATE, DELETE=DELETE),

    # stages
    _pattern("stages", "stage", "/events/{event_id}/stages", GET=LIST, POST=CREATE),
    _pattern("stages", "stage", "/stages/{stage_id}", PUT=UPDATE, DELETE=DELETE),

    # artists
    _pattern("artists", "artist", "/artists", GET=LIST, POST=CREATE),
    _pattern("artists", "artist", "/artists/{artist_id}", GET=GET, PUT=UPDATE, DELETE=DELETE),

    # lineups
    _pattern("lineups", "lineup", "/lineups", POST=CREATE),
    _pattern("lineups", "lineup", "/events/{event_id}/lineup", GET=LIST),
    _pattern("lineups", "lineup", "/lineups/{event_id}/lineup", GET=LIST),
    _pattern("lineups", "lineup", "/lineups/{entry_id}", DELETE=DELETE),

    # set times and collaborations
    _pattern("set_times", "set_time", "/set_times", POST=CREATE),
    _pattern("set_times", "set_time", "/set-times", POST=CREATE),
    _pattern("set_times", "set_time", "/events/{event_id}/schedule", GET=LIST),
    _pattern("set_times", "set_time", "/set-times/{event_id}/schedule", GET=LIST),
    _pattern("set_times", "set_time", "/set_times/{set_time_id}", PUT=UPDATE, DELETE=DELETE),
    _pattern("set_times", "set_time", "/set-times/{set_time_id}", PUT=UPDATE, DELETE=DELETE),
    _pattern("set_times", "collaboration", "/set_times/{set_time_id}/collaborations",
             GET=LIST, POST=CREATE),
    _pattern("set_times", "collaboration", "/set-times/{set_time_id}/collaborations",
             GET=LIST, POST=CREATE),
    _pattern("set_times", "collaboration", "/artist_collaborations/{collaboration_id}",
             DELETE=DELETE),

    # group schedules and membership
    _pattern("group_schedules", "group", "/group-schedules", GET=LIST, POST=CREATE),
    _pattern("group_schedules", "group", "/group-schedules/{group_id}",
             GET=GET, PUT=UPDATE, DELETE=DELETE),
    _pattern("group_schedules", "group_member", "/group-schedules/{group_id}/members",
             GET=LIST, POST=CREATE),
    _pattern("group_schedules", "group_member",
             "/group-schedules/{group_id}/members/{member_id}", PUT=UPDATE, DELETE=DELETE),
]

# Most specific first; stable sort keeps table order among equals
ROUTES.sort(key=lambda r: r.depth, reverse=True)

# Function name -> URL segment it is mounted under
MOUNTS = {
    "events": "events",
    "stages": "stages",
    "artists": "artists",
    "lineups": "lineups",
    "set_times": "set-times",
    "group_schedules": "group-schedules",
}


def normalize_path(path: str) -> str:
    """Strip the edge-function base path and any trailing slash."""
    path = path or "/"
    base = config.BASE_PATH.rstrip("/")
    if base and (path == base or path.startswith(base + "/")):
        path = path[len(base):]
    return "/" + "/".join(_segments(path))


def _candidates(path: str, function: str) -> list[str]:
    """The path itself, then the path with the function's mount segment removed."""
    paths = [path]
    parts = _segments(path)
    mount_names = {MOUNTS.get(function, function), function}
    if len(parts) > 1 and parts[0] in mount_names:
        paths.append("/" + "/".join(parts[1:]))
    return paths


def locate(method: str, path: str, function: str) -> Route:
    """
    Resolve a request to a Route for the given function.
    Raises RouteUnmatched when no pattern accepts both path and method.
    """
    method = method.upper()
    path = normalize_path(path)
    table = [r for r in ROUTES if r.function == function]
    for candidate in _candidates(path, function):
        for pattern in table:
            ids = pattern.match(candidate)
            if ids is None:
                continue
            operation = pattern.methods.get(method)
            if operation is None:
                continue
            return Route(function, pattern.kind, operation, ids)
    raise RouteUnmatched()
