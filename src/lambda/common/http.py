"""
Request helpers and the per-function dispatcher shared by every Lambda.
"""

import base64
import json
import logging
from decimal import Decimal

from common.errors import ApiError, BadInput
from common.identity import require_caller, resolve_principal
from common.response import error, ok
from common.routing import locate

logger = logging.getLogger(__name__)


def method(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("method", "GET").upper()


def path(event: dict) -> str:
    return event.get("rawPath") or event.get("requestContext", {}).get("http", {}).get("path", "/")


def body(event: dict) -> dict:
    """Parse JSON body from the event. Floats become Decimal for DynamoDB."""
    raw = event.get("body")
    if not raw:
        return {}
    if event.get("isBase64Encoded"):
        try:
            raw = base64.b64decode(raw).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            raise BadInput("Invalid JSON body")
    try:
        data = json.loads(raw, parse_float=Decimal)
    except (json.JSONDecodeError, TypeError):
        raise BadInput("Invalid JSON body")
    if not isinstance(data, dict):
        raise BadInput("JSON body must be an object")
    return data


def qs(event: dict) -> dict:
    """Return query-string parameters."""
    return event.get("queryStringParameters") or {}


def as_id(value) -> int | None:
    """Accept an integer id given as a JSON number or a digit string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, Decimal) and value == int(value):
        return int(value) if value > 0 else None
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip()) or None
    return None


def require_fields(data: dict, *names: str) -> None:
    missing = [n for n in names if data.get(n) in (None, "")]
    if not missing:
        return
    if len(missing) == 1 and len(names) == 1:
        raise BadInput(f"Missing required field: {missing[0]}")
    raise BadInput(f"Missing required fields: {', '.join(names)}")


def require_id(data: dict, name: str) -> int:
    value = as_id(data.get(name))
    if value is None:
        raise BadInput(f"Invalid {name}: must be a positive integer")
    return value


def pick(data: dict, fields) -> dict:
    """Whitelist caller-supplied fields; server-assigned ones never pass."""
    return {f: data[f] for f in fields if f in data}


def dispatch(event: dict, function: str, handlers: dict) -> dict:
    """
    Locate the route, resolve the caller, run the operation handler, and turn
    every failure into a JSON error response.
    """
    http_method = method(event)
    if http_method == "OPTIONS":
        return ok({"message": "CORS preflight"})

    raw_path = path(event)
    logger.info("%s %s", http_method, raw_path)

    try:
        route = locate(http_method, raw_path, function)
        principal = require_caller(resolve_principal(event))
        operation = handlers.get((route.kind, route.operation))
        if operation is None:
            logger.error("No handler for %s %s in %s", route.kind, route.operation, function)
            return error("Method not allowed", 405)
        return operation(event, route, principal)
    except ApiError as exc:
        if exc.status >= 500:
            logger.error("%s %s failed: %s", http_method, raw_path, exc)
        return exc.response()
    except Exception:
        logger.exception("Unhandled exception")
        return error("Internal server error", 500)
