"""Offset paging over filtered result sets."""

import math

from common.errors import BadInput


def _positive_int(raw, name: str, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise BadInput(f"Invalid {name}: must be a positive integer")
    if value < 1:
        raise BadInput(f"Invalid {name}: must be a positive integer")
    return value


def page_params(qs: dict, default_size: int) -> tuple[int, int]:
    """Read page/pageSize from query-string parameters."""
    page = _positive_int(qs.get("page"), "page", 1)
    size = _positive_int(qs.get("pageSize"), "pageSize", default_size)
    return page, size


def page_range(page: int, size: int) -> tuple[int, int]:
    """Zero-based inclusive [start, end] for a page."""
    return (page - 1) * size, page * size - 1


def total_pages(total_count: int, size: int) -> int:
    if not total_count:
        return 0
    return math.ceil(total_count / size)


def paginate(items: list, page: int, size: int, total_count: int | None = None) -> tuple[list, dict]:
    """
    Slice a page out of an ordered list.
    total_count comes from a separate count query when the caller has one.
    """
    start, end = page_range(page, size)
    if total_count is None:
        total_count = len(items)
    meta = {
        "page": page,
        "pageSize": size,
        "totalCount": total_count,
        "totalPages": total_pages(total_count, size),
    }
    return items[start:end + 1], meta
