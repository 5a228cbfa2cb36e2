"""
Montage Pipeline Engine
Blueprint registry.
"""

from flask import request


def _page_params(default_limit, max_limit):
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    limit = max(limit, 0)
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def paginate_list(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an already-sorted list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (page_items, total_count)
    """
    limit, offset = _page_params(default_limit, max_limit)
    return items[offset:offset + limit], len(items)
