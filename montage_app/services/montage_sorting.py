"""
Sort / Prioritization Engine for montage lists.

    smart-date     soonest actionable date first (scheduled, else forecast), nulls last;
                   ties → newest created first
    stagnation     longest untouched first (updated_at ascending)
    last-activity  most recently touched first (updated_at descending) — default

smart-date and stagnation are stable (equal keys keep input order);
last-activity is the exact reverse of stagnation, so ties come out reversed.
"""

from __future__ import annotations

from enum import Enum

from montage_app.utils.helpers import as_utc


class SortOption(str, Enum):
    SMART_DATE = "smart-date"
    STAGNATION = "stagnation"
    LAST_ACTIVITY = "last-activity"


DEFAULT_SORT = SortOption.LAST_ACTIVITY


def parse_sort_option(raw) -> SortOption:
    """Query-string value → SortOption; anything unknown is the default."""
    if isinstance(raw, SortOption):
        return raw
    try:
        return SortOption(raw)
    except ValueError:
        return DEFAULT_SORT


def actionable_date(montage):
    """Scheduled installation if present, else the forecast (as UTC datetimes)."""
    if montage.scheduled_installation_at is not None:
        return as_utc(montage.scheduled_installation_at)
    return as_utc(montage.forecasted_installation_date)


def _timestamp(value) -> float:
    ts = as_utc(value)
    return ts.timestamp() if ts is not None else float("-inf")


def sort_projects(projects, option=DEFAULT_SORT) -> list:
    """Return a new list ordered by ``option``."""
    option = parse_sort_option(option)
    items = list(projects)

    if option is SortOption.SMART_DATE:
        # Secondary key first; the stable primary pass keeps it within equal dates.
        items.sort(key=lambda m: _timestamp(m.created_at), reverse=True)
        items.sort(key=lambda m: (actionable_date(m) is None, _timestamp(actionable_date(m))))
        return items

    if option is SortOption.STAGNATION:
        items.sort(key=lambda m: _timestamp(m.updated_at))
        return items

    # Exact mirror of stagnation, ties included.
    items.sort(key=lambda m: _timestamp(m.updated_at))
    items.reverse()
    return items
