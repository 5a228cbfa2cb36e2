"""
Tests — Sort / Prioritization Engine.

Covers:
    - smart-date: scheduled beats forecast, nulls last, created_at tiebreak
    - stagnation / last-activity mirror each other
    - Unknown sort option falls back to last-activity
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from montage_app.models.montage import Montage
from montage_app.services.montage_sorting import (
    DEFAULT_SORT,
    SortOption,
    actionable_date,
    parse_sort_option,
    sort_projects,
)

BASE = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _m(code, scheduled=None, forecast=None, created_offset=0, updated_offset=0):
    return Montage(
        code=code,
        client_name=code,
        status="quote_sent",
        scheduled_installation_at=scheduled,
        forecasted_installation_date=forecast,
        created_at=BASE + timedelta(days=created_offset),
        updated_at=BASE + timedelta(days=updated_offset),
    )


def _codes(items):
    return [m.code for m in items]


class TestSmartDate:
    def test_scheduled_before_later_forecast(self):
        forecast_only = _m("F", forecast=date(2025, 1, 10))
        scheduled = _m("S", scheduled=datetime(2025, 1, 5, tzinfo=timezone.utc))
        result = sort_projects([forecast_only, scheduled], SortOption.SMART_DATE)
        assert _codes(result) == ["S", "F"]

    def test_scheduled_wins_over_forecast_on_same_row(self):
        m = _m("X", scheduled=datetime(2025, 2, 1, tzinfo=timezone.utc), forecast=date(2025, 1, 2))
        assert actionable_date(m) == datetime(2025, 2, 1, tzinfo=timezone.utc)

    def test_undated_go_last(self):
        undated = _m("U")
        dated = _m("D", forecast=date(2025, 6, 1))
        assert _codes(sort_projects([undated, dated], "smart-date")) == ["D", "U"]

    def test_ties_newest_created_first(self):
        day = date(2025, 3, 3)
        older = _m("OLD", forecast=day, created_offset=1)
        newer = _m("NEW", forecast=day, created_offset=5)
        assert _codes(sort_projects([older, newer], "smart-date")) == ["NEW", "OLD"]

    def test_naive_scheduled_treated_as_utc(self):
        naive = _m("N", scheduled=datetime(2025, 1, 3))
        aware = _m("A", scheduled=datetime(2025, 1, 4, tzinfo=timezone.utc))
        assert _codes(sort_projects([aware, naive], "smart-date")) == ["N", "A"]


class TestActivitySorts:
    def test_stagnation_oldest_first(self):
        items = [_m("B", updated_offset=2), _m("A", updated_offset=1), _m("C", updated_offset=3)]
        assert _codes(sort_projects(items, "stagnation")) == ["A", "B", "C"]

    def test_last_activity_newest_first(self):
        items = [_m("B", updated_offset=2), _m("A", updated_offset=1), _m("C", updated_offset=3)]
        assert _codes(sort_projects(items, "last-activity")) == ["C", "B", "A"]

    @pytest.mark.parametrize("offsets", [
        [3, 1, 2],
        [1, 1, 2, 2],
        [5, 5, 5],
    ])
    def test_last_activity_is_reverse_of_stagnation(self, offsets):
        items = [_m(f"M{i}", updated_offset=o) for i, o in enumerate(offsets)]
        stagnation = sort_projects(items, SortOption.STAGNATION)
        last_activity = sort_projects(items, SortOption.LAST_ACTIVITY)
        assert _codes(last_activity) == list(reversed(_codes(stagnation)))

    def test_input_not_mutated(self):
        items = [_m("B", updated_offset=2), _m("A", updated_offset=1)]
        sort_projects(items, "stagnation")
        assert _codes(items) == ["B", "A"]


class TestParseSortOption:
    def test_known(self):
        assert parse_sort_option("stagnation") is SortOption.STAGNATION

    @pytest.mark.parametrize("raw", [None, "", "random", 7])
    def test_unknown_defaults(self, raw):
        assert parse_sort_option(raw) is DEFAULT_SORT is SortOption.LAST_ACTIVITY
