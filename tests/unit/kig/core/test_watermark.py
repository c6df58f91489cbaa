"""
Tests for watermark tracking.

Watermarks are what make a poller incremental, so these tests pin down the
rules users build their WHERE clauses on.
"""
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from kig.core.watermark import (
    SQL_LAST_START,
    update_watermarks,
    value_kind,
    watermarks,
)
from kig.utility.exceptions import TypeMismatchError


def fold(parameters, rows):
    for row in rows:
        parameters = update_watermarks(parameters, row)
    return parameters


class TestUpdateWatermarks:
    """Folding rows into last_min_* / last_max_*."""

    def test_rows_from_empty_parameters(self):
        result = fold(
            {},
            [{"id": 1, "val": 10}, {"id": 2, "val": 30}, {"id": 3, "val": 20}],
        )

        assert result == {
            "last_min_id": 1,
            "last_max_id": 3,
            "last_min_val": 10,
            "last_max_val": 30,
        }

    def test_first_value_sets_both_watermarks(self):
        result = update_watermarks({}, {"x": 5})
        assert result == {"last_min_x": 5, "last_max_x": 5}

    def test_min_and_max_bound_every_value_seen(self):
        values = [7, 3, 9, 3, 8]
        result = fold({}, [{"x": v} for v in values])

        assert result["last_min_x"] <= min(values)
        assert result["last_max_x"] >= max(values)

    def test_value_between_min_and_max_changes_nothing(self):
        params = {"last_min_x": 1, "last_max_x": 10}
        assert update_watermarks(params, {"x": 5}) == params

    def test_none_is_ignored(self):
        params = {"last_min_x": 5, "last_max_x": 8}
        assert update_watermarks(params, {"x": None}) == params

    def test_none_for_unseen_column_adds_nothing(self):
        assert update_watermarks({}, {"x": None}) == {}

    def test_nan_is_ignored(self):
        params = {"last_min_x": 1.5, "last_max_x": 2.5}
        assert update_watermarks(params, {"x": float("nan")}) == params

    def test_is_pure(self):
        params = {"last_max_id": 1, "my_id": 7}
        result = update_watermarks(params, {"id": 2})

        assert params == {"last_max_id": 1, "my_id": 7}
        assert result["last_max_id"] == 2
        assert result["my_id"] == 7

    def test_other_parameters_are_kept(self):
        started = datetime(2024, 1, 1, tzinfo=timezone.utc)
        result = update_watermarks({SQL_LAST_START: started, "limit": 5}, {"id": 1})

        assert result[SQL_LAST_START] == started
        assert result["limit"] == 5

    def test_strings_compare_lexicographically(self):
        result = fold({}, [{"name": "bob"}, {"name": "alice"}, {"name": "carol"}])
        assert result["last_min_name"] == "alice"
        assert result["last_max_name"] == "carol"

    def test_timestamps_compare_chronologically(self):
        early = datetime(2024, 1, 1, 9, 0)
        late = datetime(2024, 1, 3, 12, 0)
        result = fold({}, [{"ts": late}, {"ts": early}])

        assert result["last_min_ts"] == early
        assert result["last_max_ts"] == late

    def test_int_float_and_decimal_are_one_kind(self):
        result = fold({}, [{"x": 2}, {"x": 1.5}, {"x": Decimal("3.25")}])
        assert result["last_min_x"] == 1.5
        assert result["last_max_x"] == Decimal("3.25")


class TestTypeMismatch:
    """Incompatible values fail instead of being coerced."""

    def test_number_then_string(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            fold({}, [{"x": 1}, {"x": "2"}])

        assert exc_info.value.column == "x"
        assert exc_info.value.existing == 1
        assert exc_info.value.value == "2"

    def test_seeded_watermark_of_other_kind(self):
        with pytest.raises(TypeMismatchError):
            update_watermarks({"last_max_ts": "2024-01-01"}, {"ts": datetime(2024, 1, 2)})

    def test_naive_and_aware_datetimes(self):
        naive = datetime(2024, 1, 1)
        aware = datetime(2024, 1, 2, tzinfo=timezone.utc)

        with pytest.raises(TypeMismatchError):
            fold({}, [{"ts": naive}, {"ts": aware}])

    def test_date_and_datetime_do_not_mix(self):
        with pytest.raises(TypeMismatchError):
            fold({}, [{"d": date(2024, 1, 1)}, {"d": datetime(2024, 1, 2)}])

    def test_bool_is_not_a_number(self):
        with pytest.raises(TypeMismatchError):
            fold({}, [{"flag": 1}, {"flag": True}])

    def test_failed_row_updates_nothing(self):
        params = {"last_min_a": 1, "last_max_a": 1, "last_min_b": 1, "last_max_b": 1}

        with pytest.raises(TypeMismatchError):
            update_watermarks(params, {"a": 5, "b": "oops"})

        # caller keeps its mapping, the partial update of 'a' never happened
        assert params["last_max_a"] == 1


class TestHelpers:
    def test_value_kind(self):
        assert value_kind(None) is None
        assert value_kind(float("nan")) is None
        assert value_kind(True) == "boolean"
        assert value_kind(3) == "number"
        assert value_kind("a") == "string"
        assert value_kind(datetime(2024, 1, 1)) == "datetime"
        assert value_kind(date(2024, 1, 1)) == "date"

    def test_watermarks_filters_user_parameters(self):
        params = {"my_id": 1, "last_min_id": 2, "last_max_id": 3, SQL_LAST_START: 0}
        assert watermarks(params) == {"last_min_id": 2, "last_max_id": 3}
