"""Tests for translating edit payloads into typed daily field edits."""

from datetime import date, time
from types import SimpleNamespace
from uuid import uuid4

import pytest

from timecard_engine.services.errors import FieldValidationError, TimecardNotFoundError
from timecard_engine.services.field_edits import (
    DailyFieldEdit,
    FieldEditAdapter,
    check_entry_order,
)
from timecard_engine.services.fields import CanonicalField

MONDAY = date(2024, 1, 15)
TUESDAY = date(2024, 1, 16)


@pytest.fixture
def adapter() -> FieldEditAdapter:
    # Deliberately unsorted; day indexes follow calendar order
    return FieldEditAdapter(uuid4(), [TUESDAY, MONDAY])


class TestShapes:
    """Every payload shape yields the same canonical edits."""

    def test_desktop_keys(self, adapter):
        edits = adapter.parse(
            {
                "check_in_time_day_0": "09:30:00",
                "check_out_time_day_1": "18:00",
                "status": "rejected",
            }
        )
        assert edits == [
            DailyFieldEdit(MONDAY, CanonicalField.CHECK_IN, "09:30:00"),
            DailyFieldEdit(TUESDAY, CanonicalField.CHECK_OUT, "18:00"),
        ]

    def test_mobile_maps(self, adapter):
        edits = adapter.parse({"day_0": {"check_in_time": "09:15:00", "break_start": "12:30"}})
        assert [(e.work_date, e.field) for e in edits] == [
            (MONDAY, CanonicalField.CHECK_IN),
            (MONDAY, CanonicalField.BREAK_START),
        ]

    def test_canonical_mapping(self, adapter):
        edits = adapter.parse({"2024-01-16": {"check_out": "17:30:00"}})
        assert edits == [DailyFieldEdit(TUESDAY, CanonicalField.CHECK_OUT, "17:30:00")]

    def test_desktop_and_mobile_agree(self, adapter):
        desktop = adapter.parse({"break_end_time_day_1": "13:15"})
        mobile = adapter.parse({"day_1": {"break_end_time": "13:15"}})
        assert desktop == mobile
        assert desktop[0].field.value == "break_end"

    def test_typed_edits(self, adapter):
        edit = DailyFieldEdit(MONDAY, CanonicalField.CHECK_IN, time(8, 0))
        assert adapter.parse([edit]) == [edit]

    def test_empty_payloads(self, adapter):
        assert adapter.parse(None) == []
        assert adapter.parse({}) == []
        assert adapter.parse([]) == []

    def test_last_edit_wins(self, adapter):
        edits = adapter.parse(
            [
                DailyFieldEdit(MONDAY, CanonicalField.CHECK_IN, "09:10"),
                DailyFieldEdit(MONDAY, CanonicalField.CHECK_IN, "09:20"),
            ]
        )
        assert len(edits) == 1
        assert edits[0].value == "09:20"


class TestValidation:
    """Bad payloads are refused before anything is written."""

    def test_unknown_field(self, adapter):
        with pytest.raises(FieldValidationError) as exc_info:
            adapter.parse({"day_0": {"lunch_time": "12:00"}})
        assert exc_info.value.field_name == "lunch_time"

    def test_malformed_time(self, adapter):
        with pytest.raises(FieldValidationError):
            adapter.parse({"check_in_time_day_0": "9 o'clock"})

    def test_blank_time_allowed(self, adapter):
        edits = adapter.parse({"day_0": {"break_start": ""}})
        assert edits[0].value == ""

    def test_day_index_out_of_range(self, adapter):
        with pytest.raises(TimecardNotFoundError):
            adapter.parse({"day_5": {"check_in": "09:00"}})

    def test_date_not_on_timecard(self, adapter):
        with pytest.raises(TimecardNotFoundError):
            adapter.parse({"2024-01-20": {"check_in": "09:00"}})

    def test_invalid_date(self, adapter):
        with pytest.raises(FieldValidationError):
            adapter.parse({"not-a-date": {"check_in": "09:00"}})

    def test_unsupported_payload(self, adapter):
        with pytest.raises(FieldValidationError):
            adapter.parse("check_in=09:00")

    def test_mixed_desktop_and_dated_keys(self, adapter):
        with pytest.raises(FieldValidationError) as exc_info:
            adapter.parse({"2024-01-16": {"check_in": "10:00"}, "check_out_day_0": "16:00"})
        assert exc_info.value.field_name == "2024-01-16"

    def test_mixed_desktop_and_mobile_keys(self, adapter):
        with pytest.raises(FieldValidationError):
            adapter.parse({"day_1": {"check_in": "10:00"}, "check_out_time_day_0": "16:00"})

    def test_mixed_mobile_and_dated_keys(self, adapter):
        with pytest.raises(FieldValidationError):
            adapter.parse({"day_1": {"check_in": "10:00"}, "2024-01-15": {"check_out": "16:00"}})

    def test_unknown_desktop_key(self, adapter):
        with pytest.raises(FieldValidationError):
            adapter.parse({"check_in_time_day_0": "09:30", "lunch": "12:00"})


def day(check_in=None, break_start=None, break_end=None, check_out=None):
    return SimpleNamespace(
        work_date=MONDAY,
        check_in=check_in,
        break_start=break_start,
        break_end=break_end,
        check_out=check_out,
    )


class TestEntryOrder:
    """Times on one day run check_in, break_start, break_end, check_out."""

    def test_day_shift(self):
        check_entry_order(day(time(9, 0), time(12, 0), time(13, 0), time(17, 0)))

    def test_overnight_shift_with_break_past_midnight(self):
        check_entry_order(day(time(22, 0), time(23, 30), time(0, 30), time(6, 0)))

    def test_partial_day(self):
        check_entry_order(day(check_in=time(9, 0)))
        check_entry_order(day(break_start=time(12, 0), break_end=time(12, 30)))

    def test_break_ends_before_it_starts(self):
        with pytest.raises(FieldValidationError) as exc_info:
            check_entry_order(day(time(9, 0), time(13, 0), time(12, 0), time(17, 0)))
        assert exc_info.value.field_name == "break_end"

    def test_break_before_check_in(self):
        with pytest.raises(FieldValidationError) as exc_info:
            check_entry_order(day(time(9, 0), time(8, 0), time(8, 30), time(17, 0)))
        assert exc_info.value.field_name == "check_out"

    def test_check_out_inside_break(self):
        with pytest.raises(FieldValidationError) as exc_info:
            check_entry_order(day(time(9, 0), time(12, 0), time(13, 0), time(12, 30)))
        assert exc_info.value.field_name == "check_out"
