"""Translation of per-day edit payloads into typed field edits.

Callers submit daily corrections in one of three shapes:

- desktop: flat keys suffixed with a day index,
  ``{"check_in_time_day_0": "09:30:00", "status": "rejected"}``
- mobile: per-day maps keyed by day index,
  ``{"day_0": {"check_in_time": "09:15:00"}}``
- canonical: per-day maps keyed by work date,
  ``{"2024-01-15": {"check_in": "09:30:00"}}``

Day indexes refer to the timecard's daily entries in calendar order. Every
shape becomes a list of ``DailyFieldEdit`` before it reaches the audit log
service, so nothing downstream branches on input shape.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any
from uuid import UUID

from timecard_engine.services.errors import FieldValidationError, TimecardNotFoundError
from timecard_engine.services.fields import (
    DAILY_FIELDS,
    HEADER_FIELDS,
    CanonicalField,
    canonical_daily_field,
)
from timecard_engine.services.value_codec import ValueCodec

if TYPE_CHECKING:
    from timecard_engine.models import TimecardDailyEntry, TimecardHeader

_DESKTOP_KEY_RE = re.compile(r"^(?P<field>[a-z_]+?)_day_(?P<index>\d+)$")
_MOBILE_KEY_RE = re.compile(r"^day_(?P<index>\d+)$")

# Header keys a desktop form sends alongside its day-indexed fields
_DESKTOP_HEADER_KEYS = frozenset(field.value for field in HEADER_FIELDS)


@dataclass(frozen=True)
class DailyFieldEdit:
    """A proposed new value for one daily time field."""

    work_date: date
    field: CanonicalField
    value: Any


class FieldEditAdapter:
    """Builds validated ``DailyFieldEdit`` lists for one timecard."""

    def __init__(self, timecard_id: UUID, work_dates: Sequence[date]):
        self.timecard_id = timecard_id
        self.work_dates = sorted(work_dates)

    @classmethod
    def for_header(cls, header: TimecardHeader) -> FieldEditAdapter:
        return cls(header.id, header.work_dates)

    def parse(self, payload: Any) -> list[DailyFieldEdit]:
        """Detect the payload shape and translate it."""
        if payload is None:
            return []
        if isinstance(payload, Mapping):
            if not payload:
                return []
            keys = [str(key) for key in payload]
            if all(_MOBILE_KEY_RE.match(key) for key in keys):
                return self.from_mobile(payload)
            if any(_DESKTOP_KEY_RE.match(key) for key in keys):
                return self.from_desktop(payload)
            return self.from_mapping(payload)
        if isinstance(payload, Iterable) and not isinstance(payload, (str, bytes)):
            return self.from_edits(payload)
        raise FieldValidationError(f"Unsupported field edit payload: {type(payload).__name__}")

    def from_desktop(self, updates: Mapping[str, Any]) -> list[DailyFieldEdit]:
        """Translate ``<column>_day_<n>`` keys.

        Header keys such as ``status`` are skipped; any other key means the
        payload mixes shapes and is refused rather than partly applied.
        """
        edits: list[DailyFieldEdit] = []
        for key, value in updates.items():
            match = _DESKTOP_KEY_RE.match(str(key))
            if match is None:
                if str(key) in _DESKTOP_HEADER_KEYS:
                    continue
                raise FieldValidationError(
                    f"Unexpected key '{key}' in day-indexed updates", field_name=str(key)
                )
            work_date = self._date_for_index(int(match.group("index")))
            edits.append(self._edit(work_date, match.group("field"), value))
        return self._dedupe(edits)

    def from_mobile(self, daily_updates: Mapping[str, Mapping[str, Any]]) -> list[DailyFieldEdit]:
        """Translate ``{"day_<n>": {column: value}}`` maps."""
        edits: list[DailyFieldEdit] = []
        for day_key, day_data in daily_updates.items():
            match = _MOBILE_KEY_RE.match(str(day_key))
            if match is None:
                raise FieldValidationError(f"Invalid day key '{day_key}'")
            work_date = self._date_for_index(int(match.group("index")))
            edits.extend(self._day_edits(work_date, day_data))
        return self._dedupe(edits)

    def from_mapping(
        self, edits_by_date: Mapping[date | str, Mapping[str, Any]]
    ) -> list[DailyFieldEdit]:
        """Translate ``{work_date: {field: value}}`` maps."""
        edits: list[DailyFieldEdit] = []
        for raw_date, day_data in edits_by_date.items():
            work_date = self._check_date(_parse_work_date(raw_date))
            edits.extend(self._day_edits(work_date, day_data))
        return self._dedupe(edits)

    def from_edits(self, edits: Iterable[Any]) -> list[DailyFieldEdit]:
        """Validate already-typed edits."""
        result: list[DailyFieldEdit] = []
        for edit in edits:
            if not isinstance(edit, DailyFieldEdit):
                raise FieldValidationError(f"Expected DailyFieldEdit, got {type(edit).__name__}")
            work_date = self._check_date(edit.work_date)
            result.append(self._edit(work_date, edit.field.value, edit.value))
        return self._dedupe(result)

    def _day_edits(self, work_date: date, day_data: Any) -> list[DailyFieldEdit]:
        if not isinstance(day_data, Mapping):
            raise FieldValidationError(f"Edits for {work_date.isoformat()} must be a mapping")
        return [self._edit(work_date, name, value) for name, value in day_data.items()]

    def _edit(self, work_date: date, name: str, value: Any) -> DailyFieldEdit:
        field = canonical_daily_field(name)
        if field is None:
            raise FieldValidationError(f"Unknown daily field '{name}'", field_name=name)
        if not ValueCodec.is_valid_time(value):
            raise FieldValidationError(
                f"Invalid time value {value!r} for {field.value} on {work_date.isoformat()}",
                field_name=field.value,
            )
        return DailyFieldEdit(work_date=work_date, field=field, value=value)

    def _date_for_index(self, index: int) -> date:
        if index >= len(self.work_dates):
            raise TimecardNotFoundError(
                self.timecard_id, f"Timecard {self.timecard_id} has no day {index}"
            )
        return self.work_dates[index]

    def _check_date(self, work_date: date) -> date:
        if work_date not in self.work_dates:
            raise TimecardNotFoundError(
                self.timecard_id,
                f"Timecard {self.timecard_id} has no entry for {work_date.isoformat()}",
            )
        return work_date

    @staticmethod
    def _dedupe(edits: list[DailyFieldEdit]) -> list[DailyFieldEdit]:
        # Last edit for a (date, field) pair wins
        latest: dict[tuple[date, CanonicalField], DailyFieldEdit] = {}
        for edit in edits:
            latest[(edit.work_date, edit.field)] = edit
        return sorted(latest.values(), key=lambda e: (e.work_date, _field_order(e.field)))


def apply_daily_edits(header: TimecardHeader, edits: Iterable[DailyFieldEdit]) -> int:
    """Write edits onto the header's daily entries.

    Returns the number of values that actually changed.
    """
    changed = 0
    touched: dict[date, TimecardDailyEntry] = {}
    for edit in edits:
        entry = header.entry_for(edit.work_date)
        if entry is None:
            raise TimecardNotFoundError(
                header.id,
                f"Timecard {header.id} has no entry for {edit.work_date.isoformat()}",
            )
        new_value = ValueCodec.parse_time(edit.value)
        if getattr(entry, edit.field.value) != new_value:
            setattr(entry, edit.field.value, new_value)
            changed += 1
        touched[entry.work_date] = entry
    for entry in touched.values():
        check_entry_order(entry)
    return changed


def check_entry_order(entry: TimecardDailyEntry) -> None:
    """Refuse a day whose times are out of sequence.

    Present values must run check_in, break_start, break_end, check_out.
    Times are measured from check_in, so an overnight shift may wrap past
    midnight.
    """
    times = [(field, getattr(entry, field.value)) for field in DAILY_FIELDS]
    times = [(field, value) for field, value in times if value is not None]
    if len(times) < 2:
        return

    start = entry.check_in
    previous_field, previous = times[0][0], _offset(times[0][1], start)
    for field, value in times[1:]:
        offset = _offset(value, start)
        if offset < previous:
            raise FieldValidationError(
                f"{field.value} must not be before {previous_field.value} "
                f"on {entry.work_date.isoformat()}",
                field_name=field.value,
            )
        previous_field, previous = field, offset


def _field_order(field: CanonicalField) -> int:
    return list(CanonicalField).index(field)


def _parse_work_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise FieldValidationError(f"Invalid work date {value!r}") from None


def _offset(value: time, start: time | None) -> int:
    minutes = value.hour * 60 + value.minute
    if start is None:
        return minutes
    return (minutes - (start.hour * 60 + start.minute)) % (24 * 60)
