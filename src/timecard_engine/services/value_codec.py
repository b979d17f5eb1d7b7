"""Canonical encoding of audited values.

Time-of-day values reach the engine as absolute timestamps
(``2024-01-15T09:00:00Z``), bare clock strings (``09:00``, ``9:00:00``,
``9:00 AM``) or ``datetime``/``time`` objects. All of them encode to
``HH:MM:SS`` so that equality of the encoded form means "same wall-clock
time". Timestamps keep the wall-clock time as written; offsets are not
converted.

Nothing in this module raises. Input that cannot be read encodes to ``None``,
which the audit layer treats as "no value"; callers that must reject bad
input validate it before it gets here.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, time
from enum import Enum
from typing import Any

from timecard_engine.services.fields import CanonicalField, canonical_daily_field

_CLOCK_RE = re.compile(
    r"^(?P<h>\d{1,2}):(?P<m>\d{1,2})(?::(?P<s>\d{1,2})(?:\.\d+)?)?"
    r"\s*(?P<ampm>[AaPp][Mm])?$"
)
_TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]")


class ValueCodec:
    """Normalizes values for storage and change detection."""

    @classmethod
    def normalize(cls, value: Any) -> str | None:
        """Encode a time-of-day value as ``HH:MM:SS``, or None."""
        parsed = cls._to_time(value)
        if parsed is None:
            return None
        return parsed.strftime("%H:%M:%S")

    @classmethod
    def parse_time(cls, value: Any) -> time | None:
        """Decode a time-of-day value into a ``time`` truncated to seconds."""
        return cls._to_time(value)

    @classmethod
    def is_blank(cls, value: Any) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

    @classmethod
    def is_valid_time(cls, value: Any) -> bool:
        """Blank values are valid (they clear the field)."""
        return cls.is_blank(value) or cls._to_time(value) is not None

    @classmethod
    def normalize_field(cls, field: CanonicalField | str, value: Any) -> str | None:
        """Encode any audited field's value into its comparable form."""
        field = CanonicalField(field)
        if field.is_daily:
            return cls.normalize(value)
        if field == CanonicalField.REJECTED_FIELDS:
            return cls._normalize_field_list(value)
        return cls._normalize_text(value)

    @classmethod
    def to_text(cls, field: CanonicalField | str, value: Any) -> str | None:
        """Text written to ``old_value``/``new_value`` for display."""
        field = CanonicalField(field)
        if field == CanonicalField.REJECTION_REASON:
            if cls.is_blank(value):
                return None
            return str(value)
        return cls.normalize_field(field, value)

    @classmethod
    def equal(cls, field: CanonicalField | str, old: Any, new: Any) -> bool:
        return cls.normalize_field(field, old) == cls.normalize_field(field, new)

    @staticmethod
    def _to_time(value: Any) -> time | None:
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.time().replace(microsecond=0, tzinfo=None)
        if isinstance(value, time):
            return value.replace(microsecond=0, tzinfo=None)
        if not isinstance(value, str):
            return None

        text = value.strip()
        if not text:
            return None

        if _TIMESTAMP_RE.match(text):
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            try:
                stamp = datetime.fromisoformat(text)
            except ValueError:
                return None
            return stamp.time().replace(microsecond=0, tzinfo=None)

        match = _CLOCK_RE.match(text)
        if match is None:
            return None
        hours = int(match.group("h"))
        minutes = int(match.group("m"))
        seconds = int(match.group("s") or 0)
        ampm = match.group("ampm")
        if ampm:
            if not 1 <= hours <= 12:
                return None
            hours = hours % 12 + (12 if ampm.lower() == "pm" else 0)
        if hours > 23 or minutes > 59 or seconds > 59:
            return None
        return time(hours, minutes, seconds)

    @staticmethod
    def _normalize_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, Enum):
            value = value.value
        text = str(value).strip()
        return text or None

    @staticmethod
    def _normalize_field_list(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            try:
                value = json.loads(text)
            except ValueError:
                value = [part for part in text.split(",")]
            if isinstance(value, str):
                value = [value]
        names: set[str] = set()
        for item in value:
            if isinstance(item, Enum):
                item = item.value
            name = str(item).strip()
            if not name:
                continue
            canonical = canonical_daily_field(name)
            names.add(canonical.value if canonical else name)
        if not names:
            return None
        return json.dumps(sorted(names))
