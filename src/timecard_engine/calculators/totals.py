"""Hours and pay totals for timecards.

The lifecycle core only guarantees that a ``TotalsCalculator`` runs after
every daily-entry mutation. ``DailyTotalsCalculator`` is the default
implementation:

- hours = (check_out - check_in) - (break_end - break_start), floored at 0
- a check_out earlier than check_in is treated as an overnight shift, and
  within one a break may also cross midnight
- daily pay = hours * header pay rate
- header totals are the sums of the daily values
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from timecard_engine.models import TimecardDailyEntry, TimecardHeader

CENTS = Decimal("0.01")


@runtime_checkable
class TotalsCalculator(Protocol):
    """Recomputes derived hours/pay after daily entries change."""

    async def recalculate(self, session: AsyncSession, header: TimecardHeader) -> None:
        ...


def minutes_between(start: time | None, end: time | None, overnight: bool = False) -> int:
    """Whole minutes from start to end, 0 when either is missing."""
    if start is None or end is None:
        return 0
    anchor = date(2000, 1, 1)
    begin = datetime.combine(anchor, start)
    finish = datetime.combine(anchor, end)
    if finish < begin:
        if not overnight:
            return 0
        finish += timedelta(days=1)
    return int((finish - begin).total_seconds() // 60)


class DailyTotalsCalculator:
    """Computes per-day hours and pay, then rolls them up onto the header."""

    def calculate_entry(self, entry: TimecardDailyEntry, pay_rate: Decimal) -> None:
        shift_minutes = minutes_between(entry.check_in, entry.check_out, overnight=True)
        overnight_shift = (
            entry.check_in is not None
            and entry.check_out is not None
            and entry.check_out < entry.check_in
        )
        break_minutes = minutes_between(
            entry.break_start, entry.break_end, overnight=overnight_shift
        )
        worked_minutes = max(0, shift_minutes - break_minutes)

        hours = (Decimal(worked_minutes) / Decimal(60)).quantize(CENTS, rounding=ROUND_HALF_UP)
        entry.hours_worked = hours
        entry.break_minutes = break_minutes if shift_minutes else 0
        entry.daily_pay = (hours * pay_rate).quantize(CENTS, rounding=ROUND_HALF_UP)

    async def recalculate(self, session: AsyncSession, header: TimecardHeader) -> None:
        pay_rate = Decimal(header.pay_rate or 0)
        total_hours = Decimal("0")
        total_pay = Decimal("0")
        total_break = 0

        for entry in header.daily_entries:
            self.calculate_entry(entry, pay_rate)
            total_hours += entry.hours_worked
            total_pay += entry.daily_pay
            total_break += entry.break_minutes

        header.total_hours = total_hours
        header.total_pay = total_pay
        header.total_break_minutes = total_break
        await session.flush()
