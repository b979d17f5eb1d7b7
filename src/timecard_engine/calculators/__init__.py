"""Timecard totals calculation."""

from timecard_engine.calculators.totals import DailyTotalsCalculator, TotalsCalculator

__all__ = ["DailyTotalsCalculator", "TotalsCalculator"]
