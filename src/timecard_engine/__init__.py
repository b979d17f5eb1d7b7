"""Timecard lifecycle engine with field-level audit history."""

__version__ = "1.0.0"
