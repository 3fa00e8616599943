"""workfocus: one current task across a work tracker, a timer and a calendar."""

__version__ = "0.1.0"
