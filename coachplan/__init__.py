"""Workout-plan assignment and scheduled-session tracking engine."""

__version__ = "0.1.0"
