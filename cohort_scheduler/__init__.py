"""Cohort scheduler: content drip, live session reminders and recovery tracking."""
