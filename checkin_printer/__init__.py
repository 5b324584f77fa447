"""Attendance check-in badge printing over a local print daemon."""
