"""Builders for task documents and binary time-logs used across the test suite."""
