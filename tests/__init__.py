"""
ISOBUS Converter Test Suite

This package contains tests for the ISO 11783 task-file / time-log to GML/CSV converter.

Structure:
- unit/: Unit tests for individual components
- integration/: End-to-end conversions through the command line entry point
- fixtures/: Builders for task documents and binary time-logs
"""
