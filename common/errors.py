"""
Error taxonomy shared by the converter packages.

None of these is fatal to a whole run: the pipeline catches them per task or
per time-log, logs them and carries on with the next unit of work.
"""
from __future__ import annotations


class ConverterError(Exception):
    """Base class for conversion failures."""


class TaskDataNotFoundError(ConverterError, FileNotFoundError):
    """A task document, XFR fragment or time-log file is missing."""


class SchemaMismatchError(ConverterError, LookupError):
    """An expected unique cross-reference in the task data was not found."""


class GeometryResolutionError(ConverterError):
    """The device-description graph does not have the shape resolution expects."""


class BinaryFormatError(ConverterError, ValueError):
    """A binary time-log cannot be decoded against its header schema."""
