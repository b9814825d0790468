"""
classroom.errors — Exception taxonomy for the classroom data pipeline.

    ClassroomDataError
        ParseError             no header line where one is mandatory
        ValidationError        vote submission missing a required field
        DuplicateEntityError   duplicate entity key under the "error" policy
        DataSourceError        CSV source unreadable (also an OSError)
        LedgerIOError          ledger file unreadable/unwritable (also an OSError)

Bad cells never raise: they become None during shaping.
"""

from __future__ import annotations


class ClassroomDataError(Exception):
    """Base class for every error raised by the classroom package."""


class ParseError(ClassroomDataError):
    """Raised when CSV text has no header line."""


class ValidationError(ClassroomDataError):
    """Raised when a vote submission is missing a required field."""

    def __init__(self, field: str, detail: str) -> None:
        self.field = field
        self.detail = detail
        super().__init__(detail)


class DuplicateEntityError(ClassroomDataError):
    """Raised when a dataset repeats an entity key and duplicates are rejected."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Duplicate entity key: '{key}'")


class DataSourceError(ClassroomDataError, OSError):
    """Raised when a CSV source cannot be read or fetched."""

    def __init__(self, source: str, detail: str) -> None:
        self.source = source
        self.detail = detail
        super().__init__(detail)

    def __str__(self) -> str:
        return self.detail


class LedgerIOError(ClassroomDataError, OSError):
    """Raised when the opinions ledger cannot be read or appended to."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(detail)

    def __str__(self) -> str:
        return self.detail
