"""
Exception hierarchy for the layers beneath the decoder.

Decode results never carry exceptions — the pipeline converts failures into
DecodeError models.  These exceptions are raised by storage and resolution
code and caught at the pipeline boundary.
"""

from __future__ import annotations


class VinDecoderError(Exception):
    """Base exception for all decoder infrastructure failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


class StorageError(VinDecoderError):
    """A reference-database query failed."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("QUERY_ERROR", message, details)


class DatabaseNotFoundError(VinDecoderError):
    """The reference database file does not exist."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("DATABASE_CONNECTION_ERROR", message, details)


class LookupTableError(StorageError):
    """A lookup table name is not one of the recognized vPIC tables."""

    def __init__(self, table: str):
        super().__init__(
            f"Unrecognized lookup table: '{table}'",
            {"table": table},
        )
