"""Persistence of completed analyses."""

from .record_store import (
    JsonFileRecordStore,
    RecordNotFoundError,
    RecordStore,
    StorageError,
)

__all__ = ["JsonFileRecordStore", "RecordNotFoundError", "RecordStore", "StorageError"]
