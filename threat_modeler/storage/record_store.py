"""
Record Store for completed analyses

Persists analysis records and their architecture diagrams.
Uses JSON files on disk - no database required.

Layout:
- records/{record_id}.json           one document per analysis
- uploads/{record_id}-{filename}     diagram image, referenced by key
Image keys are resolved to file:// URLs when a record is read.
"""

import json
import re
import uuid
from pathlib import Path
from typing import Protocol

import aiofiles
import aiofiles.os
import structlog
from pydantic import ValidationError

from threat_modeler.models import AnalysisRecord, RecordSummary

logger = structlog.get_logger(__name__)

RECORD_ID_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")


class StorageError(Exception):
    """Error reading or writing stored records."""

    pass


class RecordNotFoundError(StorageError):
    """No record exists with the requested id."""

    pass


class RecordStore(Protocol):
    """CRUD contract for persisted analyses."""

    async def list(self) -> list[RecordSummary]:
        ...

    async def create(
        self,
        record: AnalysisRecord,
        image: bytes | None = None,
        image_filename: str | None = None,
    ) -> str:
        ...

    async def get(self, record_id: str) -> AnalysisRecord:
        ...

    async def delete(self, record_id: str) -> bool:
        ...


def generate_id() -> str:
    """Generate a unique ID for a record."""
    return str(uuid.uuid4())


def _safe_filename(filename: str) -> str:
    name = Path(filename).name
    name = re.sub(r"[^A-Za-z0-9._-]", "_", name)
    return name or "diagram"


class JsonFileRecordStore:
    """Record store backed by JSON files under a base directory."""

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)
        self.records_dir = self.base_dir / "records"
        self.uploads_dir = self.base_dir / "uploads"

    def _record_path(self, record_id: str) -> Path:
        if not RECORD_ID_PATTERN.match(record_id):
            raise RecordNotFoundError(f"Record not found: {record_id}")
        return self.records_dir / f"{record_id}.json"

    def resolve_image_url(self, image_ref: str | None) -> str | None:
        """Resolve a stored image key to a fetchable URL."""
        if not image_ref:
            return None
        path = self.base_dir / image_ref
        if not path.exists():
            logger.warning("image_missing", image_ref=image_ref)
            return None
        return path.resolve().as_uri()

    # =========================================================================
    # Write Operations
    # =========================================================================

    async def create(
        self,
        record: AnalysisRecord,
        image: bytes | None = None,
        image_filename: str | None = None,
    ) -> str:
        """Persist a record (and its diagram) and return the new record id."""
        record_id = generate_id()
        image_ref = record.image_ref
        uploaded: Path | None = None

        try:
            if image is not None:
                self.uploads_dir.mkdir(parents=True, exist_ok=True)
                image_ref = f"uploads/{record_id}-{_safe_filename(image_filename or 'diagram.jpg')}"
                uploaded = self.base_dir / image_ref
                async with aiofiles.open(uploaded, "wb") as f:
                    await f.write(image)

            stored = record.model_copy(update={"id": record_id, "image_ref": image_ref, "image_url": None})

            self.records_dir.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self._record_path(record_id), "w", encoding="utf-8") as f:
                await f.write(json.dumps(stored.model_dump(mode="json", exclude={"image_url"}), indent=2))

        except OSError as e:
            logger.error("record_create_failed", error=str(e))
            # Drop the diagram; no record refers to it
            if uploaded is not None:
                uploaded.unlink(missing_ok=True)
            raise StorageError(f"Failed to save analysis: {e}") from e

        logger.info(
            "record_created",
            record_id=record_id,
            threats=len(record.threats),
            has_image=image_ref is not None,
        )
        return record_id

    async def delete(self, record_id: str) -> bool:
        """Delete a record and its diagram.

        Raises:
            RecordNotFoundError: If no such record exists.
        """
        record = await self.get(record_id)

        try:
            if record.image_ref and (self.base_dir / record.image_ref).exists():
                await aiofiles.os.remove(self.base_dir / record.image_ref)
            await aiofiles.os.remove(self._record_path(record_id))
        except OSError as e:
            logger.error("record_delete_failed", record_id=record_id, error=str(e))
            raise StorageError(f"Failed to delete analysis: {e}") from e

        logger.info("record_deleted", record_id=record_id)
        return True

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get(self, record_id: str) -> AnalysisRecord:
        """Load a record with its image URL resolved.

        Raises:
            RecordNotFoundError: If no such record exists.
        """
        path = self._record_path(record_id)
        if not path.exists():
            raise RecordNotFoundError(f"Record not found: {record_id}")

        record = await self._read_record(path)
        return record.model_copy(update={"image_url": self.resolve_image_url(record.image_ref)})

    async def list(self) -> list[RecordSummary]:
        """List stored records, newest first."""
        summaries: list[RecordSummary] = []

        if not self.records_dir.exists():
            return summaries

        for path in sorted(self.records_dir.glob("*.json")):
            try:
                record = await self._read_record(path)
            except StorageError as e:
                logger.warning("record_unreadable", path=str(path), error=str(e))
                continue

            summaries.append(
                RecordSummary(
                    id=record.id,
                    title=record.title,
                    created_at=record.created_at,
                    app_type=record.app_type,
                    threat_count=len(record.threats),
                    image_url=self.resolve_image_url(record.image_ref),
                )
            )

        summaries.sort(key=lambda s: s.created_at, reverse=True)
        return summaries

    async def _read_record(self, path: Path) -> AnalysisRecord:
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
            return AnalysisRecord.model_validate(json.loads(content))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StorageError(f"Failed to read analysis {path.stem}: {e}") from e
