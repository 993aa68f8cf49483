"""Unit tests for the JSON file record store."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from threat_modeler.storage import JsonFileRecordStore, RecordNotFoundError, StorageError


def _run(coro):
    return asyncio.run(coro)


@pytest.fixture
def store(tmp_path) -> JsonFileRecordStore:
    return JsonFileRecordStore(tmp_path)


class TestCreateAndGet:
    """Tests for create() and get()."""

    def test_round_trip(self, store, sample_record):
        record_id = _run(store.create(sample_record))
        loaded = _run(store.get(record_id))

        assert loaded.id == record_id
        assert loaded.title == sample_record.title
        assert loaded.threats == sample_record.threats
        assert loaded.image_url is None

    def test_image_stored_under_record_key(self, store, sample_record, tmp_path):
        record_id = _run(store.create(sample_record, image=b"\xff\xd8jpeg", image_filename="my diagram.jpg"))
        loaded = _run(store.get(record_id))

        assert loaded.image_ref == f"uploads/{record_id}-my_diagram.jpg"
        assert (tmp_path / loaded.image_ref).read_bytes() == b"\xff\xd8jpeg"
        assert loaded.image_url.startswith("file://")

    def test_image_url_not_persisted(self, store, sample_record, tmp_path):
        record_id = _run(store.create(sample_record.model_copy(update={"image_url": "file:///elsewhere"})))
        document = json.loads((tmp_path / "records" / f"{record_id}.json").read_text())
        assert "image_url" not in document

    def test_failed_record_write_removes_uploaded_image(self, store, sample_record, tmp_path):
        # A plain file where the records directory belongs makes the record write fail
        (tmp_path / "records").write_text("")

        with pytest.raises(StorageError):
            _run(store.create(sample_record, image=b"\xff\xd8jpeg", image_filename="diagram.jpg"))

        assert list((tmp_path / "uploads").iterdir()) == []

    def test_get_missing(self, store):
        with pytest.raises(RecordNotFoundError):
            _run(store.get("does-not-exist"))

    def test_get_rejects_path_like_ids(self, store):
        with pytest.raises(RecordNotFoundError):
            _run(store.get("../secrets"))


class TestList:
    """Tests for list()."""

    def test_empty(self, store):
        assert _run(store.list()) == []

    def test_newest_first(self, store, sample_record):
        older = sample_record.model_copy(update={"title": "Older"})
        newer = sample_record.model_copy(
            update={"title": "Newer", "created_at": sample_record.created_at + timedelta(days=1)}
        )
        _run(store.create(older))
        _run(store.create(newer))

        summaries = _run(store.list())

        assert [s.title for s in summaries] == ["Newer", "Older"]
        assert summaries[0].threat_count == 2

    def test_unreadable_record_skipped(self, store, sample_record, tmp_path):
        _run(store.create(sample_record))
        (tmp_path / "records" / "broken.json").write_text("{not json")

        assert len(_run(store.list())) == 1


class TestDelete:
    """Tests for delete()."""

    def test_delete_removes_record_and_image(self, store, sample_record, tmp_path):
        record_id = _run(store.create(sample_record, image=b"img", image_filename="d.jpg"))
        image_path = tmp_path / _run(store.get(record_id)).image_ref

        assert _run(store.delete(record_id)) is True
        assert not image_path.exists()
        with pytest.raises(RecordNotFoundError):
            _run(store.get(record_id))

    def test_delete_missing(self, store):
        with pytest.raises(RecordNotFoundError):
            _run(store.delete("nope"))
