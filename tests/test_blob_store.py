import io

import pytest

from classwork.services import file_service
from classwork.storage.blob_store import (
    BlobNotFoundError, BlobStoreTimeoutError, BlobStoreUnavailableError, LocalBlobStore
)
from classwork.utils.exceptions import NotFoundException, PartialFailure


def stored_files(root):
    return [p for p in root.rglob("*") if p.is_file()]


def test_store_and_retrieve(blob_store):
    file_id = blob_store.store(
        io.BytesIO(b"hello world"),
        {"taskId": "t1", "studentId": "s1"},
        content_type="text/plain",
    )

    blob = blob_store.retrieve(file_id)
    assert blob.size == 11
    assert blob.content_type == "text/plain"
    assert blob.metadata == {"taskId": "t1", "studentId": "s1"}
    assert blob.read_all() == b"hello world"
    assert blob.stream.closed


def test_unknown_ids_are_not_found(blob_store):
    for file_id in ("0" * 32, "../../etc/passwd", ""):
        with pytest.raises(BlobNotFoundError):
            blob_store.retrieve(file_id)
        with pytest.raises(BlobNotFoundError):
            blob_store.delete(file_id)
        assert not blob_store.exists(file_id)


def test_delete_removes_blob_and_sidecar(blob_store):
    file_id = blob_store.store(io.BytesIO(b"data"))
    blob_store.delete(file_id)

    assert not blob_store.exists(file_id)
    assert stored_files(blob_store.root) == []
    with pytest.raises(BlobNotFoundError):
        blob_store.delete(file_id)


def test_store_past_deadline_is_aborted_and_cleaned_up(tmp_path):
    store = LocalBlobStore(tmp_path / "slow", io_timeout=-1)

    with pytest.raises(BlobStoreTimeoutError) as excinfo:
        store.store(io.BytesIO(b"x" * 1024))

    assert isinstance(excinfo.value, BlobStoreUnavailableError)
    assert stored_files(store.root) == []


def test_read_past_deadline_is_aborted_and_stream_closed(blob_store):
    file_id = blob_store.store(io.BytesIO(b"x" * 1024))
    slow = LocalBlobStore(blob_store.root, io_timeout=-1)

    blob = slow.retrieve(file_id)
    with pytest.raises(BlobStoreTimeoutError):
        blob.read_all()
    assert blob.stream.closed

    # a fresh handle within its deadline still reads the blob
    assert blob_store.retrieve(file_id).read_all() == b"x" * 1024


def test_open_blob_maps_not_found(blob_store):
    with pytest.raises(NotFoundException):
        file_service.open_blob(blob_store, "f" * 32)


def test_discard_blobs_reports_partial_failure(blob_store, monkeypatch):
    ok = blob_store.store(io.BytesIO(b"a"))
    broken = blob_store.store(io.BytesIO(b"b"))
    real_delete = blob_store.delete

    def flaky_delete(file_id):
        if file_id == broken:
            raise BlobStoreUnavailableError("io error")
        real_delete(file_id)
    monkeypatch.setattr(blob_store, "delete", flaky_delete)

    with pytest.raises(PartialFailure) as excinfo:
        file_service.discard_blobs(blob_store, [ok, broken, "a" * 32], step="cleanup")

    assert [file_id for file_id, _ in excinfo.value.failures] == [broken]
    assert not blob_store.exists(ok)


def test_content_disposition_escapes_and_encodes():
    header = file_service.content_disposition('rép"ort.pdf')
    assert header.startswith('attachment; filename="rport.pdf"')
    assert "filename*=UTF-8''r%C3%A9port.pdf" in header
