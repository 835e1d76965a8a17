import uuid
import pytest
from sqlalchemy.exc import IntegrityError

from cloudvault.core.config import settings
from cloudvault.core.queue import THUMBNAIL_TOPIC
from cloudvault.models import File
from cloudvault.repositories.item import ItemRepository
from cloudvault.repositories.share import ShareRepository
from cloudvault.schemas.enums import FileStatus, ItemKind, Permission
from cloudvault.services.uploads import UploadCoordinator
from cloudvault.utils.exceptions import (
    ForbiddenError,
    InvalidStatusError,
    NotConfiguredError,
    NotFoundError,
    StorageError,
    ValidationError,
)


@pytest.fixture
def uploads(db, s3_storage, job_queue):
    return UploadCoordinator(db, s3_storage, job_queue)


async def get_status(session_factory, file_id) -> str:
    async with session_factory() as session:
        return (await session.get(File, file_id)).status


async def test_init_single_part_upload(session_factory, uploads, alice):
    init = await uploads.init_upload(alice.id, "photo.png", None, "image/png", 1024)

    assert init.storage_key == f"{alice.id}/{init.file_id}/photo.png"
    assert init.upload_id is None
    assert len(init.parts) == 1
    assert init.parts[0].part_number == 1
    assert await get_status(session_factory, init.file_id) == FileStatus.UPLOADING.value


async def test_init_multipart_upload(session_factory, uploads, alice):
    init = await uploads.init_upload(alice.id, "video.mp4", None, "video/mp4", 50 * 1024 * 1024, part_count=3)

    assert init.upload_id == "upload-1"
    assert [p.part_number for p in init.parts] == [1, 2, 3]
    assert "partNumber=3" in init.parts[2].upload_url

    async with session_factory() as session:
        assert (await session.get(File, init.file_id)).upload_id == "upload-1"


@pytest.mark.parametrize("size,part_count", [(-1, 1), (settings.MAX_FILE_SIZE + 1, 1), (10, 0), (10, settings.MAX_PART_COUNT + 1)])
async def test_init_upload_validation(uploads, alice, size, part_count):
    with pytest.raises(ValidationError):
        await uploads.init_upload(alice.id, "file.bin", None, "application/octet-stream", size, part_count)


async def test_init_upload_requires_editor_on_folder(db, uploads, alice, bob):
    folder = await ItemRepository(db).create_folder(alice.id, "Shared", None)
    await ShareRepository(db).upsert(ItemKind.FOLDER, folder.id, alice.id, bob.id, Permission.VIEWER)

    with pytest.raises(ForbiddenError):
        await uploads.init_upload(bob.id, "x.txt", folder.id, "text/plain", 1)
    with pytest.raises(NotFoundError):
        await uploads.init_upload(bob.id, "x.txt", uuid.uuid4(), "text/plain", 1)


async def test_init_upload_without_presign_reserves_nothing(db, session_factory, storage, job_queue, alice):
    uploads = UploadCoordinator(db, storage, job_queue)

    with pytest.raises(NotConfiguredError):
        await uploads.init_upload(alice.id, "a.txt", None, "text/plain", 1)

    async with session_factory() as session:
        folders, files = await ItemRepository(session).list_root(alice.id)
        assert files == []


async def test_init_upload_storage_failure_marks_error(session_factory, uploads, s3_storage, alice, monkeypatch):
    async def failing_presign(bucket, key, content_type, expires):
        raise StorageError("endpoint unreachable")

    monkeypatch.setattr(s3_storage, "presign_upload", failing_presign)

    with pytest.raises(StorageError):
        await uploads.init_upload(alice.id, "a.txt", None, "text/plain", 1)

    async with session_factory() as session:
        files = (await ItemRepository(session).list_root(alice.id))[1]
        assert [f.status for f in files] == [FileStatus.ERROR.value]


async def test_complete_upload_is_not_idempotent(session_factory, uploads, job_queue, alice):
    init = await uploads.init_upload(alice.id, "notes.pdf", None, "application/pdf", 10)

    completed = await uploads.complete_upload(alice.id, init.file_id)
    assert completed.status == FileStatus.READY.value

    with pytest.raises(InvalidStatusError):
        await uploads.complete_upload(alice.id, init.file_id)
    assert await get_status(session_factory, init.file_id) == FileStatus.READY.value


async def test_thumbnail_enqueued_only_for_images(uploads, job_queue, alice):
    pdf = await uploads.init_upload(alice.id, "notes.pdf", None, "application/pdf", 10)
    await uploads.complete_upload(alice.id, pdf.file_id)
    assert job_queue.jobs == []

    png = await uploads.init_upload(alice.id, "photo.png", None, "image/png", 10)
    await uploads.complete_upload(alice.id, png.file_id)
    assert job_queue.jobs == [(THUMBNAIL_TOPIC, {"file_id": str(png.file_id)})]


async def test_enqueue_failure_does_not_fail_completion(session_factory, uploads, job_queue, alice):
    job_queue.fail = True
    init = await uploads.init_upload(alice.id, "photo.jpg", None, "image/jpeg", 10)

    completed = await uploads.complete_upload(alice.id, init.file_id)

    assert completed.status == FileStatus.READY.value
    assert await get_status(session_factory, init.file_id) == FileStatus.READY.value


async def test_complete_multipart_upload(uploads, s3_storage, alice):
    init = await uploads.init_upload(alice.id, "video.mp4", None, "video/mp4", 100, part_count=2)

    with pytest.raises(ValidationError):
        await uploads.complete_upload(alice.id, init.file_id)

    await uploads.complete_upload(alice.id, init.file_id, [(2, "etag-2"), (1, "etag-1")])
    assert s3_storage.completed == [(init.storage_key, "upload-1", [(1, "etag-1"), (2, "etag-2")])]


async def test_multipart_completion_failure_marks_error(session_factory, uploads, s3_storage, alice):
    s3_storage.fail_complete = True
    init = await uploads.init_upload(alice.id, "video.mp4", None, "video/mp4", 100, part_count=2)

    with pytest.raises(StorageError):
        await uploads.complete_upload(alice.id, init.file_id, [(1, "a"), (2, "b")])
    assert await get_status(session_factory, init.file_id) == FileStatus.ERROR.value


async def test_complete_requires_owner(uploads, alice, bob):
    init = await uploads.init_upload(alice.id, "a.txt", None, "text/plain", 1)

    with pytest.raises(NotFoundError):
        await uploads.complete_upload(bob.id, init.file_id)
    with pytest.raises(NotFoundError):
        await uploads.complete_upload(alice.id, uuid.uuid4())


async def test_abort_upload(session_factory, uploads, s3_storage, alice):
    init = await uploads.init_upload(alice.id, "video.mp4", None, "video/mp4", 100, part_count=2)

    aborted = await uploads.abort_upload(alice.id, init.file_id)

    assert aborted.status == FileStatus.ERROR.value
    assert s3_storage.aborted == [(init.storage_key, "upload-1")]
    with pytest.raises(InvalidStatusError):
        await uploads.complete_upload(alice.id, init.file_id, [(1, "a")])
    with pytest.raises(InvalidStatusError):
        await uploads.abort_upload(alice.id, init.file_id)


async def test_upload_direct(storage, db, job_queue, alice):
    uploads = UploadCoordinator(db, storage, job_queue)

    file = await uploads.upload_direct(alice.id, None, "hello.txt", "text/plain", b"hello")

    assert file.status == FileStatus.READY.value
    assert file.size == 5
    assert await storage.get_object(file.storage_bucket, file.storage_key) == b"hello"
    assert job_queue.jobs == []

    image = await uploads.upload_direct(alice.id, None, "pic.png", "image/png", b"not really a png")
    assert job_queue.jobs == [(THUMBNAIL_TOPIC, {"file_id": str(image.id)})]


async def test_upload_direct_size_limit(storage, db, job_queue, alice, monkeypatch):
    monkeypatch.setattr(settings, "MAX_DIRECT_UPLOAD_SIZE_MB", 0)
    uploads = UploadCoordinator(db, storage, job_queue)

    with pytest.raises(ValidationError):
        await uploads.upload_direct(alice.id, None, "big.bin", None, b"x")


async def test_upload_direct_compensates_on_insert_failure(storage, db, job_queue, alice, monkeypatch):
    uploads = UploadCoordinator(db, storage, job_queue)
    stored = []
    original_put = storage.put_object

    async def recording_put(bucket, key, data, content_type):
        stored.append(key)
        await original_put(bucket, key, data, content_type)

    async def failing_create_file(**kwargs):
        raise IntegrityError("INSERT INTO files", {}, Exception("duplicate key"))

    monkeypatch.setattr(storage, "put_object", recording_put)
    monkeypatch.setattr(uploads.item_repo, "create_file", failing_create_file)

    with pytest.raises(IntegrityError):
        await uploads.upload_direct(alice.id, None, "hello.txt", "text/plain", b"hello")

    assert len(stored) == 1
    with pytest.raises(StorageError):
        await storage.get_object(storage.bucket, stored[0])


async def test_compensation_failure_keeps_original_error(storage, db, job_queue, alice, monkeypatch):
    uploads = UploadCoordinator(db, storage, job_queue)

    async def failing_create_file(**kwargs):
        raise IntegrityError("INSERT INTO files", {}, Exception("duplicate key"))

    async def failing_delete(bucket, key):
        raise StorageError("disk gone")

    monkeypatch.setattr(uploads.item_repo, "create_file", failing_create_file)
    monkeypatch.setattr(storage, "delete_object", failing_delete)

    with pytest.raises(IntegrityError):
        await uploads.upload_direct(alice.id, None, "hello.txt", "text/plain", b"hello")
