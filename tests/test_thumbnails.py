from io import BytesIO
import uuid
import pytest
from PIL import Image

from cloudvault.core.config import settings
from cloudvault.core.queue import THUMBNAIL_TOPIC
from cloudvault.models import File
from cloudvault.schemas.enums import FileStatus
from cloudvault.services.items import ItemService
from cloudvault.services.thumbnails import ThumbnailPipeline, make_thumbnail, thumbnail_key
from cloudvault.services.uploads import UploadCoordinator
from cloudvault.utils.exceptions import NotFoundError, StorageError, ThumbnailError
from cloudvault.worker import tasks

from conftest import RecordingJobQueue, auth_headers, make_image


@pytest.fixture
def uploads(db, storage, job_queue):
    return UploadCoordinator(db, storage, job_queue)


@pytest.fixture
def pipeline(db, storage):
    return ThumbnailPipeline(db, storage)


@pytest.mark.parametrize("key,expected", [
    ("u/f/photo.png", "u/f/photo_thumb.jpg"),
    ("u/f/archive.tar.gz", "u/f/archive.tar_thumb.jpg"),
    ("u/f/noext", "u/f/noext_thumb.jpg"),
    ("u/f.d/noext", "u/f.d/noext_thumb.jpg"),
])
def test_thumbnail_key(key, expected):
    assert thumbnail_key(key) == expected


def test_make_thumbnail_preserves_aspect_ratio():
    thumb = Image.open(BytesIO(make_thumbnail(make_image(1024, 512))))

    assert thumb.format == "JPEG"
    assert thumb.size == (256, 128)


def test_make_thumbnail_never_upscales():
    thumb = Image.open(BytesIO(make_thumbnail(make_image(100, 40))))
    assert thumb.size == (100, 40)


def test_make_thumbnail_handles_transparency():
    thumb = Image.open(BytesIO(make_thumbnail(make_image(300, 300, mode="RGBA"))))
    assert thumb.mode == "RGB"


def test_make_thumbnail_rejects_garbage():
    with pytest.raises(ThumbnailError):
        make_thumbnail(b"definitely not an image")


async def test_pipeline_generates_thumbnail(session_factory, uploads, pipeline, storage, alice):
    file = await uploads.upload_direct(alice.id, None, "photo.png", "image/png", make_image(800, 600))

    url = await pipeline.process(file.id)

    key = thumbnail_key(file.storage_key)
    # Local storage has no public URLs, so the thumbnail goes through the API
    assert url == f"/api/v1/files/{file.id}/thumbnail"
    stored = Image.open(BytesIO(await storage.get_object(file.storage_bucket, key)))
    assert max(stored.size) == settings.THUMBNAIL_SIZE

    async with session_factory() as session:
        saved = await session.get(File, file.id)
        assert saved.thumbnail_url == url
        assert saved.status == FileStatus.READY.value


async def test_pipeline_is_idempotent(uploads, pipeline, alice):
    file = await uploads.upload_direct(alice.id, None, "photo.png", "image/png", make_image(500, 500))

    first = await pipeline.process(file.id)
    second = await pipeline.process(file.id)
    assert first == second


async def test_pipeline_skips_non_images(uploads, pipeline, alice):
    file = await uploads.upload_direct(alice.id, None, "doc.pdf", "application/pdf", b"%PDF")
    assert await pipeline.process(file.id) is None


async def test_pipeline_missing_file_fails(pipeline):
    with pytest.raises(NotFoundError):
        await pipeline.process(uuid.uuid4())


async def test_pipeline_undecodable_image_keeps_file_ready(session_factory, uploads, pipeline, alice):
    file = await uploads.upload_direct(alice.id, None, "broken.png", "image/png", b"garbage")

    with pytest.raises(ThumbnailError):
        await pipeline.process(file.id)

    async with session_factory() as session:
        saved = await session.get(File, file.id)
        assert saved.status == FileStatus.READY.value
        assert saved.thumbnail_url is None


async def test_pipeline_storage_error_propagates(uploads, pipeline, storage, alice, monkeypatch):
    file = await uploads.upload_direct(alice.id, None, "photo.png", "image/png", make_image(10, 10))

    async def failing_get(bucket, key):
        raise StorageError("connection reset")

    monkeypatch.setattr(storage, "get_object", failing_get)
    with pytest.raises(StorageError):
        await pipeline.process(file.id)


async def test_read_thumbnail(db, storage, uploads, pipeline, alice, bob):
    items = ItemService(db, storage)
    file = await uploads.upload_direct(alice.id, None, "photo.png", "image/png", make_image(600, 300))

    with pytest.raises(NotFoundError):
        await items.read_thumbnail(alice.id, file.id)

    await pipeline.process(file.id)
    data = await items.read_thumbnail(alice.id, file.id)
    assert Image.open(BytesIO(data)).size == (256, 128)


def test_task_is_registered_under_topic():
    assert tasks.generate_thumbnail.name == THUMBNAIL_TOPIC
    assert tasks.generate_thumbnail.autoretry_for == (StorageError,)
    assert tasks.generate_thumbnail.max_retries == settings.THUMBNAIL_MAX_RETRIES


def test_task_runs_pipeline(monkeypatch):
    file_id = uuid.uuid4()
    seen = []

    async def fake_job(received_id):
        seen.append(received_id)
        return "/storage/files/thumb.jpg"

    monkeypatch.setattr(tasks, "run_thumbnail_job", fake_job)
    result = tasks.generate_thumbnail.apply(args=[str(file_id)])

    assert result.successful()
    assert result.get() == {"file_id": str(file_id), "thumbnail_url": "/storage/files/thumb.jpg"}
    assert seen == [file_id]


def test_task_permanent_failure_is_not_retried(monkeypatch):
    calls = []

    async def fake_job(received_id):
        calls.append(received_id)
        raise ThumbnailError("cannot decode")

    monkeypatch.setattr(tasks, "run_thumbnail_job", fake_job)
    result = tasks.generate_thumbnail.apply(args=[str(uuid.uuid4())])

    assert result.failed()
    assert len(calls) == 1


async def test_public_storage_thumbnail_url(db, s3_storage, job_queue, alice, monkeypatch):
    monkeypatch.setattr(s3_storage, "serves_public_urls", True)

    async def public_url(bucket, key):
        return f"https://cdn.test/{bucket}/{key}"

    monkeypatch.setattr(s3_storage, "public_url", public_url)
    file = await UploadCoordinator(db, s3_storage, job_queue).upload_direct(
        alice.id, None, "photo.png", "image/png", make_image(300, 300)
    )

    url = await ThumbnailPipeline(db, s3_storage).process(file.id)
    assert url == f"https://cdn.test/files/{thumbnail_key(file.storage_key)}"


async def test_local_thumbnail_url_is_servable(client, db, storage, alice, bob):
    file = await UploadCoordinator(db, storage, RecordingJobQueue()).upload_direct(
        alice.id, None, "photo.png", "image/png", make_image(640, 320)
    )
    url = await ThumbnailPipeline(db, storage).process(file.id)

    response = await client.get(url, headers=auth_headers(alice))
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert Image.open(BytesIO(response.content)).size == (256, 128)

    # The URL keeps the access check
    assert (await client.get(url, headers=auth_headers(bob))).status_code == 403
