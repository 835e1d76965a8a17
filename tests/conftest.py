from io import BytesIO
from typing import Any, Dict, List, Tuple
import pytest
from httpx import AsyncClient, ASGITransport
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import cloudvault.models  # noqa: F401
from cloudvault.core.database import Base, get_db
from cloudvault.core.queue import EnqueueError, JobQueue, get_job_queue
from cloudvault.core.security import create_access_token
from cloudvault.core.storage import LocalStorage, get_storage
from cloudvault.main import app
from cloudvault.repositories.user import UserRepository
from cloudvault.schemas.user import UserCreate
from cloudvault.utils.exceptions import StorageError

PASSWORD = "password123"


class RecordingJobQueue(JobQueue):
    """In-memory queue that records every job handed to it"""

    def __init__(self):
        self.jobs: List[Tuple[str, Dict[str, Any]]] = []
        self.fail = False

    async def enqueue(self, topic: str, payload: Dict[str, Any]) -> None:
        if self.fail:
            raise EnqueueError("broker unavailable")
        self.jobs.append((topic, payload))


class MultipartStorage(LocalStorage):
    """Local storage that also hands out fake presigned and multipart URLs"""

    backend_id = "fake-s3"
    supports_presign = True
    supports_multipart = True

    def __init__(self, root: str, bucket: str):
        super().__init__(root, bucket)
        self.completed = []
        self.aborted = []
        self.fail_complete = False

    async def presign_upload(self, bucket, key, content_type, expires):
        return f"https://s3.test/{bucket}/{key}?X-Expires={expires}"

    async def presign_download(self, bucket, key, expires):
        return f"https://s3.test/{bucket}/{key}?download=1&X-Expires={expires}"

    async def create_multipart_upload(self, bucket, key, content_type):
        return "upload-1"

    async def presign_part(self, bucket, key, upload_id, part_number, expires):
        return f"https://s3.test/{bucket}/{key}?uploadId={upload_id}&partNumber={part_number}"

    async def complete_multipart_upload(self, bucket, key, upload_id, parts):
        if self.fail_complete:
            raise StorageError("part etag mismatch")
        self.completed.append((key, upload_id, list(parts)))

    async def abort_multipart_upload(self, bucket, key, upload_id):
        self.aborted.append((key, upload_id))


def make_image(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    img = Image.new(mode, (width, height))
    out = BytesIO()
    img.save(out, format=fmt)
    return out.getvalue()


@pytest.fixture
async def engine(tmp_path):
    # File-backed so concurrent sessions get separate connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "storage"), "files")


@pytest.fixture
def s3_storage(tmp_path):
    return MultipartStorage(str(tmp_path / "s3"), "files")


@pytest.fixture
def job_queue():
    return RecordingJobQueue()


async def create_user(db, email: str, name: str):
    return await UserRepository(db).create(UserCreate(email=email, name=name, password=PASSWORD))


@pytest.fixture
async def alice(db):
    return await create_user(db, "alice@example.com", "Alice")


@pytest.fixture
async def bob(db):
    return await create_user(db, "bob@example.com", "Bob")


@pytest.fixture
async def carol(db):
    return await create_user(db, "carol@example.com", "Carol")


def auth_headers(user) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}


@pytest.fixture
async def client(session_factory, storage, job_queue):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_job_queue] = lambda: job_queue

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
