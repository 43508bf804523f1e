import io
import uuid
from typing import Any, AsyncGenerator, Generator

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from filedesk.db import build_engine, build_session_factory
from filedesk.index_bridge import IndexBridge
from filedesk.models import Base, Workspace
from filedesk.storage import ObjectStore

MAX_FILE_SIZE = 1_000_000


class FakeMinio:
    """In-memory stand-in for the MinIO client."""

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.puts: list[str] = []
        self.removed: list[str] = []
        self.buckets: set[str] = set()
        self.fail_puts = False
        self.put_error: Exception | None = None
        self.remove_error: Exception | None = None

    def bucket_exists(self, bucket: str) -> bool:
        return bucket in self.buckets

    def make_bucket(self, bucket: str) -> None:
        self.buckets.add(bucket)

    def put_object(self, bucket, name, data: io.BytesIO, length, content_type=None):
        if self.fail_puts:
            raise ConnectionError("object store unreachable")
        if self.put_error is not None:
            raise self.put_error
        self.objects[(bucket, name)] = data.read(length)
        self.puts.append(name)

    def remove_object(self, bucket, name):
        if self.remove_error is not None:
            raise self.remove_error
        self.objects.pop((bucket, name), None)
        self.removed.append(name)

    def presigned_get_object(self, bucket, name, expires=None):
        return f"http://minio.local/{bucket}/{name}?expires={int(expires.total_seconds())}"


class RecordingIndex:
    """Request handler for an httpx.MockTransport posing as the index service."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.delete_status_code = 200
        self.answer = "42"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "DELETE":
            return httpx.Response(self.delete_status_code, json={"ok": True})
        if request.url.path == "/query":
            return httpx.Response(self.status_code, json={"answer": self.answer})
        return httpx.Response(self.status_code, json={"ok": True})

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]


@pytest.fixture
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def fake_minio() -> FakeMinio:
    client = FakeMinio()
    client.make_bucket("files")
    return client


@pytest.fixture
def store(fake_minio: FakeMinio) -> ObjectStore:
    return ObjectStore(fake_minio, "files", max_file_size=MAX_FILE_SIZE)


@pytest.fixture
def index_service() -> RecordingIndex:
    return RecordingIndex()


@pytest.fixture
def bridge(index_service: RecordingIndex) -> IndexBridge:
    client = httpx.AsyncClient(transport=httpx.MockTransport(index_service))
    return IndexBridge("http://index.local", api_key="secret", client=client)


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def workspace_id(db_session: AsyncSession, owner_id: uuid.UUID) -> uuid.UUID:
    workspace = Workspace(owner_id=owner_id, name="Home")
    db_session.add(workspace)
    await db_session.commit()
    return workspace.id


@pytest.fixture
def api_env() -> Generator[dict[str, Any], None, None]:
    """SQLite database shared by a sync engine (for seeding) and the app."""
    db_name = f"filedesk_test_{uuid.uuid4().hex}"
    shared_memory_uri = f"file:{db_name}?mode=memory&cache=shared&uri=true"
    sync_engine = create_engine(f"sqlite+pysqlite:///{shared_memory_uri}", poolclass=StaticPool)
    Base.metadata.create_all(sync_engine)

    engine = build_engine(f"sqlite+aiosqlite:///{shared_memory_uri}", poolclass=StaticPool)
    session_maker = build_session_factory(engine)

    owner = uuid.uuid4()
    with Session(sync_engine) as session:
        workspace = Workspace(owner_id=owner, name="Home")
        other = Workspace(owner_id=uuid.uuid4(), name="Someone else's")
        session.add_all([workspace, other])
        session.commit()
        env = {
            "owner_id": owner,
            "workspace_id": workspace.id,
            "foreign_workspace_id": other.id,
            "session_maker": session_maker,
            "sync_engine": sync_engine,
        }
    yield env
    sync_engine.dispose()


@pytest.fixture
def client(
    api_env: dict[str, Any], store: ObjectStore, bridge: IndexBridge,
) -> Generator[TestClient, None, None]:
    from starlette.routing import _DefaultLifespan

    from filedesk.api import deps
    from filedesk.api.app import create_app
    from filedesk.auth import create_access_token
    from filedesk.db import get_session

    session_maker = api_env["session_maker"]

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app = create_app()
    app.router.lifespan_context = _DefaultLifespan(app.router)

    app.dependency_overrides[get_session] = override_db_session
    app.dependency_overrides[deps.get_session_factory] = lambda: session_maker
    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_bridge] = lambda: bridge

    token = create_access_token(str(api_env["owner_id"]))
    with TestClient(app, headers={"Authorization": f"Bearer {token}"}) as test_client:
        yield test_client
