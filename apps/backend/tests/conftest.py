from __future__ import annotations

import os
import tempfile
from typing import Generator, Any

# 테스트에서는 기동 시 create_all을 하지 않는다 (아래 engine fixture가 담당)
os.environ.setdefault("LEDGER_AUTO_CREATE_SCHEMA", "false")

import pytest
from sqlalchemy.orm import sessionmaker

from ledger.core.database import Base, create_ledger_engine, get_db
from ledger.core.deps import get_blob_store
from ledger.core.errors import DependencyError
from ledger.main import app
from ledger.services.blob_store import BlobStore
from ledger import models


class FakeBlobStore(BlobStore):
    """In-memory blob store that records deletes and can be told to fail."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_on_delete = False

    def upload(self, key: str, data: bytes, content_type: str | None = None) -> str:
        self.blobs[key] = data
        return self.url_for(key)

    def delete(self, key: str) -> None:
        if self.fail_on_delete:
            raise DependencyError("blob store unavailable", code="blob_delete_failed")
        self.blobs.pop(key, None)
        self.deleted.append(key)

    def url_for(self, key: str) -> str:
        return f"https://blob.test/{key}"


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # 사용자 환경을 건드리지 않도록 임시 파일 SQLite 사용
    fd, path = tempfile.mkstemp(prefix="ledger_test_", suffix=".sqlite3")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    try:
        os.remove(path)
    except OSError:
        pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    # 앱과 같은 FK 설정, 임시 파일이므로 WAL은 끔
    eng = create_ledger_engine(test_db_url, wal=False)
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Any, Any, Any]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        # 테이블 데이터 정리 (SQLAlchemy 2.x 스타일)
        with engine.begin() as conn:
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())


@pytest.fixture()
def user(db_session) -> models.User:
    row = models.User(email="demo@example.com", username="Demo")
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row


@pytest.fixture()
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture(autouse=True)
def override_dependency(db_session, blob_store):
    # FastAPI DI override
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(user):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        c.headers.update({"X-User-Id": user.id})
        yield c
