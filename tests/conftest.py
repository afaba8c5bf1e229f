"""
Shared pytest fixtures — in‑memory SQLite + FastAPI TestClient + fake Gemini.
"""
import threading
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from spendscan.config import settings
from spendscan.database import Base, get_db, utcnow
from spendscan.main import app
from spendscan.models import UploadPreviewModel  # noqa: F401  register models
from spendscan.pipeline.gemini import (
    ExtractionClient,
    ModelFallbackPolicy,
    RemoteFile,
    get_extraction_client,
)

# StaticPool ensures all connections share the same in-memory database
_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_Session = sessionmaker(autocommit=False, autoflush=False, bind=_ENGINE)

USER = "user-1"
OTHER_USER = "user-2"


class FakeExtractionClient(ExtractionClient):
    """Stands in for Gemini: returns a canned payload or raises."""

    def __init__(self, result=None, error=None):
        super().__init__(client=object(), policy=ModelFallbackPolicy(primary="test-model"))
        self.result = result
        self.error = error
        self.uploads = []
        self.prompts = []
        self.released = []
        self.loop_thread = None

    async def upload(self, path, mime_type, display_name=None):
        self.uploads.append((path, mime_type))
        self.loop_thread = threading.get_ident()
        return RemoteFile(name=f"files/{len(self.uploads)}", uri="https://example.test/f", mime_type=mime_type)

    async def extract(self, remote, prompt, json_schema, response_model=None, model=None):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if response_model is not None:
            return response_model.model_validate(self.result)
        return self.result

    async def release(self, remote):
        self.released.append(remote.name)


@pytest.fixture(autouse=True)
def _reset_tables():
    Base.metadata.create_all(bind=_ENGINE)
    yield
    Base.metadata.drop_all(bind=_ENGINE)


@pytest.fixture(autouse=True)
def _upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))


@pytest.fixture()
def db():
    session = _Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fake_extractor():
    return FakeExtractionClient()


@pytest.fixture()
def client(db, fake_extractor):
    def _override():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_extraction_client] = lambda: fake_extractor
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_preview(db):
    """Insert a preview directly, optionally already expired."""
    import uuid

    def _make(user_id=USER, kind="receipt", data=None, expires_in=900):
        now = utcnow()
        preview = UploadPreviewModel(
            id=str(uuid.uuid4()),
            user_id=user_id,
            type=kind,
            data=data or {},
            created_at=now,
            expires_at=now + timedelta(seconds=expires_in),
        )
        db.add(preview)
        db.commit()
        return preview.id

    return _make
