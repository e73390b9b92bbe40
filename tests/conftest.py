"""
Shared fixtures.

The FastAPI app binds its engine at import time, so the environment points
it at a throwaway directory before anything under `app` is imported. Each
API test then gets its own SQLite file and media root.
"""

import os
import tempfile
from datetime import datetime

_TMP = tempfile.mkdtemp(prefix="vault-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP}/import.db")
os.environ.setdefault("LOCAL_MEDIA_PATH", os.path.join(_TMP, "media"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.media_tokens import LocalFile
from app.schemas.post_schema import FocusPoint, PostMediaOut, PostOut


# ── Core factories ───────────────────────────────────────────────


def make_file(name: str, content_type: str | None = "image/png", data: bytes = b"\x89PNG-data") -> LocalFile:
    return LocalFile(filename=name, content_type=content_type, data=data)


def make_post_out(media_specs, author_id="author-1", **overrides) -> PostOut:
    """PostOut as the API would return it; media_specs = [(id, type, has_thumb)]."""
    media = [
        PostMediaOut(
            id=media_id,
            position=i,
            media_type=media_type,
            has_thumbnail=has_thumb,
            url=f"http://test/posts/media/{media_id}",
            thumbnail_url=f"http://test/posts/media/{media_id}/thumb",
            locked=False,
        )
        for i, (media_id, media_type, has_thumb) in enumerate(media_specs)
    ]
    fields = dict(
        id="post-1",
        post_key="key1",
        author_id=author_id,
        title="Existing",
        description="desc",
        allowed_role_ids=["tier1"],
        channel_ids=["chan-a"],
        focus_point=FocusPoint(x=20, y=80),
        timestamp=datetime(2024, 5, 1, 12, 0, 0),
        media=media,
        can_access=True,
        can_edit=True,
    )
    fields.update(overrides)
    return PostOut(**fields)


class CountingPreviews:
    """Preview provider that records every acquire/release."""

    def __init__(self):
        self.acquired = []
        self.released = []

    def acquire(self, file):
        handle = f"preview:{file.filename}:{len(self.acquired)}"
        self.acquired.append(handle)
        return handle

    def release(self, handle):
        self.released.append(handle)

    @property
    def outstanding(self):
        return [h for h in self.acquired if h not in self.released]


@pytest.fixture
def previews():
    return CountingPreviews()


# ── API fixtures ─────────────────────────────────────────────────


@pytest.fixture
def db_engine(tmp_path):
    import app.main  # noqa: F401  registers models
    from app.database import Base

    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def media_root(tmp_path, monkeypatch):
    from app.config import settings

    root = tmp_path / "media"
    root.mkdir()
    monkeypatch.setattr(settings, "LOCAL_MEDIA_PATH", str(root))
    return root


@pytest.fixture
def client(db_session_factory, media_root):
    from fastapi.testclient import TestClient

    from app.database import get_db
    from app.main import app

    def override_get_db():
        db = db_session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def add_user(db_session_factory):
    from app.models.user import User

    def _add(user_id: str, is_author: bool = False, username: str = ""):
        db = db_session_factory()
        try:
            db.add(User(id=user_id, username=username or user_id, is_author=is_author))
            db.commit()
        finally:
            db.close()

    return _add


def auth_headers(user_id: str, roles=(), is_author: bool = False) -> dict:
    from app.auth import create_access_token

    token = create_access_token(user_id, role_ids=roles, is_author=is_author)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def author_headers(add_user):
    add_user("author-1", is_author=True, username="maker")
    return auth_headers("author-1", roles=["staff"], is_author=True)
