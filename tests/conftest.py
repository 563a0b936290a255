"""Shared pytest fixtures for platform core test suites."""

from collections.abc import Callable
from collections.abc import Generator
import os
from pathlib import Path
import sys
from typing import Any

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

TEST_JWT_SECRET = "platform-core-test-secret-0123456789abcdef"

os.environ.setdefault("PLATFORM_ENV", "test")
os.environ.setdefault("PLATFORM_JWT_SECRET", TEST_JWT_SECRET)
os.environ.setdefault("PLATFORM_LOG_FORMAT", "console")
os.environ.setdefault("PLATFORM_LOG_LEVEL", "WARNING")
os.environ.setdefault("PLATFORM_BOOT_REGISTRY", "false")


@pytest.fixture
def production(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Run the test with production settings."""
    from platform_core.core.config import get_settings

    monkeypatch.setenv("PLATFORM_ENV", "production")
    get_settings.cache_clear()
    yield
    monkeypatch.undo()
    get_settings.cache_clear()


@pytest.fixture
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    """In-memory SQLite database shared across threads for one test."""
    from platform_core.db.models import Base

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, class_=Session)
    yield factory
    engine.dispose()


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Build signed bearer tokens for the test secret."""

    def _make_token(user_id: Any = 1, email: str = "user@example.com", roles: list[str] | None = None) -> str:
        claims = {"id": user_id, "email": email, "roles": roles if roles is not None else ["user"]}
        return jwt.encode(claims, TEST_JWT_SECRET, algorithm="HS256")

    return _make_token


@pytest.fixture
def registry():
    """A fresh, unlocked registry."""
    from platform_core.sml.registry import SmlRegistry

    return SmlRegistry()


@pytest.fixture
def client(registry) -> Generator[TestClient, None, None]:
    """Provide an API test client bound to the ``registry`` fixture."""
    from platform_core.core.config import get_settings
    from platform_core.main import create_app

    app = create_app(get_settings(), registry=registry)
    with TestClient(app) as test_client:
        yield test_client
