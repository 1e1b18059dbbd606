import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

_TEST_DB = Path(tempfile.gettempdir()) / "funnel_builder_test.db"
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_DB}")
os.environ.setdefault("CLERK_JWT_ISSUER", "https://clerk.test")
os.environ.setdefault("CLERK_JWKS_URL", "https://clerk.test/.well-known/jwks.json")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("LANGFUSE_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from funnel_builder.auth.dependencies import AuthContext, get_current_user
from funnel_builder.db.base import Base, SessionLocal, init_db
from funnel_builder.db.deps import get_session
from funnel_builder.main import app
from funnel_builder.routers import common as common_router
from funnel_builder.routers import funnel_map as funnel_map_router
from funnel_builder.routers import presentations as presentations_router
from funnel_builder.services.rate_limit import get_rate_limiter

TEST_USER_ID = "user_test"
OTHER_USER_ID = "user_other"


class FakeLLM:
    """Stands in for LLMClient; responses are keyed by the ``context`` label of each call."""

    def __init__(self) -> None:
        self.responses: dict[str, Any] = {}
        self.default: Any = {}
        self.calls: list[str] = []

    def respond(self, context_prefix: str, value: Any) -> None:
        self.responses[context_prefix] = value

    def generate_json(self, messages, params=None, *, context=None) -> Any:
        label = context or ""
        self.calls.append(label)
        for prefix, value in self.responses.items():
            if label.startswith(prefix):
                if isinstance(value, Exception):
                    raise value
                if callable(value):
                    return value(label, messages)
                return value
        return self.default

    def complete(self, messages, params=None) -> str:
        self.calls.append("complete")
        return ""

    def generate_image(self, prompt: str, *, size: str = "1792x1024", timeout=None) -> str:
        return "https://images.test/slide.png"


@pytest.fixture(scope="session", autouse=True)
def create_tables() -> None:
    init_db()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    get_rate_limiter().reset()
    yield
    get_rate_limiter().reset()


@pytest.fixture()
def db_session():
    session = SessionLocal()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def auth_context() -> AuthContext:
    return AuthContext(user_id=TEST_USER_ID, email="owner@example.com")


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def override_dependencies(db_session, auth_context, fake_llm, monkeypatch):
    def get_session_override():
        try:
            yield db_session
        finally:
            pass

    def get_user_override():
        return auth_context

    def get_llm_factory_override() -> Callable[[], FakeLLM]:
        return lambda: fake_llm

    # Streaming and chat routes authenticate inside the handler.
    monkeypatch.setattr(presentations_router, "get_current_user", lambda _credentials=None: auth_context)
    monkeypatch.setattr(funnel_map_router, "get_current_user", lambda _credentials=None: auth_context)

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_current_user] = get_user_override
    app.dependency_overrides[common_router.get_llm_client] = lambda: fake_llm
    app.dependency_overrides[common_router.get_llm_factory] = get_llm_factory_override
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def api_client(override_dependencies):
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def unauthenticated_client(db_session):
    def get_session_override():
        yield db_session

    app.dependency_overrides[get_session] = get_session_override
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def project(db_session):
    from funnel_builder.db.repositories.projects import ProjectsRepository

    return ProjectsRepository(db_session).create(
        user_id=TEST_USER_ID,
        name="Scale Your Coaching",
        business_niche="business coaching",
        target_audience="new coaches",
    )


@pytest.fixture()
def other_project(db_session):
    from funnel_builder.db.repositories.projects import ProjectsRepository

    return ProjectsRepository(db_session).create(user_id=OTHER_USER_ID, name="Someone Else")
