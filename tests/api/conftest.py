"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from promptverse.core.auth import AuthUser
from promptverse.db.base import new_id


@pytest.fixture
def test_user() -> AuthUser:
    return AuthUser(user_id=new_id(), claims={"email": "owner@example.com"})


@pytest.fixture
def api_client(db_url):
    """FastAPI test client with a fresh SQLite database.

    init_db runs inside the TestClient's own event loop so route handlers can
    use get_session_factory(). The rate limiter is not mounted here (see
    test_rate_limit.py).
    """
    from fastapi import HTTPException
    from fastapi.middleware.cors import CORSMiddleware

    import promptverse.core.auth as auth_mod
    from promptverse.api.routes import api_router
    from promptverse.core.config import get_settings
    from promptverse.core.exceptions import PromptVerseError
    from promptverse.db import close_db, init_db
    from promptverse.main import domain_exception_handler, generic_exception_handler, http_exception_handler

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - initialize DB in TestClient's event loop."""
        import promptverse.db.base as db_mod

        db_mod._engine = None
        db_mod._session_factory = None
        auth_mod._known_user_cache.clear()
        await init_db(db_url)
        yield
        await close_db()

    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="PromptVerse - Test Client",
        version="0.1.0",
        lifespan=test_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers (needed for debug_id testing)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(PromptVerseError)(domain_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    with TestClient(app) as client:
        yield client


@pytest.fixture
def run_async(api_client: TestClient):
    """Run a coroutine function on the TestClient's event loop.

    Seeding and inspecting rows must happen on the loop that owns the engine.
    """

    def _run(fn, *args, **kwargs):
        return api_client.portal.call(lambda: fn(*args, **kwargs))

    return _run


@pytest.fixture
def seed_user(run_async):
    """Insert a User row through the app's session factory."""
    from promptverse.db.base import get_session_factory
    from promptverse.db.models.user import User

    def _seed(user_id: str, **overrides):
        async def _insert():
            values = {
                "id": user_id,
                "credits": 0,
                "credits_used": 0,
                "current_plan": "free",
                "subscription_tier": "free",
                "allowed_models": ["chatgpt"],
                "subscription_status": "inactive",
            }
            values.update(overrides)
            async with get_session_factory()() as session:
                session.add(User(**values))
                await session.commit()

        run_async(_insert)

    return _seed
