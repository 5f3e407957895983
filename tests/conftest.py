"""Shared test fixtures for all test groups."""

import os

# Settings are cached on first use, so the environment must be in place before
# any promptverse module reads it.
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("N8N_API_KEY", "test-n8n-api-key")
os.environ.setdefault("N8N_WEBHOOK_SECRET", "test-n8n-webhook-secret-long-enough")
os.environ.setdefault("N8N_WEBHOOK_URL", "https://n8n.example.test/webhook/analysis")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_fake")
os.environ.setdefault("STRIPE_PRICE_ID_STARTER", "price_starter_test")
os.environ.setdefault("STRIPE_PRICE_ID_PRO", "price_pro_test")
os.environ.setdefault("STRIPE_PRICE_ID_AGENCY", "price_agency_test")
os.environ.setdefault("STRIPE_TOPUP_PRICE_ID_50", "price_topup50_test")
os.environ.setdefault("STRIPE_TOPUP_PRICE_ID_100", "price_topup100_test")
os.environ.setdefault("STRIPE_TOPUP_PRICE_ID_200", "price_topup200_test")

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from promptverse.db.base import Base, new_id


@pytest.fixture
def db_url(tmp_path) -> str:
    """File-backed SQLite database, fresh for every test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'promptverse_test.db'}"


@pytest.fixture
async def engine(db_url: str) -> AsyncEngine:
    """Create the test engine and install it as the global session factory.

    Service code that calls get_session_factory() shares this engine.
    """
    import promptverse.db.base as db_mod
    import promptverse.db.models  # noqa: F401

    engine = create_async_engine(db_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session_factory):
    """Factory that inserts a User row and returns it."""
    from promptverse.db.models.user import User

    async def _make_user(**overrides):
        values = {
            "id": new_id(),
            "email": None,
            "credits": 0,
            "credits_used": 0,
            "current_plan": "free",
            "subscription_tier": "free",
            "allowed_models": ["chatgpt"],
            "subscription_status": "inactive",
        }
        values.update(overrides)
        user = User(**values)
        async with session_factory() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return _make_user
