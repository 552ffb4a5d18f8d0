import os
from typing import AsyncGenerator

# Settings and the module-level engine read DATABASE_URL on import
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.storefront-test.db")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_storefront")
os.environ.setdefault("PAYSTACK_PUBLIC_KEY", "pk_test_storefront")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from libs.common.config import get_settings
from libs.db.base import Base
from libs.db.config import build_engine

# Import all models so metadata includes every table
from services.storefront_service import models as _storefront_models  # noqa: F401
from services.storefront_service.client.local_storage import LocalStorage
from services.storefront_service.client.record_store import SqlRecordStore

# Clear cached settings to reload with the test env vars
get_settings.cache_clear()
settings = get_settings()


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    A fresh file-backed SQLite database per test, with every table created.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an ORM session for seeding and asserting on rows.
    """
    session_factory = async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def record_store(test_engine) -> SqlRecordStore:
    return SqlRecordStore(test_engine)


@pytest.fixture
def local_storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "local")


@pytest_asyncio.fixture
async def api_client(test_engine) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient for the storefront app with the DB dependency
    pointed at the test database. Tests override auth and Paystack as needed.
    """
    from libs.db.session import get_async_db
    from services.storefront_service.app.main import app

    session_factory = async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async def _test_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_db] = _test_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    """
    Headers for a mocked authenticated user; auth itself is overridden per test.
    """
    return {"Authorization": "Bearer mock-token"}


@pytest.fixture
def paystack():
    from tests.stubs import PaystackLedger

    return PaystackLedger()


@pytest_asyncio.fixture
async def store_client(api_client, paystack) -> AsyncGenerator[AsyncClient, None]:
    """
    api_client with the shopper signed in and Paystack answered by ``paystack``.
    """
    import httpx

    from libs.auth.dependencies import get_current_user
    from libs.auth.models import AuthUser
    from services.storefront_service.app.main import app
    from services.storefront_service.paystack_client import PaystackClient
    from services.storefront_service.routers.checkout import require_paystack
    from tests.factories import SHOPPER_EMAIL, SHOPPER_ID

    async def _shopper():
        return AuthUser(user_id=SHOPPER_ID, email=SHOPPER_EMAIL)

    def _paystack():
        return PaystackClient(
            settings.PAYSTACK_SECRET_KEY,
            base_url="https://paystack.test",
            transport=httpx.MockTransport(paystack.handler),
        )

    app.dependency_overrides[get_current_user] = _shopper
    app.dependency_overrides[require_paystack] = _paystack
    yield api_client
