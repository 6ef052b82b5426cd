# tests/conftest.py
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from offersync import models  # noqa: F401
from offersync.core.config import Settings, get_settings
from offersync.core.enums import ProductStatus, SyncStatus
from offersync.core.utils import utcnow
from offersync.database import Base, build_session_factory
from offersync.dependencies import get_marketplace_client, get_notifier, get_session_factory
from offersync.main import app
from offersync.models import OfferMirror, Product

from tests.mocks.mock_marketplace import MockMarketplace

# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        _env_file=None,
        DATABASE_URL=TEST_DATABASE_URL,
        MARKETPLACE_API_URL="https://api.marketplace.test/v1",
        MARKETPLACE_ACCESS_TOKEN="test_token",
        MARKETPLACE_PAGE_SIZE=50,
        DEFAULT_CURRENCY="PLN",
        SYNC_BATCH_SIZE=50,
        SYNC_MAX_CONCURRENCY=1,
        SYNC_JOB_TIMEOUT_SECONDS=30,
        WEBHOOK_SECRET="test_secret",
        WEBHOOK_RETRY_MAX_ATTEMPTS=3,
        BASIC_AUTH_USERNAME="admin",
        BASIC_AUTH_PASSWORD="test_password",
        NOTIFY_ON_ORDER_CREATED=False,
    )


@pytest.fixture(scope="function")
async def test_engine():
    """Create and configure the test database engine (function-scoped)."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest.fixture
def marketplace():
    return MockMarketplace()


@pytest.fixture
def make_product(session_factory):
    """Insert a product in its own committed transaction."""

    async def _make(sku="SKU-1", **overrides) -> Product:
        values = dict(
            sku=sku,
            title=f"Product {sku}",
            price=Decimal("100.00"),
            currency="PLN",
            stock_quantity=10,
            status=ProductStatus.ACTIVE.value,
        )
        values.update(overrides)
        async with session_factory() as session:
            product = Product(**values)
            session.add(product)
            await session.commit()
            return product

    return _make


@pytest.fixture
def make_mirror(session_factory):
    """Insert an offer mirror, synced and level with its product unless overridden."""

    async def _make(product=None, external_offer_id="OFF-1", **overrides) -> OfferMirror:
        now = utcnow()
        values = dict(
            product_id=product.id if product is not None else None,
            external_offer_id=external_offer_id,
            title=product.title if product is not None else "Remote offer",
            price=product.price if product is not None else Decimal("100.00"),
            currency="PLN",
            stock_quantity=product.stock_quantity if product is not None else 5,
            remote_revision="rev-0",
            remote_updated_at=now,
            last_synced_at=now,
            sync_status=SyncStatus.SYNCED.value,
        )
        values.update(overrides)
        async with session_factory() as session:
            mirror = OfferMirror(**values)
            session.add(mirror)
            await session.commit()
            return mirror

    return _make


@pytest.fixture
def fetch(session_factory):
    """Load a fresh copy of a row by primary key."""

    async def _fetch(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)

    return _fetch


@pytest.fixture
def notifier(mocker):
    sink = mocker.Mock()
    sink.send_order_notification = mocker.AsyncMock(return_value=True)
    return sink


@pytest.fixture
async def api_client(session_factory, settings, marketplace, notifier):
    """HTTP client against the app with the database, marketplace and settings swapped for test doubles."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_marketplace_client] = lambda: marketplace
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def operator_auth(settings):
    return (settings.BASIC_AUTH_USERNAME, settings.BASIC_AUTH_PASSWORD)
