import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from evv_service.main import app
from evv_service.db.base import Base
from evv_service.db.postgres import get_db
from evv_service.geo.location import ReportedLocationProvider
from evv_service.visits.models import VisitRecord  # noqa: F401 (registers the table)
from evv_service.visits.repository import VisitRecordRepository
from evv_service.visits.service import VisitVerificationService

# Springfield, IL: default device position
SITE = {"latitude": 39.7817, "longitude": -89.6501}


@pytest.fixture(scope="function")
async def db_engine():
    """In-memory SQLite engine with the EVV schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(db_engine):
    """Create a fresh database session for each test."""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def client(db_session):
    """Create a test client with overridden dependencies."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def repository(db_session):
    return VisitRecordRepository(db_session)


@pytest.fixture
def make_service(repository):
    """Build a service whose device reports the given position (or error)."""

    def _make(position=None, error_code=None, accuracy_meters=5.0, **kwargs):
        if error_code is not None:
            provider = ReportedLocationProvider(error_code=error_code)
        else:
            position = position or SITE
            provider = ReportedLocationProvider(
                latitude=position["latitude"],
                longitude=position["longitude"],
                accuracy_meters=accuracy_meters,
            )
        return VisitVerificationService(repository=repository, location_provider=provider, **kwargs)

    return _make

