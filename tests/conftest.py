import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from config import Settings, get_settings
from database import get_db, Base
from dependencies import get_notifier, get_routing_service
from main import app
from matching_engine import MatchingEngine
from models import Driver, Rider
from routing import Route

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Union Square, San Francisco
PICKUP = (37.7880, -122.4075)
DESTINATION = (37.7749, -122.4194)


class FixedRoutingService:
    def __init__(self, distance_km=8.0, duration_minutes=15.0):
        self.route = Route(distance_km, duration_minutes)
        self.calls = []

    async def get_route(self, origin, destination):
        self.calls.append((origin, destination))
        return self.route

    async def aclose(self):
        pass


class RecordingNotifier:
    def __init__(self):
        self.driver_events = []
        self.rider_events = []

    async def notify_driver(self, driver_id, event):
        self.driver_events.append((driver_id, event))

    async def notify_rider(self, rider_id, event):
        self.rider_events.append((rider_id, event))

    def driver_event_types(self, driver_id):
        return [e.type for d, e in self.driver_events if d == driver_id]

    def rider_event_types(self):
        return [e.type for _, e in self.rider_events]


class FailingNotifier:
    async def notify_driver(self, driver_id, event):
        raise RuntimeError("push gateway down")

    async def notify_rider(self, rider_id, event):
        raise RuntimeError("push gateway down")


@pytest_asyncio.fixture(scope="function")
async def test_db():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def routing():
    return FixedRoutingService()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def auto_settings():
    return Settings(matching_mode="auto")


@pytest.fixture
def engine_factory(test_db, routing, notifier, settings):
    def build(**overrides):
        return MatchingEngine(
            test_db,
            overrides.get("routing", routing),
            overrides.get("notifier", notifier),
            settings=overrides.get("settings", settings),
        )
    return build


@pytest.fixture
def make_rider(test_db):
    counter = {"n": 0}

    async def create(name="Ada Rider"):
        counter["n"] += 1
        rider = Rider(name=name, email=f"rider{counter['n']}@example.com", phone="+15551230000")
        test_db.add(rider)
        await test_db.commit()
        return rider
    return create


@pytest.fixture
def make_driver(test_db):
    counter = {"n": 0}

    async def create(location=PICKUP, online=True, **fields):
        counter["n"] += 1
        n = counter["n"]
        values = dict(
            first_name=f"Driver{n}",
            last_name="Smith",
            email=f"driver{n}@example.com",
            phone=f"+1555000{n:04d}",
            vehicle_make="Toyota",
            vehicle_model="Camry",
            vehicle_color="Blue",
            license_plate=f"ABC-{n:03d}",
            status="active",
            background_check_status="approved",
            is_online=online,
            is_available=online,
        )
        if location is not None:
            values.update(latitude=location[0], longitude=location[1])
        values.update(fields)
        driver = Driver(**values)
        test_db.add(driver)
        await test_db.commit()
        return driver
    return create


def offset(point, meters_north):
    """Shift a (lat, lon) pair roughly ``meters_north`` meters north."""
    return (point[0] + meters_north / 111320.0, point[1])


@pytest_asyncio.fixture(scope="function")
async def client(test_db, routing, notifier, settings):
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_routing_service] = lambda: routing
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_settings] = lambda: settings
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
