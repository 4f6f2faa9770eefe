"""
Shared fixtures: an in-memory database, a controllable clock, one user per
role and an HTTP client wired to the same session.
"""
import itertools
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault(
    "LOG_FILE", str(Path(tempfile.gettempdir()) / "agritrace-tests.log"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel, Session, create_engine  # noqa: E402

from agritrace.core.dependencies import get_clock  # noqa: E402
from agritrace.db.core import get_session  # noqa: E402
from agritrace.db.schema import User, UserRole  # noqa: E402
from agritrace.main import app  # noqa: E402
from agritrace.models.batch import BatchCreate  # noqa: E402
from agritrace.services.batch import BatchService  # noqa: E402
from agritrace.services.marketplace import MarketplaceService  # noqa: E402
from agritrace.services.price_insight import PriceInsightService  # noqa: E402
from agritrace.services.user import UserService  # noqa: E402


START = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class TickingClock:
    """
    Returns a distinct, strictly increasing time on every read so ordering
    by timestamp is deterministic.
    """

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def now(self) -> datetime:
        value = self.current
        self.current += self.step
        return value

    def set(self, value: datetime):
        self.current = value

    def advance(self, delta: timedelta):
        self.current += delta


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    return TickingClock(START)


@pytest.fixture
def make_user(session):
    counter = itertools.count(1)

    def _make(role: UserRole = UserRole.FARMER, **fields) -> User:
        n = next(counter)
        defaults = {
            "email": f"{role.value}{n}@test.com",
            "name": f"{role.value.title()} {n}",
            "role": role,
        }
        defaults.update(fields)
        user = User(**defaults)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def farmer(make_user):
    return make_user(
        UserRole.FARMER,
        name="John Smith",
        farm_name="Green Valley Farm",
        location="California, USA",
    )


@pytest.fixture
def distributor(make_user):
    return make_user(UserRole.DISTRIBUTOR, name="Sarah Johnson")


@pytest.fixture
def distributor2(make_user):
    return make_user(UserRole.DISTRIBUTOR, name="Dave Miller")


@pytest.fixture
def retailer(make_user):
    return make_user(UserRole.RETAILER, name="Mike Chen")


@pytest.fixture
def government(make_user):
    return make_user(UserRole.GOVERNMENT, name="Dr. Lisa Rodriguez")


@pytest.fixture
def unassigned(make_user):
    return make_user(UserRole.UNASSIGNED, name=None, email="newcomer@test.com")


@pytest.fixture
def batch_service(session, clock):
    return BatchService(session, clock)


@pytest.fixture
def marketplace_service(session, clock):
    return MarketplaceService(session, clock)


@pytest.fixture
def insight_service(session, clock):
    return PriceInsightService(session, clock)


@pytest.fixture
def batch_payload():
    def _payload(**overrides) -> BatchCreate:
        data = {
            "crop_variety": "Organic Tomatoes",
            "quantity": 500,
            "unit": "kg",
            "quality_grade": "Grade A",
            "harvest_date": START - timedelta(days=1),
            "expected_price": 3.50,
        }
        data.update(overrides)
        return BatchCreate(**data)

    return _payload


@pytest.fixture
def batch(batch_service, farmer, batch_payload):
    return batch_service.create_batch(farmer, batch_payload())


@pytest.fixture
def client(session, clock):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(session):
    def _headers(user: User) -> dict:
        token = UserService(session).generate_access_token(user)
        return {"Authorization": f"Bearer {token}"}

    return _headers
