"""Shared test configuration and fixtures."""
import asyncio
import os
import sys
from datetime import timedelta
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

# Set up test environment variables before any imports
os.environ.setdefault("SESSION_SECRET", "test-session-secret-for-testing")
os.environ.setdefault("ENCRYPTION_KEY", "0123456789abcdef0123456789abcdef")
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "ERROR")
os.environ.setdefault("EMAIL_SCHEDULER_ENABLED", "false")

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from parkingdirekt.auth.models import AuthContext  # noqa: E402
from parkingdirekt.auth.tokens import issue_access_token  # noqa: E402
from parkingdirekt.config.app_config import AppSettings  # noqa: E402
from parkingdirekt.container import ServiceContainer  # noqa: E402
from parkingdirekt.db.connection import init_db  # noqa: E402
from parkingdirekt.db.models import Booking, BookingStatus, ParkingSpace, SpaceType, User  # noqa: E402
from parkingdirekt.main import create_app  # noqa: E402
from parkingdirekt.utils.clock import utcnow  # noqa: E402

TEST_SESSION_SECRET = "test-session-secret-for-testing"


@pytest.fixture
def settings() -> AppSettings:
    """Settings backed by a private in-memory database."""
    return AppSettings(
        SESSION_SECRET=TEST_SESSION_SECRET,
        ENCRYPTION_KEY="0123456789abcdef0123456789abcdef",
        APP_ENV="testing",
        LOG_LEVEL="ERROR",
        DATABASE_URL="sqlite://",
        EMAIL_SCHEDULER_ENABLED=False,
    )


@pytest.fixture
def container(settings: AppSettings) -> Generator[ServiceContainer, None, None]:
    db = init_db(settings.database_url)
    services = ServiceContainer(settings, db)
    yield services
    db.dispose()


@pytest.fixture
def db(container: ServiceContainer):
    return container.db


@pytest.fixture
def client(settings: AppSettings, container: ServiceContainer) -> Generator[TestClient, None, None]:
    app = create_app(settings, container)
    with TestClient(app) as test_client:
        yield test_client


def make_auth(user_id: str, role: str = "USER", email: str | None = None, name: str | None = None) -> AuthContext:
    return AuthContext(
        user_id=user_id,
        email=email or f"{user_id}@example.com",
        role=role,
        name=name,
        token_exp=utcnow() + timedelta(hours=1),
    )


def auth_headers(user_id: str, role: str = "USER", email: str | None = None) -> dict[str, str]:
    token = issue_access_token(
        TEST_SESSION_SECRET,
        user_id,
        email or f"{user_id}@example.com",
        role=role,
        name=user_id.title(),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def create_user(db) -> Callable[..., User]:
    def _create(user_id: str, role: str = "USER", name: str | None = None) -> User:
        with db.get_session() as session:
            user = User(id=user_id, email=f"{user_id}@example.com", name=name or user_id.title(), role=role)
            session.add(user)
        return user

    return _create


@pytest.fixture
def create_space(db) -> Callable[..., ParkingSpace]:
    def _create(owner_id: str, **overrides) -> ParkingSpace:
        values = {
            "owner_id": owner_id,
            "title": "Covered garage spot",
            "description": "Secure underground spot close to the station",
            "address": "Bahnhofstrasse 1, Berlin",
            "latitude": 52.52,
            "longitude": 13.405,
            "hourly_rate": 4.0,
            "space_type": SpaceType.GARAGE,
            "vehicle_types": ["CAR"],
            "photos": [],
        }
        values.update(overrides)
        with db.get_session() as session:
            space = ParkingSpace(**values)
            session.add(space)
            session.flush()
        return space

    return _create


@pytest.fixture
def create_booking(db) -> Callable[..., Booking]:
    def _create(user_id: str, space_id: str, start=None, hours: int = 2, **overrides) -> Booking:
        start = start or utcnow() - timedelta(minutes=30)
        values = {
            "user_id": user_id,
            "space_id": space_id,
            "start_time": start,
            "end_time": start + timedelta(hours=hours),
            "total_price": 8.0,
            "status": BookingStatus.PENDING,
        }
        values.update(overrides)
        with db.get_session() as session:
            booking = Booking(**values)
            session.add(booking)
            session.flush()
        return booking

    return _create


@pytest.fixture
def marketplace(create_user, create_space):
    """An owner with one space, a renter, an admin and a super admin."""
    create_user("owner-1", role="OWNER")
    create_user("renter-1")
    create_user("renter-2")
    create_user("admin-1", role="ADMIN")
    create_user("root-1", role="SUPER_ADMIN")
    space = create_space("owner-1")
    return {"space_id": space.id}


def run(coro):
    """Drive a service coroutine from a synchronous TestClient test."""
    return asyncio.run(coro)
