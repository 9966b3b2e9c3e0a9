"""
Shared pytest fixtures.

Uses a file-backed SQLite database so no Postgres is required for tests.
Threads in the concurrency tests each open their own session on it.

SQLite serializes writers with BEGIN IMMEDIATE, and a session holds that
lock from its first statement until commit/rollback. Tests therefore never
keep a `db` transaction open while the client or another session writes.
"""
import os
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

SQLITE_URL = "sqlite:///./test_pawtrail.db"
os.environ.setdefault("DATABASE_URL", SQLITE_URL)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.db.base import Base, build_engine, get_db
from app.main import app
from app.models.user import User
from app.services import geo
from app.services.missions import seed_mission_templates
from app.services.poi_detector import PoiCandidate, PoiDetector, get_poi_detector

engine = build_engine(SQLITE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# ~1 m of latitude in degrees (mean Earth radius 6 371 km)
M_LAT = 1 / 111_195.0


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def fresh_session():
    """Short-lived session for reads in tests that also drive the client."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


# ---------------------------------------------------------------------------
# POI collaborator fake
# ---------------------------------------------------------------------------

class FakePlacesLookup:
    """In-memory PoiLookup: returns the configured places inside the radius."""

    def __init__(self, places=None, error: Exception | None = None):
        self.places: list[PoiCandidate] = list(places or [])
        self.error = error
        self.calls: list[tuple[float, float, float]] = []

    def find_nearby(self, lat, lng, radius_m):
        self.calls.append((lat, lng, radius_m))
        if self.error is not None:
            raise self.error
        center = geo.Coordinate(lat, lng)
        return [p for p in self.places if geo.distance(center, p) <= radius_m]


# ---------------------------------------------------------------------------
# Route helpers
# ---------------------------------------------------------------------------

def straight_route(
    start_lat: float,
    start_lng: float,
    metres: float,
    step_m: float,
    step_s: float,
    t0: datetime,
) -> list[geo.TrackPoint]:
    """Points heading due north every `step_m` metres / `step_s` seconds."""
    n = int(metres // step_m)
    return [
        geo.TrackPoint(
            lat=start_lat + i * step_m * M_LAT,
            lng=start_lng,
            timestamp=t0 + timedelta(seconds=i * step_s),
        )
        for i in range(n + 1)
    ]


def headers(user_id: str) -> dict:
    return {"X-User-Id": user_id}


def point_json(p: geo.TrackPoint) -> dict:
    return {"lat": p.lat, "lng": p.lng, "timestamp": p.timestamp.isoformat()}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    # Seed the mission catalog (normally done by Alembic migration 0001)
    db = TestingSessionLocal()
    try:
        seed_mission_templates(db)
    finally:
        db.close()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture()
def make_user():
    """Factory: insert a user with the given balances and return its id."""

    def _make(points: int = 0, coins: int = 0, daily_streak: int = 0,
              last_daily_at: datetime | None = None) -> str:
        user_id = f"user-{uuid.uuid4().hex[:12]}"
        with fresh_session() as s:
            s.add(User(
                id=user_id,
                points=points,
                coins=coins,
                daily_streak=daily_streak,
                last_daily_at=last_daily_at,
            ))
            s.commit()
        return user_id

    return _make


@pytest.fixture()
def places():
    return FakePlacesLookup()


@pytest.fixture()
def detector(places):
    return PoiDetector(places, ttl_s=0)


@pytest.fixture()
def client(detector):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_poi_detector] = lambda: detector
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def t0() -> datetime:
    """A UTC start time an hour ago, so the whole walk is in the past."""
    return datetime.now(tz=timezone.utc).replace(microsecond=0) - timedelta(hours=1)
