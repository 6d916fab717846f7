"""
Pytest configuration and fixtures

Tests run against an in-memory SQLite database. Every test that asks for
`db_session` gets freshly created tables, dropped again afterwards, so
nothing leaks between tests.
"""
import os
import sys
from datetime import date, datetime, timedelta

import pytest

# Must be set before core.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CREATE_TABLES_ON_STARTUP", "false")
os.environ.setdefault("LOG_FORMAT", "text")

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database import Base, SessionLocal, engine  # noqa: E402
from models import Activity, Athlete, DailySample  # noqa: E402


@pytest.fixture(scope="function")
def db_session():
    """Session over freshly created tables; everything is dropped afterwards."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def athlete(db_session):
    athlete = Athlete(
        display_name="Test Rider",
        sex="male",
        ftp_w=250.0,
        max_hr=190,
        resting_hr=50,
        body_mass_kg=72.0,
        sleep_need_h=8.0,
    )
    db_session.add(athlete)
    db_session.commit()
    return athlete


@pytest.fixture
def scored_day():
    return date(2024, 3, 14)  # a Thursday


def make_sample(day: date, **overrides) -> DailySample:
    """A complete, unremarkable night and day of measurements."""
    values = dict(
        date=day,
        hrv_ms=60.0,
        resting_hr=50.0,
        respiratory_rate=14.0,
        sleep_duration_s=7.5 * 3600,
        time_in_bed_s=8.0 * 3600,
        deep_sleep_s=1.5 * 3600,
        rem_sleep_s=1.7 * 3600,
        wake_events=2,
        bedtime=datetime.combine(day - timedelta(days=1), datetime.min.time()) + timedelta(hours=22, minutes=45),
        wake_time=datetime.combine(day, datetime.min.time()) + timedelta(hours=6, minutes=30),
        steps=8000,
        active_calories=500.0,
    )
    values.update(overrides)
    return DailySample(**values)


@pytest.fixture
def baseline_history(db_session, scored_day):
    """Seven days of stable samples before `scored_day`."""
    for offset in range(1, 8):
        db_session.add(make_sample(scored_day - timedelta(days=offset)))
    db_session.commit()


def make_ride(start: datetime, **overrides) -> Activity:
    values = dict(
        name="Endurance ride",
        start_time=start,
        sport="ride",
        duration_s=3600,
        normalized_power_w=200.0,
        avg_hr=140,
    )
    values.update(overrides)
    return Activity(**values)
