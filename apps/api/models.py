from sqlalchemy import Column, Integer, Float, Date, DateTime, Text, String, Index, UniqueConstraint, JSON
from sqlalchemy.sql import func
from core.database import Base
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


class Athlete(Base):
    """
    Physiological profile of the athlete whose days are scored.

    One row per deployment. Every field is optional: an empty column means
    "unknown", and the calculators fall back along their priority chains.
    """
    __tablename__ = "athlete"

    id = Column(String(36), primary_key=True, default=_uuid)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    display_name = Column(Text, nullable=True)
    sex = Column(Text, nullable=True)  # 'male' | 'female' | None
    ftp_w = Column(Float, nullable=True)  # Functional threshold power (watts)
    max_hr = Column(Integer, nullable=True)
    resting_hr = Column(Integer, nullable=True)
    body_mass_kg = Column(Float, nullable=True)
    sleep_need_h = Column(Float, nullable=True)


class DailySample(Base):
    """
    One day's raw physiological inputs.

    NULL means "not measured". A stored 0 (e.g. wake_events = 0) is a real
    measurement and must never be conflated with NULL.
    """
    __tablename__ = "daily_sample"

    id = Column(String(36), primary_key=True, default=_uuid)
    date = Column(Date, nullable=False, unique=True, index=True)

    hrv_ms = Column(Float, nullable=True)  # Overnight HRV (rMSSD)
    resting_hr = Column(Float, nullable=True)
    respiratory_rate = Column(Float, nullable=True)  # breaths/min

    # --- SLEEP ---
    sleep_duration_s = Column(Float, nullable=True)
    time_in_bed_s = Column(Float, nullable=True)
    deep_sleep_s = Column(Float, nullable=True)
    rem_sleep_s = Column(Float, nullable=True)
    wake_events = Column(Integer, nullable=True)
    bedtime = Column(DateTime(timezone=True), nullable=True)
    wake_time = Column(DateTime(timezone=True), nullable=True)

    # --- INCIDENTAL MOVEMENT ---
    steps = Column(Integer, nullable=True)
    active_calories = Column(Float, nullable=True)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Activity(Base):
    __tablename__ = "activity"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    sport = Column(Text, default="ride", nullable=False)
    duration_s = Column(Integer, nullable=True)

    # --- CARDIO ---
    avg_power_w = Column(Float, nullable=True)
    normalized_power_w = Column(Float, nullable=True)
    avg_hr = Column(Integer, nullable=True)
    max_hr = Column(Integer, nullable=True)
    # Numbers computed by the source platform (trusted when no power/FTP here)
    source_tss = Column(Float, nullable=True)
    source_intensity_factor = Column(Float, nullable=True)

    # --- STRENGTH ---
    rpe = Column(Float, nullable=True)  # 1-10
    volume_kg = Column(Float, nullable=True)  # Total load lifted
    sets = Column(Integer, nullable=True)

    # --- INGESTION CONTRACT COLUMNS ---
    provider = Column(Text, nullable=True)
    external_activity_id = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint('provider', 'external_activity_id', name='uq_activity_provider_external_id'),
    )


class DailyScore(Base):
    """
    Computed composite scores for one day.

    Each family (recovery, sleep, strain) owns its own group of columns and
    is written independently. `*_completeness` counts the inputs that fed
    the stored score; writes are monotonic in it.
    """
    __tablename__ = "daily_score"

    id = Column(String(36), primary_key=True, default=_uuid)
    date = Column(Date, nullable=False, unique=True, index=True)

    # 'ok' | 'insufficient_data' | 'no_data'
    recovery_status = Column(Text, nullable=True)
    recovery_score = Column(Float, nullable=True)
    recovery_band = Column(Text, nullable=True)
    recovery_completeness = Column(Integer, nullable=True)
    recovery_inputs_total = Column(Integer, nullable=True)
    recovery_components = Column(JSON, nullable=True)
    recovery_computed_at = Column(DateTime(timezone=True), nullable=True)

    sleep_status = Column(Text, nullable=True)
    sleep_score = Column(Float, nullable=True)
    sleep_band = Column(Text, nullable=True)
    sleep_completeness = Column(Integer, nullable=True)
    sleep_inputs_total = Column(Integer, nullable=True)
    sleep_components = Column(JSON, nullable=True)
    sleep_computed_at = Column(DateTime(timezone=True), nullable=True)

    strain_status = Column(Text, nullable=True)
    strain_score = Column(Float, nullable=True)
    strain_band = Column(Text, nullable=True)
    strain_completeness = Column(Integer, nullable=True)
    strain_inputs_total = Column(Integer, nullable=True)
    strain_components = Column(JSON, nullable=True)
    strain_computed_at = Column(DateTime(timezone=True), nullable=True)


class DailyLoad(Base):
    """Training-load point for one day. TSB is derived (ctl - atl), never stored."""
    __tablename__ = "daily_load"

    id = Column(String(36), primary_key=True, default=_uuid)
    date = Column(Date, nullable=False, unique=True, index=True)
    tss = Column(Float, nullable=False, default=0.0)
    ctl = Column(Float, nullable=False)
    atl = Column(Float, nullable=False)
    activity_count = Column(Integer, nullable=False, default=0)
    computed_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class BackfillState(Base):
    """
    Durable per-family backfill run state.

    One row per score family; the throttle reads `last_finished_at`.
    """
    __tablename__ = "backfill_state"

    id = Column(String(36), primary_key=True, default=_uuid)
    family = Column(Text, nullable=False)
    last_started_at = Column(DateTime(timezone=True), nullable=True)
    last_finished_at = Column(DateTime(timezone=True), nullable=True)
    # 'running' | 'success' | 'error'
    last_status = Column(Text, nullable=True)
    last_error = Column(Text, nullable=True)
    last_updated_days = Column(Integer, nullable=True)
    last_skipped_days = Column(Integer, nullable=True)
    last_errored_days = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("family", name="uq_backfill_state_family"),
        Index("ix_backfill_state_finished", "last_finished_at"),
    )
