"""
Async SQLAlchemy repository for Liftwise database operations.

Functions return domain objects from :mod:`liftwise.models`, never ORM rows.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict
from datetime import UTC, datetime
from functools import wraps
from typing import Any, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import SETTINGS
from ..models import (
    Exercise,
    ExerciseLog,
    ExerciseProgressRecord,
    OneRepMaxEstimate,
    PerformanceRecord,
    SetEntry,
    Workout,
)
from .models import (
    Base,
    ExerciseLogRow,
    ExerciseMaxRow,
    ExerciseProgressRow,
    ExerciseRow,
    PerformanceRow,
    ProgrammeRow,
    SetLogRow,
    WorkoutRow,
)

_engine: AsyncEngine | None = None
_session: async_sessionmaker[AsyncSession] | None = None

F = TypeVar("F", bound=Callable[..., Any])

_TRANSIENT_MARKERS = (
    "connection",
    "server closed",
    "operationalerror",
    "timeout",
)


def retry_on_connection_error(max_retries: int = 3, delay: float = 0.1):
    """
    Decorator to retry database reads on transient connection errors.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    transient = any(m in str(e).lower() for m in _TRANSIENT_MARKERS)
                    if not transient or attempt == max_retries - 1:
                        raise
                    wait_time = delay * (2**attempt)
                    logging.warning(
                        "Database connection error on attempt %d/%d, retrying in %.2fs: %s",
                        attempt + 1,
                        max_retries,
                        wait_time,
                        e,
                    )
                    await asyncio.sleep(wait_time)
            raise RuntimeError("Retry mechanism failed unexpectedly")

        return wrapper  # type: ignore

    return decorator


def _prepare_url(url: str) -> tuple[str, dict]:
    """Return sanitized DB URL and connect args.

    ``sslmode``/``ssl`` query parameters are moved into ``connect_args`` for
    asyncpg. ``ssl=false`` disables TLS.
    """

    url_obj = make_url(url)
    query = dict(url_obj.query)
    connect_args: dict[str, object] = {}

    sslmode = query.pop("sslmode", None)
    ssl_val = query.pop("ssl", None)
    if ssl_val is not None:
        sslmode = "disable" if str(ssl_val).lower() in {"0", "false", "off", "no"} else "require"
    driver = url_obj.drivername or ""
    if driver.startswith("postgresql+asyncpg"):
        if sslmode:
            connect_args["ssl"] = sslmode
        # PgBouncer in transaction mode cannot cache prepared statements
        connect_args.setdefault("statement_cache_size", 0)

    url_obj = url_obj.set(query=query)
    return url_obj.render_as_string(hide_password=False), connect_args


def _is_sqlite(db_url: str) -> bool:
    try:
        return make_url(db_url).drivername.startswith("sqlite")
    except Exception:
        return False


async def init_db() -> None:
    """
    Initialize the async database engine and sessionmaker, and create tables if needed.
    """
    global _engine, _session
    if _engine:
        return
    if not SETTINGS.DATABASE_URL:
        logging.error("DATABASE_URL is required for DB initialization.")
        raise RuntimeError("DATABASE_URL is required")
    db_url, connect_args = _prepare_url(SETTINGS.DATABASE_URL)
    engine_kwargs: dict[str, Any] = {"echo": False, "connect_args": connect_args}
    if not _is_sqlite(db_url):
        engine_kwargs.update(
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=30,
            max_overflow=10,
            pool_size=20,
        )
    _engine = create_async_engine(db_url, **engine_kwargs)
    _session = async_sessionmaker(_engine, expire_on_commit=False)
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_session() -> async_sessionmaker[AsyncSession]:
    """
    Get the async sessionmaker. Raises if DB is not initialized.
    """
    if not _session:
        raise RuntimeError("DB not initialized; call init_db() first")
    return _session


async def close_db() -> None:
    """Dispose of the database engine and reset session state."""

    global _engine, _session
    if _engine:
        await _engine.dispose()
    _engine = None
    _session = None


# Catalog


async def add_exercise(name: str) -> Exercise:
    """Insert an exercise into the catalog, returning the existing one on conflict."""
    sessmaker = get_session()
    async with sessmaker() as s:
        res = await s.execute(select(ExerciseRow).where(ExerciseRow.name == name))
        row = res.scalar_one_or_none()
        if row is None:
            row = ExerciseRow(name=name)
            s.add(row)
            await s.commit()
        return row.to_domain()


@retry_on_connection_error()
async def get_exercise_by_id(exercise_id: int) -> Exercise | None:
    sessmaker = get_session()
    async with sessmaker() as s:
        row = await s.get(ExerciseRow, exercise_id)
        return row.to_domain() if row else None


@retry_on_connection_error()
async def get_exercise_by_name(name: str) -> Exercise | None:
    """Case-insensitive exact-name lookup."""
    sessmaker = get_session()
    async with sessmaker() as s:
        res = await s.execute(
            select(ExerciseRow).where(func.lower(ExerciseRow.name) == name.strip().lower())
        )
        row = res.scalars().first()
        return row.to_domain() if row else None


# Programmes


async def create_programme(name: str, progression_rules: str | None = None) -> int:
    sessmaker = get_session()
    async with sessmaker() as s:
        row = ProgrammeRow(name=name, progression_rules=progression_rules)
        s.add(row)
        await s.commit()
        return row.id


@retry_on_connection_error()
async def get_programme(programme_id: int) -> ProgrammeRow | None:
    """Return the programme row; callers parse ``progression_rules`` themselves."""
    sessmaker = get_session()
    async with sessmaker() as s:
        return await s.get(ProgrammeRow, programme_id)


# Workouts


async def create_workout(
    sets_by_exercise: dict[int, list[SetEntry]],
    programme_id: int | None = None,
    completed_at: datetime | None = None,
) -> int:
    """
    Store a workout with its exercises and sets in a single transaction.
    ``sets_by_exercise`` maps catalog exercise ids to their sets.
    """
    sessmaker = get_session()
    async with sessmaker() as s:
        workout = WorkoutRow(programme_id=programme_id, completed_at=completed_at)
        s.add(workout)
        await s.flush()
        for exercise_id, sets in sets_by_exercise.items():
            ex = await s.get(ExerciseRow, exercise_id)
            if ex is None:
                raise ValueError(f"Unknown exercise id {exercise_id}")
            log = ExerciseLogRow(workout_id=workout.id, exercise_id=ex.id, exercise_name=ex.name)
            log.sets = [SetLogRow(**asdict(entry)) for entry in sets]
            s.add(log)
        await s.commit()
        return workout.id


@retry_on_connection_error()
async def get_workout_by_id(workout_id: int) -> Workout | None:
    sessmaker = get_session()
    async with sessmaker() as s:
        row = await s.get(WorkoutRow, workout_id)
        return row.to_domain() if row else None


async def mark_workout_completed(workout_id: int, at: datetime) -> bool:
    """
    Stamp ``completed_at`` on a workout that has not been completed yet.
    Returns False when the workout is missing or was already completed.
    """
    sessmaker = get_session()
    async with sessmaker() as s:
        res = await s.execute(
            update(WorkoutRow)
            .where(WorkoutRow.id == workout_id, WorkoutRow.completed_at.is_(None))
            .values(completed_at=at)
        )
        await s.commit()
        return (res.rowcount or 0) > 0


@retry_on_connection_error()
async def get_exercise_logs_for_workout(workout_id: int) -> list[ExerciseLog]:
    sessmaker = get_session()
    async with sessmaker() as s:
        res = await s.execute(
            select(ExerciseLogRow)
            .where(ExerciseLogRow.workout_id == workout_id)
            .order_by(ExerciseLogRow.id)
        )
        return [row.to_domain() for row in res.scalars()]


@retry_on_connection_error()
async def get_set_logs_for_exercise(exercise_log_id: int) -> list[SetEntry]:
    sessmaker = get_session()
    async with sessmaker() as s:
        res = await s.execute(
            select(SetLogRow)
            .where(SetLogRow.exercise_log_id == exercise_log_id)
            .order_by(SetLogRow.id)
        )
        return [row.to_domain() for row in res.scalars()]


# Progress ledger


@retry_on_connection_error()
async def get_progress_for_exercise(exercise_id: int) -> ExerciseProgressRecord | None:
    sessmaker = get_session()
    async with sessmaker() as s:
        row = await s.get(ExerciseProgressRow, exercise_id)
        return row.to_domain() if row else None


async def upsert_progress(record: ExerciseProgressRecord) -> None:
    """Insert or overwrite the progress row for ``record.exercise_id``."""
    sessmaker = get_session()
    async with sessmaker() as s:
        row = await s.get(ExerciseProgressRow, record.exercise_id)
        if row is None:
            s.add(ExerciseProgressRow(**asdict(record)))
        else:
            for key, value in asdict(record).items():
                setattr(row, key, value)
        await s.commit()


async def delete_progress(exercise_id: int) -> bool:
    """Reset an exercise's ledger. Returns True if a row was removed."""
    sessmaker = get_session()
    async with sessmaker() as s:
        res = await s.execute(
            delete(ExerciseProgressRow).where(ExerciseProgressRow.exercise_id == exercise_id)
        )
        await s.commit()
        return (res.rowcount or 0) > 0


# One-rep maxes


@retry_on_connection_error()
async def get_current_max(exercise_id: int) -> OneRepMaxEstimate | None:
    sessmaker = get_session()
    async with sessmaker() as s:
        res = await s.execute(select(ExerciseMaxRow).where(ExerciseMaxRow.exercise_id == exercise_id))
        row = res.scalar_one_or_none()
        return row.to_domain() if row else None


def _max_values(estimate: OneRepMaxEstimate) -> dict[str, Any]:
    values = asdict(estimate)
    values["recorded_at"] = values.pop("date") or datetime.now(UTC)
    return values


async def insert_exercise_max(estimate: OneRepMaxEstimate) -> None:
    sessmaker = get_session()
    async with sessmaker() as s:
        s.add(ExerciseMaxRow(**_max_values(estimate)))
        await s.commit()


async def update_exercise_max(estimate: OneRepMaxEstimate) -> None:
    sessmaker = get_session()
    async with sessmaker() as s:
        res = await s.execute(
            select(ExerciseMaxRow).where(ExerciseMaxRow.exercise_id == estimate.exercise_id)
        )
        row = res.scalar_one_or_none()
        if row is None:
            s.add(ExerciseMaxRow(**_max_values(estimate)))
        else:
            for key, value in _max_values(estimate).items():
                setattr(row, key, value)
        await s.commit()


# Programme performance


@retry_on_connection_error()
async def get_recent_performance(
    programme_id: int, exercise_name: str, limit: int | None = 5
) -> list[PerformanceRecord]:
    """Most recent performance records, newest first."""
    sessmaker = get_session()
    async with sessmaker() as s:
        stmt = (
            select(PerformanceRow)
            .where(
                PerformanceRow.programme_id == programme_id,
                func.lower(PerformanceRow.exercise_name) == exercise_name.lower(),
            )
            .order_by(PerformanceRow.workout_date.desc(), PerformanceRow.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        res = await s.execute(stmt)
        return [row.to_domain() for row in res.scalars()]


@retry_on_connection_error()
async def get_consecutive_failures(programme_id: int, exercise_name: str) -> int:
    """Count failures since the most recent success."""
    sessmaker = get_session()
    async with sessmaker() as s:
        res = await s.execute(
            select(PerformanceRow.was_successful)
            .where(
                PerformanceRow.programme_id == programme_id,
                func.lower(PerformanceRow.exercise_name) == exercise_name.lower(),
            )
            .order_by(PerformanceRow.workout_date.desc(), PerformanceRow.id.desc())
        )
        failures = 0
        for success in res.scalars():
            if success:
                break
            failures += 1
        return failures


async def insert_performance_record(record: PerformanceRecord) -> None:
    sessmaker = get_session()
    async with sessmaker() as s:
        s.add(PerformanceRow(**asdict(record)))
        await s.commit()


@retry_on_connection_error()
async def has_performance_for_workout(workout_id: int) -> bool:
    sessmaker = get_session()
    async with sessmaker() as s:
        res = await s.execute(
            select(PerformanceRow.id).where(PerformanceRow.workout_id == workout_id).limit(1)
        )
        return res.scalar_one_or_none() is not None
