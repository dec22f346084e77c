"""
SQLAlchemy ORM models for Liftwise database tables.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy import (
    Enum as SAEnum,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..models import (
    Exercise,
    ExerciseLog,
    ExerciseProgressRecord,
    OneRepMaxEstimate,
    PerformanceRecord,
    ProgressTrend,
    SetEntry,
    VolumeTrend,
    Workout,
)


def _utc(dt: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on read; stored values are always UTC."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class ExerciseRow(Base):
    """Exercise catalog entry."""

    __tablename__ = "exercises"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), unique=True, index=True)

    def to_domain(self) -> Exercise:
        return Exercise(id=self.id, name=self.name)

    def __repr__(self) -> str:
        return f"<ExerciseRow id={self.id} name={self.name}>"


class ProgrammeRow(Base):
    """A structured programme; progression rules are kept as raw JSON text."""

    __tablename__ = "programmes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120))
    progression_rules: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    def __repr__(self) -> str:
        return f"<ProgrammeRow id={self.id} name={self.name}>"


class WorkoutRow(Base):
    """A workout, either freestyle or part of a programme."""

    __tablename__ = "workouts"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    programme_id: Mapped[int | None] = mapped_column(
        ForeignKey("programmes.id"), nullable=True, index=True
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    exercises: Mapped[list[ExerciseLogRow]] = relationship(
        "ExerciseLogRow", back_populates="workout", cascade="all, delete-orphan"
    )

    def to_domain(self) -> Workout:
        return Workout(
            id=self.id, programme_id=self.programme_id, completed_at=_utc(self.completed_at)
        )

    def __repr__(self) -> str:
        return f"<WorkoutRow id={self.id} programme_id={self.programme_id}>"


class ExerciseLogRow(Base):
    """An exercise performed within a workout."""

    __tablename__ = "exercise_logs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workout_id: Mapped[int] = mapped_column(ForeignKey("workouts.id"), index=True)
    exercise_id: Mapped[int] = mapped_column(ForeignKey("exercises.id"), index=True)
    exercise_name: Mapped[str] = mapped_column(String(120))

    workout: Mapped[WorkoutRow] = relationship("WorkoutRow", back_populates="exercises")
    sets: Mapped[list[SetLogRow]] = relationship(
        "SetLogRow", back_populates="exercise_log", cascade="all, delete-orphan"
    )

    def to_domain(self) -> ExerciseLog:
        return ExerciseLog(
            id=self.id,
            workout_id=self.workout_id,
            exercise_id=self.exercise_id,
            exercise_name=self.exercise_name,
        )

    def __repr__(self) -> str:
        return f"<ExerciseLogRow id={self.id} workout_id={self.workout_id} exercise={self.exercise_name}>"


class SetLogRow(Base):
    """A single logged set."""

    __tablename__ = "set_logs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    exercise_log_id: Mapped[int] = mapped_column(ForeignKey("exercise_logs.id"), index=True)
    weight: Mapped[float] = mapped_column(Float)
    reps: Mapped[int] = mapped_column(Integer)
    rpe: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    target_reps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_weight: Mapped[float | None] = mapped_column(Float, nullable=True)

    exercise_log: Mapped[ExerciseLogRow] = relationship("ExerciseLogRow", back_populates="sets")

    def to_domain(self) -> SetEntry:
        return SetEntry(
            weight=self.weight,
            reps=self.reps,
            rpe=self.rpe,
            is_completed=self.is_completed,
            target_reps=self.target_reps,
            target_weight=self.target_weight,
        )

    def __repr__(self) -> str:
        return f"<SetLogRow id={self.id} {self.weight}x{self.reps} rpe={self.rpe}>"


def _trend_enum(enum_cls, name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,  # SQLite has no native enums
        create_constraint=True,
        validate_strings=True,
    )


class ExerciseProgressRow(Base):
    """Persisted progress ledger, one row per exercise."""

    __tablename__ = "exercise_progress"
    exercise_id: Mapped[int] = mapped_column(ForeignKey("exercises.id"), primary_key=True)
    exercise_name: Mapped[str] = mapped_column(String(120))
    current_working_weight: Mapped[float] = mapped_column(Float, default=0.0)
    estimated_max: Mapped[float] = mapped_column(Float, default=0.0)
    estimated_max_is_true: Mapped[bool] = mapped_column(Boolean, default=False)
    recent_avg_rpe: Mapped[float | None] = mapped_column(Float, nullable=True)
    consecutive_stalls: Mapped[int] = mapped_column(Integer, default=0)
    trend: Mapped[ProgressTrend] = mapped_column(
        _trend_enum(ProgressTrend, "progress_trend"),
        default=ProgressTrend.STALLING,
        server_default=text("'STALLING'"),
        nullable=False,
    )
    volume_trend: Mapped[VolumeTrend | None] = mapped_column(
        _trend_enum(VolumeTrend, "volume_trend"), nullable=True
    )
    best_single_rep: Mapped[float | None] = mapped_column(Float, nullable=True)
    best_3_rep: Mapped[float | None] = mapped_column(Float, nullable=True)
    best_5_rep: Mapped[float | None] = mapped_column(Float, nullable=True)
    best_8_rep: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_session_volume: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_session_volume: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_volume_last_30_days: Mapped[float] = mapped_column(Float, default=0.0)
    volume_window_start: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    sessions_tracked: Mapped[int] = mapped_column(Integer, default=0)
    weeks_at_current_weight: Mapped[int] = mapped_column(Integer, default=0)
    last_progression_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    failure_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_pr_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_pr_weight: Mapped[float | None] = mapped_column(Float, nullable=True)
    last_programme_workout_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_freestyle_workout_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    _DATETIMES = (
        "volume_window_start",
        "last_progression_date",
        "last_pr_date",
        "last_updated",
    )

    def to_domain(self) -> ExerciseProgressRecord:
        data = {
            col.key: getattr(self, col.key) for col in self.__table__.columns  # type: ignore[attr-defined]
        }
        for key in self._DATETIMES:
            data[key] = _utc(data[key])
        return ExerciseProgressRecord(**data)

    def __repr__(self) -> str:
        return (
            f"<ExerciseProgressRow exercise={self.exercise_name} "
            f"weight={self.current_working_weight} trend={self.trend.value}>"
        )


class ExerciseMaxRow(Base):
    """Current accepted one-rep max per exercise."""

    __tablename__ = "exercise_maxes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    exercise_id: Mapped[int] = mapped_column(ForeignKey("exercises.id"), unique=True, index=True)
    value: Mapped[float] = mapped_column(Float)
    confidence: Mapped[float] = mapped_column(Float)
    context: Mapped[str] = mapped_column(String(120))
    most_weight_lifted: Mapped[float] = mapped_column(Float)
    most_weight_reps: Mapped[int] = mapped_column(Integer)
    most_weight_rpe: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_true_max: Mapped[bool] = mapped_column(Boolean, default=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    def to_domain(self) -> OneRepMaxEstimate:
        return OneRepMaxEstimate(
            exercise_id=self.exercise_id,
            value=self.value,
            confidence=self.confidence,
            context=self.context,
            most_weight_lifted=self.most_weight_lifted,
            most_weight_reps=self.most_weight_reps,
            most_weight_rpe=self.most_weight_rpe,
            date=_utc(self.recorded_at),
            is_true_max=self.is_true_max,
        )

    def __repr__(self) -> str:
        return f"<ExerciseMaxRow exercise_id={self.exercise_id} value={self.value}>"


class PerformanceRow(Base):
    """Outcome of one exercise in one programme workout."""

    __tablename__ = "performance_records"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    programme_id: Mapped[int] = mapped_column(ForeignKey("programmes.id"), index=True)
    exercise_name: Mapped[str] = mapped_column(String(120), index=True)
    workout_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_weight: Mapped[float] = mapped_column(Float)
    achieved_weight: Mapped[float] = mapped_column(Float)
    target_sets: Mapped[int] = mapped_column(Integer)
    completed_sets: Mapped[int] = mapped_column(Integer)
    target_reps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    achieved_reps: Mapped[int] = mapped_column(Integer)
    missed_reps: Mapped[int] = mapped_column(Integer, default=0)
    was_successful: Mapped[bool] = mapped_column(Boolean)
    is_deload_workout: Mapped[bool] = mapped_column(Boolean, default=False)
    average_rpe: Mapped[float | None] = mapped_column(Float, nullable=True)
    workout_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )

    def to_domain(self) -> PerformanceRecord:
        return PerformanceRecord(
            programme_id=self.programme_id,
            exercise_name=self.exercise_name,
            target_weight=self.target_weight,
            achieved_weight=self.achieved_weight,
            target_sets=self.target_sets,
            completed_sets=self.completed_sets,
            target_reps=self.target_reps,
            achieved_reps=self.achieved_reps,
            was_successful=self.was_successful,
            workout_date=_utc(self.workout_date),  # type: ignore[arg-type]
            is_deload_workout=self.is_deload_workout,
            average_rpe=self.average_rpe,
            workout_id=self.workout_id,
        )

    def __repr__(self) -> str:
        return (
            f"<PerformanceRow programme={self.programme_id} exercise={self.exercise_name} "
            f"success={self.was_successful}>"
        )
