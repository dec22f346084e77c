"""
Domain types shared by the ledger, suggestion and progression engines.

Plain dataclasses carry state between the pure engines and the async stores;
programme rules arrive as JSON and are validated with pydantic.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class ProgressTrend(str, enum.Enum):
    """Direction of the working weight across sessions."""

    IMPROVING = "IMPROVING"
    STALLING = "STALLING"
    DECLINING = "DECLINING"


class VolumeTrend(str, enum.Enum):
    """Session volume compared with the running average."""

    INCREASING = "INCREASING"
    MAINTAINING = "MAINTAINING"
    DECREASING = "DECREASING"


class ProgressionAction(str, enum.Enum):
    PROGRESS = "PROGRESS"
    MAINTAIN = "MAINTAIN"
    DELOAD = "DELOAD"


@dataclass
class SetEntry:
    """A single logged set. ``target_*`` are only set for programme workouts."""

    weight: float
    reps: int
    rpe: float | None = None
    is_completed: bool = True
    target_reps: int | None = None
    target_weight: float | None = None

    @property
    def volume(self) -> float:
        return self.weight * self.reps


@dataclass
class Workout:
    id: int
    programme_id: int | None = None
    completed_at: datetime | None = None

    @property
    def is_programme_workout(self) -> bool:
        return self.programme_id is not None


@dataclass
class ExerciseLog:
    """An exercise performed within a workout."""

    id: int
    workout_id: int
    exercise_id: int
    exercise_name: str


@dataclass
class Exercise:
    """Catalog entry."""

    id: int
    name: str


@dataclass
class ExerciseProgressRecord:
    """Longitudinal progress for one exercise, folded from completed sessions."""

    exercise_id: int
    exercise_name: str
    current_working_weight: float = 0.0
    estimated_max: float = 0.0
    estimated_max_is_true: bool = False
    recent_avg_rpe: float | None = None
    consecutive_stalls: int = 0
    trend: ProgressTrend = ProgressTrend.STALLING
    volume_trend: VolumeTrend | None = None
    best_single_rep: float | None = None
    best_3_rep: float | None = None
    best_5_rep: float | None = None
    best_8_rep: float | None = None
    last_session_volume: float | None = None
    avg_session_volume: float | None = None
    total_volume_last_30_days: float = 0.0
    volume_window_start: datetime | None = None
    sessions_tracked: int = 0
    weeks_at_current_weight: int = 0
    last_progression_date: datetime | None = None
    failure_streak: int = 0
    last_pr_date: datetime | None = None
    last_pr_weight: float | None = None
    last_programme_workout_id: int | None = None
    last_freestyle_workout_id: int | None = None
    last_updated: datetime | None = None


@dataclass
class OneRepMaxEstimate:
    exercise_id: int
    value: float
    confidence: float
    context: str
    most_weight_lifted: float
    most_weight_reps: int
    most_weight_rpe: float | None = None
    date: datetime | None = None
    is_true_max: bool = False


@dataclass
class PerformanceRecord:
    """Outcome of one exercise in one programme workout."""

    programme_id: int
    exercise_name: str
    target_weight: float
    achieved_weight: float
    target_sets: int
    completed_sets: int
    target_reps: int | None
    achieved_reps: int
    was_successful: bool
    workout_date: datetime
    is_deload_workout: bool = False
    average_rpe: float | None = None
    workout_id: int | None = None
    missed_reps: int = 0

    def __post_init__(self) -> None:
        if self.target_reps is None:
            self.missed_reps = 0
        else:
            self.missed_reps = max(0, self.target_reps * self.target_sets - self.achieved_reps)


@dataclass
class AlternativeSuggestion:
    reps: int
    weight: float
    rpe: float | None
    reasoning: str


@dataclass
class SuggestionResult:
    suggested_weight: float
    suggested_reps: int
    suggested_rpe: float | None
    confidence: str
    reasoning: str
    alternatives: list[AlternativeSuggestion] = field(default_factory=list)


@dataclass
class DeloadDetails:
    previous_weight: float
    deload_percentage: float
    minimum_weight: float


@dataclass
class ProgressionDecision:
    weight: float
    action: ProgressionAction
    reason: str
    is_deload: bool = False
    deload_details: DeloadDetails | None = None


@dataclass
class ProgressAnalysis:
    has_data: bool
    trend: ProgressTrend | None
    insight: str
    confidence: float


class _RulesModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DeloadRules(_RulesModel):
    auto_deload: bool = Field(True, alias="autoDeload")
    trigger_after_failures: int = Field(3, alias="triggerAfterFailures", ge=1)
    deload_percentage: float = Field(0.9, alias="deloadPercentage", gt=0, le=1)
    minimum_weight: float = Field(20.0, alias="minimumWeight", ge=0)


class SuccessCriteria(_RulesModel):
    required_sets: int | None = Field(None, alias="requiredSets")
    required_reps: int | None = Field(None, alias="requiredReps")
    allowed_missed_reps: int = Field(0, alias="allowedMissedReps", ge=0)
    min_rpe: float | None = Field(None, alias="minRPE")
    max_rpe: float | None = Field(None, alias="maxRPE")


class ProgressionRules(_RulesModel):
    """Per-programme progression rules stored as JSON on the programme."""

    increment_rules: dict[str, float] = Field(default_factory=dict, alias="incrementRules")
    deload_rules: DeloadRules = Field(default_factory=DeloadRules, alias="deloadRules")
    success_criteria: SuccessCriteria | None = Field(None, alias="successCriteria")

    @classmethod
    def parse(cls, raw: str | dict[str, Any] | None) -> ProgressionRules | None:
        """Parse stored rules, returning ``None`` when absent or malformed."""
        if raw is None or raw == "" or raw == {}:
            return None
        try:
            data = json.loads(raw) if isinstance(raw, str) else raw
            return cls.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.warning("Ignoring malformed progression rules: %s", e)
            return None

    def increment_for(self, exercise_name: str, default: float = 2.5) -> float:
        """Case-insensitive increment lookup with ``default`` key fallback."""
        wanted = exercise_name.strip().lower()
        fallback: float | None = None
        for key, value in self.increment_rules.items():
            k = key.strip().lower()
            if k == wanted:
                return value
            if k == "default":
                fallback = value
        return fallback if fallback is not None else default
