"""
Service for programme progression: decisions, performance recording and status.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime

from ..config import SETTINGS
from ..db import repo
from ..models import PerformanceRecord, ProgressionDecision, ProgressionRules, SetEntry
from ..progression import (
    ProgressionStatus,
    build_performance_record,
    calculate_progression,
    progression_status,
)


class ProgrammeNotFoundError(LookupError):
    """Raised when a programme id does not exist."""


class ProgressionService:
    """Glue between the programme stores and the rule-based calculator."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _rules(self, programme_id: int) -> ProgressionRules | None:
        programme = await repo.get_programme(programme_id)
        if programme is None:
            raise ProgrammeNotFoundError(programme_id)
        return ProgressionRules.parse(programme.progression_rules)

    async def calculate_progression_weight(
        self, exercise_name: str, programme_id: int
    ) -> ProgressionDecision:
        """Next prescribed weight for ``exercise_name`` within ``programme_id``."""
        rules = await self._rules(programme_id)
        if rules is None:
            return calculate_progression(
                exercise_name, None, [], bar_weight=SETTINGS.DEFAULT_BAR_WEIGHT_KG
            )

        exercise = await repo.get_exercise_by_name(exercise_name)
        history = await repo.get_recent_performance(programme_id, exercise_name, limit=5)
        failures = await repo.get_consecutive_failures(programme_id, exercise_name)

        one_rep_max: float | None = None
        if exercise is not None and not history:
            stored = await repo.get_current_max(exercise.id)
            one_rep_max = stored.value if stored else None

        decision = calculate_progression(
            exercise_name,
            rules,
            history,
            failures,
            one_rep_max=one_rep_max,
            exercise_found=exercise is not None,
            bar_weight=SETTINGS.DEFAULT_BAR_WEIGHT_KG,
        )
        logging.info(
            "Progression for %s in programme %s: %s %gkg (%s)",
            exercise_name,
            programme_id,
            decision.action.value,
            decision.weight,
            decision.reason,
        )
        return decision

    async def record_workout_performance(self, workout_id: int) -> list[PerformanceRecord]:
        """
        Store one performance record per exercise of a programme workout.

        A workout counts as a deload for an exercise when the decision in force
        before it was a deload. Freestyle workouts record nothing.
        """
        workout = await repo.get_workout_by_id(workout_id)
        if workout is None or workout.programme_id is None:
            return []
        if await repo.has_performance_for_workout(workout_id):
            logging.info("Performance for workout %s already recorded", workout_id)
            return []
        programme_id = workout.programme_id
        rules = await self._rules(programme_id)
        now = workout.completed_at or self._clock()

        grouped: defaultdict[str, list[SetEntry]] = defaultdict(list)
        for log in await repo.get_exercise_logs_for_workout(workout_id):
            grouped[log.exercise_name].extend(await repo.get_set_logs_for_exercise(log.id))

        recorded: list[PerformanceRecord] = []
        for name, sets in grouped.items():
            if not sets:
                continue
            history = await repo.get_recent_performance(programme_id, name, limit=5)
            prior = calculate_progression(name, rules, history)
            record = build_performance_record(
                programme_id,
                name,
                sets,
                rules=rules,
                now=now,
                workout_id=workout_id,
                is_deload_workout=prior.is_deload,
            )
            await repo.insert_performance_record(record)
            logging.info(
                "Recorded performance: %s %s (sets %d/%d, missed reps %d)",
                name,
                "success" if record.was_successful else "failed",
                record.completed_sets,
                record.target_sets,
                record.missed_reps,
            )
            recorded.append(record)
        return recorded

    async def get_progression_status(self, programme_id: int, exercise_name: str) -> ProgressionStatus:
        rules = await self._rules(programme_id)
        history = await repo.get_recent_performance(programme_id, exercise_name, limit=None)
        return progression_status(exercise_name, history, rules)
