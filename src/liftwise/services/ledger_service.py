"""
Service that folds completed workouts into the persisted progress ledger.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime

from ..config import SETTINGS
from ..db import repo
from ..ledger import analyze_progress, apply_session
from ..models import ExerciseProgressRecord, ProgressAnalysis, SetEntry, Workout
from ..one_rep_max import best_estimate, is_compound_lift, supersedes

logger = logging.getLogger(__name__)


class LedgerService:
    """Updates per-exercise progress records after each workout."""

    def __init__(
        self,
        *,
        auto_one_rm: bool | None = None,
        min_confidence: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.auto_one_rm = SETTINGS.FF_AUTO_ONE_RM if auto_one_rm is None else auto_one_rm
        self.min_confidence = (
            SETTINGS.ONE_RM_MIN_CONFIDENCE if min_confidence is None else min_confidence
        )
        self._clock = clock or (lambda: datetime.now(UTC))
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def update_progress_after_workout(self, workout_id: int) -> list[ExerciseProgressRecord]:
        """
        Fold every exercise of ``workout_id`` into its progress record.

        Returns the records that were written: one per exercise with at least
        one completed set, none for a missing workout.
        """
        workout = await repo.get_workout_by_id(workout_id)
        if workout is None:
            logger.warning("Workout %s not found, skipping progress update", workout_id)
            return []

        grouped: dict[int, tuple[str, list[SetEntry]]] = {}
        for log in await repo.get_exercise_logs_for_workout(workout_id):
            sets = await repo.get_set_logs_for_exercise(log.id)
            _, bucket = grouped.setdefault(log.exercise_id, (log.exercise_name, []))
            bucket.extend(sets)

        updated: list[ExerciseProgressRecord] = []
        for exercise_id, (name, sets) in grouped.items():
            record = await self._update_exercise(workout, exercise_id, name, sets)
            if record is not None:
                updated.append(record)
        logger.info("Workout %s: updated progress for %d exercise(s)", workout_id, len(updated))
        return updated

    async def _update_exercise(
        self, workout: Workout, exercise_id: int, name: str, sets: list[SetEntry]
    ) -> ExerciseProgressRecord | None:
        done = [s for s in sets if s.is_completed]
        if not done:
            logger.info("No completed sets for %s, skipping progress update", name)
            return None

        async with self._locks[exercise_id]:
            now = workout.completed_at or self._clock()
            existing = await repo.get_progress_for_exercise(exercise_id)
            stored = await repo.get_current_max(exercise_id)
            estimate = best_estimate(
                exercise_id, done, date=now, min_confidence=self.min_confidence
            )
            record = apply_session(
                existing,
                exercise_id=exercise_id,
                exercise_name=name,
                sets=done,
                now=now,
                workout_id=workout.id,
                is_programme_workout=workout.is_programme_workout,
                estimate=estimate,
                stored_max=stored,
            )
            if record is None:
                return None
            await repo.upsert_progress(record)

            if (
                estimate is not None
                and self.auto_one_rm
                and is_compound_lift(name)
                and supersedes(estimate, stored)
            ):
                if stored is None:
                    await repo.insert_exercise_max(estimate)
                else:
                    await repo.update_exercise_max(estimate)
                logger.info("Stored 1RM for %s: %.1fkg (%s)", name, estimate.value, estimate.context)

            logger.debug(
                "%s: %gkg trend=%s stalls=%d",
                name,
                record.current_working_weight,
                record.trend.value,
                record.consecutive_stalls,
            )
            return record

    async def get_progress(self, exercise_id: int) -> ExerciseProgressRecord | None:
        return await repo.get_progress_for_exercise(exercise_id)

    async def get_analysis(self, exercise_id: int) -> ProgressAnalysis:
        return analyze_progress(await repo.get_progress_for_exercise(exercise_id))
