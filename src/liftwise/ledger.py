"""
Progress ledger: folds one completed session into an exercise's progress record.

Everything here is pure. Loading and persisting records is the job of
:mod:`liftwise.services.ledger_service`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timedelta

from .models import (
    ExerciseProgressRecord,
    OneRepMaxEstimate,
    ProgressAnalysis,
    ProgressTrend,
    SetEntry,
    VolumeTrend,
)
from .one_rep_max import supersedes

logger = logging.getLogger(__name__)

PR_BUCKETS = {1: "best_single_rep", 3: "best_3_rep", 5: "best_5_rep", 8: "best_8_rep"}
VOLUME_BAND = 0.10
VOLUME_WINDOW = timedelta(days=30)


def new_record(exercise_id: int, exercise_name: str, estimated_max: float = 0.0) -> ExerciseProgressRecord:
    return ExerciseProgressRecord(
        exercise_id=exercise_id,
        exercise_name=exercise_name,
        estimated_max=estimated_max,
    )


def _update_trend(rec: ExerciseProgressRecord, top: float, now: datetime) -> None:
    previous = rec.current_working_weight
    if top > previous:
        rec.trend = ProgressTrend.IMPROVING
        rec.consecutive_stalls = 0
        rec.weeks_at_current_weight = 0
        rec.last_progression_date = now
        rec.failure_streak = 0
    elif top == previous:
        rec.trend = ProgressTrend.STALLING
        rec.consecutive_stalls += 1
        if rec.last_progression_date is not None:
            rec.weeks_at_current_weight = (now - rec.last_progression_date).days // 7
        else:
            rec.weeks_at_current_weight = 1
    else:
        rec.trend = ProgressTrend.DECLINING
        rec.consecutive_stalls = 0
        rec.weeks_at_current_weight = 0
        rec.failure_streak += 1
    rec.current_working_weight = top


def _update_prs(rec: ExerciseProgressRecord, done: list[SetEntry], now: datetime) -> None:
    for reps, attr in PR_BUCKETS.items():
        weights = [s.weight for s in done if s.reps == reps]
        if not weights:
            continue
        heaviest = max(weights)
        if heaviest <= (getattr(rec, attr) or 0.0):
            continue
        setattr(rec, attr, heaviest)
        if reps == 1 or heaviest > (rec.last_pr_weight or 0.0):
            rec.last_pr_date = now
            rec.last_pr_weight = heaviest
        logger.info("New %dRM for %s: %gkg", reps, rec.exercise_name, heaviest)


def _update_volume(rec: ExerciseProgressRecord, done: list[SetEntry], now: datetime) -> None:
    session = sum(s.volume for s in done)
    baseline = rec.avg_session_volume if rec.avg_session_volume is not None else session
    n = rec.sessions_tracked

    if session > baseline * (1 + VOLUME_BAND):
        rec.volume_trend = VolumeTrend.INCREASING
    elif session < baseline * (1 - VOLUME_BAND):
        rec.volume_trend = VolumeTrend.DECREASING
    else:
        rec.volume_trend = VolumeTrend.MAINTAINING

    rec.avg_session_volume = (baseline * n + session) / (n + 1)
    rec.last_session_volume = session
    rec.sessions_tracked = n + 1

    if rec.volume_window_start is None or now - rec.volume_window_start >= VOLUME_WINDOW:
        rec.volume_window_start = now
        rec.total_volume_last_30_days = session
    else:
        rec.total_volume_last_30_days += session


def _update_rpe(rec: ExerciseProgressRecord, done: list[SetEntry]) -> None:
    rpes = [s.rpe for s in done if s.rpe is not None]
    if rpes:
        rec.recent_avg_rpe = sum(rpes) / len(rpes)


def _update_max(
    rec: ExerciseProgressRecord,
    estimate: OneRepMaxEstimate | None,
    stored: OneRepMaxEstimate | None,
) -> None:
    if estimate is None:
        return
    holds_true_max = rec.estimated_max_is_true or (stored is not None and stored.is_true_max)
    if holds_true_max:
        # only a heavier true max moves a true max
        if not estimate.is_true_max or estimate.value <= rec.estimated_max:
            return
    elif not (estimate.is_true_max or estimate.value > rec.estimated_max):
        return
    if supersedes(estimate, stored):
        rec.estimated_max = estimate.value
        rec.estimated_max_is_true = estimate.is_true_max


def apply_session(
    record: ExerciseProgressRecord | None,
    *,
    exercise_id: int,
    exercise_name: str,
    sets: Iterable[SetEntry],
    now: datetime,
    workout_id: int | None = None,
    is_programme_workout: bool = False,
    estimate: OneRepMaxEstimate | None = None,
    stored_max: OneRepMaxEstimate | None = None,
) -> ExerciseProgressRecord | None:
    """
    Fold one session of ``sets`` into ``record`` and return the new record.

    Only completed sets count; ``None`` is returned when there are none so the
    caller skips the write. The input record is never mutated.

    ``estimate`` is the session's best 1RM estimate and ``stored_max`` the
    current entry in the maxes store. A new record starts from the stored max.

    A workout that was already folded into ``record`` also returns ``None``.
    """
    done = [s for s in sets if s.is_completed]
    if not done:
        return None
    if record is not None and workout_id is not None and workout_id in (
        record.last_programme_workout_id,
        record.last_freestyle_workout_id,
    ):
        logger.info("Workout %s already counted for %s", workout_id, exercise_name)
        return None

    if record is None:
        rec = new_record(exercise_id, exercise_name, stored_max.value if stored_max else 0.0)
        rec.estimated_max_is_true = stored_max is not None and stored_max.is_true_max
    else:
        rec = replace(record)

    _update_trend(rec, max(s.weight for s in done), now)
    _update_prs(rec, done, now)
    _update_volume(rec, done, now)
    _update_rpe(rec, done)
    _update_max(rec, estimate, stored_max)

    if workout_id is not None:
        if is_programme_workout:
            rec.last_programme_workout_id = workout_id
        else:
            rec.last_freestyle_workout_id = workout_id
    rec.last_updated = now
    return rec


def analyze_progress(record: ExerciseProgressRecord | None) -> ProgressAnalysis:
    """Summarise a record into a short human-readable insight."""
    if record is None or record.sessions_tracked == 0:
        return ProgressAnalysis(
            has_data=False,
            trend=None,
            insight="No data yet. Complete a few sessions to see trends.",
            confidence=0.0,
        )

    confidence = min(record.sessions_tracked / 10, 1.0) * 0.8
    if record.recent_avg_rpe is not None:
        confidence += 0.2

    w = f"{record.current_working_weight:g}kg"
    if record.trend == ProgressTrend.IMPROVING:
        insight = f"Progressing well at {w}."
    elif record.trend == ProgressTrend.DECLINING:
        insight = f"Working weight dropped to {w}. Check recovery and sleep."
    elif record.consecutive_stalls >= 3:
        insight = f"Stalled at {w} for {record.consecutive_stalls} sessions. A deload may help."
    else:
        insight = f"Holding {w} for {record.consecutive_stalls} session(s)."

    if record.volume_trend == VolumeTrend.INCREASING:
        insight += " Volume is trending up."
    elif record.volume_trend == VolumeTrend.DECREASING:
        insight += " Volume is trending down."

    return ProgressAnalysis(
        has_data=True,
        trend=record.trend,
        insight=insight,
        confidence=round(confidence, 2),
    )
