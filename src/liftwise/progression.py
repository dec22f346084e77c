"""Rule-based load progression for structured programmes."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from .config import SETTINGS
from .models import (
    DeloadDetails,
    PerformanceRecord,
    ProgressionAction,
    ProgressionDecision,
    ProgressionRules,
    SetEntry,
)

logger = logging.getLogger(__name__)

BAR_WEIGHT = 20.0
FIRST_WORKOUT_FRACTION = 0.5


def floor_to_plate(weight: float, increment: float | None = None) -> float:
    increment = increment or SETTINGS.PLATE_INCREMENT_KG
    # epsilon absorbs float noise such as 89.99999999
    return math.floor(weight / increment + 1e-9) * increment


def count_consecutive_failures(history: Sequence[PerformanceRecord]) -> int:
    """Count unsuccessful records at the head of ``history`` (newest first)."""
    n = 0
    for rec in history:
        if rec.was_successful:
            break
        n += 1
    return n


def _first_workout(exercise_name: str, one_rep_max: float | None, bar_weight: float) -> ProgressionDecision:
    if one_rep_max and one_rep_max > 0:
        weight = max(bar_weight, floor_to_plate(one_rep_max * FIRST_WORKOUT_FRACTION))
        reason = f"Starting at 50% of 1RM ({one_rep_max:g}kg)"
    else:
        weight = bar_weight
        reason = "Starting with empty bar"
    logger.info("First workout for %s: %gkg", exercise_name, weight)
    return ProgressionDecision(weight=weight, action=ProgressionAction.PROGRESS, reason=reason)


def _deload(last_weight: float, rules: ProgressionRules, failures: int) -> ProgressionDecision:
    dr = rules.deload_rules
    weight = max(dr.minimum_weight, floor_to_plate(last_weight * dr.deload_percentage))
    logger.info(
        "Deload: %gkg -> %gkg (%d%%)", last_weight, weight, round(dr.deload_percentage * 100)
    )
    return ProgressionDecision(
        weight=weight,
        action=ProgressionAction.DELOAD,
        reason=f"Reached {failures} consecutive failures",
        is_deload=True,
        deload_details=DeloadDetails(
            previous_weight=last_weight,
            deload_percentage=dr.deload_percentage,
            minimum_weight=dr.minimum_weight,
        ),
    )


def _pre_deload_weight(history: Sequence[PerformanceRecord]) -> float | None:
    for rec in history:
        if not rec.is_deload_workout:
            return rec.target_weight
    return None


def calculate_progression(
    exercise_name: str,
    rules: ProgressionRules | None,
    history: Sequence[PerformanceRecord],
    consecutive_failures: int | None = None,
    *,
    one_rep_max: float | None = None,
    exercise_found: bool = True,
    bar_weight: float = BAR_WEIGHT,
) -> ProgressionDecision:
    """
    Decide the next weight for ``exercise_name``.

    ``history`` holds the most recent performance records, newest first.
    When ``consecutive_failures`` is omitted it is counted from ``history``.
    """
    if rules is None:
        return ProgressionDecision(
            weight=bar_weight,
            action=ProgressionAction.MAINTAIN,
            reason="No progression rules defined",
        )
    if not exercise_found:
        return ProgressionDecision(
            weight=bar_weight, action=ProgressionAction.MAINTAIN, reason="Exercise not found"
        )
    if not history:
        return _first_workout(exercise_name, one_rep_max, bar_weight)

    last = history[0]
    failures = (
        consecutive_failures
        if consecutive_failures is not None
        else count_consecutive_failures(history)
    )
    logger.debug(
        "%s: last=%gkg success=%s failures=%d",
        exercise_name,
        last.achieved_weight,
        last.was_successful,
        failures,
    )

    dr = rules.deload_rules
    if dr.auto_deload and failures >= dr.trigger_after_failures:
        return _deload(last.target_weight, rules, failures)

    if last.is_deload_workout:
        pre = _pre_deload_weight(history)
        if pre is not None:
            deload_weight = last.achieved_weight
            weight = max(deload_weight, floor_to_plate((deload_weight + pre) / 2))
            return ProgressionDecision(
                weight=weight,
                action=ProgressionAction.PROGRESS,
                reason=f"Recovering from deload - ramping back toward {pre:g}kg",
            )

    if last.was_successful:
        inc = rules.increment_for(exercise_name)
        return ProgressionDecision(
            weight=last.achieved_weight + inc,
            action=ProgressionAction.PROGRESS,
            reason=f"Last workout successful - adding {inc:.1f} kg",
        )

    return ProgressionDecision(
        weight=last.target_weight,
        action=ProgressionAction.MAINTAIN,
        reason="Last workout not successful - repeating weight",
    )


def build_performance_record(
    programme_id: int,
    exercise_name: str,
    sets: Sequence[SetEntry],
    *,
    rules: ProgressionRules | None,
    now: datetime,
    workout_id: int | None = None,
    is_deload_workout: bool = False,
) -> PerformanceRecord:
    """Summarise one exercise's sets and judge success against the programme's criteria."""
    done = [s for s in sets if s.is_completed]
    first = sets[0] if sets else None
    target_reps = first.target_reps if first else None
    target_weight = 0.0
    if first is not None:
        target_weight = first.target_weight if first.target_weight is not None else first.weight
    rpes = [s.rpe for s in sets if s.rpe is not None and s.rpe > 0]
    average_rpe = sum(rpes) / len(rpes) if rpes else None

    record = PerformanceRecord(
        programme_id=programme_id,
        exercise_name=exercise_name,
        target_weight=target_weight,
        achieved_weight=max((s.weight for s in done), default=0.0),
        target_sets=len(sets),
        completed_sets=len(done),
        target_reps=target_reps,
        achieved_reps=sum(s.reps for s in done),
        was_successful=False,
        workout_date=now,
        is_deload_workout=is_deload_workout,
        average_rpe=average_rpe,
        workout_id=workout_id,
    )

    criteria = rules.success_criteria if rules else None
    if criteria is not None:
        meets_sets = criteria.required_sets is None or record.completed_sets >= criteria.required_sets
        meets_reps = (
            criteria.required_reps is None or record.missed_reps <= criteria.allowed_missed_reps
        )
        meets_rpe = average_rpe is None or (
            (criteria.min_rpe is None or average_rpe >= criteria.min_rpe)
            and (criteria.max_rpe is None or average_rpe <= criteria.max_rpe)
        )
        record.was_successful = meets_sets and meets_reps and meets_rpe
    else:
        record.was_successful = (
            record.completed_sets > 0
            and record.completed_sets == record.target_sets
            and record.missed_reps == 0
        )
    return record


@dataclass
class ProgressionStatus:
    exercise_name: str
    current_weight: float
    consecutive_failures: int
    last_success_date: datetime | None
    last_deload_date: datetime | None
    total_deloads: int
    is_in_deload_cycle: bool
    suggested_action: ProgressionAction


def progression_status(
    exercise_name: str,
    history: Sequence[PerformanceRecord],
    rules: ProgressionRules | None,
) -> ProgressionStatus:
    """Snapshot of where an exercise stands in its programme (``history`` newest first)."""
    latest = history[0] if history else None
    failures = count_consecutive_failures(history)
    in_deload = bool(latest and latest.is_deload_workout)

    if in_deload:
        action = ProgressionAction.MAINTAIN
    elif (
        rules is not None
        and rules.deload_rules.auto_deload
        and failures >= rules.deload_rules.trigger_after_failures
    ):
        action = ProgressionAction.DELOAD
    elif latest is not None and latest.was_successful:
        action = ProgressionAction.PROGRESS
    else:
        action = ProgressionAction.MAINTAIN

    return ProgressionStatus(
        exercise_name=exercise_name,
        current_weight=latest.target_weight if latest else 0.0,
        consecutive_failures=failures,
        last_success_date=next((r.workout_date for r in history if r.was_successful), None),
        last_deload_date=next((r.workout_date for r in history if r.is_deload_workout), None),
        total_deloads=sum(1 for r in history if r.is_deload_workout),
        is_in_deload_cycle=in_deload,
        suggested_action=action,
    )
