import os
from datetime import UTC, datetime, timedelta

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from liftwise.models import PerformanceRecord, ProgressionAction, ProgressionRules, SetEntry
from liftwise.progression import (
    build_performance_record,
    calculate_progression,
    count_consecutive_failures,
    floor_to_plate,
    progression_status,
)

NOW = datetime(2026, 10, 18, tzinfo=UTC)

RULES = ProgressionRules.parse(
    '{"incrementRules": {"squat": 5, "default": 2.5},'
    ' "deloadRules": {"autoDeload": true, "triggerAfterFailures": 3,'
    ' "deloadPercentage": 0.9, "minimumWeight": 20}}'
)


def _perf(
    weight: float,
    success: bool,
    days_ago: int = 0,
    deload: bool = False,
    achieved: float | None = None,
) -> PerformanceRecord:
    return PerformanceRecord(
        programme_id=1,
        exercise_name="Squat",
        target_weight=weight,
        achieved_weight=weight if achieved is None else achieved,
        target_sets=3,
        completed_sets=3 if success else 2,
        target_reps=5,
        achieved_reps=15 if success else 12,
        was_successful=success,
        workout_date=NOW - timedelta(days=days_ago),
        is_deload_workout=deload,
    )


def test_floor_to_plate():
    assert floor_to_plate(90.0) == 90
    assert floor_to_plate(94.9) == 92.5
    assert floor_to_plate(20) == 20


def test_no_rules_maintains_bar():
    decision = calculate_progression("Squat", None, [_perf(100, True)])
    assert decision.action == ProgressionAction.MAINTAIN
    assert decision.weight == 20
    assert decision.reason == "No progression rules defined"


def test_unknown_exercise():
    decision = calculate_progression("Mystery Lift", RULES, [], exercise_found=False)
    assert decision.action == ProgressionAction.MAINTAIN
    assert decision.reason == "Exercise not found"


def test_first_workout_uses_half_of_max():
    decision = calculate_progression("Squat", RULES, [], one_rep_max=145)
    assert decision.action == ProgressionAction.PROGRESS
    assert decision.weight == 72.5
    assert "50% of 1RM" in decision.reason


def test_first_workout_never_below_bar():
    assert calculate_progression("Squat", RULES, [], one_rep_max=30).weight == 20
    decision = calculate_progression("Squat", RULES, [])
    assert decision.weight == 20
    assert decision.reason == "Starting with empty bar"


def test_success_adds_exercise_increment():
    decision = calculate_progression("Squat", RULES, [_perf(100, True)], 0)
    assert decision.action == ProgressionAction.PROGRESS
    assert decision.weight == 105
    assert "5.0 kg" in decision.reason


def test_increment_lookup_is_case_insensitive_with_default():
    assert calculate_progression("SQUAT", RULES, [_perf(100, True)], 0).weight == 105
    assert calculate_progression("Bench", RULES, [_perf(60, True)], 0).weight == 62.5
    bare = ProgressionRules.parse({"incrementRules": {}})
    assert calculate_progression("Bench", bare, [_perf(60, True)], 0).weight == 62.5


def test_failure_repeats_weight():
    decision = calculate_progression("Squat", RULES, [_perf(100, False)], 1)
    assert decision.action == ProgressionAction.MAINTAIN
    assert decision.weight == 100
    assert "repeating weight" in decision.reason


def test_deload_after_three_failures():
    history = [_perf(100, False, d) for d in (0, 2, 4)]
    decision = calculate_progression("Squat", RULES, history, 3)
    assert decision.action == ProgressionAction.DELOAD
    assert decision.is_deload
    assert decision.weight == 90
    assert decision.reason == "Reached 3 consecutive failures"
    assert decision.deload_details.previous_weight == 100
    assert decision.deload_details.deload_percentage == 0.9


def test_deload_respects_minimum_weight():
    history = [_perf(20, False, d) for d in (0, 2, 4)]
    assert calculate_progression("Squat", RULES, history, 3).weight == 20


def test_deload_disabled_never_deloads():
    rules = ProgressionRules.parse({"deloadRules": {"autoDeload": False}})
    history = [_perf(100, False, d) for d in range(6)]
    decision = calculate_progression("Squat", rules, history, 6)
    assert decision.action == ProgressionAction.MAINTAIN


def test_failures_counted_from_history_when_omitted():
    history = [_perf(100, False, 0), _perf(100, False, 2), _perf(100, False, 4), _perf(95, True, 6)]
    assert count_consecutive_failures(history) == 3
    assert calculate_progression("Squat", RULES, history).action == ProgressionAction.DELOAD


def test_recovery_after_deload_goes_to_midpoint():
    history = [
        _perf(90, True, 0, deload=True),
        _perf(100, False, 2),
        _perf(100, False, 4),
        _perf(100, False, 6),
    ]
    decision = calculate_progression("Squat", RULES, history, 0)
    assert decision.action == ProgressionAction.PROGRESS
    assert decision.weight == 95
    assert decision.reason.startswith("Recovering from deload")


def test_build_performance_record_default_success():
    sets = [SetEntry(weight=100, reps=5, rpe=8, target_reps=5, target_weight=100) for _ in range(3)]
    rec = build_performance_record(1, "Squat", sets, rules=None, now=NOW, workout_id=9)
    assert rec.was_successful
    assert rec.missed_reps == 0
    assert rec.achieved_weight == 100
    assert rec.average_rpe == pytest.approx(8)


def test_build_performance_record_missed_reps():
    sets = [
        SetEntry(weight=100, reps=5, target_reps=5, target_weight=100),
        SetEntry(weight=100, reps=5, target_reps=5, target_weight=100),
        SetEntry(weight=100, reps=3, target_reps=5, target_weight=100),
    ]
    rec = build_performance_record(1, "Squat", sets, rules=None, now=NOW)
    assert rec.missed_reps == 2
    assert not rec.was_successful

    lenient = ProgressionRules.parse(
        {"successCriteria": {"requiredSets": 3, "requiredReps": 5, "allowedMissedReps": 2}}
    )
    assert build_performance_record(1, "Squat", sets, rules=lenient, now=NOW).was_successful


def test_rpe_criteria():
    rules = ProgressionRules.parse({"successCriteria": {"maxRPE": 8.5}})
    sets = [SetEntry(weight=100, reps=5, rpe=9.5, target_reps=5) for _ in range(3)]
    assert not build_performance_record(1, "Squat", sets, rules=rules, now=NOW).was_successful


def test_missed_reps_never_negative_and_freestyle_zero():
    extra = [SetEntry(weight=100, reps=8, target_reps=5) for _ in range(3)]
    assert build_performance_record(1, "Squat", extra, rules=None, now=NOW).missed_reps == 0
    freestyle = [SetEntry(weight=100, reps=8)]
    rec = build_performance_record(1, "Squat", freestyle, rules=None, now=NOW)
    assert rec.target_reps is None
    assert rec.missed_reps == 0
    assert rec.target_weight == 100


def test_progression_status():
    history = [
        _perf(100, False, 0),
        _perf(100, False, 2),
        _perf(100, False, 4),
        _perf(90, True, 10, deload=True),
        _perf(100, True, 14),
    ]
    status = progression_status("Squat", history, RULES)
    assert status.consecutive_failures == 3
    assert status.suggested_action == ProgressionAction.DELOAD
    assert status.total_deloads == 1
    assert status.last_success_date == NOW - timedelta(days=10)
    assert status.current_weight == 100
    assert not status.is_in_deload_cycle


def test_malformed_rules_are_ignored():
    assert ProgressionRules.parse("{not json") is None
    assert ProgressionRules.parse('{"deloadRules": {"deloadPercentage": 3}}') is None
    assert ProgressionRules.parse(None) is None
