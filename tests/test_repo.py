"""
Repository and end-to-end service tests against in-memory SQLite.
"""

import os
from datetime import UTC, datetime, timedelta

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from liftwise.db import repo
from liftwise.models import ProgressionAction, ProgressTrend, SetEntry
from liftwise.services import LedgerService, ProgressionService

DAY1 = datetime(2026, 10, 5, 18, 0, tzinfo=UTC)

RULES_JSON = (
    '{"incrementRules": {"Barbell Back Squat": 5, "default": 2.5},'
    ' "deloadRules": {"triggerAfterFailures": 3, "deloadPercentage": 0.9}}'
)


async def _fresh_db() -> None:
    await repo.close_db()
    repo.SETTINGS.DATABASE_URL = "sqlite+aiosqlite:///:memory:"
    await repo.init_db()


def _five_by(weight: float, reps: int = 5, n: int = 3, rpe: float | None = 8) -> list[SetEntry]:
    return [
        SetEntry(weight=weight, reps=reps, rpe=rpe, target_reps=5, target_weight=weight)
        for _ in range(n)
    ]


def test_prepare_url_moves_ssl_into_connect_args():
    url, args = repo._prepare_url("postgresql+asyncpg://u:p@h/db?sslmode=require")
    assert "sslmode" not in url
    assert args["ssl"] == "require"
    assert args["statement_cache_size"] == 0

    url, args = repo._prepare_url("sqlite+aiosqlite:///:memory:")
    assert args == {}


@pytest.mark.asyncio
async def test_get_session_requires_init():
    await repo.close_db()
    with pytest.raises(RuntimeError):
        repo.get_session()


@pytest.mark.asyncio
async def test_workout_round_trip_and_ledger_update():
    await _fresh_db()
    try:
        squat = await repo.add_exercise("Barbell Back Squat")
        assert (await repo.get_exercise_by_name("barbell back squat")).id == squat.id

        workout_id = await repo.create_workout({squat.id: _five_by(100)}, completed_at=DAY1)
        logs = await repo.get_exercise_logs_for_workout(workout_id)
        assert [log.exercise_name for log in logs] == ["Barbell Back Squat"]
        assert len(await repo.get_set_logs_for_exercise(logs[0].id)) == 3

        service = LedgerService(auto_one_rm=True)
        (first,) = await service.update_progress_after_workout(workout_id)
        assert first.trend == ProgressTrend.IMPROVING

        stored_max = await repo.get_current_max(squat.id)
        assert stored_max is not None
        assert stored_max.value == pytest.approx(120.02, abs=0.01)

        second_id = await repo.create_workout(
            {squat.id: _five_by(100)}, completed_at=DAY1 + timedelta(days=3)
        )
        await service.update_progress_after_workout(second_id)

        record = await repo.get_progress_for_exercise(squat.id)
        assert record.sessions_tracked == 2
        assert record.consecutive_stalls == 1
        assert record.trend == ProgressTrend.STALLING
        assert record.last_progression_date == DAY1
        assert record.last_freestyle_workout_id == second_id

        assert await repo.delete_progress(squat.id)
        assert await repo.get_progress_for_exercise(squat.id) is None
    finally:
        await repo.close_db()


@pytest.mark.asyncio
async def test_programme_progression_end_to_end():
    await _fresh_db()
    try:
        squat = await repo.add_exercise("Barbell Back Squat")
        programme_id = await repo.create_programme("5x5", RULES_JSON)
        progression = ProgressionService()

        first = await progression.calculate_progression_weight("Barbell Back Squat", programme_id)
        assert first.action == ProgressionAction.PROGRESS
        assert first.weight == 20

        ok_id = await repo.create_workout(
            {squat.id: _five_by(100)}, programme_id=programme_id, completed_at=DAY1
        )
        (perf,) = await progression.record_workout_performance(ok_id)
        assert perf.was_successful

        decision = await progression.calculate_progression_weight("Barbell Back Squat", programme_id)
        assert decision.action == ProgressionAction.PROGRESS
        assert decision.weight == 105

        for i in range(3):
            failed = _five_by(105)
            failed[-1] = SetEntry(weight=105, reps=2, target_reps=5, target_weight=105)
            wid = await repo.create_workout(
                {squat.id: failed},
                programme_id=programme_id,
                completed_at=DAY1 + timedelta(days=2 * (i + 1)),
            )
            await progression.record_workout_performance(wid)

        assert await repo.get_consecutive_failures(programme_id, "Barbell Back Squat") == 3
        deload = await progression.calculate_progression_weight("Barbell Back Squat", programme_id)
        assert deload.action == ProgressionAction.DELOAD
        assert deload.weight == 92.5

        status = await progression.get_progression_status(programme_id, "Barbell Back Squat")
        assert status.consecutive_failures == 3
        assert status.suggested_action == ProgressionAction.DELOAD

        missing = await progression.calculate_progression_weight("Cable Fly", programme_id)
        assert missing.reason == "Exercise not found"
    finally:
        await repo.close_db()


@pytest.mark.asyncio
async def test_malformed_rules_behave_like_no_rules():
    await _fresh_db()
    try:
        await repo.add_exercise("Barbell Back Squat")
        programme_id = await repo.create_programme("broken", "{oops")
        decision = await ProgressionService().calculate_progression_weight(
            "Barbell Back Squat", programme_id
        )
        assert decision.action == ProgressionAction.MAINTAIN
        assert decision.reason == "No progression rules defined"
    finally:
        await repo.close_db()


@pytest.mark.asyncio
async def test_workout_completes_once_and_is_counted_once():
    await _fresh_db()
    try:
        squat = await repo.add_exercise("Barbell Back Squat")
        assert (await repo.get_exercise_by_id(squat.id)).name == "Barbell Back Squat"
        assert await repo.get_exercise_by_id(squat.id + 100) is None

        programme_id = await repo.create_programme("5x5", RULES_JSON)
        workout_id = await repo.create_workout({squat.id: _five_by(100)}, programme_id=programme_id)

        assert await repo.mark_workout_completed(workout_id, DAY1)
        assert not await repo.mark_workout_completed(workout_id, DAY1 + timedelta(hours=1))
        assert (await repo.get_workout_by_id(workout_id)).completed_at == DAY1

        ledger = LedgerService(auto_one_rm=True)
        assert len(await ledger.update_progress_after_workout(workout_id)) == 1
        assert await ledger.update_progress_after_workout(workout_id) == []
        record = await repo.get_progress_for_exercise(squat.id)
        assert record.sessions_tracked == 1
        assert record.consecutive_stalls == 0

        progression = ProgressionService()
        assert len(await progression.record_workout_performance(workout_id)) == 1
        assert await progression.record_workout_performance(workout_id) == []
        history = await repo.get_recent_performance(programme_id, "Barbell Back Squat", limit=None)
        assert len(history) == 1
    finally:
        await repo.close_db()


@pytest.mark.asyncio
async def test_true_max_flag_persists():
    await _fresh_db()
    try:
        curl = await repo.add_exercise("Dumbbell Curl")
        first = await repo.create_workout(
            {curl.id: [SetEntry(weight=30, reps=1, rpe=10)]}, completed_at=DAY1
        )
        second = await repo.create_workout(
            {curl.id: [SetEntry(weight=25, reps=1, rpe=9.5)]}, completed_at=DAY1 + timedelta(days=2)
        )
        service = LedgerService(auto_one_rm=True)
        await service.update_progress_after_workout(first)
        await service.update_progress_after_workout(second)

        record = await repo.get_progress_for_exercise(curl.id)
        assert record.estimated_max_is_true
        assert record.estimated_max == pytest.approx(30)
        # isolation lifts never reach the maxes store
        assert await repo.get_current_max(curl.id) is None
    finally:
        await repo.close_db()
