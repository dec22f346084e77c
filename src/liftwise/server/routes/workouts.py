"""
Workout logging and completion API routes for Liftwise.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ...db import repo
from ...models import SetEntry
from ...services import LedgerService, ProgrammeNotFoundError, ProgressionService

router = APIRouter()

ledger = LedgerService()
progression = ProgressionService()


class SetIn(BaseModel):
    weight: float = Field(..., ge=0)
    reps: int = Field(..., ge=0)
    rpe: float | None = Field(None, ge=0, le=10)
    is_completed: bool = True
    target_reps: int | None = Field(None, ge=0)
    target_weight: float | None = Field(None, ge=0)


class ExerciseIn(BaseModel):
    exercise_id: int
    sets: list[SetIn]


class WorkoutRequest(BaseModel):
    programme_id: int | None = None
    exercises: list[ExerciseIn]


@router.post("/workouts")
async def log_workout(req: WorkoutRequest) -> dict[str, Any]:
    """Store a workout with its sets. Progress is only updated on completion."""
    for ex in req.exercises:
        if await repo.get_exercise_by_id(ex.exercise_id) is None:
            raise HTTPException(status_code=404, detail=f"exercise_not_found: {ex.exercise_id}")
    try:
        workout_id = await repo.create_workout(
            {ex.exercise_id: [SetEntry(**s.model_dump()) for s in ex.sets] for ex in req.exercises},
            programme_id=req.programme_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True, "workout_id": workout_id}


@router.post("/workouts/{workout_id}/complete")
async def complete_workout(workout_id: int) -> dict[str, Any]:
    """
    Fold a finished workout into the progress ledger and programme history.
    A workout can be completed once; later calls get 409.
    """
    workout = await repo.get_workout_by_id(workout_id)
    if workout is None:
        raise HTTPException(status_code=404, detail="workout_not_found")
    if workout.completed_at is not None:
        raise HTTPException(status_code=409, detail="workout_already_completed")

    completed_at = datetime.now(UTC)
    if not await repo.mark_workout_completed(workout_id, completed_at):
        raise HTTPException(status_code=409, detail="workout_already_completed")

    records = await ledger.update_progress_after_workout(workout_id)
    performance = []
    if workout.is_programme_workout:
        try:
            performance = await progression.record_workout_performance(workout_id)
        except ProgrammeNotFoundError:
            logging.warning("Workout %s references a missing programme", workout_id)

    return {
        "success": True,
        "completed_at": completed_at.isoformat(),
        "progress": [asdict(r) for r in records],
        "performance": [asdict(p) for p in performance],
    }
