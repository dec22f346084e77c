"""
Progress ledger API routes.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, HTTPException

from ...db import repo
from ...services import LedgerService

router = APIRouter()

ledger = LedgerService()


@router.get("/progress/{exercise_id}")
async def get_progress(exercise_id: int) -> dict[str, Any]:
    record = await ledger.get_progress(exercise_id)
    if record is None:
        raise HTTPException(status_code=404, detail="no_progress_for_exercise")
    return {"success": True, "progress": asdict(record)}


@router.get("/progress/{exercise_id}/analysis")
async def get_analysis(exercise_id: int) -> dict[str, Any]:
    analysis = await ledger.get_analysis(exercise_id)
    return {"success": True, "analysis": asdict(analysis)}


@router.delete("/progress/{exercise_id}")
async def reset_progress(exercise_id: int) -> dict[str, Any]:
    """Drop an exercise's ledger so tracking restarts from scratch."""
    removed = await repo.delete_progress(exercise_id)
    if not removed:
        raise HTTPException(status_code=404, detail="no_progress_for_exercise")
    return {"success": True}
