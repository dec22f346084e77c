"""
Programme progression API routes.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from ...db import repo
from ...models import ProgressionRules
from ...services import ProgrammeNotFoundError, ProgressionService

router = APIRouter()

progression = ProgressionService()


class ProgrammeRequest(BaseModel):
    name: str
    progression_rules: dict[str, Any] | None = None


@router.post("/programmes")
async def create_programme(req: ProgrammeRequest) -> dict[str, Any]:
    raw = None
    if req.progression_rules is not None:
        rules = ProgressionRules.parse(req.progression_rules)
        if rules is None:
            raise HTTPException(status_code=422, detail="invalid_progression_rules")
        raw = rules.model_dump_json(by_alias=True)
    programme_id = await repo.create_programme(req.name, raw)
    return {"success": True, "programme_id": programme_id}


@router.get("/programmes/{programme_id}/progression")
async def get_progression(
    programme_id: int, exercise: str = Query(..., min_length=1, description="Exercise name")
) -> dict[str, Any]:
    try:
        decision = await progression.calculate_progression_weight(exercise, programme_id)
    except ProgrammeNotFoundError as e:
        raise HTTPException(status_code=404, detail="programme_not_found") from e
    return {"success": True, "decision": asdict(decision)}


@router.get("/programmes/{programme_id}/status")
async def get_status(
    programme_id: int, exercise: str = Query(..., min_length=1, description="Exercise name")
) -> dict[str, Any]:
    try:
        status = await progression.get_progression_status(programme_id, exercise)
    except ProgrammeNotFoundError as e:
        raise HTTPException(status_code=404, detail="programme_not_found") from e
    return {"success": True, "status": asdict(status)}
