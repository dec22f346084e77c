"""
Suggestion API routes: one-shot and live (websocket) prescriptions.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ...services import SuggestionService

router = APIRouter()

suggestions = SuggestionService()


@router.get("/suggestions/{exercise_id}")
async def get_suggestion(
    exercise_id: int,
    target_reps: int | None = Query(None, ge=1, le=30, description="Desired reps per set"),
) -> dict[str, Any]:
    result = await suggestions.get_suggestion(exercise_id, target_reps)
    return {"success": True, "suggestion": asdict(result)}


@router.websocket("/suggestions/{exercise_id}/live")
async def live_suggestions(websocket: WebSocket, exercise_id: int) -> None:
    """
    Client sends ``{"target_reps": n}`` messages; each one is answered with a
    fresh suggestion, in order.
    """
    await websocket.accept()

    async def reps() -> AsyncIterator[int]:
        try:
            while True:
                msg = await websocket.receive_json()
                try:
                    value = int(msg["target_reps"])
                except (KeyError, TypeError, ValueError):
                    await websocket.send_json({"success": False, "error": "invalid_target_reps"})
                    continue
                if value < 1:
                    await websocket.send_json({"success": False, "error": "invalid_target_reps"})
                    continue
                yield value
        except WebSocketDisconnect:
            logging.debug("Live suggestions for exercise %s disconnected", exercise_id)

    async for result in suggestions.stream_suggestions(exercise_id, reps()):
        await websocket.send_json({"success": True, "suggestion": asdict(result)})
