"""
Service exposing autoregulated suggestions backed by the progress store.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator

from ..config import SETTINGS
from ..db import repo
from ..models import SuggestionResult
from ..suggestions import suggest, suggestions_for_reps


class SuggestionService:
    """Read-only access to next-session suggestions."""

    async def get_suggestion(self, exercise_id: int, target_reps: int | None = None) -> SuggestionResult:
        record = await repo.get_progress_for_exercise(exercise_id)
        return suggest(record, target_reps or SETTINGS.DEFAULT_TARGET_REPS)

    def stream_suggestions(
        self, exercise_id: int, reps_stream: AsyncIterable[int]
    ) -> AsyncIterator[SuggestionResult]:
        """Re-suggest each time the requested rep target changes."""

        async def load():
            return await repo.get_progress_for_exercise(exercise_id)

        return suggestions_for_reps(load, reps_stream)
