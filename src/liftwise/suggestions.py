"""
Autoregulated next-session suggestions.

``suggest`` reads a progress record and prescribes weight, reps and a target
RPE. It never writes anything, so calling it twice on the same record gives
the same answer.
"""

from __future__ import annotations

import logging
import math
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable

from .config import SETTINGS
from .models import AlternativeSuggestion, ExerciseProgressRecord, ProgressTrend, SuggestionResult
from .one_rep_max import BRZYCKI_A, BRZYCKI_B

logger = logging.getLogger(__name__)

DELOAD_STALLS = 3
DELOAD_FACTOR = 0.85
DELOAD_RPE = 6.0

# RPE zone boundaries
VERY_EASY_RPE = 6.0
EASY_RPE = 7.0
HIGH_EFFORT_RPE = 9.0
VERY_HIGH_RPE = 9.5
FATIGUE_RPE = 8.5

TARGET_RPE = 8.0
RECOVERY_RPE = 7.0

EXPERIENCED_SESSIONS = 15
REP_LADDER = (1, 2, 3, 5, 8, 10, 12, 15)


def round_to_plate(weight: float, increment: float | None = None) -> float:
    """Round to the nearest loadable weight, halves going up."""
    increment = increment or SETTINGS.PLATE_INCREMENT_KG
    return math.floor(weight / increment + 0.5) * increment


def _whole_percent(pct: float) -> int:
    return math.floor(abs(pct) + 0.5)


def _kg(weight: float) -> str:
    return f"{weight:g}kg"


def _no_data(target_reps: int) -> SuggestionResult:
    return SuggestionResult(
        suggested_weight=0.0,
        suggested_reps=target_reps,
        suggested_rpe=None,
        confidence="Low - No historical data",
        reasoning="No previous data for this exercise. Start conservatively and track your RPE.",
    )


def _deload(record: ExerciseProgressRecord, target_reps: int) -> SuggestionResult:
    current = record.current_working_weight
    stalls = record.consecutive_stalls
    weight = round_to_plate(current * DELOAD_FACTOR)
    reasoning = (
        f"Deload recommended. You've been at {_kg(current)} for {stalls} sessions. "
        f"Reducing to {_whole_percent(DELOAD_FACTOR * 100)}% ({_kg(weight)}) "
        "to recover and rebuild momentum."
    )
    if record.recent_avg_rpe is not None and record.recent_avg_rpe > FATIGUE_RPE:
        reasoning += (
            f" Your recent RPE of {record.recent_avg_rpe:.1f} also points to accumulated fatigue."
        )
    alternatives = [
        AlternativeSuggestion(
            reps=max(1, target_reps - 2),
            weight=current,
            rpe=7.0,
            reasoning="Fewer reps at your working weight to keep the groove without grinding",
        ),
        AlternativeSuggestion(
            reps=target_reps + 3,
            weight=round_to_plate(current * 0.9),
            rpe=8.0,
            reasoning="Lighter weight with extra reps to build volume",
        ),
        AlternativeSuggestion(
            reps=target_reps,
            weight=weight,
            rpe=DELOAD_RPE,
            reasoning="Standard deload at the prescribed reps",
        ),
    ]
    return SuggestionResult(
        suggested_weight=weight,
        suggested_reps=target_reps,
        suggested_rpe=DELOAD_RPE,
        confidence=f"High - Clear stall pattern over {stalls} sessions",
        reasoning=reasoning,
        alternatives=alternatives,
    )


def _plan(record: ExerciseProgressRecord) -> tuple[float, float, str, bool]:
    """Return ``(percent change, target RPE, reasoning, clear signal)``."""
    rpe = record.recent_avg_rpe
    current = _kg(record.current_working_weight)
    trend = record.trend

    if rpe is None:
        if trend == ProgressTrend.IMPROVING:
            text = f"Working weight is trending up. Repeat {current} and rate each set's effort."
        elif trend == ProgressTrend.DECLINING:
            text = f"Working weight has dropped recently. Repeat {current} and focus on recovery."
        else:
            text = (
                f"Working weight has held at {current} for "
                f"{record.consecutive_stalls} session(s). Repeat it and rate each set's effort."
            )
        return 0.0, TARGET_RPE, text, False

    if rpe < EASY_RPE:
        pct = 7.5 if rpe < VERY_EASY_RPE else 5.0
        text = (
            f"Progressive overload recommended. Your average RPE of {rpe:.1f} indicates you "
            f"have capacity for more weight. Increasing from {current} by {_whole_percent(pct)}%."
        )
        return pct, TARGET_RPE, text, True

    if rpe <= HIGH_EFFORT_RPE:
        if trend == ProgressTrend.IMPROVING:
            return 2.5, TARGET_RPE, "Steady progress detected. Small increase recommended.", False
        if trend == ProgressTrend.DECLINING:
            return (
                -5.0,
                TARGET_RPE,
                "Performance declining. Reduce weight by 5% and focus on recovery.",
                False,
            )
        text = (
            f"Approaching a stall ({record.consecutive_stalls} sessions). "
            "Consider varying intensity or volume next session."
        )
        return 0.0, TARGET_RPE, text, False

    text = f"Maintain or reduce intensity. Your recent RPE of {rpe:.1f} indicates high effort. "
    if rpe > VERY_HIGH_RPE:
        return -5.0, RECOVERY_RPE, text + "Reducing weight by 5% to manage fatigue.", False
    return 0.0, RECOVERY_RPE, text + f"Maintaining current weight of {current}.", False


def _confidence(sessions: int, clear_signal: bool) -> str:
    level = "High" if clear_signal or sessions >= EXPERIENCED_SESSIONS else "Medium"
    return f"{level} - Based on {sessions} sessions"


def _rep_fraction(reps: int) -> float:
    return BRZYCKI_A - BRZYCKI_B * reps


def _ladder_option(
    weight: float, target_reps: int, reps: int, rpe: float
) -> AlternativeSuggestion | None:
    step = SETTINGS.PLATE_INCREMENT_KG
    alt = round_to_plate(weight * _rep_fraction(reps) / _rep_fraction(target_reps))
    if reps < target_reps:
        if alt <= weight:
            alt = weight + step
        return AlternativeSuggestion(reps, alt, rpe, "Fewer reps with a heavier load")
    if alt >= weight:
        alt = weight - step
    if alt <= 0:
        return None
    return AlternativeSuggestion(reps, alt, rpe, "More reps with a lighter load")


def _ladder_alternatives(weight: float, target_reps: int, rpe: float) -> list[AlternativeSuggestion]:
    """
    Two options from the neighbouring rungs of the rep ladder. When one side
    runs out (ladder ends, or nothing lighter than the bar) the next rung on
    the other side fills in.
    """
    lower = [r for r in reversed(REP_LADDER) if r < target_reps]
    higher = [r for r in REP_LADDER if r > target_reps]
    out: list[AlternativeSuggestion] = []
    for reps in (*lower[:1], *higher[:1], *lower[1:2], *higher[1:2]):
        option = _ladder_option(weight, target_reps, reps, rpe)
        if option is not None:
            out.append(option)
        if len(out) == 2:
            return out
    if not out:
        out.append(
            AlternativeSuggestion(
                target_reps, weight + SETTINGS.PLATE_INCREMENT_KG, rpe, "Same reps, one plate heavier"
            )
        )
    out.append(AlternativeSuggestion(target_reps, weight, rpe - 1, "Same load at an easier effort"))
    return out


def _alternatives(
    record: ExerciseProgressRecord, weight: float, target_reps: int, rpe: float
) -> list[AlternativeSuggestion]:
    if weight <= 0:
        return []
    one_rm = record.estimated_max
    if one_rm > 0:
        return [
            AlternativeSuggestion(
                reps=2,
                weight=round_to_plate(one_rm * 0.9),
                rpe=TARGET_RPE,
                reasoning="Heavy double at 90% of your estimated max",
            ),
            AlternativeSuggestion(
                reps=8,
                weight=round_to_plate(one_rm * 0.7),
                rpe=TARGET_RPE,
                reasoning="Volume work at 70% of your estimated max",
            ),
        ]
    return _ladder_alternatives(weight, target_reps, rpe)


def suggest(record: ExerciseProgressRecord | None, target_reps: int = 5) -> SuggestionResult:
    """Suggest the next session's load for ``target_reps``."""
    if record is None:
        return _no_data(target_reps)

    if record.consecutive_stalls >= DELOAD_STALLS:
        logger.debug("Deload for exercise %s after %d stalls", record.exercise_id, record.consecutive_stalls)
        return _deload(record, target_reps)

    pct, rpe, reasoning, clear = _plan(record)
    weight = round_to_plate(record.current_working_weight * (1 + pct / 100))
    return SuggestionResult(
        suggested_weight=weight,
        suggested_reps=target_reps,
        suggested_rpe=rpe,
        confidence=_confidence(record.sessions_tracked, clear),
        reasoning=reasoning,
        alternatives=_alternatives(record, weight, target_reps, rpe),
    )


async def suggestions_for_reps(
    load_record: Callable[[], Awaitable[ExerciseProgressRecord | None]],
    reps_stream: AsyncIterable[int],
) -> AsyncIterator[SuggestionResult]:
    """Yield a fresh suggestion for every target rep count received, in order."""
    async for reps in reps_stream:
        yield suggest(await load_record(), reps)
