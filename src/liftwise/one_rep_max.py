"""One-rep-max estimation from logged sets."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from .models import OneRepMaxEstimate, SetEntry

logger = logging.getLogger(__name__)

BRZYCKI_A = 1.0278
BRZYCKI_B = 0.0278

MAX_ESTIMABLE_REPS = 15
DEFAULT_RIR = 2.0
TRUE_MAX_RPE = 9.0
MIN_CONFIDENCE = 0.6

REP_PENALTY = 0.03
RIR_PENALTY = 0.05
MISSING_RPE_PENALTY = 0.2

# Lifts whose estimates are written back to the stored maxes automatically.
COMPOUND_LIFTS = frozenset(
    {
        "Barbell Back Squat",
        "Barbell Deadlift",
        "Barbell Bench Press",
        "Barbell Overhead Press",
    }
)


def is_compound_lift(exercise_name: str) -> bool:
    return exercise_name in COMPOUND_LIFTS


def reps_in_reserve(rpe: float | None) -> float:
    if rpe is None:
        return DEFAULT_RIR
    return min(10.0, max(0.0, 10.0 - rpe))


def brzycki(weight: float, reps: float) -> float:
    """Brzycki 1RM for ``reps`` performed to failure."""
    denominator = BRZYCKI_A - BRZYCKI_B * reps
    if denominator <= 0:
        raise ValueError(f"Brzycki is undefined for {reps} reps")
    return weight / denominator


def confidence_for(reps: int, rpe: float | None) -> float:
    """
    Confidence in an estimate drawn from ``reps`` at ``rpe``.

    Fewer reps and fewer reps in reserve mean less extrapolation. A missing
    RPE forces a guessed RIR and costs a flat penalty.
    """
    score = 1.0 - REP_PENALTY * (reps - 1) - RIR_PENALTY * reps_in_reserve(rpe)
    if rpe is None:
        score -= MISSING_RPE_PENALTY
    return min(1.0, max(0.0, round(score, 4)))


def is_estimable(s: SetEntry) -> bool:
    return s.weight > 0 and 1 <= s.reps <= MAX_ESTIMABLE_REPS


def is_true_max(s: SetEntry) -> bool:
    return s.reps == 1 and s.rpe is not None and s.rpe >= TRUE_MAX_RPE


def describe_set(s: SetEntry) -> str:
    text = f"{s.weight:g}kg × {s.reps}"
    if s.rpe is not None:
        text += f" @ RPE {s.rpe:g}"
    return text


def estimate_set(exercise_id: int, s: SetEntry, *, date: datetime | None = None) -> OneRepMaxEstimate:
    """Estimate a 1RM from a single set."""
    rir = reps_in_reserve(s.rpe)
    true_max = is_true_max(s)
    context = describe_set(s)
    if true_max:
        context += " (true 1RM)"
    return OneRepMaxEstimate(
        exercise_id=exercise_id,
        value=round(brzycki(s.weight, s.reps + rir), 2),
        confidence=confidence_for(s.reps, s.rpe),
        context=context,
        most_weight_lifted=s.weight,
        most_weight_reps=s.reps,
        most_weight_rpe=s.rpe,
        date=date,
        is_true_max=true_max,
    )


def best_estimate(
    exercise_id: int,
    sets: Iterable[SetEntry],
    *,
    date: datetime | None = None,
    min_confidence: float = MIN_CONFIDENCE,
) -> OneRepMaxEstimate | None:
    """
    Pick the session's 1RM estimate.

    A true max single beats every calculated estimate. Otherwise the highest
    estimate clearing ``min_confidence`` wins. The ``most_weight_*`` fields
    always describe the heaviest estimable set of the session.
    """
    candidates = [s for s in sets if is_estimable(s)]
    if not candidates:
        return None

    estimates = [estimate_set(exercise_id, s, date=date) for s in candidates]
    singles = [e for e in estimates if e.is_true_max]
    if singles:
        best = max(singles, key=lambda e: e.value)
    else:
        confident = [e for e in estimates if e.confidence >= min_confidence]
        if not confident:
            logger.debug("No 1RM estimate above %.2f confidence", min_confidence)
            return None
        best = max(confident, key=lambda e: e.value)

    heaviest = max(candidates, key=lambda s: (s.weight, s.reps))
    best.most_weight_lifted = heaviest.weight
    best.most_weight_reps = heaviest.reps
    best.most_weight_rpe = heaviest.rpe
    return best


def supersedes(new: OneRepMaxEstimate, current: OneRepMaxEstimate | None) -> bool:
    """Whether ``new`` should replace the currently stored max."""
    if current is None:
        return True
    if new.is_true_max != current.is_true_max:
        return new.is_true_max
    return new.value > current.value
