import os

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from liftwise.models import OneRepMaxEstimate, SetEntry
from liftwise.one_rep_max import (
    best_estimate,
    brzycki,
    confidence_for,
    estimate_set,
    is_compound_lift,
    reps_in_reserve,
    supersedes,
)


def test_single_at_rpe_8():
    est = estimate_set(1, SetEntry(weight=120, reps=1, rpe=8))
    assert est.value == pytest.approx(127.06, abs=0.01)
    assert est.confidence == pytest.approx(0.90)
    assert est.context == "120kg × 1 @ RPE 8"
    assert not est.is_true_max


def test_confidence_anchor_points():
    assert confidence_for(5, 8) == pytest.approx(0.78)
    assert confidence_for(3, 9) == pytest.approx(0.89)
    # high reps without RPE must fall below the storage threshold
    assert confidence_for(12, None) == pytest.approx(0.37)
    assert confidence_for(12, None) < 0.6


def test_confidence_is_clamped():
    assert confidence_for(30, 0) == 0.0
    assert confidence_for(1, 10) == 1.0


def test_reps_in_reserve_bounds():
    assert reps_in_reserve(None) == 2
    assert reps_in_reserve(10) == 0
    assert reps_in_reserve(11) == 0
    assert reps_in_reserve(-1) == 10


def test_brzycki_rejects_impossible_rep_counts():
    with pytest.raises(ValueError):
        brzycki(100, 40)


def test_true_single_at_rpe_10_equals_weight():
    est = estimate_set(1, SetEntry(weight=130, reps=1, rpe=10))
    assert est.is_true_max
    assert est.value == pytest.approx(130)
    assert "1RM" in est.context


def test_true_max_beats_bigger_calculated_estimate():
    sets = [
        SetEntry(weight=130, reps=1, rpe=9.5),
        SetEntry(weight=120, reps=8, rpe=9),
    ]
    best = best_estimate(1, sets)
    assert best is not None
    assert best.is_true_max
    assert best.most_weight_lifted == 130


def test_best_estimate_skips_low_confidence_sets():
    sets = [SetEntry(weight=80, reps=12), SetEntry(weight=90, reps=14)]
    assert best_estimate(1, sets) is None


def test_best_estimate_ignores_unestimable_sets():
    sets = [SetEntry(weight=0, reps=5, rpe=8), SetEntry(weight=60, reps=20, rpe=8)]
    assert best_estimate(1, sets) is None


def test_best_estimate_picks_highest_confident_value():
    sets = [SetEntry(weight=100, reps=5, rpe=8), SetEntry(weight=110, reps=3, rpe=8)]
    best = best_estimate(1, sets)
    assert best is not None
    assert best.value == pytest.approx(110 / (1.0278 - 0.0278 * 5), abs=0.01)
    assert best.most_weight_lifted == 110
    assert best.most_weight_reps == 3


def _stored(value: float, true_max: bool = False) -> OneRepMaxEstimate:
    return OneRepMaxEstimate(
        exercise_id=1,
        value=value,
        confidence=0.9,
        context="",
        most_weight_lifted=value,
        most_weight_reps=1,
        is_true_max=true_max,
    )


def test_supersedes_rules():
    assert supersedes(_stored(100), None)
    assert supersedes(_stored(110), _stored(100))
    assert not supersedes(_stored(100), _stored(110))
    assert supersedes(_stored(100, true_max=True), _stored(140))
    assert not supersedes(_stored(150), _stored(120, true_max=True))


def test_compound_lift_gate():
    assert is_compound_lift("Barbell Back Squat")
    assert not is_compound_lift("Dumbbell Curl")
