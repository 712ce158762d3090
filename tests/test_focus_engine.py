"""Tests for the CaffScore (focus) engine."""

from datetime import timedelta

import pytest

from conftest import dose
from jitter.config import FocusConfig
from jitter.core.errors import InvalidInput
from jitter.core.focus_engine import (
    banded_level_factor,
    caffeine_activity,
    describe_trend,
    focus_capacity,
    focus_tolerance,
    optimal_level,
    rising_rate,
    rising_rate_factor,
    score,
)
from jitter.core.models import ScoreZone, UserProfile


def test_no_caffeine_scores_exactly_zero(young_profile, afternoon):
    result = score(young_profile, [], 7.0, afternoon)
    assert result.score == 0.0
    assert result.zone == ScoreZone.MINIMAL
    assert result.current_level == 0.0
    assert not result.overstimulated


def test_high_level_saturates_at_100(young_profile, afternoon):
    doses = [dose(1000, afternoon - timedelta(hours=2))]
    result = score(young_profile, doses, 7.5, afternoon)
    assert result.score == 100.0
    assert result.zone == ScoreZone.PEAK
    assert result.overstimulated


def test_moderate_level_lands_between_bounds(young_profile, afternoon, three_hours_ago):
    result = score(young_profile, three_hours_ago, 7.5, afternoon)
    assert 0.0 < result.score < 100.0
    assert result.optimal_level == pytest.approx(250.0)
    assert result.factors.level == pytest.approx(result.current_level / 250.0)
    assert not result.overstimulated


def test_score_grows_with_level(young_profile, afternoon):
    scores = []
    for mg in (50, 100, 150, 200):
        doses = [dose(mg, afternoon - timedelta(hours=3))]
        scores.append(score(young_profile, doses, 7.5, afternoon).score)
    assert scores == sorted(scores)
    assert scores[0] < scores[-1]


def test_optimal_level_follows_habitual_intake(young_profile):
    assert optimal_level(young_profile) == pytest.approx(250.0)
    regular = UserProfile(weight_kg=70, age=25, mean_daily_caffeine_mg=300)
    assert optimal_level(regular) == pytest.approx(375.0)
    assert optimal_level(regular, FocusConfig(optimal_level_ratio=1.0)) == pytest.approx(300.0)


@pytest.mark.parametrize(
    "rate, expected",
    [(-1.0, 0.4), (-10.0, 0.2), (0.0, 0.3), (1.0, 0.5), (2.0, 0.7),
     (3.5, 0.85), (5.0, 1.0), (7.0, 0.3), (20.0, 0.1)],
)
def test_rising_rate_factor(rate, expected):
    assert rising_rate_factor(rate) == pytest.approx(expected)


def test_rising_rate_sign(afternoon):
    fresh = [dose(150, afternoon - timedelta(minutes=15), duration="00:15:00")]
    old = [dose(150, afternoon - timedelta(hours=4))]
    assert rising_rate(fresh, 5.0, afternoon) > 0
    assert rising_rate(old, 5.0, afternoon) < 0


def test_focus_tolerance_bounds():
    assert focus_tolerance(UserProfile(weight_kg=70, age=25)) == pytest.approx(0.3)
    heavy = UserProfile(weight_kg=70, age=25, mean_daily_caffeine_mg=600)
    assert focus_tolerance(heavy) == pytest.approx(1.0)


def test_focus_capacity():
    assert focus_capacity(0.0, 0.4, 40) == pytest.approx(0.6 + 0.84 * 0.3 + 0.1)
    assert focus_capacity(1.0, 1.0, 70) == pytest.approx(0.2 * 0.6 + 0.6 * 0.3 + 0.08)
    assert 0.1 <= focus_capacity(1.0, 1.0, 18) <= 1.0


def test_invalid_input_raises(afternoon):
    with pytest.raises(InvalidInput):
        score(UserProfile(weight_kg=500, age=25), [], 7.0, afternoon)


def test_caffscore_is_idempotent(young_profile, afternoon, three_hours_ago):
    assert score(young_profile, three_hours_ago, 6.0, afternoon) == \
        score(young_profile, three_hours_ago, 6.0, afternoon)


# ---------------------------------------------------------------------------
# Banded level shape
# ---------------------------------------------------------------------------

BANDED = FocusConfig(level_shape="banded", activity_exponent=0.6)


@pytest.mark.parametrize(
    "normalized, expected",
    [(0.0, 0.0), (0.2, 0.06), (0.3, 0.09), (1.25, 0.955), (2.0, 0.625), (3.0, 0.2)],
)
def test_banded_level_factor(normalized, expected):
    assert banded_level_factor(normalized) == pytest.approx(expected)


def test_banded_shape_penalizes_overstimulation(young_profile, afternoon):
    doses = [dose(1000, afternoon - timedelta(hours=2))]
    result = score(young_profile, doses, 7.5, afternoon, BANDED)
    assert result.factors.level == pytest.approx(0.2)
    assert result.factors.activity == pytest.approx(1.0)
    assert result.score <= 20.0
    assert result.overstimulated


def test_banded_shape_keeps_zero_at_zero(young_profile, afternoon):
    assert score(young_profile, [], 7.5, afternoon, BANDED).score == 0.0


def test_activity_term_only_counts_when_weighted(young_profile, afternoon, three_hours_ago):
    linear = score(young_profile, three_hours_ago, 7.5, afternoon)
    weighted = score(young_profile, three_hours_ago, 7.5, afternoon, FocusConfig(activity_exponent=0.6))
    assert linear.factors.activity == pytest.approx(caffeine_activity(linear.current_level))
    assert weighted.score <= linear.score


# ---------------------------------------------------------------------------
# Status line
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "current, previous, text, trend",
    [
        (0, 12, "No active caffeine detected", "stable"),
        (10, 5, "Caffeine being absorbed", "rising"),
        (60, 40, "Caffeine levels rising", "rising"),
        (85, 70, "Peak caffeine effect active", "rising"),
        (20, 30, "Effects wearing off", "declining"),
        (60, 70, "Caffeine leaving your system", "declining"),
        (90, 95, "Caffeine leaving your system", "declining"),
    ],
)
def test_describe_trend(current, previous, text, trend):
    status = describe_trend(current, previous, "previous text")
    assert status["text"] == text
    assert status["trend"] == trend


def test_unchanged_score_keeps_previous_text():
    status = describe_trend(42.0, 42.0, "Caffeine levels rising")
    assert status == {"text": "Caffeine levels rising", "trend": "stable", "show_dot": True}
