"""
CaffScore engine: how much useful stimulation the current level provides.

  CaffScore = 100 * (C / C_opt) * R^0.2 * T^0.3 * F^0.3

  C / C_opt  current level over the personalized optimal level
             (habitual daily intake, or 200 mg, times 1.25)
  R          rising-rate factor: a 2-5 mg/min rise is ideal
  T          focus tolerance, 0.3 + 0.7 * tolerance in [0.1, 1]
  F          focus capacity from sleep debt, circadian phase and age

With `FocusConfig(level_shape="banded", activity_exponent=0.6)` the level
term becomes the piecewise band around 1.25x tolerance and an activity
term A^0.6 (active mg over 200 mg) is multiplied in.

No caffeine gives exactly 0. Levels well past the optimal band saturate at
100, and past 2x the habitual threshold the result is flagged overstimulated.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional, Sequence

from jitter.config import FocusConfig, KineticsConfig
from jitter.core import levels, personalization
from jitter.core.models import DoseEvent, FocusFactors, FocusResult, UserProfile
from jitter.core.risk_engine import calculate_sleep_debt, circadian_factor, score_zone
from jitter.core.validation import clamp, require_valid_inputs

log = logging.getLogger("jitter.focus")

UNCHANGED_EPSILON = 0.0001


def tolerance_threshold(profile: UserProfile, config: FocusConfig = FocusConfig()) -> float:
    """Habitual daily intake in mg, or the population default when unknown."""
    if profile.mean_daily_caffeine_mg > 0:
        return profile.mean_daily_caffeine_mg
    return config.default_tolerance_threshold_mg


def optimal_level(profile: UserProfile, config: FocusConfig = FocusConfig()) -> float:
    return tolerance_threshold(profile, config) * config.optimal_level_ratio


# ── Factors ──────────────────────────────────────────────────────────

def rising_rate(doses: Sequence[DoseEvent], half_life: float, at: datetime,
                config: KineticsConfig = KineticsConfig()) -> float:
    """Average mg/min change over the last 20 minutes, from two 10-minute differences."""
    now = levels.level_at(doses, half_life, at, config)
    ten_ago = levels.level_at(doses, half_life, at - timedelta(minutes=10), config)
    twenty_ago = levels.level_at(doses, half_life, at - timedelta(minutes=20), config)
    recent = (now - ten_ago) / 10.0
    earlier = (ten_ago - twenty_ago) / 10.0
    return (recent + earlier) / 2.0


def rising_rate_factor(rate: float, config: FocusConfig = FocusConfig()) -> float:
    low, high = config.optimal_rise_min, config.optimal_rise_max
    if rate < 0:
        return max(0.2, 0.5 + rate * 0.1)
    if rate <= low:
        return 0.3 + (rate / low) * 0.4
    if rate <= high:
        return 0.7 + ((rate - low) / (high - low)) * 0.3
    # too fast, overstimulating
    return max(0.4 - (rate - high) * 0.05, 0.1)


def focus_tolerance(profile: UserProfile, config: FocusConfig = FocusConfig()) -> float:
    tolerance = personalization.tolerance_factor(profile, config.risk)
    return clamp(0.3 + 0.7 * tolerance, 0.1, 1.0)


def focus_capacity(sleep_debt: float, circadian: float, age: float) -> float:
    """Good sleep and a low-sensitivity circadian phase mean more capacity to focus."""
    sleep_focus = max(0.0, 1.0 - sleep_debt * 0.8)
    circadian_focus = 1.0 - circadian * 0.4
    if age < 25:
        age_focus = 0.9
    elif age > 60:
        age_focus = 0.8
    else:
        age_focus = 1.0
    return clamp(sleep_focus * 0.6 + circadian_focus * 0.3 + age_focus * 0.1, 0.1, 1.0)


def banded_level_factor(normalized: float, config: FocusConfig = FocusConfig()) -> float:
    """
    Piecewise level factor over level / tolerance threshold.

    Rises to about 1 at the optimal ratio (1.25), eases off up to 2x and
    drops to 0.2 beyond that.
    """
    peak = config.optimal_level_ratio
    if normalized <= 0.3:
        return normalized * 0.3
    if normalized <= peak:
        return 0.1 + (normalized - 0.3) * 0.9
    if normalized <= config.overstimulation_ratio:
        return max(1.0 - (normalized - peak) * 0.5, 0.3)
    return 0.2


def level_factor(current: float, profile: UserProfile, config: FocusConfig = FocusConfig()) -> float:
    current = max(current, 0.0)
    if config.level_shape == "banded":
        return banded_level_factor(current / max(tolerance_threshold(profile, config), 1.0), config)
    optimal = optimal_level(profile, config)
    return current / optimal if optimal > 0 else 0.0


def caffeine_activity(current: float, config: FocusConfig = FocusConfig()) -> float:
    """Active caffeine relative to a typical effective dose, in [0, 1]."""
    return clamp(current / config.activity_reference_mg, 0.0, 1.0)


# ── Score ────────────────────────────────────────────────────────────

def score(
    profile: UserProfile,
    doses: Sequence[DoseEvent],
    last_night_sleep: Optional[float],
    at: datetime,
    config: FocusConfig = FocusConfig(),
) -> FocusResult:
    """
    CaffScore at `at`.

    Raises InvalidInput when profile, doses or sleep fail sanity checks.
    """
    require_valid_inputs(profile, doses, last_night_sleep, at)
    risk_config = config.risk

    half_life = personalization.compute_half_life(profile, risk_config.half_life)
    current = levels.level_at(doses, half_life, at, risk_config.kinetics)
    optimal = optimal_level(profile, config)

    sleep_debt = calculate_sleep_debt(
        last_night_sleep,
        profile.average_sleep_7d,
        personalization.has_seven_days_of_data(profile, at),
        risk_config,
    )
    factors = FocusFactors(
        level=level_factor(current, profile, config),
        rising_rate=rising_rate_factor(rising_rate(doses, half_life, at, risk_config.kinetics), config),
        tolerance=focus_tolerance(profile, config),
        capacity=focus_capacity(sleep_debt, circadian_factor(at), profile.age),
        activity=caffeine_activity(current, config),
    )

    raw = (
        100.0
        * factors.level
        * math.pow(factors.rising_rate, config.rising_exponent)
        * math.pow(factors.tolerance, config.tolerance_exponent)
        * math.pow(factors.capacity, config.capacity_exponent)
        * math.pow(factors.activity, config.activity_exponent)
    )
    final = clamp(round(raw, 1), 0.0, 100.0)
    overstimulated = current > tolerance_threshold(profile, config) * config.overstimulation_ratio

    if overstimulated:
        log.info("Level %.1f mg is past the overstimulation threshold", current)
    log.debug("CaffScore %.1f at %s (level %.1f / optimal %.1f mg, factors %s)",
              final, at.isoformat(), current, optimal, factors)

    return FocusResult(
        score=final,
        zone=score_zone(final, risk_config.zones),
        factors=factors,
        personalized_half_life=half_life,
        current_level=current,
        optimal_level=optimal,
        overstimulated=overstimulated,
        valid_until=at + timedelta(seconds=risk_config.validity_seconds),
        calculated_at=at,
    )


# ── Status line ──────────────────────────────────────────────────────

def describe_trend(current_score: float, previous_score: float, previous_text: str) -> dict:
    """
    Status text and trend for a freshly computed CaffScore.

    An unchanged score keeps the previous text so the display does not flicker.
    """
    difference = current_score - previous_score
    if abs(difference) < UNCHANGED_EPSILON:
        return {"text": previous_text, "trend": "stable", "show_dot": True}

    if current_score == 0:
        return {"text": "No active caffeine detected", "trend": "stable", "show_dot": True}

    if difference > 0:
        if current_score < 25:
            text = "Caffeine being absorbed"
        elif current_score < 80:
            text = "Caffeine levels rising"
        else:
            text = "Peak caffeine effect active"
        return {"text": text, "trend": "rising", "show_dot": True}

    text = "Effects wearing off" if current_score < 25 else "Caffeine leaving your system"
    return {"text": text, "trend": "declining", "show_dot": True}
