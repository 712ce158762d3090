"""
Crash-Risk engine: how likely an energy crash is right now.

  CrashRisk = 100 * delta^0.6 * S^0.4 * (1 - T)^0.3 * M * C^0.2

  delta  fractional drop from the 6h peak level         0-1
  S      sleep debt (baseline - effective sleep) / 3h   0-1
  T      habitual-intake tolerance                      0-1
  M      sex-based metabolic modifier                   0.8-1.2
  C      circadian sensitivity (night 1.0 ... midday 0.4)

Rounded to one decimal and clamped to [0, 100]. The only hard failure is
InvalidInput from input validation; everything below it is total.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional, Sequence

from jitter.config import RiskConfig, ZoneConfig
from jitter.core import levels, personalization
from jitter.core.errors import CurveSampleFailure
from jitter.core.models import (
    DoseEvent,
    RiskCurvePoint,
    RiskFactors,
    RiskResult,
    ScoreZone,
    UserProfile,
)
from jitter.core.validation import clamp, require_valid_inputs

log = logging.getLogger("jitter.risk")

HIGH_RISK_SCORE = 70.0
LOW_RISK_SCORE = 30.0


# ── Zones (shared with CaffScore) ────────────────────────────────────

def score_zone(score: float, zones: ZoneConfig = ZoneConfig()) -> ScoreZone:
    """Peak 80-100, Moderate 50-79, Low 25-49, Minimal 0-24."""
    if score >= zones.peak_min:
        return ScoreZone.PEAK
    if score >= zones.moderate_min:
        return ScoreZone.MODERATE
    if score >= zones.low_min:
        return ScoreZone.LOW
    return ScoreZone.MINIMAL


# ── Factors ──────────────────────────────────────────────────────────

def calculate_delta(current_level: float, peak_level: float) -> float:
    """Relative drop from the recent peak; 0 when there was no peak."""
    if peak_level <= 1e-6:
        return 0.0
    return clamp((peak_level - current_level) / peak_level, 0.0, 1.0)


def calculate_sleep_debt(
    last_night_sleep: Optional[float],
    average_sleep_7d: float,
    has_seven_days: bool,
    config: RiskConfig = RiskConfig(),
) -> float:
    """
    Sleep deficit in [0, 1].
    Uses the 7-day average once a week of data exists, otherwise last night.
    """
    effective = last_night_sleep if last_night_sleep is not None else config.baseline_sleep_hours
    if has_seven_days and average_sleep_7d > 0:
        effective = average_sleep_7d

    debt_hours = max(0.0, config.baseline_sleep_hours - effective)
    if config.max_sleep_debt_hours <= 0:
        return 1.0 if debt_hours > 0 else 0.0
    return clamp(debt_hours / config.max_sleep_debt_hours, 0.0, 1.0)


def circadian_factor(at: datetime) -> float:
    """
    Time-of-day crash sensitivity.
    Night (22-06) 1.0, morning (06-10) 0.6, midday (10-16) 0.4, evening 0.7.
    """
    hour = at.hour
    if hour >= 22 or hour < 6:
        return 1.0
    if hour < 10:
        return 0.6
    if hour < 16:
        return 0.4
    return 0.7


def combine(factors: RiskFactors, config: RiskConfig = RiskConfig()) -> float:
    """Apply the crash formula to normalized factors; returns the clamped score."""
    raw = (
        100.0
        * math.pow(factors.delta, config.delta_exponent)
        * math.pow(factors.sleep_debt, config.sleep_exponent)
        * math.pow(max(1.0 - factors.tolerance, 0.0), config.tolerance_exponent)
        * factors.metabolic
        * math.pow(factors.circadian, config.circadian_exponent)
    )
    return clamp(round(raw, 1), 0.0, 100.0)


# ── Score ────────────────────────────────────────────────────────────

def score(
    profile: UserProfile,
    doses: Sequence[DoseEvent],
    last_night_sleep: Optional[float],
    at: datetime,
    config: RiskConfig = RiskConfig(),
) -> RiskResult:
    """
    Crash-Risk score at `at`.

    Raises InvalidInput when profile, doses or sleep fail sanity checks.
    """
    require_valid_inputs(profile, doses, last_night_sleep, at)

    half_life = personalization.compute_half_life(profile, config.half_life)
    current = levels.level_at(doses, half_life, at, config.kinetics)
    peak = levels.peak_in_window(doses, half_life, at, config=config.kinetics)

    factors = RiskFactors(
        delta=calculate_delta(current, peak),
        sleep_debt=calculate_sleep_debt(
            last_night_sleep,
            profile.average_sleep_7d,
            personalization.has_seven_days_of_data(profile, at),
            config,
        ),
        tolerance=personalization.tolerance_factor(profile, config),
        metabolic=personalization.metabolic_factor(profile, config),
        circadian=circadian_factor(at),
    )
    final = combine(factors, config)

    log.debug(
        "Crash risk %.1f at %s (level %.1f / peak %.1f mg, t1/2 %.2fh, factors %s)",
        final, at.isoformat(), current, peak, half_life, factors,
    )

    return RiskResult(
        score=final,
        factors=factors,
        personalized_half_life=half_life,
        current_level=current,
        peak_level=peak,
        zone=score_zone(final, config.zones),
        valid_until=at + timedelta(seconds=config.validity_seconds),
        calculated_at=at,
    )


def project_future_risk(
    profile: UserProfile,
    doses: Sequence[DoseEvent],
    last_night_sleep: Optional[float],
    future_time: datetime,
    config: RiskConfig = RiskConfig(),
) -> float:
    """Crash score with a hypothetical clock."""
    return score(profile, doses, last_night_sleep, future_time, config).score


def _sample_point(
    index: int,
    profile: UserProfile,
    doses: Sequence[DoseEvent],
    last_night_sleep: Optional[float],
    moment: datetime,
    half_life: float,
    config: RiskConfig,
) -> RiskCurvePoint:
    try:
        risk = project_future_risk(profile, doses, last_night_sleep, moment, config)
        level = levels.level_at(doses, half_life, moment, config.kinetics)
    except (ArithmeticError, ValueError, TypeError) as exc:
        raise CurveSampleFailure(index, exc) from exc
    return RiskCurvePoint(time=moment, risk_score=risk, caffeine_level=level)


def generate_risk_curve(
    profile: UserProfile,
    doses: Sequence[DoseEvent],
    last_night_sleep: Optional[float],
    start: datetime,
    hours_ahead: float = 6,
    interval_minutes: int = 30,
    config: RiskConfig = RiskConfig(),
) -> list[RiskCurvePoint]:
    """
    Projected crash risk every `interval_minutes` for `hours_ahead` hours.

    Inputs are validated once up front (InvalidInput). A failing sample
    afterwards repeats the previous sample instead of aborting the curve.
    """
    require_valid_inputs(profile, doses, last_night_sleep, start)
    half_life = personalization.compute_half_life(profile, config.half_life)

    curve: list[RiskCurvePoint] = []
    for index, moment in enumerate(levels.sample_times(start, hours_ahead, interval_minutes)):
        try:
            point = _sample_point(index, profile, doses, last_night_sleep, moment, half_life, config)
        except CurveSampleFailure as failure:
            log.warning("Risk curve: %s, carrying previous value forward", failure)
            previous = curve[-1] if curve else None
            point = RiskCurvePoint(
                time=moment,
                risk_score=previous.risk_score if previous else 0.0,
                caffeine_level=previous.caffeine_level if previous else 0.0,
                carried_forward=True,
            )
        curve.append(point)
    return curve


# ── Interpretation ───────────────────────────────────────────────────

def interpret_crash_risk(risk_score: float) -> dict:
    """Three-level reading of the score for display layers."""
    if risk_score <= LOW_RISK_SCORE:
        return {
            "level": "low",
            "message": "Low crash risk",
            "recommendation": "Good time for focused work",
        }
    if risk_score <= HIGH_RISK_SCORE:
        return {
            "level": "medium",
            "message": "Moderate crash risk",
            "recommendation": "Consider a small caffeine boost or break",
        }
    return {
        "level": "high",
        "message": "High crash risk",
        "recommendation": "Take a break or have some caffeine soon",
    }


def next_caffeine_recommendation(
    profile: UserProfile,
    doses: Sequence[DoseEvent],
    last_night_sleep: Optional[float],
    at: datetime,
    config: RiskConfig = RiskConfig(),
    hours_ahead: float = 8,
) -> Optional[dict]:
    """
    When to have the next caffeine: now if risk is already high, one hour
    before the first projected high-risk point, or None.
    """
    current = score(profile, doses, last_night_sleep, at, config)
    if current.score > HIGH_RISK_SCORE:
        return {
            "hours_from_now": 0.0,
            "reason": "High crash risk detected - caffeine recommended now",
        }

    curve = generate_risk_curve(profile, doses, last_night_sleep, at, hours_ahead, config=config)
    for point in curve:
        if point.risk_score > HIGH_RISK_SCORE:
            hours_from_now = (point.time - at).total_seconds() / 3600.0
            return {
                "hours_from_now": max(0.0, hours_from_now - 1.0),
                "reason": "Preparing for predicted crash risk",
            }
    return None
