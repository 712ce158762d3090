"""
Physical-sanity validation for calculation inputs.

The validators collect error strings instead of raising; the scorer entry
points turn a non-empty list into InvalidInput.
"""

import math
from datetime import datetime
from typing import Iterable, Optional

from jitter.core.errors import InvalidInput
from jitter.core.models import DoseEvent, Sex, UserProfile

WEIGHT_RANGE_KG = (30.0, 300.0)
AGE_RANGE = (13, 120)
SLEEP_RANGE_HOURS = (0.0, 16.0)
DOSE_RANGE_MG = (0.0, 1000.0)
MAX_DOSE_DURATION_MINUTES = 24 * 60


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def safe_divide(numerator: float, denominator: float, fallback: float = 0.0) -> float:
    if denominator == 0 or not math.isfinite(denominator):
        return fallback
    result = numerator / denominator
    return result if math.isfinite(result) else fallback


def _in_range(value, bounds) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number) and bounds[0] <= number <= bounds[1]


def validate_profile(profile: Optional[UserProfile]) -> list[str]:
    if profile is None:
        return ["User profile is required"]

    errors = []
    if not _in_range(profile.weight_kg, WEIGHT_RANGE_KG):
        errors.append(f"Valid weight is required ({WEIGHT_RANGE_KG[0]:.0f}-{WEIGHT_RANGE_KG[1]:.0f} kg)")
    if not _in_range(profile.age, AGE_RANGE):
        errors.append(f"Valid age is required ({AGE_RANGE[0]}-{AGE_RANGE[1]} years)")
    if profile.sex not in (Sex.MALE, Sex.FEMALE):
        errors.append("Sex selection is required")
    if not _in_range(profile.mean_daily_caffeine_mg, (0.0, 5000.0)):
        errors.append("Mean daily caffeine must be a non-negative number")
    if profile.average_sleep_7d and not _in_range(profile.average_sleep_7d, SLEEP_RANGE_HOURS):
        errors.append("7-day sleep average must be between 0 and 16 hours")
    return errors


def _is_aware(moment: datetime) -> bool:
    return moment.tzinfo is not None and moment.utcoffset() is not None


def validate_doses(doses: Iterable[DoseEvent], at: Optional[datetime] = None) -> list[str]:
    """
    Per-dose sanity checks.

    All timestamps, `at` included, must agree on being timezone-aware or
    naive; mixing the two cannot be ordered.
    """
    errors = []
    awareness = {_is_aware(at)} if isinstance(at, datetime) else set()
    for index, dose in enumerate(doses, start=1):
        problems = []
        if not _in_range(dose.mg, DOSE_RANGE_MG):
            problems.append(f"caffeine amount must be {DOSE_RANGE_MG[0]:.0f}-{DOSE_RANGE_MG[1]:.0f} mg")
        if not isinstance(dose.start, datetime):
            problems.append("timestamp is required")
        elif awareness and _is_aware(dose.start) not in awareness:
            problems.append("timestamp mixes timezone-aware and naive times")
        else:
            awareness.add(_is_aware(dose.start))
        if dose.duration_minutes > MAX_DOSE_DURATION_MINUTES:
            problems.append(f"consumption time must be at most {MAX_DOSE_DURATION_MINUTES // 60} hours")
        if problems:
            errors.append(f"Dose {index}: {', '.join(problems)}")
    return errors


def validate_sleep_hours(hours: Optional[float]) -> list[str]:
    # missing sleep is fine, the baseline is used instead
    if hours is None:
        return []
    if not _in_range(hours, SLEEP_RANGE_HOURS):
        return ["Invalid sleep hours for calculation (0-16 hours)"]
    return []


def validate_calculation_inputs(
    profile: Optional[UserProfile],
    doses: Iterable[DoseEvent],
    last_night_sleep: Optional[float] = None,
    at: Optional[datetime] = None,
) -> list[str]:
    errors = (
        validate_profile(profile)
        + validate_doses(doses, at)
        + validate_sleep_hours(last_night_sleep)
    )
    created = getattr(profile, "created_at", None)
    if isinstance(created, datetime) and isinstance(at, datetime) and _is_aware(created) != _is_aware(at):
        errors.append("Profile creation time mixes timezone-aware and naive times")
    return errors


def require_valid_inputs(
    profile: Optional[UserProfile],
    doses: Iterable[DoseEvent],
    last_night_sleep: Optional[float] = None,
    at: Optional[datetime] = None,
) -> None:
    """Raise InvalidInput listing every failed check."""
    errors = validate_calculation_inputs(profile, doses, last_night_sleep, at)
    if errors:
        raise InvalidInput(errors)
