"""
Value objects exchanged with the engine.

Every object here is created fresh per calculation and never mutated by
the engine. Callers own the inputs (profile, doses, sessions, preferences);
the engine returns new result objects on every call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional, Union

from jitter.config import (
    DEFAULT_BEDTIME_CEILING_MG,
    DEFAULT_DOSE_MAX_MG,
    DEFAULT_DOSE_MIN_MG,
    DEFAULT_FOCUS_FLOOR_MG,
    DEFAULT_MAX_DAILY_MG,
    DEFAULT_MIN_GAP_MINUTES,
    DEFAULT_SLEEP_BUFFER_HOURS,
)
from jitter.core.timeutil import parse_duration_minutes

TimeInput = Union[datetime, time, str]


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"


class ScoreZone(str, Enum):
    PEAK = "peak"
    MODERATE = "moderate"
    LOW = "low"
    MINIMAL = "minimal"


class RecommendationStatus(str, Enum):
    PENDING = "pending"
    CONSUMED = "consumed"
    ADJUSTED = "adjusted"
    SKIPPED = "skipped"


class PlannerState(str, Enum):
    NO_SESSIONS = "no_sessions"
    CURVE_EVALUATED = "curve_evaluated"
    RECOMMENDING = "recommending"
    RESOLVED = "resolved"


class CurveZone(str, Enum):
    LOW = "low"
    BUILDING = "building"
    PEAK = "peak"
    STABLE = "stable"
    DECLINING = "declining"
    CRASH = "crash"


# ── Inputs ───────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class UserProfile:
    weight_kg: float
    age: int
    sex: Sex = Sex.MALE
    smoker: bool = False
    pregnant: bool = False
    oral_contraceptives: bool = False
    average_sleep_7d: float = 0.0      # rolling 7-day average, hours
    mean_daily_caffeine_mg: float = 0.0
    created_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class DoseEvent:
    mg: float
    start: datetime
    duration: Union[str, timedelta, float, int, None] = "00:00:00"  # HH:MM:SS
    name: str = ""

    @property
    def duration_minutes(self) -> float:
        """Consumption time in minutes; malformed values read as instant."""
        return parse_duration_minutes(self.duration)


@dataclass(frozen=True, slots=True)
class FocusSession:
    name: str
    start: TimeInput
    end: TimeInput
    importance: int = 2  # 1 = normal, 2 = important, 3 = critical


@dataclass(frozen=True, slots=True)
class PlanningPreferences:
    target_bedtime: TimeInput = "22:00"
    max_daily_mg: float = DEFAULT_MAX_DAILY_MG
    min_gap_minutes: int = DEFAULT_MIN_GAP_MINUTES
    earliest_dose_time: TimeInput = "06:00"
    latest_dose_time: TimeInput = "20:00"
    bedtime_ceiling_mg: float = DEFAULT_BEDTIME_CEILING_MG
    focus_floor_mg: float = DEFAULT_FOCUS_FLOOR_MG
    preferred_dose_min_mg: float = DEFAULT_DOSE_MIN_MG
    preferred_dose_max_mg: float = DEFAULT_DOSE_MAX_MG
    sleep_buffer_hours: float = DEFAULT_SLEEP_BUFFER_HOURS


# ── Level / score results ────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class LevelSample:
    time: datetime
    mg: float


@dataclass(frozen=True, slots=True)
class RiskFactors:
    delta: float
    sleep_debt: float
    tolerance: float
    metabolic: float
    circadian: float


@dataclass(frozen=True, slots=True)
class RiskResult:
    score: float
    factors: RiskFactors
    personalized_half_life: float
    current_level: float
    peak_level: float
    zone: ScoreZone
    valid_until: datetime
    calculated_at: datetime


@dataclass(frozen=True, slots=True)
class RiskCurvePoint:
    time: datetime
    risk_score: float
    caffeine_level: float
    carried_forward: bool = False


@dataclass(frozen=True, slots=True)
class FocusFactors:
    level: float
    rising_rate: float
    tolerance: float
    capacity: float
    activity: float = 1.0


@dataclass(frozen=True, slots=True)
class FocusResult:
    score: float
    zone: ScoreZone
    factors: FocusFactors
    personalized_half_life: float
    current_level: float
    optimal_level: float
    overstimulated: bool
    valid_until: datetime
    calculated_at: datetime


# ── Planning output ──────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class DoseRecommendation:
    id: str
    session_name: str
    recommended_time: datetime
    dose_mg: float
    sipping_window_minutes: int
    confidence: float
    reasoning: str
    status: RecommendationStatus = RecommendationStatus.PENDING


@dataclass(frozen=True, slots=True)
class CaffeineCurvePoint:
    time: datetime
    logged_level: float
    projected_level: float
    zone: CurveZone


@dataclass(frozen=True, slots=True)
class CaffeinePlan:
    plan_date: date
    recommendations: tuple[DoseRecommendation, ...]
    total_planned_caffeine: float
    latest_safe_caffeine_time: datetime
    bedtime: datetime
    state: PlannerState
    warnings: tuple[str, ...] = field(default_factory=tuple)
    suggestions: tuple[str, ...] = field(default_factory=tuple)
