"""
Jitter Engine Configuration.
All settings via environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass

# --- Logging ---
LOG_LEVEL = os.getenv("JITTER_LOG_LEVEL", "INFO")

# --- Half-life personalization ---
# Population caffeine t1/2 ~5h (CYP1A2), clamped to a physiological band
DEFAULT_HALF_LIFE_HOURS = float(os.getenv("JITTER_DEFAULT_HALF_LIFE_H", "5.0"))
MIN_HALF_LIFE_HOURS = float(os.getenv("JITTER_MIN_HALF_LIFE_H", "2.0"))
MAX_HALF_LIFE_HOURS = float(os.getenv("JITTER_MAX_HALF_LIFE_H", "15.0"))
AGE_SLOWDOWN_ONSET_YEARS = 30
AGE_SLOWDOWN_PER_YEAR = 0.02      # 2% slower clearance per year above 30
AGE_SLOWDOWN_CAP = 1.8            # at most 80% slower
SMOKER_HALF_LIFE_FACTOR = 0.6     # CYP1A2 induction
PREGNANCY_HALF_LIFE_FACTOR = 2.5
CONTRACEPTIVE_HALF_LIFE_FACTOR = 1.4

# --- Absorption kinetics ---
INSTANT_DOSE_MINUTES = 1.0        # drinks finished within a minute are a bolus
ABSORPTION_DELAY_MINUTES = float(os.getenv("JITTER_ABSORPTION_DELAY_MIN", "30"))
ABSORPTION_WINDOW_MINUTES = float(os.getenv("JITTER_ABSORPTION_WINDOW_MIN", "30"))
ABSORPTION_ALPHA = float(os.getenv("JITTER_ABSORPTION_ALPHA", "2.0"))
ABSORPTION_BETA = float(os.getenv("JITTER_ABSORPTION_BETA", "3.0"))

# --- Level aggregation ---
PEAK_WINDOW_HOURS = float(os.getenv("JITTER_PEAK_WINDOW_H", "6"))
PEAK_STEP_MINUTES = 5

# --- Crash risk ---
BASELINE_SLEEP_HOURS = float(os.getenv("JITTER_BASELINE_SLEEP_H", "7.5"))
MAX_SLEEP_DEBT_HOURS = 3.0
MODERATE_CAFFEINE_MG_PER_KG = 4.0  # mg/kg/day, EFSA moderate intake
RESULT_VALIDITY_SECONDS = int(os.getenv("JITTER_RESULT_VALIDITY_SEC", "300"))

# --- Score zones (shared by CaffScore and Crash Risk) ---
ZONE_PEAK_MIN = 80.0
ZONE_MODERATE_MIN = 50.0
ZONE_LOW_MIN = 25.0

# --- CaffScore ---
DEFAULT_TOLERANCE_THRESHOLD_MG = 200.0
OPTIMAL_LEVEL_RATIO = 1.25        # 125% of habitual intake is the optimal band top
OVERSTIMULATION_RATIO = 2.0

# --- Planner ---
DEFAULT_MAX_DAILY_MG = float(os.getenv("JITTER_MAX_DAILY_MG", "400"))
DEFAULT_MIN_GAP_MINUTES = int(os.getenv("JITTER_MIN_GAP_MIN", "120"))
DEFAULT_BEDTIME_CEILING_MG = float(os.getenv("JITTER_BEDTIME_CEILING_MG", "25"))
DEFAULT_FOCUS_FLOOR_MG = float(os.getenv("JITTER_FOCUS_FLOOR_MG", "80"))
DEFAULT_DOSE_MIN_MG = 80.0
DEFAULT_DOSE_MAX_MG = 200.0
DEFAULT_SLEEP_BUFFER_HOURS = 6.0
SAFE_TIME_REFERENCE_DOSE_MG = 150.0  # typical evening dose for the cutoff estimate
SIPPING_RATE_MG_PER_MIN = 6.0


@dataclass(frozen=True)
class HalfLifeConfig:
    base_hours: float = DEFAULT_HALF_LIFE_HOURS
    min_hours: float = MIN_HALF_LIFE_HOURS
    max_hours: float = MAX_HALF_LIFE_HOURS
    age_onset_years: int = AGE_SLOWDOWN_ONSET_YEARS
    age_slowdown_per_year: float = AGE_SLOWDOWN_PER_YEAR
    age_slowdown_cap: float = AGE_SLOWDOWN_CAP
    smoker_factor: float = SMOKER_HALF_LIFE_FACTOR
    pregnancy_factor: float = PREGNANCY_HALF_LIFE_FACTOR
    contraceptive_factor: float = CONTRACEPTIVE_HALF_LIFE_FACTOR
    # every single adjustment is clamped into this range before combination
    factor_floor: float = 0.25
    factor_ceiling: float = 4.0


@dataclass(frozen=True)
class KineticsConfig:
    instant_minutes: float = INSTANT_DOSE_MINUTES
    absorption_delay_minutes: float = ABSORPTION_DELAY_MINUTES
    absorption_window_minutes: float = ABSORPTION_WINDOW_MINUTES
    alpha: float = ABSORPTION_ALPHA
    beta: float = ABSORPTION_BETA
    peak_window_hours: float = PEAK_WINDOW_HOURS
    peak_step_minutes: int = PEAK_STEP_MINUTES


@dataclass(frozen=True)
class ZoneConfig:
    peak_min: float = ZONE_PEAK_MIN
    moderate_min: float = ZONE_MODERATE_MIN
    low_min: float = ZONE_LOW_MIN


@dataclass(frozen=True)
class RiskConfig:
    baseline_sleep_hours: float = BASELINE_SLEEP_HOURS
    max_sleep_debt_hours: float = MAX_SLEEP_DEBT_HOURS
    moderate_mg_per_kg: float = MODERATE_CAFFEINE_MG_PER_KG
    male_metabolic: float = 0.95
    female_metabolic: float = 1.05
    metabolic_bounds: tuple = (0.8, 1.2)
    delta_exponent: float = 0.6
    sleep_exponent: float = 0.4
    tolerance_exponent: float = 0.3
    circadian_exponent: float = 0.2
    adjust_tolerance_for_health: bool = False
    validity_seconds: int = RESULT_VALIDITY_SECONDS
    half_life: HalfLifeConfig = HalfLifeConfig()
    kinetics: KineticsConfig = KineticsConfig()
    zones: ZoneConfig = ZoneConfig()


@dataclass(frozen=True)
class FocusConfig:
    default_tolerance_threshold_mg: float = DEFAULT_TOLERANCE_THRESHOLD_MG
    optimal_level_ratio: float = OPTIMAL_LEVEL_RATIO
    overstimulation_ratio: float = OVERSTIMULATION_RATIO
    optimal_rise_min: float = 2.0   # mg/min
    optimal_rise_max: float = 5.0   # mg/min
    rising_exponent: float = 0.2
    tolerance_exponent: float = 0.3
    capacity_exponent: float = 0.3
    # "banded" restores the piecewise level factor peaking at 1.25x tolerance
    level_shape: str = "linear"
    activity_exponent: float = 0.0  # 0.6 with the banded shape
    activity_reference_mg: float = 200.0
    risk: RiskConfig = RiskConfig()


@dataclass(frozen=True)
class PlannerConfig:
    base_dose_by_importance: tuple = ((1, 100.0), (2, 120.0), (3, 180.0))
    dose_rounding_mg: float = 5.0
    min_effective_dose_mg: float = 25.0
    sipping_rate_mg_per_min: float = SIPPING_RATE_MG_PER_MIN
    sipping_window_bounds: tuple = (15, 30)
    safe_time_reference_dose_mg: float = SAFE_TIME_REFERENCE_DOSE_MG
    coverage_step_minutes: int = 5
    base_confidence: float = 0.85
    partial_confidence: float = 0.75
    pushed_confidence: float = 0.7
    capped_confidence: float = 0.6
    curve_interval_minutes: int = 30
    curve_hours: int = 24
    risk: RiskConfig = RiskConfig()
