"""
Absorption kinetics: how much of a single drink is in the blood at time t.

Two regimes:

  Bolus (drink finished within ~1 minute):
      A(t) = D * 2^(-t / t_half)                 pure first-order elimination

  Distributed sipping (longer consumption window):
      The drink is split into one micro-dose per minute of the window.
      Each micro-dose m (offset m minutes into the drink) contributes

        A_m(t) = (D / n) * w(m) * f_abs(t - m) * 2^(-max(t - m - delay, 0) / t_half)

      w(m)      beta-shaped absorption-rate weight over the normalized
                position (m + 0.5) / window, shape t^(a-1) * (1-t)^(b-1),
                a=2, b=3, rescaled so the weights average to 1 (mass kept)
      f_abs     linear ramp 0 -> 1 over the absorption delay (~30 min)
      delay     elimination only acts on caffeine that finished absorbing

The distributed curve peaks noticeably later than the first sip, which is
what separates slow sipping from one big gulp.

All functions here are total: they never raise and never return negatives.
"""

import logging
import math
from datetime import datetime, timedelta
from functools import lru_cache

from jitter.config import KineticsConfig
from jitter.core.models import DoseEvent
from jitter.core.timeutil import to_local_naive

log = logging.getLogger("jitter.kinetics")

_REFERENCE_START = datetime(2000, 1, 1, 0, 0)
WEIGHT_CACHE_SIZE = 256


# ── First-order elimination ──────────────────────────────────────────

def decay_factor(hours: float, half_life: float) -> float:
    """Fraction remaining after `hours`: 2^(-hours / half_life)."""
    if hours <= 0:
        return 1.0
    if half_life <= 0 or not math.isfinite(half_life):
        return 0.0
    return math.pow(2.0, -hours / half_life)


def bolus_remaining(mg: float, hours: float, half_life: float) -> float:
    if mg <= 0 or hours < 0:
        return 0.0
    return mg * decay_factor(hours, half_life)


# ── Absorption-rate weights ──────────────────────────────────────────

def _beta_shape(t: float, alpha: float, beta: float) -> float:
    if t <= 0.0 or t >= 1.0:
        return 0.0
    return math.pow(t, alpha - 1.0) * math.pow(1.0 - t, beta - 1.0)


# Weights depend only on (count, window, shape), so they are shared by every
# drink with the same consumption time.
@lru_cache(maxsize=WEIGHT_CACHE_SIZE)
def _weights(count: int, window_minutes: float, alpha: float, beta: float) -> tuple[float, ...]:
    raw = [_beta_shape((m + 0.5) / window_minutes, alpha, beta) for m in range(count)]
    mean = sum(raw) / count if count else 0.0
    if mean <= 0.0:
        return tuple(1.0 for _ in range(count))
    return tuple(w / mean for w in raw)


def absorption_weights(count: int, window_minutes: float,
                       config: KineticsConfig = KineticsConfig()) -> tuple[float, ...]:
    """Per-minute absorption weights for a drink of `count` micro-doses."""
    return _weights(count, round(window_minutes, 6), config.alpha, config.beta)


# ── Single-dose contribution ─────────────────────────────────────────

def _distributed(mg: float, duration_min: float, elapsed_min: float,
                 half_life: float, config: KineticsConfig) -> float:
    count = max(1, math.ceil(duration_min))
    micro_mg = mg / count
    window = max(duration_min, config.absorption_window_minutes)
    weights = absorption_weights(count, window, config)
    delay = config.absorption_delay_minutes

    total = 0.0
    for m in range(count):
        since = elapsed_min - m
        if since <= 0:
            break  # this and later sips have not been taken yet
        absorbed = min(since / delay, 1.0) if delay > 0 else 1.0
        post_absorption_h = max(since - delay, 0.0) / 60.0
        total += micro_mg * weights[m] * absorbed * decay_factor(post_absorption_h, half_life)
    return total


def contribution(dose: DoseEvent, half_life: float, at: datetime,
                 config: KineticsConfig = KineticsConfig()) -> float:
    """Milligrams of `dose` still pharmacologically present at `at`."""
    start, at = to_local_naive(dose.start), to_local_naive(at)
    if dose.mg <= 0 or at < start:
        return 0.0

    elapsed_min = (at - start).total_seconds() / 60.0
    duration_min = dose.duration_minutes

    if duration_min <= config.instant_minutes:
        amount = bolus_remaining(dose.mg, elapsed_min / 60.0, half_life)
    else:
        amount = _distributed(dose.mg, duration_min, elapsed_min, half_life, config)
    return max(0.0, amount)


def time_to_peak_minutes(mg: float, duration, half_life: float,
                         config: KineticsConfig = KineticsConfig(),
                         horizon_minutes: int = 360) -> int:
    """
    Minutes from first sip to the modeled peak of a single drink.

    Found by a 1-minute scan; a bolus peaks at 0.
    """
    single = DoseEvent(mg=max(mg, 1.0), start=_REFERENCE_START, duration=duration)
    if single.duration_minutes <= config.instant_minutes:
        return 0

    best_minute, best_level = 0, 0.0
    for minute in range(horizon_minutes + 1):
        level = contribution(single, half_life, _REFERENCE_START + timedelta(minutes=minute), config)
        if level > best_level:
            best_minute, best_level = minute, level
        elif level < best_level * 0.98 and minute > single.duration_minutes + config.absorption_delay_minutes:
            break  # past the peak and decaying
    return best_minute


def unit_response(duration, half_life: float, offset_minutes: float,
                  config: KineticsConfig = KineticsConfig()) -> float:
    """Level contributed by 1 mg taken with `duration`, `offset_minutes` after the first sip."""
    single = DoseEvent(mg=1.0, start=_REFERENCE_START, duration=duration)
    return contribution(single, half_life, _REFERENCE_START + timedelta(minutes=offset_minutes), config)
