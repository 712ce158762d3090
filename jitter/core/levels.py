"""
Level aggregation: blood-caffeine level from a whole dose history.

Linear superposition of single-dose contributions:
    C(t) = SUM_i A_i(t - tau_i) * H(t - tau_i)
The Heaviside term drops doses that start after t, so the result does not
depend on the order of the dose list.
"""

import math
from concurrent.futures import Executor
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from jitter.config import KineticsConfig
from jitter.core.kinetics import contribution
from jitter.core.models import DoseEvent, LevelSample


def level_at(doses: Iterable[DoseEvent], half_life: float, at: datetime,
             config: KineticsConfig = KineticsConfig()) -> float:
    """Instantaneous blood-caffeine level (mg) at `at`."""
    total = 0.0
    for dose in doses:
        total += contribution(dose, half_life, at, config)
    return total


def peak_in_window(doses: Sequence[DoseEvent], half_life: float, at: datetime,
                   window_hours: Optional[float] = None,
                   config: KineticsConfig = KineticsConfig()) -> float:
    """
    Highest level over the trailing window, sampled every 5 minutes
    backwards from `at` (inclusive), used as the crash baseline.
    """
    if window_hours is None:
        window_hours = config.peak_window_hours
    step = max(1, config.peak_step_minutes)
    steps = int(max(window_hours, 0.0) * 60 // step)

    peak = 0.0
    for i in range(steps + 1):
        level = level_at(doses, half_life, at - timedelta(minutes=i * step), config)
        if level > peak:
            peak = level
    return peak


def sample_times(start: datetime, hours: float, interval_minutes: int) -> list[datetime]:
    interval = max(1, int(interval_minutes))
    count = int(math.ceil(max(hours, 0.0) * 60 / interval))
    return [start + timedelta(minutes=i * interval) for i in range(count + 1)]


def level_curve(doses: Sequence[DoseEvent], half_life: float, start: datetime,
                hours: float = 24, interval_minutes: int = 15,
                config: KineticsConfig = KineticsConfig(),
                executor: Optional[Executor] = None) -> list[LevelSample]:
    """
    Level samples from `start` over `hours`.

    Samples are independent, so an executor may compute them concurrently;
    the returned list is always in time order.
    """
    times = sample_times(start, hours, interval_minutes)
    doses = tuple(doses)

    def _sample(moment: datetime) -> LevelSample:
        return LevelSample(time=moment, mg=level_at(doses, half_life, moment, config))

    if executor is None:
        return [_sample(t) for t in times]
    return list(executor.map(_sample, times))
