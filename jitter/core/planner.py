"""
Caffeine planner: dose recommendations around focus sessions and bedtime.

One planning run walks through

    NoSessions -> CurveEvaluated -> Recommending -> Resolved

  CurveEvaluated  baseline level curve from the doses already logged today
  Recommending    sessions by importance (ties: earlier start). A session that
                  the projected level does not keep above the focus floor gets
                  one dose, timed so its modeled peak lands at session start
                  and sized to close the shortfall
  Resolved        plan emitted, sorted by time

Constraints (daily cap, dosing hours, minimum gap, bedtime cutoff, bedtime
ceiling) are hard: a dose that would leave more than the ceiling at bedtime
is trimmed or dropped.
When they bite, the plan degrades: lower confidence, warnings and
suggestions. A run never raises for an infeasible day.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from typing import Optional, Protocol, Sequence

from jitter.config import PlannerConfig
from jitter.core import kinetics, levels, personalization
from jitter.core.models import (
    CaffeineCurvePoint,
    CaffeinePlan,
    CurveZone,
    DoseEvent,
    DoseRecommendation,
    FocusSession,
    PlannerState,
    PlanningPreferences,
    RecommendationStatus,
    UserProfile,
)
from jitter.core.timeutil import format_clock, minutes_between, resolve_time, to_local_naive
from jitter.core.validation import clamp

log = logging.getLogger("jitter.planner")

DEFAULT_BEDTIME = time(22, 0)
DEFAULT_EARLIEST_DOSE = time(6, 0)
DEFAULT_LATEST_DOSE = time(20, 0)
SIZING_PASSES = 3

IMPORTANCE_LABELS = {1: "normal", 2: "important", 3: "critical"}

CAP_SUGGESTION = "Consider reducing doses or removing less important sessions"
EMPTY_PLAN_SUGGESTION = "Add focus sessions to get personalized caffeine recommendations"


class Planner(Protocol):
    """Anything that turns focus sessions into a caffeine plan."""

    def propose(self, sessions: Sequence[FocusSession],
                preferences: PlanningPreferences) -> CaffeinePlan:
        ...


# ── Small pure helpers ───────────────────────────────────────────────

def sipping_window_minutes(dose_mg: float, config: PlannerConfig = PlannerConfig()) -> int:
    """Minutes to finish the drink at a comfortable sipping rate (15-30)."""
    low, high = config.sipping_window_bounds
    return int(round(clamp(dose_mg / config.sipping_rate_mg_per_min, low, high)))


def resolve_bedtime(value, plan_date: date) -> datetime:
    """Bedtime on the plan date; early-morning clock values mean after midnight."""
    bedtime = resolve_time(value, plan_date, fallback=DEFAULT_BEDTIME)
    if bedtime.date() == plan_date and bedtime.hour < 12:
        bedtime += timedelta(days=1)
    return bedtime


def latest_safe_caffeine_time(
    half_life: float,
    bedtime: datetime,
    preferences: PlanningPreferences = PlanningPreferences(),
    baseline_at_bedtime: float = 0.0,
    config: PlannerConfig = PlannerConfig(),
) -> datetime:
    """
    Latest moment a reference-size dose still decays under the bedtime ceiling.

        hours = absorption delay + t_half * log2(reference dose / headroom)

    where headroom is the ceiling minus what logged doses leave at bedtime.
    Never later than the sleep buffer allows, always strictly before bedtime.
    """
    headroom = max(preferences.bedtime_ceiling_mg - baseline_at_bedtime, 1.0)
    delay_hours = config.risk.kinetics.absorption_delay_minutes / 60.0
    decay_hours = delay_hours + half_life * math.log2(config.safe_time_reference_dose_mg / headroom)
    total_hours = max(decay_hours, preferences.sleep_buffer_hours, 1.0 / 60.0)
    return bedtime - timedelta(hours=total_hours)


def recommendation_to_dose(rec: DoseRecommendation) -> DoseEvent:
    return DoseEvent(
        mg=rec.dose_mg,
        start=rec.recommended_time,
        duration=timedelta(minutes=rec.sipping_window_minutes),
        name=rec.session_name,
    )


def _recommendation_id(plan_date: date, session_name: str, when: datetime, dose_mg: float) -> str:
    key = f"jitter:{plan_date.isoformat()}:{session_name}:{when.isoformat()}:{dose_mg:g}"
    return str(uuid.uuid5(uuid.NAMESPACE_URL, key))


# ── Per-run working state ────────────────────────────────────────────

@dataclass
class _Run:
    plan_date: date
    preferences: PlanningPreferences
    bedtime: datetime
    cutoff: datetime
    earliest: datetime
    latest: datetime
    headroom: float
    baseline: dict = field(default_factory=dict)
    accepted: list = field(default_factory=list)
    warnings: list = field(default_factory=list)
    suggestions: list = field(default_factory=list)

    def suggest(self, text: str) -> None:
        if text not in self.suggestions:
            self.suggestions.append(text)


@dataclass
class _Draft:
    when: datetime
    dose_mg: float
    window: int
    pushed: bool
    capped: bool
    trimmed: bool = False


# ── Greedy planner ───────────────────────────────────────────────────

class GreedyPlanner:
    """
    Importance-first greedy insertion of single doses per session.
    A heuristic, not an optimal schedule.
    """

    def __init__(self, profile: UserProfile, logged_doses: Sequence[DoseEvent],
                 plan_date: date, config: PlannerConfig = PlannerConfig()):
        self.profile = profile
        self.logged_doses = tuple(replace(d, start=to_local_naive(d.start)) for d in logged_doses)
        self.plan_date = plan_date
        self.config = config
        self.half_life = personalization.compute_half_life(profile, config.risk.half_life)
        self._peak_cache: dict[int, int] = {}

    # ── Levels ──

    def _baseline(self, run: _Run, at: datetime) -> float:
        cached = run.baseline.get(at)
        if cached is not None:
            return cached
        return levels.level_at(self.logged_doses, self.half_life, at, self.config.risk.kinetics)

    def _level(self, run: _Run, at: datetime, extra: Sequence[DoseEvent] = ()) -> float:
        planned = [recommendation_to_dose(rec) for rec in run.accepted]
        return (
            self._baseline(run, at)
            + levels.level_at(planned, self.half_life, at, self.config.risk.kinetics)
            + levels.level_at(extra, self.half_life, at, self.config.risk.kinetics)
        )

    def _coverage(self, run: _Run, samples: Sequence[datetime],
                  extra: Sequence[DoseEvent] = ()) -> float:
        """Fraction of session samples at or above the focus floor."""
        if not samples:
            return 0.0
        floor = run.preferences.focus_floor_mg - 1e-6
        covered = sum(1 for s in samples if self._level(run, s, extra) >= floor)
        return covered / len(samples)

    def _time_to_peak(self, window: int) -> int:
        if window not in self._peak_cache:
            self._peak_cache[window] = kinetics.time_to_peak_minutes(
                1.0, timedelta(minutes=window), self.half_life, self.config.risk.kinetics
            )
        return self._peak_cache[window]

    # ── Timing & sizing ──

    def _dose_times(self, run: _Run) -> list[datetime]:
        logged = [d.start for d in self.logged_doses if d.start.date() == self.plan_date]
        return logged + [rec.recommended_time for rec in run.accepted]

    def _free_slot(self, run: _Run, when: datetime, upper: datetime) -> Optional[datetime]:
        """Nearest time honoring the minimum gap, earlier first, then later."""
        gap = timedelta(minutes=run.preferences.min_gap_minutes)
        taken = self._dose_times(run)

        def clashes(candidate: datetime) -> list[datetime]:
            return [t for t in taken if abs(t - candidate) < gap]

        if when < run.earliest or when > upper:
            return None
        if not clashes(when):
            return when

        earlier = when
        while clashes(earlier):
            earlier = min(clashes(earlier)) - gap
        if earlier >= run.earliest:
            return earlier

        later = when
        while clashes(later):
            later = max(clashes(later)) + gap
        if later <= upper:
            return later
        return None

    def _needed_mg(self, run: _Run, when: datetime, window: int,
                   samples: Sequence[datetime]) -> Optional[float]:
        """Smallest dose at `when` that lifts every reachable sample to the floor."""
        duration = timedelta(minutes=window)
        needed, reachable = 0.0, False
        for sample in samples:
            unit = kinetics.unit_response(duration, self.half_life, minutes_between(when, sample),
                                          self.config.risk.kinetics)
            if unit <= 1e-9:
                continue
            reachable = True
            shortfall = run.preferences.focus_floor_mg - self._level(run, sample)
            if shortfall > 0:
                needed = max(needed, shortfall / unit)
        return needed if reachable else None

    def _fit_dose(self, run: _Run, needed: float) -> tuple[float, bool]:
        prefs = run.preferences
        step = self.config.dose_rounding_mg
        dose = math.ceil(needed / step) * step if step > 0 else needed
        dose = clamp(dose, prefs.preferred_dose_min_mg, prefs.preferred_dose_max_mg)
        if dose > run.headroom:
            return float(math.floor(run.headroom)), True
        return dose, False

    def _bedtime_allowance(self, run: _Run, draft: _Draft) -> float:
        """Largest dose at the drafted time that keeps the bedtime level under the ceiling."""
        unit = kinetics.unit_response(timedelta(minutes=draft.window), self.half_life,
                                      minutes_between(draft.when, run.bedtime),
                                      self.config.risk.kinetics)
        if unit <= 1e-9:
            return math.inf
        spare = run.preferences.bedtime_ceiling_mg - self._level(run, run.bedtime)
        if spare <= 0:
            return 0.0
        step = self.config.dose_rounding_mg
        allowed = spare / unit
        return float(math.floor(allowed / step) * step) if step > 0 else allowed

    def _base_dose(self, importance: int) -> float:
        table = dict(self.config.base_dose_by_importance)
        return table.get(importance, table.get(2, 120.0))

    def _draft(self, run: _Run, session: FocusSession, start: datetime, end: datetime,
               samples: Sequence[datetime]) -> Optional[_Draft]:
        dose = self._base_dose(session.importance)
        draft = None
        for _ in range(SIZING_PASSES):
            window = sipping_window_minutes(dose, self.config)
            ideal = start - timedelta(minutes=self._time_to_peak(window))
            when = min(max(ideal, run.earliest), run.latest)

            pushed = when > run.cutoff
            if pushed:
                if run.cutoff < run.earliest:
                    log.debug("%s: sleep cutoff %s is before the earliest dosing time",
                              session.name, format_clock(run.cutoff))
                    return None
                when = run.cutoff
            when = self._free_slot(run, when, upper=min(run.latest, run.cutoff, end))
            if when is None:
                log.debug("%s: no slot honoring the %d min gap", session.name,
                          run.preferences.min_gap_minutes)
                return None

            needed = self._needed_mg(run, when, window, samples)
            if needed is None:
                return None
            dose, capped = self._fit_dose(run, needed)
            draft = _Draft(when=when, dose_mg=dose, window=window, pushed=pushed, capped=capped)
        return draft

    # ── Session resolution ──

    def _session_samples(self, start: datetime, end: datetime) -> list[datetime]:
        step = timedelta(minutes=max(1, self.config.coverage_step_minutes))
        samples, moment = [], start
        while moment <= end:
            samples.append(moment)
            moment += step
        return samples

    def _reasoning(self, session: FocusSession, start: datetime, draft: _Draft,
                   coverage: float) -> str:
        label = IMPORTANCE_LABELS.get(session.importance, "important")
        verb = "cover" if coverage >= 1.0 else "partly cover"
        text = f"{draft.dose_mg:g} mg to {verb} your {label} {format_clock(start)} focus block ({session.name})"
        if draft.capped:
            text += ", trimmed to stay within your daily cap"
        else:
            text += " while respecting your daily cap"
        if draft.pushed:
            text += f"; moved earlier to {format_clock(draft.when)} to protect your sleep"
        if draft.trimmed:
            text += "; kept small so your bedtime level stays low"
        return text

    def _resolve_session(self, run: _Run, session: FocusSession,
                         start: datetime, end: datetime) -> None:
        cfg = self.config
        samples = self._session_samples(start, end)
        before = self._coverage(run, samples)
        if before >= 1.0:
            log.debug("%s already covered by logged/planned caffeine", session.name)
            return

        if run.headroom < cfg.min_effective_dose_mg:
            run.warnings.append(f"Daily cap reached, no caffeine planned for {session.name}")
            run.suggest(CAP_SUGGESTION)
            return

        draft = self._draft(run, session, start, end, samples)
        if draft is None or draft.dose_mg < cfg.min_effective_dose_mg:
            if start >= run.cutoff:
                run.warnings.append(f"{session.name} is too close to bedtime for safe caffeine use")
            else:
                run.warnings.append(f"Could not fit a dose for {session.name} within your dosing window")
            return

        allowance = self._bedtime_allowance(run, draft)
        if draft.dose_mg > allowance:
            if allowance < cfg.min_effective_dose_mg:
                run.warnings.append(f"{session.name} is too close to bedtime for safe caffeine use")
                return
            draft = replace(draft, dose_mg=allowance, trimmed=True)

        candidate = DoseEvent(mg=draft.dose_mg, start=draft.when,
                              duration=timedelta(minutes=draft.window), name=session.name)
        after = self._coverage(run, samples, extra=(candidate,))

        if after <= before:
            # the only feasible slot buys no coverage, drop instead
            if draft.pushed:
                run.warnings.append(f"{session.name} is too close to bedtime for safe caffeine use")
            else:
                run.warnings.append(f"A dose for {session.name} would not raise your level in time")
            return

        confidence = cfg.base_confidence
        if after < 1.0:
            confidence = min(confidence, cfg.partial_confidence)
        if draft.pushed:
            confidence = min(confidence, cfg.pushed_confidence)
            run.warnings.append(
                f"{session.name}: dose moved earlier to {format_clock(draft.when)} to protect your sleep"
            )
        if draft.trimmed:
            confidence = min(confidence, cfg.pushed_confidence)
            run.warnings.append(
                f"{session.name}: dose trimmed to {draft.dose_mg:g} mg to stay under your "
                f"{run.preferences.bedtime_ceiling_mg:.0f} mg sleep ceiling"
            )
        if draft.capped:
            confidence = min(confidence, cfg.capped_confidence)
            run.suggest(CAP_SUGGESTION)

        rec = DoseRecommendation(
            id=_recommendation_id(run.plan_date, session.name, draft.when, draft.dose_mg),
            session_name=session.name,
            recommended_time=draft.when,
            dose_mg=draft.dose_mg,
            sipping_window_minutes=draft.window,
            confidence=confidence,
            reasoning=self._reasoning(session, start, draft, after),
        )
        run.accepted.append(rec)
        run.headroom -= draft.dose_mg
        log.debug("Recommended %s", rec)

    # ── Entry point ──

    def _resolve_sessions(self, sessions: Sequence[FocusSession]) -> list[tuple]:
        resolved = []
        for session in sessions:
            start = resolve_time(session.start, self.plan_date)
            end = resolve_time(session.end, self.plan_date)
            if start.date() != self.plan_date:
                continue
            if end <= start:
                log.warning("Session %r ends before it starts, treating as one hour", session.name)
                end = start + timedelta(hours=1)
            resolved.append((session, start, end))
        resolved.sort(key=lambda item: (-item[0].importance, item[1]))
        return resolved

    def _transition(self, state: PlannerState) -> PlannerState:
        log.info("Plan %s: %s", self.plan_date.isoformat(), state.value)
        return state

    def propose(self, sessions: Sequence[FocusSession],
                preferences: PlanningPreferences = PlanningPreferences()) -> CaffeinePlan:
        cfg = self.config
        bedtime = resolve_bedtime(preferences.target_bedtime, self.plan_date)
        baseline_at_bedtime = levels.level_at(self.logged_doses, self.half_life, bedtime,
                                              cfg.risk.kinetics)
        cutoff = latest_safe_caffeine_time(self.half_life, bedtime, preferences,
                                           baseline_at_bedtime, cfg)

        todays = self._resolve_sessions(sessions)
        if not todays:
            state = self._transition(PlannerState.NO_SESSIONS)
            return CaffeinePlan(
                plan_date=self.plan_date,
                recommendations=(),
                total_planned_caffeine=0.0,
                latest_safe_caffeine_time=cutoff,
                bedtime=bedtime,
                state=state,
                suggestions=(EMPTY_PLAN_SUGGESTION,),
            )

        logged_today = sum(d.mg for d in self.logged_doses if d.start.date() == self.plan_date)
        day_start = datetime.combine(self.plan_date, time(0, 0))
        curve_hours = max(cfg.curve_hours, minutes_between(day_start, bedtime) / 60.0 + 1)
        baseline = levels.level_curve(self.logged_doses, self.half_life, day_start, curve_hours,
                                      cfg.coverage_step_minutes, cfg.risk.kinetics)
        run = _Run(
            plan_date=self.plan_date,
            preferences=preferences,
            bedtime=bedtime,
            cutoff=cutoff,
            earliest=resolve_time(preferences.earliest_dose_time, self.plan_date,
                                  fallback=DEFAULT_EARLIEST_DOSE),
            latest=resolve_time(preferences.latest_dose_time, self.plan_date,
                                fallback=DEFAULT_LATEST_DOSE),
            headroom=preferences.max_daily_mg - logged_today,
            baseline={sample.time: sample.mg for sample in baseline},
        )
        self._transition(PlannerState.CURVE_EVALUATED)
        if baseline_at_bedtime > preferences.bedtime_ceiling_mg:
            run.warnings.append(
                f"Caffeine already logged leaves {baseline_at_bedtime:.0f} mg at bedtime, "
                f"above your {preferences.bedtime_ceiling_mg:.0f} mg sleep ceiling"
            )

        self._transition(PlannerState.RECOMMENDING)
        for session, start, end in todays:
            self._resolve_session(run, session, start, end)

        recommendations = tuple(sorted(run.accepted, key=lambda rec: rec.recommended_time))
        if not recommendations:
            run.suggest(EMPTY_PLAN_SUGGESTION)

        state = self._transition(PlannerState.RESOLVED)
        plan = CaffeinePlan(
            plan_date=self.plan_date,
            recommendations=recommendations,
            total_planned_caffeine=float(sum(rec.dose_mg for rec in recommendations)),
            latest_safe_caffeine_time=cutoff,
            bedtime=bedtime,
            state=state,
            warnings=tuple(run.warnings),
            suggestions=tuple(run.suggestions),
        )
        log.info("Plan %s: %d recommendation(s), %.0f mg, %d warning(s)",
                 self.plan_date.isoformat(), len(recommendations),
                 plan.total_planned_caffeine, len(plan.warnings))
        return plan


# ── Module-level entry points ────────────────────────────────────────

def generate_daily_plan(
    profile: UserProfile,
    sessions: Sequence[FocusSession],
    plan_date: date,
    preferences: PlanningPreferences = PlanningPreferences(),
    logged_doses: Sequence[DoseEvent] = (),
    config: PlannerConfig = PlannerConfig(),
) -> CaffeinePlan:
    return GreedyPlanner(profile, logged_doses, plan_date, config).propose(sessions, preferences)


def curve_zone(level: float, previous: Optional[float], threshold: float,
               interval_minutes: int) -> CurveZone:
    """Zone of a projected level; a drop faster than 30 mg/h is a crash."""
    if previous is not None and interval_minutes > 0:
        drop_per_hour = (previous - level) / (interval_minutes / 60.0)
        if drop_per_hour > 30:
            return CurveZone.CRASH
    if level < threshold * 0.3:
        return CurveZone.LOW
    if level < threshold * 0.8:
        return CurveZone.BUILDING
    if level < threshold * 1.2:
        return CurveZone.PEAK
    if level < threshold * 1.5:
        return CurveZone.STABLE
    return CurveZone.DECLINING


def generate_caffeine_curve(
    profile: UserProfile,
    logged_doses: Sequence[DoseEvent],
    recommendations: Sequence[DoseRecommendation],
    start: datetime,
    config: PlannerConfig = PlannerConfig(),
) -> list[CaffeineCurvePoint]:
    """
    Level projection over the next day: logged doses alone and with the
    still-pending recommendations taken as planned.
    """
    half_life = personalization.compute_half_life(profile, config.risk.half_life)
    kin = config.risk.kinetics
    pending = [recommendation_to_dose(rec) for rec in recommendations
               if rec.status == RecommendationStatus.PENDING]
    threshold = profile.mean_daily_caffeine_mg or 200.0

    points: list[CaffeineCurvePoint] = []
    previous = None
    for moment in levels.sample_times(start, config.curve_hours, config.curve_interval_minutes):
        logged = levels.level_at(logged_doses, half_life, moment, kin)
        projected = logged + levels.level_at(pending, half_life, moment, kin)
        points.append(CaffeineCurvePoint(
            time=moment,
            logged_level=logged,
            projected_level=projected,
            zone=curve_zone(projected, previous, threshold, config.curve_interval_minutes),
        ))
        previous = projected
    return points


def reconcile_with_intake(
    plan: CaffeinePlan,
    dose: DoseEvent,
    match_window_hours: float = 1.0,
    match_tolerance_mg: float = 50.0,
) -> CaffeinePlan:
    """
    New plan with the pending recommendation the logged dose fulfils marked
    consumed: within an hour of its time and 50 mg of its amount.
    """
    matched = False
    updated = []
    for rec in plan.recommendations:
        close_in_time = abs(minutes_between(rec.recommended_time, dose.start)) <= match_window_hours * 60
        close_in_dose = abs(rec.dose_mg - dose.mg) <= match_tolerance_mg
        if not matched and rec.status == RecommendationStatus.PENDING and close_in_time and close_in_dose:
            rec = replace(rec, status=RecommendationStatus.CONSUMED)
            matched = True
        updated.append(rec)
    if not matched:
        log.debug("Logged %.0f mg at %s matches no pending recommendation", dose.mg, dose.start)
    return replace(plan, recommendations=tuple(updated))
