"""Tests for the caffeine planner."""

from dataclasses import replace
from datetime import datetime, time, timedelta
from itertools import combinations

import pytest

from conftest import PLAN_DATE, dose
from jitter.core.kinetics import time_to_peak_minutes
from jitter.core.levels import level_at
from jitter.core.models import (
    CurveZone,
    DoseRecommendation,
    FocusSession,
    PlannerState,
    PlanningPreferences,
    RecommendationStatus,
    Sex,
    UserProfile,
)
from jitter.core.personalization import compute_half_life
from jitter.core.planner import (
    CAP_SUGGESTION,
    EMPTY_PLAN_SUGGESTION,
    GreedyPlanner,
    curve_zone,
    generate_caffeine_curve,
    generate_daily_plan,
    latest_safe_caffeine_time,
    recommendation_to_dose,
    reconcile_with_intake,
    resolve_bedtime,
    sipping_window_minutes,
)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime.combine(PLAN_DATE, time(hour, minute))


def bedtime_level(profile, plan) -> float:
    doses = [recommendation_to_dose(r) for r in plan.recommendations]
    return level_at(doses, compute_half_life(profile), plan.bedtime)


def two_session_day():
    return [
        FocusSession(name="Deep work", start="09:00", end="11:00", importance=3),
        FocusSession(name="Review", start="14:00", end="16:00", importance=1),
    ]


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


def test_two_session_day_covers_the_critical_morning(young_profile):
    prefs = PlanningPreferences(target_bedtime="22:00", max_daily_mg=400)
    plan = generate_daily_plan(young_profile, two_session_day(), PLAN_DATE, prefs)

    assert plan.state == PlannerState.RESOLVED
    assert plan.bedtime == at(22)
    assert plan.latest_safe_caffeine_time < plan.bedtime

    morning = [r for r in plan.recommendations if r.session_name == "Deep work"]
    assert len(morning) == 1
    assert at(7, 30) <= morning[0].recommended_time < at(9)
    assert 80 <= morning[0].dose_mg <= 200
    assert 15 <= morning[0].sipping_window_minutes <= 30
    assert "9am" in morning[0].reasoning

    assert plan.total_planned_caffeine == sum(r.dose_mg for r in plan.recommendations)
    assert plan.total_planned_caffeine <= 400
    assert all(r.status == RecommendationStatus.PENDING for r in plan.recommendations)
    times = [r.recommended_time for r in plan.recommendations]
    assert times == sorted(times)


def test_no_sessions_returns_an_empty_plan(young_profile):
    plan = generate_daily_plan(young_profile, [], PLAN_DATE)
    assert plan.recommendations == ()
    assert plan.total_planned_caffeine == 0.0
    assert plan.state == PlannerState.NO_SESSIONS
    assert plan.latest_safe_caffeine_time < plan.bedtime
    assert EMPTY_PLAN_SUGGESTION in plan.suggestions


def test_sessions_on_other_days_are_ignored(young_profile):
    tomorrow = at(9) + timedelta(days=1)
    sessions = [FocusSession(name="Tomorrow", start=tomorrow, end=tomorrow + timedelta(hours=2))]
    plan = generate_daily_plan(young_profile, sessions, PLAN_DATE)
    assert plan.state == PlannerState.NO_SESSIONS
    assert plan.recommendations == ()


def test_session_already_covered_by_logged_caffeine(young_profile):
    logged = [dose(250, at(8, 30))]
    sessions = [FocusSession(name="Standup", start="09:00", end="09:30", importance=2)]
    plan = generate_daily_plan(young_profile, sessions, PLAN_DATE, logged_doses=logged)
    assert plan.recommendations == ()
    assert plan.state == PlannerState.RESOLVED


# ---------------------------------------------------------------------------
# Constraints
# ---------------------------------------------------------------------------


def test_daily_cap_degrades_confidence_instead_of_dropping(young_profile):
    prefs = PlanningPreferences(max_daily_mg=150, bedtime_ceiling_mg=100)
    sessions = [
        FocusSession(name="Exam", start="09:00", end="11:00", importance=3),
        FocusSession(name="Emails", start="13:00", end="14:00", importance=2),
    ]
    plan = generate_daily_plan(young_profile, sessions, PLAN_DATE, prefs)

    assert plan.total_planned_caffeine <= 150
    assert [r.session_name for r in plan.recommendations] == ["Exam", "Emails"]
    exam, emails = plan.recommendations
    assert exam.confidence == pytest.approx(0.85)
    assert emails.confidence < 0.8
    assert "daily cap" in emails.reasoning
    assert isinstance(emails.dose_mg, float)
    assert CAP_SUGGESTION in plan.suggestions


def test_exhausted_cap_skips_with_a_warning(young_profile):
    prefs = PlanningPreferences(max_daily_mg=100)
    logged = [dose(90, at(7))]
    sessions = [FocusSession(name="Afternoon", start="15:00", end="16:00")]
    plan = generate_daily_plan(young_profile, sessions, PLAN_DATE, prefs, logged)

    assert plan.recommendations == ()
    assert any("Daily cap" in w for w in plan.warnings)
    assert CAP_SUGGESTION in plan.suggestions


def test_late_session_is_dropped_with_a_bedtime_warning(young_profile):
    sessions = [FocusSession(name="Night shift", start="21:00", end="21:30")]
    plan = generate_daily_plan(young_profile, sessions, PLAN_DATE)

    assert plan.recommendations == ()
    assert any("too close to bedtime" in w for w in plan.warnings)
    assert plan.state == PlannerState.RESOLVED


def test_recommendations_respect_minimum_gap(young_profile):
    prefs = PlanningPreferences(bedtime_ceiling_mg=100, min_gap_minutes=120)
    sessions = [
        FocusSession(name="A", start="09:00", end="10:00", importance=3),
        FocusSession(name="B", start="10:30", end="11:30", importance=2),
        FocusSession(name="C", start="13:00", end="14:00", importance=1),
    ]
    plan = generate_daily_plan(young_profile, sessions, PLAN_DATE, prefs)
    for first, second in combinations(plan.recommendations, 2):
        gap = abs(second.recommended_time - first.recommended_time)
        assert gap >= timedelta(minutes=120)


def test_recommendations_stay_inside_dosing_hours(young_profile):
    prefs = PlanningPreferences(earliest_dose_time="08:30", latest_dose_time="17:00",
                                bedtime_ceiling_mg=100)
    sessions = [FocusSession(name="Early", start="08:45", end="10:00", importance=3)]
    plan = generate_daily_plan(young_profile, sessions, PLAN_DATE, prefs)
    for rec in plan.recommendations:
        assert at(8, 30) <= rec.recommended_time <= at(17)


def test_two_session_day_stays_under_the_bedtime_ceiling(young_profile):
    prefs = PlanningPreferences(target_bedtime="22:00", max_daily_mg=400)
    plan = generate_daily_plan(young_profile, two_session_day(), PLAN_DATE, prefs)

    assert bedtime_level(young_profile, plan) <= prefs.bedtime_ceiling_mg + 1e-6
    for rec in plan.recommendations:
        assert rec.recommended_time <= plan.latest_safe_caffeine_time
    # the afternoon session can only be served from before the cutoff
    assert all(r.confidence < 0.8 for r in plan.recommendations if r.session_name == "Review")


@pytest.mark.parametrize(
    "profile",
    [
        UserProfile(weight_kg=70, age=38),
        UserProfile(weight_kg=70, age=60),
        UserProfile(weight_kg=65, age=30, sex=Sex.FEMALE, pregnant=True),
    ],
    ids=["age-38", "age-60", "pregnant"],
)
def test_slow_clearance_never_doses_before_earliest_time(profile):
    plan = generate_daily_plan(profile, two_session_day(), PLAN_DATE)

    assert plan.state == PlannerState.RESOLVED
    assert bedtime_level(profile, plan) <= PlanningPreferences().bedtime_ceiling_mg + 1e-6
    for rec in plan.recommendations:
        assert at(6) <= rec.recommended_time <= plan.latest_safe_caffeine_time


def test_cutoff_before_dosing_hours_drops_with_bedtime_warning():
    older = UserProfile(weight_kg=70, age=60)
    plan = generate_daily_plan(older, two_session_day(), PLAN_DATE)

    assert plan.latest_safe_caffeine_time < at(6)
    assert plan.recommendations == ()
    assert any("too close to bedtime" in w for w in plan.warnings)
    assert EMPTY_PLAN_SUGGESTION in plan.suggestions


def test_importance_wins_over_start_order(young_profile):
    prefs = PlanningPreferences(bedtime_ceiling_mg=100, min_gap_minutes=180)
    sessions = [
        FocusSession(name="Inbox", start="09:00", end="10:00", importance=1),
        FocusSession(name="Exam", start="10:00", end="12:00", importance=3),
    ]
    plan = generate_daily_plan(young_profile, sessions, PLAN_DATE, prefs)

    exam = [r for r in plan.recommendations if r.session_name == "Exam"]
    assert len(exam) == 1
    ttp = time_to_peak_minutes(1.0, timedelta(minutes=exam[0].sipping_window_minutes),
                               compute_half_life(young_profile))
    assert exam[0].recommended_time == at(10) - timedelta(minutes=ttp)

    for rec in plan.recommendations:
        if rec.session_name == "Inbox":
            assert abs(rec.recommended_time - exam[0].recommended_time) >= timedelta(minutes=180)


def test_planning_is_deterministic(young_profile):
    first = generate_daily_plan(young_profile, two_session_day(), PLAN_DATE)
    second = generate_daily_plan(young_profile, two_session_day(), PLAN_DATE)
    assert first == second
    assert len({r.id for r in first.recommendations}) == len(first.recommendations)


def test_planner_is_usable_through_its_interface(young_profile):
    planner = GreedyPlanner(young_profile, [], PLAN_DATE)
    plan = planner.propose(two_session_day(), PlanningPreferences())
    assert plan.plan_date == PLAN_DATE


def test_malformed_session_times_fall_back_to_midday(young_profile):
    sessions = [FocusSession(name="Mystery", start="soonish", end="later-ish")]
    plan = generate_daily_plan(young_profile, sessions, PLAN_DATE)
    assert plan.state == PlannerState.RESOLVED
    for rec in plan.recommendations:
        assert rec.recommended_time < at(12)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_latest_safe_time_is_closed_form():
    bedtime = at(22)
    cutoff = latest_safe_caffeine_time(5.0, bedtime)
    # 30 min absorption + 5h * log2(150 / 25)
    assert (bedtime - cutoff).total_seconds() / 3600 == pytest.approx(0.5 + 5.0 * 2.584962, abs=1e-4)


def test_latest_safe_time_honors_sleep_buffer_and_stays_before_bedtime():
    bedtime = at(23)
    generous = PlanningPreferences(bedtime_ceiling_mg=500, sleep_buffer_hours=6)
    assert latest_safe_caffeine_time(5.0, bedtime, generous) == at(17)
    no_buffer = PlanningPreferences(bedtime_ceiling_mg=500, sleep_buffer_hours=0)
    assert latest_safe_caffeine_time(5.0, bedtime, no_buffer) < bedtime


def test_logged_caffeine_moves_the_cutoff_earlier():
    bedtime = at(22)
    clean = latest_safe_caffeine_time(5.0, bedtime, baseline_at_bedtime=0.0)
    loaded = latest_safe_caffeine_time(5.0, bedtime, baseline_at_bedtime=20.0)
    assert loaded < clean


@pytest.mark.parametrize("dose_mg, minutes", [(60, 15), (120, 20), (150, 25), (400, 30)])
def test_sipping_window(dose_mg, minutes):
    assert sipping_window_minutes(dose_mg) == minutes


def test_bedtime_after_midnight_rolls_over():
    assert resolve_bedtime("00:30", PLAN_DATE) == at(0, 30) + timedelta(days=1)
    assert resolve_bedtime("10:30 PM", PLAN_DATE) == at(22, 30)
    assert resolve_bedtime("not a time", PLAN_DATE) == at(22)


# ---------------------------------------------------------------------------
# Caffeine curve / intake reconciliation
# ---------------------------------------------------------------------------


def test_caffeine_curve_covers_a_day(young_profile):
    plan = generate_daily_plan(young_profile, two_session_day(), PLAN_DATE)
    curve = generate_caffeine_curve(young_profile, [], plan.recommendations, at(0))
    assert len(curve) == 49
    assert all(p.projected_level >= p.logged_level for p in curve)
    assert all(p.logged_level == 0.0 for p in curve)
    assert curve[0].zone == CurveZone.LOW
    assert max(p.projected_level for p in curve) > 0


@pytest.mark.parametrize(
    "level, previous, zone",
    [(10, None, CurveZone.LOW), (100, None, CurveZone.BUILDING), (200, None, CurveZone.PEAK),
     (260, None, CurveZone.STABLE), (400, None, CurveZone.DECLINING), (100, 130, CurveZone.CRASH)],
)
def test_curve_zone(level, previous, zone):
    assert curve_zone(level, previous, 200.0, 30) == zone


def test_reconcile_marks_matching_recommendation_consumed(young_profile):
    plan = generate_daily_plan(young_profile, two_session_day(), PLAN_DATE)
    first = plan.recommendations[0]
    drink = dose(first.dose_mg + 20, first.recommended_time + timedelta(minutes=25))

    updated = reconcile_with_intake(plan, drink)
    assert updated.recommendations[0].status == RecommendationStatus.CONSUMED
    assert plan.recommendations[0].status == RecommendationStatus.PENDING
    assert all(r.status == RecommendationStatus.PENDING for r in updated.recommendations[1:])


def test_reconcile_ignores_unrelated_intake(young_profile):
    rec = DoseRecommendation(id="r1", session_name="A", recommended_time=at(8), dose_mg=120,
                             sipping_window_minutes=20, confidence=0.85, reasoning="")
    plan = generate_daily_plan(young_profile, [], PLAN_DATE)
    plan = replace(plan, recommendations=(rec,))
    updated = reconcile_with_intake(plan, dose(120, at(15)))
    assert updated.recommendations[0].status == RecommendationStatus.PENDING
