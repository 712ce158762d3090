"""
FastAPI API routes for the Jitter engine.

Every request carries the full calculation input (profile, doses, sessions)
plus its own reference time; the server clock is only read here, as the
default when a request omits it.
"""

import logging
from dataclasses import asdict
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from jitter.config import (
    DEFAULT_BEDTIME_CEILING_MG, DEFAULT_DOSE_MAX_MG, DEFAULT_DOSE_MIN_MG,
    DEFAULT_FOCUS_FLOOR_MG, DEFAULT_MAX_DAILY_MG, DEFAULT_MIN_GAP_MINUTES,
    DEFAULT_SLEEP_BUFFER_HOURS, PEAK_WINDOW_HOURS, RESULT_VALIDITY_SECONDS,
    HalfLifeConfig,
)
from jitter.core import focus_engine, levels, personalization, planner, risk_engine
from jitter.core.errors import InvalidInput
from jitter.core.models import (
    DoseEvent, FocusSession, PlanningPreferences, Sex, UserProfile,
)
from jitter.core.timeutil import to_local_naive
from jitter.core.validation import require_valid_inputs

log = logging.getLogger("jitter.api")

router = APIRouter(prefix="/api")


# --- Models ---

class ProfileRequest(BaseModel):
    weight_kg: float
    age: int
    sex: str = Field("male", pattern="^(male|female)$")
    smoker: bool = False
    pregnant: bool = False
    oral_contraceptives: bool = False
    average_sleep_7d: float = 0.0
    mean_daily_caffeine_mg: float = 0.0
    created_at: Optional[str] = None


class DoseRequest(BaseModel):
    mg: float
    start: str
    duration: str = "00:00:00"  # HH:MM:SS
    name: str = ""


class SessionRequest(BaseModel):
    name: str
    start: str
    end: str
    importance: int = Field(2, ge=1, le=3)


class PreferencesRequest(BaseModel):
    target_bedtime: str = "22:00"
    max_daily_mg: float = Field(DEFAULT_MAX_DAILY_MG, gt=0)
    min_gap_minutes: int = Field(DEFAULT_MIN_GAP_MINUTES, ge=0)
    earliest_dose_time: str = "06:00"
    latest_dose_time: str = "20:00"
    bedtime_ceiling_mg: float = Field(DEFAULT_BEDTIME_CEILING_MG, gt=0)
    focus_floor_mg: float = Field(DEFAULT_FOCUS_FLOOR_MG, ge=0)
    preferred_dose_min_mg: float = Field(DEFAULT_DOSE_MIN_MG, ge=0)
    preferred_dose_max_mg: float = Field(DEFAULT_DOSE_MAX_MG, gt=0)
    sleep_buffer_hours: float = Field(DEFAULT_SLEEP_BUFFER_HOURS, ge=0)


class LevelRequest(BaseModel):
    profile: ProfileRequest
    doses: list[DoseRequest] = []
    timestamp: Optional[str] = None


class LevelCurveRequest(BaseModel):
    profile: ProfileRequest
    doses: list[DoseRequest] = []
    start: Optional[str] = None
    hours: float = Field(24, gt=0, le=48)
    interval: int = Field(15, ge=5, le=60)


class ScoreRequest(BaseModel):
    profile: ProfileRequest
    doses: list[DoseRequest] = []
    last_night_sleep: Optional[float] = None
    timestamp: Optional[str] = None


class RiskCurveRequest(BaseModel):
    profile: ProfileRequest
    doses: list[DoseRequest] = []
    last_night_sleep: Optional[float] = None
    start: Optional[str] = None
    hours_ahead: float = Field(6, gt=0, le=24)
    interval: int = Field(30, ge=5, le=120)


class CaffScoreRequest(ScoreRequest):
    previous_score: Optional[float] = None
    previous_status: str = ""


class PlanRequest(BaseModel):
    profile: ProfileRequest
    doses: list[DoseRequest] = []
    sessions: list[SessionRequest] = []
    preferences: PreferencesRequest = PreferencesRequest()
    plan_date: Optional[str] = None
    include_curve: bool = True


# --- Conversion ---

def _parse_timestamp(value: Optional[str]) -> datetime:
    """ISO timestamp as local wall-clock time (default: now)."""
    if not value:
        return datetime.now()
    try:
        return to_local_naive(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=[f"Invalid timestamp: {value}"]) from exc


def _parse_plan_date(value: Optional[str]) -> date:
    if not value:
        return datetime.now().date()
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=[f"Invalid plan date: {value} (expected YYYY-MM-DD)"]) from exc


def _to_profile(req: ProfileRequest) -> UserProfile:
    return UserProfile(
        weight_kg=req.weight_kg,
        age=req.age,
        sex=Sex(req.sex),
        smoker=req.smoker,
        pregnant=req.pregnant,
        oral_contraceptives=req.oral_contraceptives,
        average_sleep_7d=req.average_sleep_7d,
        mean_daily_caffeine_mg=req.mean_daily_caffeine_mg,
        created_at=_parse_timestamp(req.created_at) if req.created_at else None,
    )


def _to_doses(items: list[DoseRequest]) -> list[DoseEvent]:
    return [
        DoseEvent(mg=d.mg, start=_parse_timestamp(d.start), duration=d.duration, name=d.name)
        for d in items
    ]


def _to_preferences(req: PreferencesRequest) -> PlanningPreferences:
    return PlanningPreferences(**req.model_dump())


def _invalid(exc: InvalidInput) -> HTTPException:
    log.info("Rejected calculation input: %s", exc)
    return HTTPException(status_code=422, detail=exc.errors)


# --- Endpoints ---

@router.post("/caffeine/level")
def caffeine_level(req: LevelRequest):
    """Current blood-caffeine level and the 6h peak behind it."""
    profile, doses = _to_profile(req.profile), _to_doses(req.doses)
    at = _parse_timestamp(req.timestamp)
    try:
        require_valid_inputs(profile, doses, at=at)
    except InvalidInput as exc:
        raise _invalid(exc) from exc

    half_life = personalization.compute_half_life(profile)
    return {
        "timestamp": at.isoformat(),
        "half_life_hours": round(half_life, 2),
        "level_mg": round(levels.level_at(doses, half_life, at), 1),
        "peak_mg": round(levels.peak_in_window(doses, half_life, at), 1),
        "peak_window_hours": PEAK_WINDOW_HOURS,
    }


@router.post("/caffeine/curve")
def caffeine_curve(req: LevelCurveRequest):
    """Level samples from `start` at the given interval (minutes)."""
    profile, doses = _to_profile(req.profile), _to_doses(req.doses)
    start = _parse_timestamp(req.start)
    try:
        require_valid_inputs(profile, doses, at=start)
    except InvalidInput as exc:
        raise _invalid(exc) from exc

    half_life = personalization.compute_half_life(profile)
    curve = levels.level_curve(doses, half_life, start, req.hours, req.interval)
    return {
        "start": start.isoformat(),
        "interval_minutes": req.interval,
        "points": [{"time": p.time.isoformat(), "mg": round(p.mg, 1)} for p in curve],
    }


@router.post("/crash-risk")
def crash_risk(req: ScoreRequest):
    """
    Crash-Risk score for a timestamp (default: now), with a plain-language
    reading and the suggested time for the next caffeine.
    """
    profile, doses = _to_profile(req.profile), _to_doses(req.doses)
    at = _parse_timestamp(req.timestamp)
    try:
        result = risk_engine.score(profile, doses, req.last_night_sleep, at)
        next_dose = risk_engine.next_caffeine_recommendation(profile, doses, req.last_night_sleep, at)
    except InvalidInput as exc:
        raise _invalid(exc) from exc

    return {
        **asdict(result),
        "interpretation": risk_engine.interpret_crash_risk(result.score),
        "next_caffeine": next_dose,
    }


@router.post("/crash-risk/curve")
def crash_risk_curve(req: RiskCurveRequest):
    """Projected Crash-Risk for the coming hours."""
    profile, doses = _to_profile(req.profile), _to_doses(req.doses)
    start = _parse_timestamp(req.start)
    try:
        curve = risk_engine.generate_risk_curve(
            profile, doses, req.last_night_sleep, start, req.hours_ahead, req.interval,
        )
    except InvalidInput as exc:
        raise _invalid(exc) from exc
    return {
        "start": start.isoformat(),
        "interval_minutes": req.interval,
        "points": [asdict(p) for p in curve],
    }


@router.post("/caffscore")
def caffscore(req: CaffScoreRequest):
    """CaffScore for a timestamp, with the status line shown next to it."""
    profile, doses = _to_profile(req.profile), _to_doses(req.doses)
    at = _parse_timestamp(req.timestamp)
    try:
        result = focus_engine.score(profile, doses, req.last_night_sleep, at)
    except InvalidInput as exc:
        raise _invalid(exc) from exc

    previous = req.previous_score if req.previous_score is not None else 0.0
    return {
        **asdict(result),
        "status": focus_engine.describe_trend(result.score, previous, req.previous_status),
    }


@router.post("/plan")
def plan(req: PlanRequest):
    """Caffeine plan for a day (default: today) around the given focus sessions."""
    profile, doses = _to_profile(req.profile), _to_doses(req.doses)
    plan_date = _parse_plan_date(req.plan_date)
    try:
        require_valid_inputs(profile, doses)
    except InvalidInput as exc:
        raise _invalid(exc) from exc

    sessions = [
        FocusSession(name=s.name, start=s.start, end=s.end, importance=s.importance)
        for s in req.sessions
    ]
    result = planner.generate_daily_plan(
        profile, sessions, plan_date, _to_preferences(req.preferences), doses,
    )
    response = asdict(result)
    if req.include_curve:
        curve_start = datetime.combine(plan_date, datetime.min.time())
        curve = planner.generate_caffeine_curve(profile, doses, result.recommendations, curve_start)
        response["curve"] = [asdict(p) for p in curve]
    return response


@router.get("/status")
def status():
    """Health check endpoint."""
    return {
        "service": "jitter-engine",
        "status": "ok",
        "version": "0.1.0",
        "timestamp": datetime.now().isoformat(),
        "model": "beta-absorption+first-order-elimination",
        "defaults": {
            "half_life_hours": HalfLifeConfig().base_hours,
            "peak_window_hours": PEAK_WINDOW_HOURS,
            "max_daily_mg": DEFAULT_MAX_DAILY_MG,
            "result_validity": str(timedelta(seconds=RESULT_VALIDITY_SECONDS)),
        },
    }
