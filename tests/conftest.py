"""Shared fixtures for the engine and API tests."""

from datetime import date, datetime, timedelta

import pytest

from jitter.core.models import DoseEvent, Sex, UserProfile

PLAN_DATE = date(2024, 3, 4)


def dose(mg: float, start: datetime, duration="00:00:00", name: str = "") -> DoseEvent:
    """Build a DoseEvent; instant by default."""
    return DoseEvent(mg=mg, start=start, duration=duration, name=name)


@pytest.fixture
def young_profile() -> UserProfile:
    """70 kg, 25 years, non-smoker, not pregnant: half-life 5h."""
    return UserProfile(weight_kg=70, age=25, sex=Sex.MALE)


@pytest.fixture
def smoker_profile() -> UserProfile:
    return UserProfile(weight_kg=60, age=28, sex=Sex.FEMALE, smoker=True)


@pytest.fixture
def afternoon() -> datetime:
    """A Monday afternoon, away from any circadian boundary."""
    return datetime(2024, 3, 4, 15, 0)


@pytest.fixture
def three_hours_ago(afternoon):
    return [dose(200, afternoon - timedelta(hours=3), name="coffee")]
