"""Pytest configuration and fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from talentscout.models import CandidateRecord, SearchSession, Verdict
from talentscout.oracle import Oracle


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeOracle(Oracle):
    """Oracle returning canned verdicts keyed by platform_username."""

    def __init__(self, verdicts: dict[str, Verdict] | None = None, default: Verdict | None = None):
        self.verdicts = verdicts or {}
        self.default = default or Verdict(is_valid=True, confidence=0.9)
        self.calls: list[str] = []

    async def validate(self, candidate, criteria, platform) -> Verdict:
        key = candidate.platform_username or candidate.name or ""
        self.calls.append(key)
        return self.verdicts.get(key, self.default)


def make_candidate(**overrides) -> CandidateRecord:
    """A complete, strong candidate; override any field."""
    data = {
        "name": "Jane Doe",
        "platform_username": "janedoe",
        "title": "Senior Python Engineer",
        "location": "Berlin, Germany",
        "summary": "Backend engineer building distributed Python services and open source tooling.",
        "skills": {"python", "django", "postgresql"},
        "experience_years": 8.0,
        "source_platform": "github",
        "metrics": {"followers": 120.0, "stars": 300.0},
    }
    data.update(overrides)
    return CandidateRecord(**data)


@pytest.fixture
def fake_clock() -> FakeClock:
    """A clock tests can advance by hand."""
    return FakeClock()


@pytest.fixture
def sample_candidate() -> CandidateRecord:
    """Create a sample candidate."""
    return make_candidate()


@pytest.fixture
def weak_candidate() -> CandidateRecord:
    """Create a sparse candidate with little profile data."""
    return CandidateRecord(
        platform_username="ghost42",
        source_platform="stackoverflow",
    )


@pytest.fixture
def sample_session() -> SearchSession:
    """Create a sample search session."""
    return SearchSession(
        session_id="20260101_120000_search_abc123",
        query_text="senior python developer",
        location_filter="Berlin",
        requested_sources=["github", "stackoverflow"],
        time_budget_seconds=60,
    )


@pytest.fixture
def recent() -> datetime:
    """A timestamp from two days ago."""
    return datetime.now(UTC) - timedelta(days=2)
