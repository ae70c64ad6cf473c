"""
TalentScout data models - strict Pydantic schemas for candidate sourcing.

Design principles:
- extra="forbid" on inputs (fail fast if a provider or LLM invents fields)
- A candidate needs at least one identity field (email, username, name)
- Scores and tiers are derived by the scorer, never supplied by providers
- One canonical CandidateRecord; CSV/JSON exports are derived from it
"""

from __future__ import annotations

import re
import unicodedata
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# =============================================================================
# TYPE LITERALS
# =============================================================================

Platform = Literal["github", "stackoverflow", "linkedin", "devto", "kaggle", "google"]

ALL_PLATFORMS: tuple[Platform, ...] = (
    "github",
    "stackoverflow",
    "linkedin",
    "devto",
    "kaggle",
    "google",
)

Tier = Literal["gold", "silver", "bronze"]

# Lowest first; comparisons use the index
TIER_ORDER: tuple[Tier, ...] = ("bronze", "silver", "gold")

MIN_BUDGET_SECONDS = 30
MAX_BUDGET_SECONDS = 120


def tier_rank(tier: Tier | None) -> int:
    """Rank of a tier (bronze=0 .. gold=2); unscored candidates rank -1."""
    if tier is None:
        return -1
    return TIER_ORDER.index(tier)


def normalize_name(name: str | None) -> str:
    """
    Normalize a person's name for identity matching.

    "Jane Q. Doe" -> "jane q doe", "José  Núñez" -> "jose nunez"
    """
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    lowered = stripped.lower()
    lowered = re.sub(r"[^\w\s]", " ", lowered)
    return re.sub(r"\s+", " ", lowered).strip()


# =============================================================================
# SCORES
# =============================================================================


class DimensionScores(BaseModel):
    """The five scoring dimensions, each 0-100."""

    skill_match: float = Field(default=50.0, ge=0, le=100)
    experience: float = Field(default=50.0, ge=0, le=100)
    reputation: float = Field(default=50.0, ge=0, le=100)
    freshness: float = Field(default=50.0, ge=0, le=100)
    social_proof: float = Field(default=50.0, ge=0, le=100)

    def as_list(self) -> list[float]:
        return [
            self.skill_match,
            self.experience,
            self.reputation,
            self.freshness,
            self.social_proof,
        ]


# =============================================================================
# CANDIDATE
# =============================================================================


class CandidateRecord(BaseModel):
    """One discovered professional profile."""

    model_config = ConfigDict(extra="forbid")

    # Identity (at least one required before entering the merge store)
    email: str | None = None
    platform_username: str | None = Field(
        default=None, description="Username on source_platform"
    )
    normalized_name: str = Field(default="", description="Derived from name")

    # Profile
    name: str | None = None
    title: str | None = None
    location: str | None = None
    summary: str | None = None
    company: str | None = None
    phone: str | None = None
    profile_url: str | None = None
    linkedin_url: str | None = None
    skills: set[str] = Field(default_factory=set)
    experience_years: float = Field(default=0.0, ge=0)

    # Provenance
    source_platform: Platform
    discovery_method: str = Field(default="search", description="How the profile was found")
    collection_timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_active_at: datetime | None = None
    metrics: dict[str, float] = Field(
        default_factory=dict, description="Raw provider counters (followers, reputation...)"
    )

    # Scores (filled by the scorer)
    skill_match: float = Field(default=0.0, ge=0, le=100)
    experience: float = Field(default=0.0, ge=0, le=100)
    reputation: float = Field(default=0.0, ge=0, le=100)
    freshness: float = Field(default=0.0, ge=0, le=100)
    social_proof: float = Field(default=0.0, ge=0, le=100)
    overall_score: float = Field(default=0.0, ge=0, le=100)
    platform_bonus: float = 0.0
    tier: Tier | None = None
    confidence: float = Field(default=0.0, ge=0, le=1)

    # Quality flags
    validation_confidence: float = Field(default=0.0, ge=0, le=1)
    risk_flags: list[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def _clean_email(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None

    @field_validator("platform_username")
    @classmethod
    def _clean_username(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def _derive_normalized_name(self) -> CandidateRecord:
        if not self.normalized_name and self.name:
            self.normalized_name = normalize_name(self.name)
        return self

    def has_identity(self) -> bool:
        """True if at least one identity field is populated."""
        return bool(self.email or self.platform_username or self.normalized_name)

    def dimension_scores(self) -> DimensionScores:
        return DimensionScores(
            skill_match=self.skill_match,
            experience=self.experience,
            reputation=self.reputation,
            freshness=self.freshness,
            social_proof=self.social_proof,
        )

    def data_completeness(self) -> float:
        """Fraction (0-1) of profile fields that are populated."""
        fields = [
            self.name,
            self.title,
            self.location,
            self.summary,
            self.email,
            self.profile_url,
            self.company,
        ]
        filled = sum(1 for f in fields if f)
        filled += 1 if self.skills else 0
        filled += 1 if self.experience_years > 0 else 0
        return filled / (len(fields) + 2)

    def identity_key(self) -> str:
        from .merge import identity_key

        return identity_key(self)


# =============================================================================
# SESSION
# =============================================================================


class SearchSession(BaseModel):
    """One user query; lives only for the duration of a search call."""

    model_config = ConfigDict(extra="forbid")

    session_id: str = ""
    query_text: str = Field(..., min_length=1, description="The user's search query")
    location_filter: str | None = None
    requested_sources: list[Platform] = Field(..., min_length=1)
    time_budget_seconds: float = Field(default=60.0)
    minimum_tier: Tier = Field(default="bronze", description="Selects the validation floor")
    start_timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("query_text")
    @classmethod
    def _strip_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("query_text must not be blank")
        return v

    @field_validator("requested_sources")
    @classmethod
    def _dedupe_sources(cls, v: list[Platform]) -> list[Platform]:
        return list(dict.fromkeys(v))

    @field_validator("time_budget_seconds")
    @classmethod
    def _clamp_budget(cls, v: float) -> float:
        return float(max(MIN_BUDGET_SECONDS, min(MAX_BUDGET_SECONDS, v)))


# =============================================================================
# ORACLE VERDICT
# =============================================================================


class Verdict(BaseModel):
    """Result of validating one candidate."""

    is_valid: bool = True
    confidence: float = Field(default=0.5, ge=0, le=1)
    reason: str = ""
    dimension_scores: DimensionScores | None = None
    fallback: bool = Field(default=False, description="Set when no real oracle answer was obtained")


# =============================================================================
# RESULTS
# =============================================================================


class SourceOutcome(BaseModel):
    """What happened when one source was queried."""

    platform: Platform
    success: bool
    latency_ms: float = 0.0
    timeout_ms: int = 0
    raw_count: int = 0
    accepted_count: int = 0
    attempt: int = 0
    error: str | None = None


class ProgressiveResult(BaseModel):
    """Snapshot of the merge store."""

    candidates: list[CandidateRecord] = Field(default_factory=list)
    completion_rate: float = 0.0
    is_partial: bool = True
    completed_sources: list[Platform] = Field(default_factory=list)
    failed_sources: list[Platform] = Field(default_factory=list)
    next_recommended_sources: list[Platform] = Field(default_factory=list)


StrategyUsed = Literal["sufficient_quality", "fallback_success", "relaxed_criteria"]


class QualityReport(BaseModel):
    """Metrics produced by the quality guarantor."""

    strategy_used: StrategyUsed = "sufficient_quality"
    retries_needed: int = 0
    strategies_applied: list[str] = Field(default_factory=list)
    final_quality_rate: float = 0.0
    high_quality_count: int = 0
    guarantee_met: bool = False
    quality_compromise: bool = False
    states: list[str] = Field(default_factory=list)


class SessionMetadata(BaseModel):
    """Everything the presentation layer needs to judge a result list."""

    sources_used: list[Platform] = Field(default_factory=list)
    processing_time_ms: float = 0.0
    completion_rate: float = 0.0
    is_partial: bool = False
    quality_report: QualityReport = Field(default_factory=QualityReport)
    source_outcomes: list[SourceOutcome] = Field(default_factory=list)
    dropped_candidates: int = 0
    performance: dict[str, dict[str, Any]] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)


class SessionResult(BaseModel):
    """Final output of one search session."""

    session: SearchSession
    candidates: list[CandidateRecord] = Field(default_factory=list)
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
