"""
TalentScout tiered scorer.

Five dimension scores (0-100) are blended into a weighted composite, a small
per-platform bonus is added, and the result is bucketed into gold, silver or
bronze. Weights and thresholds live in one config object so they can be tuned
without touching the scoring logic.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .models import CandidateRecord, DimensionScores, Platform, Tier

# =============================================================================
# CONFIG
# =============================================================================

NEUTRAL_SCORE = 50.0

PLATFORM_BONUS: dict[str, float] = {
    "github": 5.0,
    "stackoverflow": 4.0,
    "linkedin": 3.0,
    "kaggle": 3.0,
    "google": 2.0,
    "devto": 2.0,
}

PLATFORM_RELIABILITY: dict[str, float] = {
    "github": 0.9,
    "stackoverflow": 0.85,
    "linkedin": 0.8,
    "kaggle": 0.75,
    "devto": 0.7,
    "google": 0.6,
}
DEFAULT_RELIABILITY = 0.5


class ScoringWeights(BaseModel):
    """Composite weights; must sum to 1."""

    skill_match: float = Field(default=0.40, ge=0, le=1)
    experience: float = Field(default=0.25, ge=0, le=1)
    reputation: float = Field(default=0.15, ge=0, le=1)
    freshness: float = Field(default=0.12, ge=0, le=1)
    social_proof: float = Field(default=0.08, ge=0, le=1)

    @model_validator(mode="after")
    def _check_sum(self) -> ScoringWeights:
        total = self.skill_match + self.experience + self.reputation + self.freshness + self.social_proof
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"weights must sum to 1.0, got {total:.3f}")
        return self


class TierThresholds(BaseModel):
    """Minimum composite score per tier; anything below silver is bronze."""

    gold: float = Field(default=75.0, ge=0, le=100)
    silver: float = Field(default=55.0, ge=0, le=100)

    @model_validator(mode="after")
    def _check_order(self) -> TierThresholds:
        if self.silver > self.gold:
            raise ValueError("silver threshold must not exceed gold threshold")
        return self


class ScoringConfig(BaseModel):
    """Everything the scorer can be tuned with."""

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    thresholds: TierThresholds = Field(default_factory=TierThresholds)
    platform_bonus: dict[str, float] = Field(default_factory=lambda: dict(PLATFORM_BONUS))
    platform_reliability: dict[str, float] = Field(
        default_factory=lambda: dict(PLATFORM_RELIABILITY)
    )


# =============================================================================
# HELPERS
# =============================================================================


def clamp_score(value: Any) -> float:
    """Clamp to [0, 100]; None, NaN and non-numbers become the neutral 50."""
    if isinstance(value, bool) or value is None:
        return NEUTRAL_SCORE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return NEUTRAL_SCORE
    if math.isnan(number):
        return NEUTRAL_SCORE
    return max(0.0, min(100.0, number))


def classify_tier(score: float, thresholds: TierThresholds | None = None) -> Tier:
    """Map a composite score to a tier. Monotonic in score."""
    thresholds = thresholds or TierThresholds()
    if score >= thresholds.gold:
        return "gold"
    if score >= thresholds.silver:
        return "silver"
    return "bronze"


def variance(values: list[float]) -> float:
    """Population variance."""
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


# Words that describe seniority or work style, not a skill
NON_SKILL_TERMS = {
    "senior",
    "junior",
    "lead",
    "principal",
    "staff",
    "developer",
    "developers",
    "engineer",
    "engineers",
    "remote",
    "hybrid",
    "onsite",
    "with",
    "and",
    "the",
    "for",
    "experience",
    "experienced",
    "years",
    "in",
    "of",
    "a",
    "an",
}


def query_terms(query: str) -> list[str]:
    """Skill-bearing terms of a query, in order, without duplicates."""
    tokens = re.findall(r"[a-z0-9+#.]+", query.lower())
    terms = [t.strip(".") for t in tokens if t.strip(".") and t.strip(".") not in NON_SKILL_TERMS]
    return list(dict.fromkeys(terms))


def heuristic_dimensions(candidate: CandidateRecord, query: str) -> DimensionScores:
    """
    Dimension scores from the candidate's own data when no oracle scores exist.

    - skill_match: share of query terms found in skills, title or summary
    - experience: 10 points per year
    - reputation: followers x2 or Stack Overflow reputation / 50
    - freshness: 100 minus days since last activity
    - social_proof: (stars + forks + reactions) / 10
    """
    terms = query_terms(query)
    if terms:
        haystack = " ".join(
            [" ".join(s.lower() for s in candidate.skills), candidate.title or "", candidate.summary or ""]
        ).lower()
        skill_lower = {s.lower() for s in candidate.skills}
        matched = sum(1 for t in terms if t in skill_lower or t in haystack)
        skill_match = 100.0 * matched / len(terms)
    else:
        skill_match = NEUTRAL_SCORE

    years = candidate.experience_years
    experience = min(years * 10, 100.0) if years > 0 else 30.0

    metrics = candidate.metrics
    reputation_signals = []
    if "followers" in metrics:
        reputation_signals.append(metrics["followers"] * 2)
    if "reputation" in metrics:
        reputation_signals.append(metrics["reputation"] / 50)
    reputation = max(reputation_signals) if reputation_signals else NEUTRAL_SCORE

    if candidate.last_active_at:
        last_active = candidate.last_active_at
        if last_active.tzinfo is None:
            last_active = last_active.replace(tzinfo=UTC)
        days = (datetime.now(UTC) - last_active).days
        freshness = 100.0 - max(days, 0)
    else:
        freshness = NEUTRAL_SCORE

    social_keys = ("stars", "forks", "reactions")
    if any(k in metrics for k in social_keys):
        social_proof = sum(metrics.get(k, 0.0) for k in social_keys) / 10
    else:
        social_proof = NEUTRAL_SCORE

    return DimensionScores(
        skill_match=clamp_score(skill_match),
        experience=clamp_score(experience),
        reputation=clamp_score(reputation),
        freshness=clamp_score(freshness),
        social_proof=clamp_score(social_proof),
    )


# =============================================================================
# SCORER
# =============================================================================


class TieredScorer:
    """Computes dimension scores, composite, tier and confidence."""

    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig()

    def weighted(self, dims: DimensionScores) -> float:
        w = self.config.weights
        return (
            w.skill_match * dims.skill_match
            + w.experience * dims.experience
            + w.reputation * dims.reputation
            + w.freshness * dims.freshness
            + w.social_proof * dims.social_proof
        )

    def confidence(self, dims: DimensionScores, platform: Platform) -> float:
        """High when dimensions agree and the platform is trustworthy."""
        consistency = max(0.0, 1 - variance(dims.as_list()) / 1000)
        reliability = self.config.platform_reliability.get(platform, DEFAULT_RELIABILITY)
        return round(100 * (0.6 * consistency + 0.4 * reliability)) / 100

    def score(
        self,
        candidate: CandidateRecord,
        criteria: str,
        platform: Platform | None = None,
        dimensions: DimensionScores | dict[str, Any] | None = None,
    ) -> CandidateRecord:
        """
        Return a scored copy of `candidate`.

        `dimensions` (typically from the validation oracle) override the
        heuristic scores; any missing or non-numeric value becomes 50.
        """
        platform = platform or candidate.source_platform
        if dimensions is None:
            dims = heuristic_dimensions(candidate, criteria)
        else:
            raw = dimensions.model_dump() if isinstance(dimensions, DimensionScores) else dimensions
            dims = DimensionScores(
                skill_match=clamp_score(raw.get("skill_match")),
                experience=clamp_score(raw.get("experience")),
                reputation=clamp_score(raw.get("reputation")),
                freshness=clamp_score(raw.get("freshness")),
                social_proof=clamp_score(raw.get("social_proof")),
            )

        bonus = self.config.platform_bonus.get(platform, 0.0)
        overall = clamp_score(self.weighted(dims) + bonus)

        return candidate.model_copy(
            update={
                "skill_match": dims.skill_match,
                "experience": dims.experience,
                "reputation": dims.reputation,
                "freshness": dims.freshness,
                "social_proof": dims.social_proof,
                "overall_score": round(overall, 2),
                "platform_bonus": bonus,
                "tier": classify_tier(round(overall, 2), self.config.thresholds),
                "confidence": self.confidence(dims, platform),
            }
        )

    def score_all(self, candidates: list[CandidateRecord], criteria: str) -> list[CandidateRecord]:
        return [self.score(c, criteria) for c in candidates]


def tier_distribution(candidates: list[CandidateRecord]) -> dict[str, int]:
    """Count candidates per tier."""
    counts: dict[str, int] = {}
    for c in candidates:
        tier = c.tier or "unscored"
        counts[tier] = counts.get(tier, 0) + 1
    return counts
