"""Tests for the tiered scorer."""

from datetime import UTC, datetime, timedelta

import pytest
from conftest import make_candidate
from pydantic import ValidationError

from talentscout.models import DimensionScores, tier_rank
from talentscout.scoring import (
    ScoringConfig,
    ScoringWeights,
    TieredScorer,
    TierThresholds,
    clamp_score,
    classify_tier,
    heuristic_dimensions,
    query_terms,
    tier_distribution,
    variance,
)

DIMENSIONS = ("skill_match", "experience", "reputation", "freshness", "social_proof")


class TestClampScore:
    """Tests for clamp_score."""

    def test_in_range(self) -> None:
        """Test that in-range values pass through."""
        assert clamp_score(72.5) == 72.5

    def test_out_of_range(self) -> None:
        """Test clamping to 0-100."""
        assert clamp_score(150) == 100.0
        assert clamp_score(-5) == 0.0

    def test_garbage_is_neutral(self) -> None:
        """Test that missing or non-numeric values become 50."""
        assert clamp_score(None) == 50.0
        assert clamp_score(float("nan")) == 50.0
        assert clamp_score("high") == 50.0
        assert clamp_score(True) == 50.0

    def test_numeric_string(self) -> None:
        """Test that numeric strings are accepted."""
        assert clamp_score("70") == 70.0


class TestClassifyTier:
    """Tests for tier classification."""

    def test_boundaries(self) -> None:
        """Test default thresholds (gold 75, silver 55)."""
        assert classify_tier(75) == "gold"
        assert classify_tier(74.99) == "silver"
        assert classify_tier(55) == "silver"
        assert classify_tier(54.99) == "bronze"
        assert classify_tier(0) == "bronze"

    def test_monotonic(self) -> None:
        """Test that a higher score never yields a lower tier."""
        ranks = [tier_rank(classify_tier(s / 2)) for s in range(0, 201)]
        assert ranks == sorted(ranks)

    def test_custom_thresholds(self) -> None:
        """Test injected thresholds."""
        assert classify_tier(60, TierThresholds(gold=60, silver=40)) == "gold"

    def test_thresholds_must_be_ordered(self) -> None:
        """Test that silver above gold is rejected."""
        with pytest.raises(ValidationError):
            TierThresholds(gold=50, silver=60)


class TestScoringWeights:
    """Tests for weight validation."""

    def test_defaults_sum_to_one(self) -> None:
        """Test that the default weights are valid."""
        w = ScoringWeights()
        assert w.skill_match == 0.40

    def test_bad_sum_rejected(self) -> None:
        """Test that weights must sum to 1."""
        with pytest.raises(ValidationError):
            ScoringWeights(skill_match=0.9)


class TestHeuristics:
    """Tests for query terms and heuristic dimensions."""

    def test_query_terms(self) -> None:
        """Test that seniority and filler words are dropped."""
        assert query_terms("Senior Python Developer in Berlin") == ["python", "berlin"]
        assert query_terms("C++ and c++ engineer") == ["c++"]

    def test_heuristic_dimensions(self) -> None:
        """Test each heuristic signal."""
        c = make_candidate(last_active_at=datetime.now(UTC) - timedelta(days=10))
        dims = heuristic_dimensions(c, "python django developer")
        assert dims.skill_match == 100.0
        assert dims.experience == 80.0
        assert dims.reputation == 100.0  # 120 followers x2, clamped
        assert dims.freshness == 90.0
        assert dims.social_proof == 30.0

    def test_missing_signals_neutral(self, weak_candidate) -> None:
        """Test that absent data yields neutral scores."""
        dims = heuristic_dimensions(weak_candidate, "rust")
        assert dims.skill_match == 0.0
        assert dims.experience == 30.0
        assert dims.reputation == 50.0
        assert dims.freshness == 50.0
        assert dims.social_proof == 50.0

    def test_variance(self) -> None:
        """Test population variance."""
        assert variance([]) == 0.0
        assert variance([2, 4, 4, 4, 5, 5, 7, 9]) == 4.0


class TestTieredScorer:
    """Tests for TieredScorer."""

    def test_score_with_dimensions(self, sample_candidate) -> None:
        """Test composite, bonus, tier and confidence."""
        scorer = TieredScorer()
        scored = scorer.score(sample_candidate, "python", dimensions=DimensionScores(
            skill_match=80, experience=80, reputation=80, freshness=80, social_proof=80
        ))
        assert scored.overall_score == 85.0  # 80 + github bonus 5
        assert scored.platform_bonus == 5.0
        assert scored.tier == "gold"
        # zero variance, github reliability 0.9
        assert scored.confidence == 0.96

    def test_original_unchanged(self, sample_candidate) -> None:
        """Test that scoring returns a copy."""
        TieredScorer().score(sample_candidate, "python")
        assert sample_candidate.overall_score == 0.0
        assert sample_candidate.tier is None

    def test_overall_clamped(self, sample_candidate) -> None:
        """Test that the bonus cannot push the composite past 100."""
        top = {k: 100 for k in DIMENSIONS}
        scored = TieredScorer().score(sample_candidate, "python", dimensions=top)
        assert scored.overall_score == 100.0

    def test_garbage_dimensions_neutral(self, sample_candidate) -> None:
        """Test that bad oracle values become 50."""
        scored = TieredScorer().score(
            sample_candidate, "python", dimensions={"skill_match": "great", "experience": None}
        )
        assert scored.skill_match == 50.0
        assert scored.experience == 50.0
        assert scored.reputation == 50.0

    def test_platform_override(self, sample_candidate) -> None:
        """Test that the bonus follows the platform argument."""
        scored = TieredScorer().score(sample_candidate, "python", platform="devto")
        assert scored.platform_bonus == 2.0

    def test_disagreeing_dimensions_lower_confidence(self, sample_candidate) -> None:
        """Test that spread-out dimensions reduce confidence."""
        scorer = TieredScorer()
        flat = scorer.score(sample_candidate, "x", dimensions=DimensionScores())
        spread = scorer.score(sample_candidate, "x", dimensions=DimensionScores(
            skill_match=0, experience=100, reputation=0, freshness=100, social_proof=50
        ))
        assert spread.confidence < flat.confidence

    def test_custom_config(self, sample_candidate) -> None:
        """Test that weights and bonuses are injectable."""
        config = ScoringConfig(
            weights=ScoringWeights(
                skill_match=1.0, experience=0, reputation=0, freshness=0, social_proof=0
            ),
            platform_bonus={},
        )
        scored = TieredScorer(config).score(
            sample_candidate, "x", dimensions=DimensionScores(skill_match=60)
        )
        assert scored.overall_score == 60.0
        assert scored.tier == "silver"

    def test_tier_distribution(self, sample_candidate) -> None:
        """Test tier counting."""
        scorer = TieredScorer()
        top = {k: 100 for k in DIMENSIONS}
        bottom = {k: 0 for k in DIMENSIONS}
        gold = scorer.score(sample_candidate, "x", dimensions=top)
        bronze = scorer.score(sample_candidate, "x", dimensions=bottom)
        assert tier_distribution([gold, bronze, bronze]) == {"gold": 1, "bronze": 2}
