"""Tests for the validation oracle."""

import pytest

from talentscout.models import Verdict
from talentscout.oracle import (
    NeutralOracle,
    OpenAIOracle,
    ValidationFloors,
    parse_verdict,
)


class TestParseVerdict:
    """Tests for parse_verdict."""

    def test_plain_json(self) -> None:
        """Test a well-formed reply."""
        v = parse_verdict('{"is_valid": true, "confidence": 0.8, "reason": "strong match"}')
        assert v.is_valid
        assert v.confidence == 0.8
        assert v.reason == "strong match"
        assert v.dimension_scores is None

    def test_code_fence(self) -> None:
        """Test that fenced JSON is extracted."""
        text = 'Here you go:\n```json\n{"is_valid": false, "confidence": 0.2, "reason": "bot"}\n```'
        v = parse_verdict(text)
        assert not v.is_valid
        assert v.confidence == 0.2

    def test_malformed_is_neutral(self) -> None:
        """Test that non-JSON replies keep the candidate with neutral confidence."""
        for text in ("I think this person is great", "{not json}", "", None, "[1, 2]"):
            v = parse_verdict(text)
            assert v.is_valid
            assert v.confidence == 0.5
            assert v.fallback

    def test_percentage_confidence(self) -> None:
        """Test that 0-100 confidences are rescaled."""
        assert parse_verdict('{"confidence": 85}').confidence == 0.85

    def test_bad_confidence_neutral(self) -> None:
        """Test that a non-numeric confidence is neutral."""
        assert parse_verdict('{"confidence": "very"}').confidence == 0.5
        assert not parse_verdict('{"confidence": 0.9}').fallback

    def test_top_level_dimensions(self) -> None:
        """Test dimension scores given at the top level; bad values become 50."""
        v = parse_verdict('{"skill_match": 90, "experience": "lots", "reputation": 140}')
        assert v.dimension_scores is not None
        assert v.dimension_scores.skill_match == 90
        assert v.dimension_scores.experience == 50
        assert v.dimension_scores.reputation == 100
        assert v.dimension_scores.freshness == 50

    def test_nested_dimensions(self) -> None:
        """Test a nested dimension_scores object."""
        v = parse_verdict('{"isValid": "false", "dimension_scores": {"freshness": 12}}')
        assert not v.is_valid
        assert v.dimension_scores.freshness == 12


class TestValidationFloors:
    """Tests for ValidationFloors."""

    def test_for_tier(self) -> None:
        """Test default floors rise with the tier."""
        floors = ValidationFloors()
        assert floors.for_tier("bronze") < floors.for_tier("silver") < floors.for_tier("gold")


class TestNeutralOracle:
    """Tests for NeutralOracle."""

    async def test_accepts_everyone(self, weak_candidate) -> None:
        """Test that the neutral oracle keeps every candidate."""
        v = await NeutralOracle().validate(weak_candidate, "python", "stackoverflow")
        assert v.is_valid
        assert v.confidence == 0.5
        assert v.dimension_scores is None
        assert v.fallback


class TestOpenAIOracle:
    """Tests for OpenAIOracle without network access."""

    def test_requires_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a missing key is a configuration error."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ValueError):
            OpenAIOracle()

    def test_model_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the model override."""
        monkeypatch.setenv("TALENTSCOUT_MODEL", "gpt-4o-mini")
        assert OpenAIOracle(api_key="sk-test").model == "gpt-4o-mini"

    def test_prompt_contains_profile(self, monkeypatch: pytest.MonkeyPatch, sample_candidate) -> None:
        """Test that the prompt carries the query and profile."""
        monkeypatch.delenv("TALENTSCOUT_MODEL", raising=False)
        oracle = OpenAIOracle(api_key="sk-test")
        prompt = oracle._build_prompt(sample_candidate, "python backend", "github")
        assert "python backend" in prompt
        assert "Jane Doe" in prompt
        assert "django, postgresql, python" in prompt

    async def test_falls_back_to_second_model(
        self, monkeypatch: pytest.MonkeyPatch, sample_candidate
    ) -> None:
        """Test that a primary failure retries on the fallback model."""
        monkeypatch.delenv("TALENTSCOUT_MODEL", raising=False)
        oracle = OpenAIOracle(api_key="sk-test")
        models: list[str] = []

        async def fake_call(model: str, prompt: str) -> str:
            models.append(model)
            if model == OpenAIOracle.DEFAULT_MODEL:
                raise RuntimeError("boom")
            return '{"is_valid": true, "confidence": 0.9}'

        monkeypatch.setattr(oracle, "_call_model", fake_call)
        v = await oracle.validate(sample_candidate, "python", "github")
        assert models == [OpenAIOracle.DEFAULT_MODEL, OpenAIOracle.FALLBACK_MODEL]
        assert v.confidence == 0.9

    async def test_total_failure_is_neutral(
        self, monkeypatch: pytest.MonkeyPatch, sample_candidate
    ) -> None:
        """Test that both models failing yields a neutral verdict."""
        monkeypatch.delenv("TALENTSCOUT_MODEL", raising=False)
        oracle = OpenAIOracle(api_key="sk-test")

        async def fake_call(model: str, prompt: str) -> str:
            raise RuntimeError("down")

        monkeypatch.setattr(oracle, "_call_model", fake_call)
        v = await oracle.validate(sample_candidate, "python", "github")
        assert v == Verdict(is_valid=True, confidence=0.5, reason="oracle error")
