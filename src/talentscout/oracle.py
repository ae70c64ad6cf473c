"""
TalentScout validation oracle - LLM-backed candidate validation and scoring.

The oracle is a remote JSON-in/JSON-out scoring function. It can be slow,
fail, or answer with something that is not JSON; every one of those cases
degrades to a neutral verdict so the pipeline keeps the candidate.
"""

from __future__ import annotations

import json
import os
import re
from abc import ABC, abstractmethod
from typing import Any

from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from .logger import ProgressLogger
from .models import CandidateRecord, DimensionScores, Platform, Tier, Verdict
from .scoring import clamp_score

NEUTRAL_CONFIDENCE = 0.5

DIMENSION_KEYS = ("skill_match", "experience", "reputation", "freshness", "social_proof")


class ValidationFloors(BaseModel):
    """Minimum oracle confidence to keep a candidate, by requested tier."""

    bronze: float = Field(default=0.3, ge=0, le=1)
    silver: float = Field(default=0.5, ge=0, le=1)
    gold: float = Field(default=0.7, ge=0, le=1)

    def for_tier(self, tier: Tier) -> float:
        return getattr(self, tier)


def neutral_verdict(reason: str = "neutral fallback") -> Verdict:
    """Keep the candidate, express no opinion on its scores."""
    return Verdict(is_valid=True, confidence=NEUTRAL_CONFIDENCE, reason=reason, fallback=True)


# =============================================================================
# RESPONSE PARSING
# =============================================================================

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _extract_json_object(text: str) -> dict[str, Any] | None:
    """Find the first JSON object in free text (code fences allowed)."""
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _as_bool(value: Any, default: bool = True) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value.strip().lower() in ("true", "yes", "1"):
            return True
        if value.strip().lower() in ("false", "no", "0"):
            return False
    return default


def _as_confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return NEUTRAL_CONFIDENCE
    if number != number:  # NaN
        return NEUTRAL_CONFIDENCE
    if number > 1:
        number = number / 100  # tolerate percentages
    return max(0.0, min(1.0, number))


def parse_verdict(text: str | None) -> Verdict:
    """
    Parse an oracle reply into a Verdict.

    Malformed or non-JSON replies yield the neutral verdict. Missing or
    non-numeric dimension scores default to 50.
    """
    if not text:
        return neutral_verdict("empty oracle response")

    data = _extract_json_object(text)
    if data is None:
        return neutral_verdict("malformed oracle response")

    dims_source = data.get("dimension_scores") if isinstance(data.get("dimension_scores"), dict) else data
    has_dims = any(k in dims_source for k in DIMENSION_KEYS)
    dims = None
    if has_dims:
        dims = DimensionScores(**{k: clamp_score(dims_source.get(k)) for k in DIMENSION_KEYS})

    return Verdict(
        is_valid=_as_bool(data.get("is_valid", data.get("isValid")), default=True),
        confidence=_as_confidence(data.get("confidence")),
        reason=str(data.get("reason") or ""),
        dimension_scores=dims,
    )


# =============================================================================
# ORACLES
# =============================================================================


class Oracle(ABC):
    """Validates a candidate against the query and proposes dimension scores."""

    @abstractmethod
    async def validate(
        self, candidate: CandidateRecord, criteria: str, platform: Platform
    ) -> Verdict:
        """Return a verdict for one candidate."""
        pass


class NeutralOracle(Oracle):
    """Accepts everyone with neutral confidence; scores come from heuristics."""

    async def validate(
        self, candidate: CandidateRecord, criteria: str, platform: Platform
    ) -> Verdict:
        return neutral_verdict()


VALIDATION_PROMPT = """Evaluate this {platform} profile as a candidate for the search: "{criteria}"

Profile:
- Name: {name}
- Title: {title}
- Location: {location}
- Skills: {skills}
- Experience (years): {years}
- Summary: {summary}
- Platform metrics: {metrics}

Answer with a single JSON object and nothing else:
{{
  "is_valid": true or false (is this a real professional relevant to the search?),
  "confidence": 0.0-1.0,
  "reason": "one sentence",
  "skill_match": 0-100,
  "experience": 0-100,
  "reputation": 0-100,
  "freshness": 0-100,
  "social_proof": 0-100
}}
"""


class OpenAIOracle(Oracle):
    """Validation oracle backed by OpenAI models."""

    DEFAULT_MODEL = "gpt-5-mini"
    FALLBACK_MODEL = "gpt-4o"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        logger: ProgressLogger | None = None,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY not set")
        self.client = AsyncOpenAI(api_key=self.api_key)
        self.model = model or os.getenv("TALENTSCOUT_MODEL", self.DEFAULT_MODEL)
        self.logger = logger

    def _is_gpt5_model(self, model: str) -> bool:
        return model.startswith("gpt-5")

    def _build_prompt(self, candidate: CandidateRecord, criteria: str, platform: Platform) -> str:
        return VALIDATION_PROMPT.format(
            platform=platform,
            criteria=criteria,
            name=candidate.name or candidate.platform_username or "unknown",
            title=candidate.title or "",
            location=candidate.location or "",
            skills=", ".join(sorted(candidate.skills)) or "none listed",
            years=candidate.experience_years,
            summary=(candidate.summary or "")[:1000],
            metrics=json.dumps(candidate.metrics),
        )

    async def _call_model(self, model: str, prompt: str) -> str:
        """Call the model and return its raw text reply."""
        if self._is_gpt5_model(model):
            response = await self.client.responses.create(
                model=model,
                input=prompt,
                reasoning={"effort": "minimal"},
            )
            return response.output_text

        completion = await self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": "You validate technical candidates. Reply in JSON."},
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
        )
        return completion.choices[0].message.content or ""

    async def validate(
        self, candidate: CandidateRecord, criteria: str, platform: Platform
    ) -> Verdict:
        prompt = self._build_prompt(candidate, criteria, platform)
        try:
            return parse_verdict(await self._call_model(self.model, prompt))
        except Exception as e:
            if self.model != self.DEFAULT_MODEL:
                self._warn(f"Validation error ({self.model}): {e}")
                return neutral_verdict("oracle error")
            self._warn(f"Primary model ({self.model}) failed, trying fallback ({self.FALLBACK_MODEL}): {e}")
            try:
                return parse_verdict(await self._call_model(self.FALLBACK_MODEL, prompt))
            except Exception as e2:
                self._warn(f"Fallback model also failed: {e2}")
                return neutral_verdict("oracle error")

    def _warn(self, msg: str) -> None:
        if self.logger:
            self.logger.warning(msg)
