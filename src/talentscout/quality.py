"""
TalentScout quality guarantor.

After collection, checks that enough candidates clear a quality bar. If not,
it retries collection with progressively looser fallback strategies while
time remains, and finally degrades to ranking the whole pool by a relaxed
quality function instead of returning nothing.

    COLLECTING -> EVALUATING -> SATISFIED -> DONE
                  EVALUATING -> RETRYING -> (collect) -> EVALUATING
                  EVALUATING -> DEGRADED -> DONE
"""

from __future__ import annotations

import math
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from .logger import ProgressLogger
from .merge import sort_candidates
from .models import CandidateRecord, Platform, QualityReport, SearchSession

Strategy = Literal["broadening", "alternative_sources", "relaxed_criteria"]


class GuarantorState(str, Enum):
    COLLECTING = "collecting"
    EVALUATING = "evaluating"
    SATISFIED = "satisfied"
    RETRYING = "retrying"
    DEGRADED = "degraded"
    DONE = "done"


class QualityConfig(BaseModel):
    """Quality bar and retry policy."""

    minimum_results: int = Field(default=10, ge=0)
    quality_threshold: float = Field(default=60.0, ge=0, le=100)
    max_retries: int = Field(default=2, ge=0)
    strategies: list[Strategy] = Field(
        default_factory=lambda: ["broadening", "alternative_sources", "relaxed_criteria"],
        min_length=1,
    )
    result_cap_factor: float = Field(default=1.5, ge=1)


# =============================================================================
# QUALITY FUNCTIONS
# =============================================================================


def quality_score(candidate: CandidateRecord) -> int:
    """
    Gate score (0-100), independent of the tier composite.

    completeness 30, skill relevance 25, experience fit 25, reputation 20.
    """
    factors = [
        bool(candidate.name),
        bool(candidate.title),
        bool(candidate.summary and len(candidate.summary) > 50),
        bool(candidate.location),
        len(candidate.skills) >= 3,
        candidate.experience_years > 0,
    ]
    completeness = sum(factors) / len(factors) * 30
    skill = candidate.skill_match * 0.25
    experience = min(candidate.experience_years * 3, 25)
    reputation = candidate.reputation * 0.20
    return round(completeness + skill + experience + reputation)


def relaxed_quality_score(candidate: CandidateRecord) -> int:
    """Looser score used once retries are exhausted: mostly 'is there a profile'."""
    score = 0.0
    if candidate.name:
        score += 20
    if candidate.title:
        score += 10
    if candidate.summary:
        score += 10
    score += min(len(candidate.skills) * 5, 30)
    if candidate.experience_years > 0:
        score += min(candidate.experience_years * 3, 30)
    elif candidate.overall_score > 0:
        score += 15
    return round(score)


# =============================================================================
# FALLBACK STRATEGIES
# =============================================================================

_SENIORITY_RE = re.compile(r"\b(senior|lead|principal|staff)\b")
_REQUIREMENT_RE = re.compile(r"\b(with|having|knowledge|experience)\s+in\b")

GENERAL_TERMS = {
    "backend": "developer",
    "frontend": "developer",
    "fullstack": "developer",
    "devops": "engineer",
    "machine learning": "data scientist",
    "ai": "developer",
    "mobile": "developer",
    "web": "developer",
}
COMMON_LANGUAGES = ("python", "javascript", "java", "typescript", "go")

ALTERNATIVE_ORDER: tuple[Platform, ...] = ("linkedin", "github", "stackoverflow", "google")
HIGH_VOLUME_ORDER: tuple[Platform, ...] = ("github", "linkedin", "google", "stackoverflow")


def general_terms(query: str) -> list[str]:
    lowered = query.lower()
    terms = [general for specific, general in GENERAL_TERMS.items() if re.search(rf"\b{specific}\b", lowered)]
    terms += [lang for lang in COMMON_LANGUAGES if re.search(rf"\b{lang}\b", lowered)]
    return list(dict.fromkeys(terms)) or ["developer"]


def fallback_query(query: str, strategy: Strategy, retry: int) -> str:
    """Rewrite the query for a retry."""
    if strategy == "broadening":
        broader = _SENIORITY_RE.sub("", query.lower())
        broader = _REQUIREMENT_RE.sub("", broader)
        broader = re.sub(r"\s+", " ", broader).strip()
        return broader or "developer engineer"
    if strategy == "alternative_sources":
        words = [w for w in query.split() if len(w) > 3]
        return " ".join(words[: max(2, len(words) - retry)]) or query
    if strategy == "relaxed_criteria":
        return " ".join(general_terms(query))
    return query


def fallback_sources(sources: Sequence[Platform], strategy: Strategy) -> list[Platform]:
    """Reorder the requested sources for a retry; never adds or drops one."""
    if strategy == "alternative_sources":
        preferred = ALTERNATIVE_ORDER
    elif strategy == "relaxed_criteria":
        preferred = HIGH_VOLUME_ORDER
    else:
        return list(sources)
    ordered = [p for p in preferred if p in sources]
    return ordered + [p for p in sources if p not in ordered]


# =============================================================================
# GUARANTOR
# =============================================================================

CollectFn = Callable[[SearchSession, Strategy], Awaitable[list[CandidateRecord]]]


@dataclass
class GuaranteeResult:
    candidates: list[CandidateRecord]
    report: QualityReport
    states: list[GuarantorState] = field(default_factory=list)


class QualityGuarantor:
    """Runs the evaluate/retry/degrade state machine for one session."""

    def __init__(self, config: QualityConfig | None = None, logger: ProgressLogger | None = None):
        self.config = config or QualityConfig()
        self.logger = logger

    def high_quality(self, candidates: Sequence[CandidateRecord]) -> list[CandidateRecord]:
        return [c for c in candidates if quality_score(c) >= self.config.quality_threshold]

    def strategy_for(self, retry: int) -> Strategy:
        strategies = self.config.strategies
        return strategies[min(retry - 1, len(strategies) - 1)]

    def retry_session(self, session: SearchSession, strategy: Strategy, retry: int) -> SearchSession:
        return session.model_copy(
            update={
                "query_text": fallback_query(session.query_text, strategy, retry),
                "requested_sources": fallback_sources(session.requested_sources, strategy),
            }
        )

    async def guarantee(
        self,
        session: SearchSession,
        candidates: Sequence[CandidateRecord],
        collect: CollectFn,
        has_time: Callable[[], bool] = lambda: True,
    ) -> GuaranteeResult:
        """
        Drive the state machine to DONE.

        `collect` re-runs collection for a retry session and returns the
        whole merged pool. Each pass through RETRYING consumes one retry, so
        the loop ends after at most `max_retries` collections.
        """
        cfg = self.config
        states = [GuarantorState.COLLECTING]
        pool = list(candidates)
        retries = 0
        applied: list[str] = []

        while True:
            states.append(GuarantorState.EVALUATING)
            high = self.high_quality(pool)
            if len(high) >= cfg.minimum_results:
                states.append(GuarantorState.SATISFIED)
                break
            if retries >= cfg.max_retries or not has_time():
                states.append(GuarantorState.DEGRADED)
                break

            states.append(GuarantorState.RETRYING)
            retries += 1
            strategy = self.strategy_for(retries)
            applied.append(strategy)
            retry_session = self.retry_session(session, strategy, retries)
            if self.logger:
                self.logger.retry(retries, strategy, retry_session.query_text)
            pool = list(await collect(retry_session, strategy))

        if states[-1] == GuarantorState.SATISFIED:
            cap = math.ceil(cfg.minimum_results * cfg.result_cap_factor)
            final = sort_candidates(high)[:cap] if cap else sort_candidates(high)
            report = QualityReport(
                strategy_used="sufficient_quality" if retries == 0 else "fallback_success",
                guarantee_met=True,
                quality_compromise=False,
            )
        else:
            # Every pooled candidate comes back, best relaxed score first
            final = sorted(sort_candidates(pool), key=relaxed_quality_score, reverse=True)
            report = QualityReport(
                strategy_used="relaxed_criteria",
                guarantee_met=False,
                quality_compromise=True,
            )

        states.append(GuarantorState.DONE)
        final_ids = {id(c) for c in final}
        high_in_final = sum(1 for c in high if id(c) in final_ids)
        report.retries_needed = retries
        report.strategies_applied = applied
        report.high_quality_count = len(high)
        report.final_quality_rate = round(high_in_final / len(final) * 100, 1) if final else 0.0
        report.states = [s.value for s in states]
        return GuaranteeResult(candidates=final, report=report, states=states)
