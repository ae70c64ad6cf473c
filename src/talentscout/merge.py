"""
TalentScout deduplicating merge store.

Candidates from concurrent sources arrive in any order. The store keeps every
distinct contribution per identity key and rebuilds the merged record from
that set, so the final state depends only on which records arrived, never on
the order they arrived in.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from datetime import datetime

from .errors import MalformedInput
from .models import (
    ALL_PLATFORMS,
    CandidateRecord,
    Platform,
    ProgressiveResult,
    normalize_name,
)

# Fields taken together from the best-scoring contribution so that
# overall_score stays consistent with the dimensions it was derived from.
BEST_RECORD_FIELDS = (
    "skill_match",
    "experience",
    "reputation",
    "freshness",
    "social_proof",
    "overall_score",
    "platform_bonus",
    "tier",
    "confidence",
    "discovery_method",
)

# Filled from the best contribution that has a non-empty value
SCALAR_FIELDS = (
    "email",
    "name",
    "title",
    "location",
    "summary",
    "company",
    "phone",
    "linkedin_url",
)

MIN_RESULTS_FOR_PROGRESSIVE = 3


# =============================================================================
# IDENTITY
# =============================================================================


def identity_key(candidate: CandidateRecord) -> str:
    """
    Dedup key: email > platform:username > normalized name.

    Raises MalformedInput when the candidate has no identity at all.
    """
    if candidate.email:
        return f"email:{candidate.email.lower()}"
    if candidate.platform_username:
        return f"{candidate.source_platform}:{candidate.platform_username.lower()}"
    name = candidate.normalized_name or normalize_name(candidate.name)
    if name:
        return f"name:{name}"
    raise MalformedInput("candidate has no email, username or name")


def _fingerprint(candidate: CandidateRecord) -> str:
    """Canonical content string, ignoring when the record was collected."""
    data = candidate.model_dump(mode="json", exclude={"collection_timestamp"})
    data["skills"] = sorted(data["skills"])
    return json.dumps(data, sort_keys=True, default=str)


def _rank_key(candidate: CandidateRecord) -> tuple[float, float, str]:
    # Best first: highest score, then most complete, then canonical content
    return (-candidate.overall_score, -candidate.data_completeness(), _fingerprint(candidate))


# =============================================================================
# MERGE
# =============================================================================


def merge_candidates(*candidates: CandidateRecord) -> CandidateRecord:
    """
    Merge records that share an identity key.

    Scalars come from the highest-scoring record that has them; skills are
    unioned; risk flags are unioned keeping first-seen order (best record
    first). The result is the same for any ordering of the arguments.
    """
    if not candidates:
        raise ValueError("merge_candidates needs at least one record")

    ranked = sorted(candidates, key=_rank_key)
    best = ranked[0]
    merged: dict = {field: getattr(best, field) for field in BEST_RECORD_FIELDS}

    for field in SCALAR_FIELDS:
        merged[field] = next((getattr(c, field) for c in ranked if getattr(c, field)), None)

    # Username is only meaningful together with its platform
    handle = next((c for c in ranked if c.platform_username), best)
    merged["source_platform"] = handle.source_platform
    merged["platform_username"] = handle.platform_username
    merged["profile_url"] = handle.profile_url or next(
        (c.profile_url for c in ranked if c.profile_url), None
    )
    merged["normalized_name"] = next((c.normalized_name for c in ranked if c.normalized_name), "")

    merged["skills"] = set().union(*(c.skills for c in ranked))
    merged["risk_flags"] = list(dict.fromkeys(flag for c in ranked for flag in c.risk_flags))

    metrics: dict[str, float] = {}
    for c in ranked:
        for key, value in c.metrics.items():
            metrics[key] = max(metrics.get(key, value), value)
    merged["metrics"] = metrics

    # Numeric scalars follow the same rule; zero counts as empty
    for field in ("experience_years", "validation_confidence"):
        merged[field] = next((getattr(c, field) for c in ranked if getattr(c, field)), 0.0)
    merged["collection_timestamp"] = min(c.collection_timestamp for c in ranked)
    active: list[datetime] = [c.last_active_at for c in ranked if c.last_active_at]
    merged["last_active_at"] = max(active) if active else None

    return CandidateRecord(**merged)


def sort_candidates(candidates: Iterable[CandidateRecord]) -> list[CandidateRecord]:
    """Overall score desc, then completeness desc, then freshness desc."""
    return sorted(
        candidates,
        key=lambda c: (
            -c.overall_score,
            -c.data_completeness(),
            -c.freshness,
            identity_key(c),
        ),
    )


# =============================================================================
# STORE
# =============================================================================


class MergeStore:
    """
    In-memory accumulator keyed by identity.

    Confined to one event loop: each upsert is a single synchronous
    read-modify-write on one key, so interleaved source completions cannot
    lose updates.
    """

    def __init__(self) -> None:
        self._contributions: dict[str, dict[str, CandidateRecord]] = {}
        self._merged: dict[str, CandidateRecord] = {}
        self.completed_sources: list[Platform] = []
        self.failed_sources: list[Platform] = []
        self.received = 0

    def __len__(self) -> int:
        return len(self._merged)

    def __contains__(self, key: object) -> bool:
        return key in self._merged

    def get(self, key: str) -> CandidateRecord | None:
        return self._merged.get(key)

    def upsert(self, candidate: CandidateRecord) -> CandidateRecord:
        """Add one record, merging it with any existing record for its key."""
        key = identity_key(candidate)
        self.received += 1
        bucket = self._contributions.setdefault(key, {})
        fp = _fingerprint(candidate)
        existing = bucket.get(fp)
        if existing is None or candidate.collection_timestamp < existing.collection_timestamp:
            bucket[fp] = candidate
        self._merged[key] = merge_candidates(*bucket.values())
        return self._merged[key]

    def add_result(
        self,
        platform: Platform,
        candidates: Sequence[CandidateRecord],
        success: bool = True,
    ) -> int:
        """
        Record a source's batch. Returns how many records were accepted.

        Records without any identity are skipped, not raised.
        """
        accepted = 0
        for candidate in candidates:
            if not candidate.has_identity():
                continue
            self.upsert(candidate)
            accepted += 1

        if success:
            if platform not in self.completed_sources:
                self.completed_sources.append(platform)
            if platform in self.failed_sources:
                self.failed_sources.remove(platform)
        elif platform not in self.completed_sources and platform not in self.failed_sources:
            self.failed_sources.append(platform)
        return accepted

    def candidates(self) -> list[CandidateRecord]:
        return sort_candidates(self._merged.values())

    def has_minimum_results(self, minimum: int = MIN_RESULTS_FOR_PROGRESSIVE) -> bool:
        return len(self._merged) >= minimum

    def next_recommended_sources(
        self,
        all_sources: Iterable[Platform] = ALL_PLATFORMS,
        limit: int = 2,
    ) -> list[Platform]:
        """Sources not yet attempted, in the order given."""
        tried = set(self.completed_sources) | set(self.failed_sources)
        return [p for p in all_sources if p not in tried][:limit]

    def get_final(
        self,
        total_source_count: int,
        all_sources: Iterable[Platform] = ALL_PLATFORMS,
    ) -> ProgressiveResult:
        """Current merged candidates plus completion status."""
        completion = len(self.completed_sources) / total_source_count if total_source_count else 0.0
        completion = min(completion, 1.0)
        return ProgressiveResult(
            candidates=self.candidates(),
            completion_rate=completion,
            is_partial=completion < 1.0,
            completed_sources=list(self.completed_sources),
            failed_sources=list(self.failed_sources),
            next_recommended_sources=self.next_recommended_sources(all_sources),
        )
