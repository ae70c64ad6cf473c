"""
TalentScout enrichment oracles - Apollo contact lookup, Perplexity web research.

Enrichment is additive: it may fill empty fields and add skills, but never
overwrites data a candidate already has. Callers bound every call with a
timeout and keep the original candidate on any failure.
"""

from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from .models import CandidateRecord
from .search import DEFAULT_HTTP_TIMEOUT, extract_skills, raise_for_status

# Scalar fields enrichment may fill when empty
ENRICHABLE_FIELDS = (
    "email",
    "title",
    "location",
    "summary",
    "company",
    "phone",
    "linkedin_url",
    "profile_url",
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[a-z]{2,}$", re.IGNORECASE)


def is_valid_email(email: str | None) -> bool:
    """Syntactically valid and not a no-reply/placeholder address."""
    if not email or not _EMAIL_RE.match(email):
        return False
    lowered = email.lower()
    return not any(bad in lowered for bad in ("noreply", "no-reply", "email_not_unlocked", "example.com"))


def apply_enrichment(original: CandidateRecord, enriched: CandidateRecord) -> CandidateRecord:
    """
    Merge enrichment output into `original`, additive only.

    Empty scalars are filled, skills and risk flags are unioned, metrics gain
    new keys. Populated fields on `original` are never replaced.
    """
    update: dict[str, Any] = {}
    for field in ENRICHABLE_FIELDS:
        if not getattr(original, field) and getattr(enriched, field):
            update[field] = getattr(enriched, field)
    if not original.name and enriched.name:
        update["name"] = enriched.name
    if original.experience_years == 0 and enriched.experience_years > 0:
        update["experience_years"] = enriched.experience_years
    if enriched.skills - original.skills:
        update["skills"] = original.skills | enriched.skills
    new_flags = [f for f in enriched.risk_flags if f not in original.risk_flags]
    if new_flags:
        update["risk_flags"] = original.risk_flags + new_flags
    new_metrics = {k: v for k, v in enriched.metrics.items() if k not in original.metrics}
    if new_metrics:
        update["metrics"] = {**original.metrics, **new_metrics}
    if not update:
        return original
    return original.model_copy(update=update)


class Enricher(ABC):
    """Adds information about a candidate from an external provider."""

    name: str = "enricher"

    @abstractmethod
    async def enrich(self, candidate: CandidateRecord) -> CandidateRecord:
        """Return an enriched copy (or the same candidate if nothing was found)."""
        pass

    async def aclose(self) -> None:
        return None


class HttpEnricher(Enricher):
    """Enricher backed by an httpx.AsyncClient (injectable for tests)."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=DEFAULT_HTTP_TIMEOUT)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


# =============================================================================
# APOLLO
# =============================================================================

APOLLO_URL = "https://api.apollo.io/v1/mixed_people/search"


class ApolloEnricher(HttpEnricher):
    """Contact details (email, phone, company, LinkedIn) from Apollo."""

    name = "apollo"

    def __init__(self, api_key: str, client: httpx.AsyncClient | None = None):
        super().__init__(client)
        self.api_key = api_key

    @classmethod
    def from_env(cls, client: httpx.AsyncClient | None = None) -> ApolloEnricher:
        api_key = os.getenv("APOLLO_API_KEY")
        if not api_key:
            raise ValueError("APOLLO_API_KEY not set")
        return cls(api_key, client=client)

    def build_payload(self, candidate: CandidateRecord) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "q_person_name": candidate.name,
            "page": 1,
            "per_page": 1,
        }
        if candidate.title:
            payload["person_titles"] = [candidate.title]
        if candidate.location:
            payload["organization_locations"] = [candidate.location]
        return payload

    async def enrich(self, candidate: CandidateRecord) -> CandidateRecord:
        if not candidate.name:
            return candidate

        resp = await self.client.post(
            APOLLO_URL,
            json=self.build_payload(candidate),
            headers={"X-Api-Key": self.api_key, "Content-Type": "application/json"},
        )
        raise_for_status(resp, self.name)
        people = resp.json().get("people") or []
        if not people:
            return candidate

        person = people[0]
        found = candidate.model_copy(
            update={
                "email": person.get("email") if is_valid_email(person.get("email")) else None,
                "linkedin_url": person.get("linkedin_url"),
                "company": (person.get("organization") or {}).get("name"),
                "phone": _first_phone(person),
                "title": person.get("title"),
            }
        )
        return apply_enrichment(candidate, found)


def _first_phone(person: dict[str, Any]) -> str | None:
    numbers = person.get("phone_numbers") or []
    if numbers and isinstance(numbers[0], dict):
        return numbers[0].get("sanitized_number") or numbers[0].get("raw_number")
    return person.get("phone")


# =============================================================================
# PERPLEXITY
# =============================================================================

PERPLEXITY_URL = "https://api.perplexity.ai/chat/completions"
PERPLEXITY_MODEL = "llama-3.1-sonar-small-128k-online"


class PerplexityEnricher(HttpEnricher):
    """Recent professional background from Perplexity's online model."""

    name = "perplexity"

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        model: str = PERPLEXITY_MODEL,
    ):
        super().__init__(client)
        self.api_key = api_key
        self.model = model

    @classmethod
    def from_env(cls, client: httpx.AsyncClient | None = None) -> PerplexityEnricher:
        api_key = os.getenv("PERPLEXITY_API_KEY")
        if not api_key:
            raise ValueError("PERPLEXITY_API_KEY not set")
        return cls(api_key, client=client)

    def build_query(self, candidate: CandidateRecord) -> str:
        parts = [candidate.name or "", candidate.platform_username or "", candidate.title or "", "developer"]
        return "Find recent professional information about: " + " ".join(p for p in parts if p)

    async def enrich(self, candidate: CandidateRecord) -> CandidateRecord:
        if not (candidate.name or candidate.platform_username):
            return candidate

        resp = await self.client.post(
            PERPLEXITY_URL,
            json={
                "model": self.model,
                "messages": [
                    {
                        "role": "system",
                        "content": "Summarize a software professional's public work in 2-3 sentences.",
                    },
                    {"role": "user", "content": self.build_query(candidate)},
                ],
                "max_tokens": 300,
                "temperature": 0.2,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        raise_for_status(resp, self.name)
        choices = resp.json().get("choices") or []
        content = ((choices[0].get("message") or {}).get("content") or "").strip() if choices else ""
        if not content:
            return candidate

        found = candidate.model_copy(
            update={"summary": content[:1000], "skills": extract_skills(content)}
        )
        return apply_enrichment(candidate, found)
