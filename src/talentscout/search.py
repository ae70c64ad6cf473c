"""
TalentScout source adapters - shared base, web search, mock, registry.

Every adapter turns one provider's raw data into CandidateRecords. Adapters
raise freely (HTTP errors, rate limits); the pipeline wraps each call in a
timeout and records failures without stopping the session.
"""

from __future__ import annotations

import asyncio
import os
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .models import ALL_PLATFORMS, CandidateRecord, Platform

# Raw candidates kept per source call, bounding downstream oracle volume
RAW_RESULT_CAP = 25

DEFAULT_HTTP_TIMEOUT = 30.0

KNOWN_SKILLS = {
    "python",
    "javascript",
    "typescript",
    "java",
    "go",
    "golang",
    "rust",
    "ruby",
    "php",
    "c#",
    "c++",
    "kotlin",
    "swift",
    "scala",
    "sql",
    "react",
    "vue",
    "angular",
    "node",
    "django",
    "flask",
    "fastapi",
    "rails",
    "spring",
    "aws",
    "gcp",
    "azure",
    "docker",
    "kubernetes",
    "terraform",
    "postgresql",
    "mongodb",
    "redis",
    "graphql",
    "pytorch",
    "tensorflow",
    "pandas",
    "machine-learning",
    "llm",
}


class RateLimitError(Exception):
    """Raised when an API returns 429 Too Many Requests."""

    pass


def extract_skills(*texts: str | None) -> set[str]:
    """Known skills mentioned in free text."""
    words: set[str] = set()
    for text in texts:
        if text:
            words.update(re.findall(r"[a-z0-9+#.-]+", text.lower()))
    words = {w.strip(".-") for w in words}
    return {w for w in words if w in KNOWN_SKILLS}


def truncate_raw(
    candidates: Sequence[CandidateRecord], cap: int = RAW_RESULT_CAP
) -> list[CandidateRecord]:
    """Keep the first `cap` raw candidates (providers return best first)."""
    return list(candidates[:cap])


def raise_for_status(resp: httpx.Response, provider: str) -> None:
    """Raise RateLimitError on 429, httpx.HTTPStatusError on other failures."""
    if resp.status_code == 429:
        retry_after = resp.headers.get("Retry-After", "?")
        raise RateLimitError(f"{provider} rate limited, retry after {retry_after}s")
    resp.raise_for_status()


# =============================================================================
# ADAPTER BASE
# =============================================================================


class SourceAdapter(ABC):
    """One external platform."""

    platform: Platform

    @abstractmethod
    async def search(
        self,
        query: str,
        location: str | None = None,
        constraints: Mapping[str, Any] | None = None,
    ) -> list[CandidateRecord]:
        """Fetch candidate records for `query`. Must be cancellable."""
        pass

    async def aclose(self) -> None:
        """Release network resources."""
        return None


class HttpSourceAdapter(SourceAdapter):
    """Adapter backed by an httpx.AsyncClient (injectable for tests)."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = DEFAULT_HTTP_TIMEOUT):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    @retry(
        retry=retry_if_exception_type(RateLimitError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _get_json(
        self,
        url: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """GET with retry on rate limit."""
        resp = await self.client.get(url, params=params, headers=headers)
        raise_for_status(resp, self.platform)
        return resp.json()

    @retry(
        retry=retry_if_exception_type(RateLimitError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """POST with retry on rate limit."""
        resp = await self.client.post(url, json=payload, headers=headers)
        raise_for_status(resp, self.platform)
        return resp.json()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


# =============================================================================
# WEB SEARCH (Serper)
# =============================================================================

SERPER_URL = "https://google.serper.dev/search"

# Profile-style pages worth turning into candidates
PROFILE_SITES = (
    "github.io",
    "linkedin.com/in",
    "about.me",
    "medium.com/@",
    "portfolio",
)


def name_from_title(title: str) -> str | None:
    """'Jane Doe - Senior Engineer - Acme | LinkedIn' -> 'Jane Doe'."""
    head = re.split(r"\s[-|–·:]\s|\s\(", title, maxsplit=1)[0].strip()
    words = head.split()
    if not 1 < len(words) <= 4:
        return None
    if not all(w[:1].isupper() for w in words):
        return None
    return head


def title_from_result_title(title: str) -> str | None:
    parts = re.split(r"\s[-|–·]\s", title)
    if len(parts) >= 2 and parts[1].strip():
        return parts[1].strip()
    return None


class SerperAdapter(HttpSourceAdapter):
    """Shared Serper plumbing for web-search-backed adapters."""

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        max_results: int = 10,
    ):
        super().__init__(client)
        self.api_key = api_key or os.getenv("SERPER_API_KEY")
        if not self.api_key:
            raise ValueError("SERPER_API_KEY not set")
        self.max_results = max_results

    @classmethod
    def from_env(cls, client: httpx.AsyncClient | None = None) -> SerperAdapter:
        """Create adapter from SERPER_API_KEY (required)."""
        return cls(api_key=os.getenv("SERPER_API_KEY"), client=client)

    async def _organic(self, q: str) -> list[dict[str, Any]]:
        headers = {"X-API-KEY": self.api_key, "Content-Type": "application/json"}
        data = await self._post_json(SERPER_URL, {"q": q, "num": self.max_results}, headers=headers)
        return [item for item in data.get("organic", []) if item.get("link")]


class GoogleSearchAdapter(SerperAdapter):
    """Generic web search for public profile pages."""

    platform: Platform = "google"

    def build_query(self, query: str, location: str | None) -> str:
        # Short queries match profile pages better than full sentences
        short = " ".join(query.split()[:3])
        parts = [short]
        if location:
            parts.append(location)
        parts.append('(resume OR portfolio OR "about me")')
        return " ".join(parts)

    async def search(
        self,
        query: str,
        location: str | None = None,
        constraints: Mapping[str, Any] | None = None,
    ) -> list[CandidateRecord]:
        results = await self._organic(self.build_query(query, location))
        candidates = []
        for item in results:
            name = name_from_title(item.get("title", ""))
            if not name:
                continue
            snippet = item.get("snippet", "")
            candidates.append(
                CandidateRecord(
                    name=name,
                    title=title_from_result_title(item.get("title", "")),
                    summary=snippet or None,
                    location=location,
                    profile_url=item["link"],
                    linkedin_url=item["link"] if "linkedin.com/in" in item["link"] else None,
                    skills=extract_skills(snippet, item.get("title")),
                    source_platform="google",
                    discovery_method="web_search",
                )
            )
        return candidates


# =============================================================================
# MOCK
# =============================================================================


class MockSourceAdapter(SourceAdapter):
    """
    In-memory adapter for tests and offline runs.

    `responses` maps a query to its candidates; queries not in the map get
    `candidates`. `delay` simulates latency; `hang` never resolves; `error`
    is raised on every call.
    """

    def __init__(
        self,
        platform: Platform,
        candidates: Iterable[CandidateRecord] | None = None,
        responses: Mapping[str, Sequence[CandidateRecord]] | None = None,
        delay: float = 0.0,
        hang: bool = False,
        error: Exception | None = None,
    ):
        self.platform = platform
        self.candidates = list(candidates or [])
        self.responses = dict(responses or {})
        self.delay = delay
        self.hang = hang
        self.error = error
        self.queries: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.queries)

    async def search(
        self,
        query: str,
        location: str | None = None,
        constraints: Mapping[str, Any] | None = None,
    ) -> list[CandidateRecord]:
        self.queries.append(query)
        if self.hang:
            await asyncio.Event().wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.responses.get(query, self.candidates))


def sample_candidates(platform: Platform, count: int = 5) -> list[CandidateRecord]:
    """Deterministic demo candidates for `--mock` runs."""
    skills_cycle = [{"python", "django"}, {"javascript", "react"}, {"go", "kubernetes"}]
    return [
        CandidateRecord(
            name=f"Sample {platform.title()} Dev {i}",
            platform_username=f"{platform}_dev_{i}",
            title="Software Engineer",
            location="Remote",
            summary="Builds and maintains backend services and developer tooling in the open.",
            skills=skills_cycle[i % len(skills_cycle)],
            experience_years=float(2 + i),
            metrics={"followers": float(10 * i)},
            source_platform=platform,
            discovery_method="mock",
        )
        for i in range(1, count + 1)
    ]


# =============================================================================
# REGISTRY
# =============================================================================


def get_source_adapter(platform: str, client: httpx.AsyncClient | None = None) -> SourceAdapter:
    """Factory for a real adapter. Raises ValueError for unknown platforms or missing keys."""
    if platform == "github":
        from .github import GitHubAdapter

        return GitHubAdapter.from_env(client=client)
    elif platform == "stackoverflow":
        from .stackoverflow import StackOverflowAdapter

        return StackOverflowAdapter.from_env(client=client)
    elif platform == "linkedin":
        from .linkedin import LinkedInAdapter

        return LinkedInAdapter.from_env()
    elif platform == "devto":
        from .devto import DevToAdapter

        return DevToAdapter.from_env(client=client)
    elif platform == "kaggle":
        from .kaggle import KaggleAdapter

        return KaggleAdapter.from_env(client=client)
    elif platform == "google":
        return GoogleSearchAdapter.from_env(client=client)
    else:
        raise ValueError(f"Unknown source platform: {platform}")


def build_registry(
    platforms: Iterable[str] = ALL_PLATFORMS,
    mock: bool = False,
    client: httpx.AsyncClient | None = None,
) -> dict[Platform, SourceAdapter]:
    """
    Build the adapter registry passed into the pipeline.

    Built once per process and handed to SearchPipeline explicitly.
    """
    registry: dict[Platform, SourceAdapter] = {}
    for platform in dict.fromkeys(platforms):
        if platform not in ALL_PLATFORMS:
            raise ValueError(f"Unknown source platform: {platform}")
        if mock:
            registry[platform] = MockSourceAdapter(platform, sample_candidates(platform))  # type: ignore[arg-type]
        else:
            registry[platform] = get_source_adapter(platform, client=client)  # type: ignore[assignment]
    return registry
