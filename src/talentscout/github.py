"""
GitHub source adapter.

Uses the GitHub API to:
1. Search users matching the query's skills (and location)
2. Fetch each user's profile
3. Summarize their public repos (languages, stars, last push)
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import BaseModel

from .models import CandidateRecord, Platform
from .scoring import query_terms
from .search import RAW_RESULT_CAP, HttpSourceAdapter, extract_skills


class GitHubRepo(BaseModel):
    """A GitHub repository."""

    name: str
    language: str | None = None
    stargazers_count: int = 0
    forks_count: int = 0
    topics: list[str] = []
    pushed_at: str | None = None
    fork: bool = False


class GitHubProfile(BaseModel):
    """A GitHub user profile."""

    login: str
    html_url: str
    name: str | None = None
    bio: str | None = None
    company: str | None = None
    location: str | None = None
    email: str | None = None
    blog: str | None = None
    public_repos: int = 0
    followers: int = 0
    created_at: str | None = None
    updated_at: str | None = None

    repos: list[GitHubRepo] = []


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class GitHubConfig:
    """Configuration for GitHub API."""

    token: str | None = None
    base_url: str = "https://api.github.com"
    per_page: int = 40
    max_profiles: int = RAW_RESULT_CAP
    concurrency: int = 5


class GitHubAdapter(HttpSourceAdapter):
    """GitHub user search."""

    platform: Platform = "github"

    def __init__(self, config: GitHubConfig | None = None, client: httpx.AsyncClient | None = None):
        super().__init__(client)
        self.config = config or GitHubConfig()

    @classmethod
    def from_env(cls, client: httpx.AsyncClient | None = None) -> GitHubAdapter:
        """Create adapter from environment variables (token optional)."""
        return cls(GitHubConfig(token=os.getenv("GITHUB_TOKEN")), client=client)

    def is_authenticated(self) -> bool:
        """Check if we have a GitHub token."""
        return bool(self.config.token)

    def _headers(self) -> dict[str, str]:
        """Get request headers."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def build_query(self, query: str, location: str | None = None) -> str:
        terms = query_terms(query)[:3]
        q = " ".join(terms) if terms else query
        if location:
            q += f" location:{location.split(',')[0].strip()}"
        return q + " type:user"

    async def search_logins(self, query: str, location: str | None = None) -> list[str]:
        params = {
            "q": self.build_query(query, location),
            "per_page": self.config.per_page,
            "sort": "repositories",
        }
        data = await self._get_json(
            f"{self.config.base_url}/search/users", params=params, headers=self._headers()
        )
        return [item["login"] for item in data.get("items", []) if item.get("login")]

    async def get_profile(self, login: str) -> GitHubProfile | None:
        """Profile plus recent repos; None if the user vanished."""
        try:
            user = await self._get_json(f"{self.config.base_url}/users/{login}", headers=self._headers())
            repos = await self._get_json(
                f"{self.config.base_url}/users/{login}/repos",
                params={"per_page": 30, "sort": "updated"},
                headers=self._headers(),
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        profile = GitHubProfile(**{k: v for k, v in user.items() if k in GitHubProfile.model_fields})
        profile.repos = [
            GitHubRepo(**{k: v for k, v in r.items() if k in GitHubRepo.model_fields})
            for r in repos
            if isinstance(r, dict)
        ]
        return profile

    async def search(
        self,
        query: str,
        location: str | None = None,
        constraints: Mapping[str, Any] | None = None,
    ) -> list[CandidateRecord]:
        logins = (await self.search_logins(query, location))[: self.config.max_profiles]
        semaphore = asyncio.Semaphore(self.config.concurrency)

        async def fetch(login: str) -> GitHubProfile | None:
            async with semaphore:
                return await self.get_profile(login)

        profiles = await asyncio.gather(*(fetch(login) for login in logins))
        return [profile_to_candidate(p) for p in profiles if p is not None]


def profile_to_candidate(profile: GitHubProfile) -> CandidateRecord:
    """Convert a GitHub profile to a CandidateRecord."""
    own_repos = [r for r in profile.repos if not r.fork]
    skills = {r.language.lower() for r in own_repos if r.language}
    for repo in own_repos:
        skills |= extract_skills(" ".join(repo.topics))
    skills |= extract_skills(profile.bio)

    stars = sum(r.stargazers_count for r in own_repos)
    forks = sum(r.forks_count for r in own_repos)

    created = _parse_time(profile.created_at)
    years = 0.0
    if created:
        years = min((datetime.now(UTC) - created).days / 365, 20.0)

    pushes = [t for t in (_parse_time(r.pushed_at) for r in profile.repos) if t]
    last_active = max(pushes) if pushes else _parse_time(profile.updated_at)

    title = None
    if profile.bio:
        title = profile.bio.split(".")[0].strip()[:80] or None

    return CandidateRecord(
        name=profile.name or profile.login,
        platform_username=profile.login,
        email=profile.email,
        title=title,
        summary=profile.bio,
        location=profile.location,
        company=(profile.company or "").lstrip("@").strip() or None,
        profile_url=profile.html_url,
        skills=skills,
        experience_years=round(years, 1),
        source_platform="github",
        discovery_method="github_user_search",
        last_active_at=last_active,
        metrics={
            "followers": float(profile.followers),
            "public_repos": float(profile.public_repos),
            "stars": float(stars),
            "forks": float(forks),
        },
    )
