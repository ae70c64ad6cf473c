"""
Dev.to source adapter.

Authors of top recent articles under the query's tags are treated as
candidates; their article reactions stand in for social proof.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from .models import CandidateRecord, Platform
from .search import RAW_RESULT_CAP, HttpSourceAdapter, extract_skills
from .stackoverflow import query_to_tags


@dataclass
class DevToConfig:
    """Configuration for the Dev.to (Forem) API."""

    api_key: str | None = None
    base_url: str = "https://dev.to/api"
    per_page: int = 30
    top_days: int = 7
    max_authors: int = RAW_RESULT_CAP
    concurrency: int = 5


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class DevToAdapter(HttpSourceAdapter):
    """Top article authors by tag."""

    platform: Platform = "devto"

    def __init__(self, config: DevToConfig | None = None, client: httpx.AsyncClient | None = None):
        super().__init__(client)
        self.config = config or DevToConfig()

    @classmethod
    def from_env(cls, client: httpx.AsyncClient | None = None) -> DevToAdapter:
        """Create adapter from environment variables (key optional)."""
        return cls(DevToConfig(api_key=os.getenv("DEVTO_API_KEY")), client=client)

    def _headers(self) -> dict[str, str]:
        return {"api-key": self.config.api_key} if self.config.api_key else {}

    async def articles_for_tag(self, tag: str) -> list[dict[str, Any]]:
        params = {
            "tag": tag.replace(".", "").replace("-", ""),
            "per_page": self.config.per_page,
            "top": self.config.top_days,
        }
        url = f"{self.config.base_url}/articles"
        data = await self._get_json(url, params=params, headers=self._headers())
        return data if isinstance(data, list) else []

    async def get_user(self, username: str) -> dict[str, Any] | None:
        try:
            return await self._get_json(
                f"{self.config.base_url}/users/by_username",
                params={"url": username},
                headers=self._headers(),
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise

    async def search(
        self,
        query: str,
        location: str | None = None,
        constraints: Mapping[str, Any] | None = None,
    ) -> list[CandidateRecord]:
        tags = query_to_tags(query) or ["programming"]
        by_author: dict[str, list[dict[str, Any]]] = {}
        for tag in tags:
            for article in await self.articles_for_tag(tag):
                username = (article.get("user") or {}).get("username")
                if username:
                    by_author.setdefault(username, []).append(article)

        authors = list(by_author)[: self.config.max_authors]
        semaphore = asyncio.Semaphore(self.config.concurrency)

        async def fetch(username: str) -> dict[str, Any] | None:
            async with semaphore:
                return await self.get_user(username)

        users = await asyncio.gather(*(fetch(u) for u in authors))
        return [
            author_to_candidate(username, user or {}, by_author[username])
            for username, user in zip(authors, users, strict=True)
        ]


def author_to_candidate(
    username: str, user: dict[str, Any], articles: list[dict[str, Any]]
) -> CandidateRecord:
    """Convert a Dev.to author and their matching articles to a CandidateRecord."""
    tag_text = " ".join(t for a in articles for t in (a.get("tag_list") or []) if isinstance(t, str))
    titles = " ".join(a.get("title") or "" for a in articles)
    skills = extract_skills(tag_text, titles, user.get("summary"))

    published = [t for t in (_parse_time(a.get("published_at")) for a in articles) if t]
    reactions = sum(int(a.get("public_reactions_count") or 0) for a in articles)
    comments = sum(int(a.get("comments_count") or 0) for a in articles)

    fallback_name = (articles[0].get("user") or {}).get("name") if articles else None
    return CandidateRecord(
        name=user.get("name") or fallback_name or username,
        platform_username=username,
        summary=user.get("summary") or None,
        location=user.get("location") or None,
        profile_url=f"https://dev.to/{username}",
        title="Technical writer / developer",
        skills=skills,
        source_platform="devto",
        discovery_method="tag_top_articles",
        last_active_at=max(published) if published else None,
        metrics={
            "articles": float(len(articles)),
            "reactions": float(reactions),
            "comments": float(comments),
        },
    )
