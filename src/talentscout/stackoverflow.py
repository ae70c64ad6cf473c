"""
Stack Overflow source adapter (Stack Exchange API 2.3).

Finds the all-time top answerers for the query's technology tags, then
loads their user records for location and activity.
"""

from __future__ import annotations

import html
import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from .models import CandidateRecord, Platform
from .scoring import query_terms
from .search import KNOWN_SKILLS, HttpSourceAdapter

# Query words that are not Stack Overflow tags as-is
TAG_ALIASES = {
    "golang": "go",
    "node": "node.js",
    "nodejs": "node.js",
    "postgres": "postgresql",
    "k8s": "kubernetes",
    "ml": "machine-learning",
    "js": "javascript",
    "ts": "typescript",
}


def query_to_tags(query: str, limit: int = 2) -> list[str]:
    """Technology tags mentioned in the query; falls back to the first term."""
    terms = [TAG_ALIASES.get(t, t) for t in query_terms(query)]
    tags = [t for t in terms if t in KNOWN_SKILLS or t in TAG_ALIASES.values()]
    if not tags and terms:
        tags = terms[:1]
    return list(dict.fromkeys(tags))[:limit]


@dataclass
class StackOverflowConfig:
    """Configuration for the Stack Exchange API."""

    key: str | None = None
    base_url: str = "https://api.stackexchange.com/2.3"
    site: str = "stackoverflow"
    page_size: int = 30


class StackOverflowAdapter(HttpSourceAdapter):
    """Top answerers by tag."""

    platform: Platform = "stackoverflow"

    def __init__(
        self, config: StackOverflowConfig | None = None, client: httpx.AsyncClient | None = None
    ):
        super().__init__(client)
        self.config = config or StackOverflowConfig()

    @classmethod
    def from_env(cls, client: httpx.AsyncClient | None = None) -> StackOverflowAdapter:
        """Create adapter from environment variables (key optional, raises quota)."""
        return cls(StackOverflowConfig(key=os.getenv("STACKEXCHANGE_KEY")), client=client)

    def _params(self, **extra: Any) -> dict[str, Any]:
        params: dict[str, Any] = {"site": self.config.site, **extra}
        if self.config.key:
            params["key"] = self.config.key
        return params

    async def top_answerers(self, tag: str) -> list[dict[str, Any]]:
        data = await self._get_json(
            f"{self.config.base_url}/tags/{tag}/top-answerers/all_time",
            params=self._params(pagesize=self.config.page_size),
        )
        return data.get("items", [])

    async def get_users(self, user_ids: list[int]) -> dict[int, dict[str, Any]]:
        if not user_ids:
            return {}
        ids = ";".join(str(u) for u in user_ids[:100])
        data = await self._get_json(
            f"{self.config.base_url}/users/{ids}",
            params=self._params(pagesize=100),
        )
        return {u["user_id"]: u for u in data.get("items", []) if "user_id" in u}

    async def search(
        self,
        query: str,
        location: str | None = None,
        constraints: Mapping[str, Any] | None = None,
    ) -> list[CandidateRecord]:
        answerers: dict[int, dict[str, Any]] = {}
        tags_by_user: dict[int, set[str]] = {}
        for tag in query_to_tags(query):
            for item in await self.top_answerers(tag):
                user = item.get("user") or {}
                user_id = user.get("user_id")
                if user_id is None or user.get("user_type") == "does_not_exist":
                    continue
                answerers.setdefault(user_id, {**item, "user": user})
                tags_by_user.setdefault(user_id, set()).add(tag)

        users = await self.get_users(list(answerers))
        candidates = []
        for user_id, item in answerers.items():
            details = users.get(user_id, item["user"])
            candidate = user_to_candidate(details, item, tags_by_user[user_id])
            if location and candidate.location and location.lower() not in candidate.location.lower():
                candidate.risk_flags.append("location_mismatch")
            candidates.append(candidate)
        return candidates


def _from_epoch(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


def user_to_candidate(user: dict[str, Any], answerer: dict[str, Any], tags: set[str]) -> CandidateRecord:
    """Convert a Stack Exchange user (plus its top-answerer entry) to a CandidateRecord."""
    reputation = float(user.get("reputation") or 0)
    created = _from_epoch(user.get("creation_date"))
    years = 0.0
    if created:
        years = min((datetime.now(UTC) - created).days / 365, 20.0)

    name = html.unescape(user.get("display_name") or "")
    return CandidateRecord(
        name=name or None,
        platform_username=str(user["user_id"]),
        location=html.unescape(user["location"]) if user.get("location") else None,
        profile_url=user.get("link"),
        title=f"{'/'.join(sorted(tags))} expert" if tags else None,
        skills=set(tags),
        experience_years=round(years, 1),
        source_platform="stackoverflow",
        discovery_method="tag_top_answerers",
        last_active_at=_from_epoch(user.get("last_access_date")),
        metrics={
            "reputation": reputation,
            "answers": float(answerer.get("post_count") or 0),
            "answer_score": float(answerer.get("score") or 0),
        },
    )
