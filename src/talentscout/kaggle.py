"""
Kaggle source adapter.

Kaggle has no public user-search API, so profiles are discovered through web
search restricted to kaggle.com profile pages.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from .models import CandidateRecord, Platform
from .search import SerperAdapter, extract_skills, name_from_title

# Path segments that are site sections, not usernames
NON_PROFILE_PATHS = {
    "competitions",
    "datasets",
    "code",
    "discussions",
    "discussion",
    "learn",
    "models",
    "docs",
    "rankings",
    "c",
    "t",
    "general",
    "search",
}

# Progression tiers mapped onto a Stack Overflow-like reputation scale
KAGGLE_TIER_REPUTATION = {
    "grandmaster": 5000.0,
    "master": 3000.0,
    "expert": 1500.0,
    "contributor": 500.0,
    "novice": 100.0,
}

_PROFILE_RE = re.compile(r"^https?://(?:www\.)?kaggle\.com/([A-Za-z0-9_-]+)/?$")


def kaggle_username(url: str) -> str | None:
    """Username from a kaggle.com profile URL, None for other pages."""
    match = _PROFILE_RE.match(url)
    if not match or match.group(1).lower() in NON_PROFILE_PATHS:
        return None
    return match.group(1)


def kaggle_tier(text: str) -> str | None:
    lowered = text.lower()
    # "grandmaster" contains "master"; check longest first
    for tier in sorted(KAGGLE_TIER_REPUTATION, key=len, reverse=True):
        if tier in lowered:
            return tier
    return None


class KaggleAdapter(SerperAdapter):
    """Kaggle profiles via web search."""

    platform: Platform = "kaggle"

    def build_query(self, query: str, location: str | None) -> str:
        q = f"site:kaggle.com {' '.join(query.split()[:4])}"
        if location:
            q += f" {location}"
        return q

    async def search(
        self,
        query: str,
        location: str | None = None,
        constraints: Mapping[str, Any] | None = None,
    ) -> list[CandidateRecord]:
        candidates = []
        for item in await self._organic(self.build_query(query, location)):
            username = kaggle_username(item["link"])
            if not username:
                continue
            title = item.get("title", "")
            snippet = item.get("snippet", "")
            tier = kaggle_tier(f"{title} {snippet}")
            metrics = {"reputation": KAGGLE_TIER_REPUTATION[tier]} if tier else {}
            candidates.append(
                CandidateRecord(
                    name=name_from_title(title) or username,
                    platform_username=username,
                    title=f"Kaggle {tier.title()}" if tier else "Kaggle member",
                    summary=snippet or None,
                    profile_url=item["link"],
                    skills=extract_skills(snippet, title) | {"machine-learning"},
                    source_platform="kaggle",
                    discovery_method="web_search_kaggle",
                    metrics=metrics,
                )
            )
        return candidates
