"""
LinkedIn source adapter via Apify actors.

The Apify client is synchronous, so each actor run happens in a worker
thread. Cancelling the awaiting task abandons the run on our side; the
actor itself is bounded by `timeout_secs`.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from .models import CandidateRecord, Platform
from .search import RAW_RESULT_CAP, SourceAdapter, extract_skills


class LinkedInProfile(BaseModel):
    """Normalized LinkedIn profile data."""

    url: str
    name: str | None = None
    headline: str | None = None
    location: str | None = None
    current_company: str | None = None
    current_title: str | None = None
    years_experience: float | None = None
    experience_summary: str | None = None
    skills: list[str] = []
    email: str | None = None


@dataclass
class LinkedInConfig:
    """Configuration for LinkedIn adapter."""

    api_key: str
    # "username/actor-name" or a raw actor ID
    search_actor: str = "harvestapi/linkedin-profile-search"
    max_results_per_search: int = RAW_RESULT_CAP
    timeout_secs: int = 120
    scraper_mode: str = "Short"


class LinkedInAdapter(SourceAdapter):
    """
    LinkedIn profile search using an Apify actor.

    Usage:
        adapter = LinkedInAdapter.from_env()
        candidates = await adapter.search("python backend developer", "Berlin")
    """

    platform: Platform = "linkedin"

    def __init__(self, config: LinkedInConfig):
        self.config = config
        self._client = None

    @classmethod
    def from_env(cls) -> LinkedInAdapter:
        """Create adapter from environment variables.

        Required:
            APIFY_API_KEY: Your Apify API token

        Optional:
            APIFY_LINKEDIN_SEARCH_ACTOR: Actor for profile search
        """
        api_key = os.getenv("APIFY_API_KEY")
        if not api_key:
            raise ValueError("APIFY_API_KEY not set in environment")

        config = LinkedInConfig(api_key=api_key)
        actor = os.getenv("APIFY_LINKEDIN_SEARCH_ACTOR")
        if actor:
            config.search_actor = actor
        return cls(config)

    @property
    def client(self) -> Any:
        """Lazy-load Apify client."""
        if self._client is None:
            from apify_client import ApifyClient

            self._client = ApifyClient(self.config.api_key)
        return self._client

    def build_run_input(self, query: str, location: str | None) -> dict[str, Any]:
        run_input: dict[str, Any] = {
            "profileScraperMode": self.config.scraper_mode,
            "maxItems": self.config.max_results_per_search,
            "searchQuery": query,
        }
        if location:
            run_input["locations"] = [location]
        return run_input

    def _run_search(self, run_input: dict[str, Any]) -> list[dict[str, Any]]:
        """Blocking actor run; returns raw dataset items."""
        run = self.client.actor(self.config.search_actor).call(
            run_input=run_input,
            timeout_secs=self.config.timeout_secs,
        )
        if run is None:
            raise RuntimeError(f"Apify actor {self.config.search_actor} returned no run")
        return list(self.client.dataset(run["defaultDatasetId"]).iterate_items())

    async def search(
        self,
        query: str,
        location: str | None = None,
        constraints: Mapping[str, Any] | None = None,
    ) -> list[CandidateRecord]:
        items = await asyncio.to_thread(self._run_search, self.build_run_input(query, location))
        profiles = [p for p in (parse_search_result(item) for item in items) if p is not None]
        return [linkedin_profile_to_candidate(p) for p in profiles]


def _calculate_years_experience(experience: list[dict]) -> float | None:
    """Estimate years of professional experience from positions."""
    if not experience:
        return None

    total_years = 0.0
    for pos in experience:
        duration = pos.get("duration") or pos.get("durationInMonths")
        if isinstance(duration, int):
            total_years += duration / 12
        elif isinstance(duration, str) and "yr" in duration.lower():
            # "2 yrs 3 mos"
            try:
                total_years += int(duration.split()[0])
            except (ValueError, IndexError):
                total_years += 2
        else:
            total_years += 2  # default estimate per position

    return total_years if total_years > 0 else None


def _summarize_experience(experience: list[dict]) -> str | None:
    """Brief 'Title at Company; ...' summary of the top positions."""
    if not experience:
        return None

    summaries = []
    for pos in experience[:3]:
        title = pos.get("title") or pos.get("position")
        company = pos.get("companyName") or pos.get("company")
        if title and company:
            summaries.append(f"{title} at {company}")
        elif title:
            summaries.append(title)

    return "; ".join(summaries) if summaries else None


def parse_search_result(item: dict) -> LinkedInProfile | None:
    """Parse one actor dataset item (HarvestAPI format). None if it has no URL."""
    url = item.get("linkedinUrl") or item.get("profileUrl") or item.get("url")
    if not url:
        return None

    name = f"{item.get('firstName', '')} {item.get('lastName', '')}".strip() or item.get("name")

    location_data = item.get("location")
    if isinstance(location_data, dict):
        location = location_data.get("linkedinText") or location_data.get("text")
    else:
        location = location_data

    experience = item.get("experience") or []
    current_company = None
    current_title = None
    positions = item.get("currentPosition") or []
    if positions:
        current_company = positions[0].get("companyName")
    if experience:
        current_title = experience[0].get("position") or experience[0].get("title")
        current_company = current_company or experience[0].get("companyName")

    skills = [s.get("name", "") if isinstance(s, dict) else str(s) for s in item.get("skills") or []]

    return LinkedInProfile(
        url=url,
        name=name,
        headline=item.get("headline"),
        location=location,
        current_company=current_company,
        current_title=current_title,
        years_experience=_calculate_years_experience(experience),
        experience_summary=_summarize_experience(experience),
        skills=[s for s in skills if s],
        email=item.get("email"),
    )


def linkedin_profile_to_candidate(profile: LinkedInProfile) -> CandidateRecord:
    """Convert a LinkedIn profile to a CandidateRecord."""
    username = profile.url.rstrip("/").split("/in/")[-1] if "/in/" in profile.url else None
    skills = {s.lower() for s in profile.skills}
    skills |= extract_skills(profile.headline, profile.experience_summary)

    summary_parts = [p for p in (profile.headline, profile.experience_summary) if p]
    return CandidateRecord(
        name=profile.name,
        platform_username=username,
        email=profile.email,
        title=profile.current_title or profile.headline,
        summary=" | ".join(summary_parts) or None,
        location=profile.location,
        company=profile.current_company,
        profile_url=profile.url,
        linkedin_url=profile.url,
        skills=skills,
        experience_years=profile.years_experience or 0.0,
        source_platform="linkedin",
        discovery_method="apify_profile_search",
    )
