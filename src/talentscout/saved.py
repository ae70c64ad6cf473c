"""
TalentScout saved searches - store and rerun queries reproducibly.

Saved searches are YAML files in `searches/` that define:
- query: The search text
- location: Optional location filter
- sources: Which platforms to query
- time_budget_seconds / minimum_results: Session tuning
"""

from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .models import ALL_PLATFORMS, Platform, Tier


class SavedSearch(BaseModel):
    """A saved query configuration."""

    model_config = ConfigDict(extra="forbid")

    # Metadata
    slug: str = Field(..., min_length=1, description="Unique identifier (filename stem)")
    name: str = Field(default="", description="Human-readable name")
    description: str = Field(default="")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    # Core
    query: str = Field(..., min_length=1, description="The search query")
    location: str | None = None
    sources: list[Platform] = Field(default_factory=lambda: list(ALL_PLATFORMS), min_length=1)

    # Session tuning
    time_budget_seconds: float = Field(default=60.0, ge=30, le=120)
    minimum_results: int = Field(default=10, ge=0)
    minimum_tier: Tier = "bronze"


def get_searches_dir(base: Path | None = None) -> Path:
    """Directory holding saved searches (default: ./searches)."""
    return (base or Path.cwd()) / "searches"


def load_search(slug: str, base: Path | None = None) -> SavedSearch:
    """Load a saved search by slug.

    Raises:
        FileNotFoundError: If it doesn't exist.
        ValueError: If the file is invalid.
    """
    path = get_searches_dir(base) / f"{slug}.yml"
    if not path.exists():
        raise FileNotFoundError(f"Saved search not found: {slug}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    # Filename wins over any slug inside the file
    data["slug"] = slug
    return SavedSearch(**data)


def list_searches(base: Path | None = None) -> list[SavedSearch]:
    """All valid saved searches, sorted by slug. Invalid files are skipped."""
    searches_dir = get_searches_dir(base)
    if not searches_dir.exists():
        return []

    searches = []
    for path in searches_dir.glob("*.yml"):
        try:
            searches.append(load_search(path.stem, base))
        except (ValueError, yaml.YAMLError):
            continue
    return sorted(searches, key=lambda s: s.slug)


def save_search(search: SavedSearch, base: Path | None = None) -> Path:
    """Write a saved search to disk and return its path."""
    searches_dir = get_searches_dir(base)
    searches_dir.mkdir(parents=True, exist_ok=True)
    path = searches_dir / f"{search.slug}.yml"

    data = search.model_dump(mode="json", exclude_none=True)
    data["updated_at"] = datetime.now().isoformat()

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return path


def delete_search(slug: str, base: Path | None = None) -> bool:
    """Delete a saved search. True if it existed."""
    path = get_searches_dir(base) / f"{slug}.yml"
    if path.exists():
        path.unlink()
        return True
    return False


def saved_search_to_kwargs(search: SavedSearch) -> dict[str, Any]:
    """Keyword arguments for run_search / search_sync."""
    return {
        "query": search.query,
        "sources": list(search.sources),
        "location": search.location,
        "time_budget_seconds": search.time_budget_seconds,
        "minimum_results": search.minimum_results,
        "minimum_tier": search.minimum_tier,
    }
