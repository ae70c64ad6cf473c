"""Tests for the Dev.to source adapter."""

import httpx
import pytest

from talentscout.devto import DevToAdapter, author_to_candidate

ARTICLES = [
    {
        "title": "Async Python tips",
        "tag_list": ["python", "fastapi"],
        "user": {"username": "ann", "name": "Ann"},
        "public_reactions_count": 50,
        "comments_count": 5,
        "published_at": "2026-01-02T00:00:00Z",
    },
    {
        "title": "More Python",
        "tag_list": ["python"],
        "user": {"username": "ann", "name": "Ann"},
        "public_reactions_count": 10,
        "comments_count": 1,
        "published_at": "2026-02-02T00:00:00Z",
    },
    {
        "title": "Hello",
        "tag_list": ["python"],
        "user": {"username": "bob", "name": "Bob B"},
        "public_reactions_count": 1,
        "comments_count": 0,
        "published_at": "2025-12-01T00:00:00Z",
    },
]


def mock_client(requests: list[httpx.Request]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/api/articles":
            return httpx.Response(200, json=ARTICLES)
        if request.url.path == "/api/users/by_username":
            if request.url.params["url"] == "ann":
                return httpx.Response(
                    200, json={"name": "Ann Lee", "summary": "Rust and python dev", "location": "Lisbon"}
                )
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(500)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDevToAdapter:
    """Tests for DevToAdapter against a mock transport."""

    async def test_search_groups_by_author(self) -> None:
        """Should produce one candidate per author."""
        requests: list[httpx.Request] = []
        adapter = DevToAdapter(client=mock_client(requests))
        candidates = {c.platform_username: c for c in await adapter.search("python developer")}

        assert set(candidates) == {"ann", "bob"}
        ann = candidates["ann"]
        assert ann.name == "Ann Lee"
        assert ann.location == "Lisbon"
        assert ann.metrics == {"articles": 2.0, "reactions": 60.0, "comments": 6.0}
        assert ann.skills == {"python", "fastapi", "rust"}
        assert ann.last_active_at.month == 2
        assert requests[0].url.params["tag"] == "python"

    async def test_missing_user_falls_back_to_article_author(self) -> None:
        """Should use the article's author name when the user lookup 404s."""
        adapter = DevToAdapter(client=mock_client([]))
        bob = next(c for c in await adapter.search("python") if c.platform_username == "bob")
        assert bob.name == "Bob B"
        assert bob.profile_url == "https://dev.to/bob"

    def test_author_without_articles(self) -> None:
        """Should still build a record from the username alone."""
        c = author_to_candidate("solo", {}, [])
        assert c.name == "solo"
        assert c.metrics["articles"] == 0

    async def test_api_key_header(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should send the api-key header when DEVTO_API_KEY is set."""
        monkeypatch.setenv("DEVTO_API_KEY", "forem-key")
        requests: list[httpx.Request] = []
        adapter = DevToAdapter.from_env(client=mock_client(requests))
        await adapter.search("python")
        assert requests[0].headers["api-key"] == "forem-key"
