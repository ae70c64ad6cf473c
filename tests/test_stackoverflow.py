"""Tests for the Stack Overflow source adapter."""

import httpx

from talentscout.stackoverflow import (
    StackOverflowAdapter,
    StackOverflowConfig,
    query_to_tags,
    user_to_candidate,
)

ANSWERER = {
    "user": {
        "user_id": 7,
        "display_name": "Ana &amp; Bo",
        "reputation": 5000,
        "link": "https://stackoverflow.com/users/7/ana",
        "user_type": "registered",
    },
    "post_count": 40,
    "score": 300,
}

GHOST = {"user": {"user_id": 9, "user_type": "does_not_exist"}, "post_count": 1, "score": 1}

USER_DETAIL = {
    "user_id": 7,
    "display_name": "Ana &amp; Bo",
    "reputation": 5200,
    "location": "Berlin, Germany",
    "link": "https://stackoverflow.com/users/7/ana",
    "creation_date": 1420070400,  # 2015-01-01
    "last_access_date": 1767225600,  # 2026-01-01
}


def mock_client(requests: list[httpx.Request]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/2.3/tags/python/top-answerers/all_time":
            return httpx.Response(200, json={"items": [ANSWERER, GHOST]})
        if request.url.path == "/2.3/users/7":
            return httpx.Response(200, json={"items": [USER_DETAIL]})
        return httpx.Response(404, json={})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestQueryToTags:
    """Tests for tag extraction."""

    def test_known_skills(self) -> None:
        """Should pick known technologies in order."""
        assert query_to_tags("python django developer") == ["python", "django"]

    def test_aliases(self) -> None:
        """Should map common aliases to real tags."""
        assert query_to_tags("golang k8s expert") == ["go", "kubernetes"]

    def test_unknown_falls_back_to_first_term(self) -> None:
        """Should use the first term when nothing is recognized."""
        assert query_to_tags("cobol wizard") == ["cobol"]

    def test_limit(self) -> None:
        """Should cap the number of tags."""
        assert len(query_to_tags("python java rust go", limit=2)) == 2


class TestStackOverflowAdapter:
    """Tests for StackOverflowAdapter against a mock transport."""

    async def test_search(self) -> None:
        """Should load top answerers and enrich them with user details."""
        requests: list[httpx.Request] = []
        adapter = StackOverflowAdapter(StackOverflowConfig(key="k"), client=mock_client(requests))
        candidates = await adapter.search("python developer")

        assert len(candidates) == 1
        c = candidates[0]
        assert c.name == "Ana & Bo"
        assert c.platform_username == "7"
        assert c.location == "Berlin, Germany"
        assert c.metrics["reputation"] == 5200
        assert c.metrics["answers"] == 40
        assert c.skills == {"python"}
        assert c.risk_flags == []
        assert all(r.url.params["key"] == "k" for r in requests)
        assert all(r.url.params["site"] == "stackoverflow" for r in requests)

    async def test_location_mismatch_flagged(self) -> None:
        """Should keep but flag answerers outside the requested location."""
        adapter = StackOverflowAdapter(client=mock_client([]))
        candidates = await adapter.search("python", location="Lisbon")
        assert candidates[0].risk_flags == ["location_mismatch"]


class TestUserToCandidate:
    """Tests for user_to_candidate."""

    def test_conversion(self) -> None:
        """Should convert dates and counters."""
        c = user_to_candidate(USER_DETAIL, ANSWERER, {"python", "django"})
        assert c.title == "django/python expert"
        assert c.last_active_at.year == 2026
        assert c.experience_years > 10
        assert c.discovery_method == "tag_top_answerers"
