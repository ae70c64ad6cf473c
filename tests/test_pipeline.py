"""Tests for the search pipeline (no network; fake oracle and mock sources)."""

import time

import pytest
from conftest import FakeOracle, make_candidate

from talentscout.budget import BudgetLimits, PerformanceStore
from talentscout.enrichment import Enricher
from talentscout.errors import MalformedInput
from talentscout.logger import ProgressLogger
from talentscout.models import CandidateRecord, DimensionScores, SearchSession, Verdict
from talentscout.pipeline import (
    SearchPipeline,
    run_search,
    search_sync,
    validate_session_input,
)
from talentscout.quality import QualityConfig
from talentscout.search import MockSourceAdapter

QUERY = "senior python backend developer remote"
GOOD_DIMS = DimensionScores(
    skill_match=80, experience=70, reputation=60, freshness=70, social_proof=50
)


def quiet_logger() -> ProgressLogger:
    return ProgressLogger("test", quiet=True)


def github_batch(start: int, count: int) -> list[CandidateRecord]:
    return [
        make_candidate(platform_username=f"gh{i}", name=f"Dev {i}")
        for i in range(start, start + count)
    ]


def session(sources: list[str], budget: float = 40, tier: str = "bronze") -> SearchSession:
    return SearchSession(
        session_id="20260101_000000_search_test01",
        query_text=QUERY,
        requested_sources=sources,
        time_budget_seconds=budget,
        minimum_tier=tier,
    )


def scenario_registry(retry_extra: int) -> tuple[dict, FakeOracle]:
    """GitHub: 12 raw / 8 valid. Stack Overflow: 5 raw / 3 valid but thin profiles."""
    rejected = [make_candidate(platform_username=f"spam{i}", name=f"Spam {i}") for i in range(4)]
    github_first = github_batch(0, 8) + rejected
    github_retry = github_batch(0, 8 + retry_extra) + rejected
    so_raw = [
        CandidateRecord(name=f"SO User {i}", platform_username=str(1000 + i), source_platform="stackoverflow")
        for i in range(5)
    ]

    oracle = FakeOracle(
        verdicts={
            **{f"spam{i}": Verdict(is_valid=False, confidence=0.9, reason="not a person") for i in range(4)},
            "1003": Verdict(is_valid=False, confidence=0.9),
            "1004": Verdict(is_valid=False, confidence=0.9),
        },
        default=Verdict(is_valid=True, confidence=0.9, dimension_scores=GOOD_DIMS),
    )
    registry = {
        "github": MockSourceAdapter(
            "github",
            responses={QUERY: github_first, "python backend developer remote": github_retry},
            candidates=github_first,
        ),
        "stackoverflow": MockSourceAdapter("stackoverflow", so_raw),
    }
    return registry, oracle


class TestValidateSessionInput:
    """Tests for the hard-rejection entry check."""

    def test_valid_input(self) -> None:
        """Test that good input builds a session."""
        s = validate_session_input("  python  ", ["github"], location="Berlin")
        assert s.query_text == "python"
        assert s.location_filter == "Berlin"
        assert "_search_" in s.session_id

    @pytest.mark.parametrize(
        "query,sources",
        [
            ("", ["github"]),
            ("   ", ["github"]),
            (None, ["github"]),
            ("python", []),
            ("python", ["myspace"]),
        ],
    )
    def test_malformed(self, query, sources) -> None:
        """Test rejected queries and source lists."""
        with pytest.raises(MalformedInput):
            validate_session_input(query, sources)

    def test_bad_budget(self) -> None:
        """Test that a non-numeric budget is malformed."""
        with pytest.raises(MalformedInput):
            validate_session_input("python", ["github"], time_budget_seconds=float("nan"))
        with pytest.raises(MalformedInput):
            validate_session_input("python", ["github"], time_budget_seconds="soon")

    def test_bad_tier(self) -> None:
        """Test that an unknown tier is malformed."""
        with pytest.raises(MalformedInput):
            validate_session_input("python", ["github"], minimum_tier="platinum")

    def test_unregistered_source(self) -> None:
        """Test that a source with no adapter is malformed."""
        registry = {"github": MockSourceAdapter("github")}
        with pytest.raises(MalformedInput):
            validate_session_input("python", ["github", "devto"], registry=registry)

    async def test_rejected_before_any_source_runs(self) -> None:
        """Test that malformed input never reaches an adapter."""
        adapter = MockSourceAdapter("github", [make_candidate()])
        with pytest.raises(MalformedInput):
            await run_search("", sources=["github"], registry={"github": adapter})
        assert adapter.call_count == 0


class TestSearchPipeline:
    """End-to-end pipeline behavior."""

    async def test_scenario_retry_meets_guarantee(self) -> None:
        """Test one broadening retry that finds the two missing candidates."""
        registry, oracle = scenario_registry(retry_extra=2)
        pipeline = SearchPipeline(
            registry, oracle=oracle, quality=QualityConfig(minimum_results=10), logger=quiet_logger()
        )
        result = await pipeline.run(session(["github", "stackoverflow"]))
        report = result.metadata.quality_report

        assert report.strategies_applied == ["broadening"]
        assert report.strategy_used == "fallback_success"
        assert report.guarantee_met
        assert len(result.candidates) >= 10
        assert result.metadata.completion_rate == 1.0
        assert not result.metadata.is_partial
        assert result.metadata.sources_used == ["github", "stackoverflow"]
        assert registry["github"].queries == [QUERY, "python backend developer remote"]

        scores = [c.overall_score for c in result.candidates]
        assert scores == sorted(scores, reverse=True)
        assert all(c.tier is not None for c in result.candidates)
        keys = [(c.source_platform, c.platform_username) for c in result.candidates]
        assert len(keys) == len(set(keys))

    async def test_scenario_retry_falls_short(self) -> None:
        """Test that retries yielding nothing new degrade with a compromise flag."""
        registry, oracle = scenario_registry(retry_extra=0)
        pipeline = SearchPipeline(
            registry, oracle=oracle, quality=QualityConfig(minimum_results=10), logger=quiet_logger()
        )
        result = await pipeline.run(session(["github", "stackoverflow"]))
        report = result.metadata.quality_report

        assert report.strategies_applied[0] == "broadening"
        assert not report.guarantee_met
        assert report.quality_compromise
        assert report.strategy_used == "relaxed_criteria"
        # 8 GitHub + 3 Stack Overflow survive validation
        assert len(result.candidates) == 11
        assert result.metadata.dropped_candidates >= 6
        assert any(e.startswith("quality target unmet") for e in result.metadata.errors)

    async def test_hanging_source_respects_deadline(self) -> None:
        """Test that a source that never resolves cannot hold the session past its budget."""
        limits = BudgetLimits(
            min_budget_seconds=0.2,
            max_budget_seconds=0.5,
            min_timeout_ms=50,
            max_timeout_ms=200,
            near_exhaustion_ratio=0,
            near_exhaustion_ms=0,
        )
        registry = {
            "github": MockSourceAdapter("github", github_batch(0, 3)),
            "linkedin": MockSourceAdapter("linkedin", hang=True),
        }
        pipeline = SearchPipeline(registry, limits=limits, logger=quiet_logger())

        start = time.monotonic()
        result = await pipeline.run(session(["github", "linkedin"], budget=30))
        elapsed = time.monotonic() - start

        assert elapsed < 2.0
        assert "linkedin" not in result.metadata.sources_used
        assert "github" in result.metadata.sources_used
        assert result.metadata.is_partial
        failed = [o for o in result.metadata.source_outcomes if o.platform == "linkedin"]
        assert failed and not failed[0].success
        assert "timeout" in (failed[0].error or "")
        assert len(result.candidates) == 3

    async def test_failing_source_recorded(self) -> None:
        """Test that an adapter exception is recorded, not raised."""
        registry = {
            "github": MockSourceAdapter("github", github_batch(0, 2)),
            "devto": MockSourceAdapter("devto", error=RuntimeError("boom")),
        }
        pipeline = SearchPipeline(
            registry, quality=QualityConfig(minimum_results=1), logger=quiet_logger()
        )
        result = await pipeline.run(session(["github", "devto"]))

        assert result.metadata.sources_used == ["github"]
        assert result.metadata.completion_rate == 0.5
        assert result.metadata.is_partial
        assert "devto: RuntimeError: boom" in result.metadata.errors
        assert pipeline.performance.get("devto").success_rate == 0.0

    async def test_low_confidence_dropped_for_tier(self) -> None:
        """Test that the validation floor follows the requested tier."""
        registry = {"github": MockSourceAdapter("github", github_batch(0, 3))}
        oracle = FakeOracle(default=Verdict(is_valid=True, confidence=0.4))

        bronze = await SearchPipeline(registry, oracle=oracle, logger=quiet_logger()).run(
            session(["github"], tier="bronze")
        )
        silver = await SearchPipeline(registry, oracle=oracle, logger=quiet_logger()).run(
            session(["github"], tier="silver")
        )
        assert bronze.metadata.dropped_candidates == 0
        assert silver.metadata.dropped_candidates > 0
        assert silver.candidates == []

    async def test_oracle_errors_keep_candidate(self) -> None:
        """Test that a failing oracle degrades to a neutral verdict."""

        class BrokenOracle(FakeOracle):
            async def validate(self, candidate, criteria, platform) -> Verdict:
                raise ConnectionError("oracle down")

        registry = {"github": MockSourceAdapter("github", github_batch(0, 2))}
        pipeline = SearchPipeline(
            registry,
            oracle=BrokenOracle(),
            quality=QualityConfig(minimum_results=1),
            logger=quiet_logger(),
        )
        result = await pipeline.run(session(["github"]))
        assert len(result.candidates) == 2
        assert all(c.validation_confidence == 0.5 for c in result.candidates)

    async def test_gold_tier_keeps_candidates_without_oracle(self) -> None:
        """Test that the floor is not applied to neutral verdicts when no oracle answers."""

        class BrokenOracle(FakeOracle):
            async def validate(self, candidate, criteria, platform) -> Verdict:
                raise ConnectionError("oracle down")

        registry = {"github": MockSourceAdapter("github", github_batch(0, 2))}
        for oracle in (None, BrokenOracle()):
            pipeline = SearchPipeline(
                registry,
                oracle=oracle,
                quality=QualityConfig(minimum_results=1, max_retries=0),
                logger=quiet_logger(),
            )
            result = await pipeline.run(session(["github"], tier="gold"))
            assert result.metadata.dropped_candidates == 0
            assert len(result.candidates) == 2

    async def test_enrichment_additive_and_failure_tolerant(self) -> None:
        """Test that one enricher fills gaps while a failing one is skipped."""

        class EmailEnricher(Enricher):
            name = "email"

            async def enrich(self, candidate):
                return candidate.model_copy(update={"email": f"{candidate.platform_username}@mail.dev"})

        class BrokenEnricher(Enricher):
            name = "broken"

            async def enrich(self, candidate):
                raise RuntimeError("quota")

        registry = {"github": MockSourceAdapter("github", github_batch(0, 2))}
        pipeline = SearchPipeline(
            registry,
            enrichers=[BrokenEnricher(), EmailEnricher()],
            quality=QualityConfig(minimum_results=1),
            logger=quiet_logger(),
        )
        result = await pipeline.run(session(["github"]))
        assert sorted(c.email for c in result.candidates) == ["gh0@mail.dev", "gh1@mail.dev"]

    async def test_same_name_across_sources_merged(self) -> None:
        """Test the normalized-name identity fallback across sources."""
        registry = {
            "google": MockSourceAdapter(
                "google", [CandidateRecord(name="Jane Q. Doe", skills={"python"}, source_platform="google")]
            ),
            "linkedin": MockSourceAdapter(
                "linkedin", [CandidateRecord(name="jane q doe", skills={"sql"}, source_platform="linkedin")]
            ),
        }
        pipeline = SearchPipeline(
            registry, quality=QualityConfig(minimum_results=5, max_retries=0), logger=quiet_logger()
        )
        result = await pipeline.run(session(["google", "linkedin"]))
        assert len(result.candidates) == 1
        assert result.candidates[0].skills == {"python", "sql"}

    async def test_raw_results_capped(self) -> None:
        """Test that each source call is truncated to the raw cap."""
        registry = {"github": MockSourceAdapter("github", github_batch(0, 30))}
        pipeline = SearchPipeline(
            registry, quality=QualityConfig(minimum_results=0), logger=quiet_logger(), raw_cap=25
        )
        result = await pipeline.run(session(["github"]))
        outcome = result.metadata.source_outcomes[0]
        assert outcome.raw_count == 30
        assert outcome.accepted_count == 25

    async def test_performance_carries_across_sessions(self) -> None:
        """Test that one pipeline keeps per-source stats between sessions."""
        store = PerformanceStore()
        registry = {"github": MockSourceAdapter("github", github_batch(0, 1))}
        pipeline = SearchPipeline(
            registry, performance=store, quality=QualityConfig(minimum_results=0), logger=quiet_logger()
        )
        await pipeline.run(session(["github"]))
        await pipeline.run(session(["github"]))
        assert store.get("github").total_count == 2
        assert store.get("github").success_rate == 1.0

    async def test_missing_adapter_is_malformed(self) -> None:
        """Test that run() refuses sources it has no adapter for."""
        pipeline = SearchPipeline({"github": MockSourceAdapter("github")}, logger=quiet_logger())
        with pytest.raises(MalformedInput):
            await pipeline.run(session(["github", "kaggle"]))


class TestRunSearch:
    """Tests for the convenience entry points."""

    async def test_mock_run(self) -> None:
        """Test a full mock run through run_search."""
        result = await run_search(QUERY, sources=["github", "devto"], mock=True, minimum_results=3)
        assert result.metadata.completion_rate == 1.0
        assert result.candidates
        assert {c.source_platform for c in result.candidates} <= {"github", "devto"}

    def test_search_sync_exports(self, tmp_path) -> None:
        """Test that search_sync writes the session artifacts."""
        result = search_sync(QUERY, output_dir=tmp_path, sources=["github"], mock=True, minimum_results=1)
        run_dir = tmp_path / result.session.session_id
        assert (run_dir / "candidates.json").exists()
        assert (run_dir / "candidates.csv").exists()
        assert (run_dir / "report.md").exists()
