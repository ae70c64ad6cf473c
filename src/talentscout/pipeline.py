"""
TalentScout pipeline - orchestrates one search session end to end.

Fan out to every requested source concurrently (each racing its own
timeout), validate/enrich/score what comes back, merge by identity, then let
the quality guarantor decide whether to retry. The session deadline is
authoritative: when it passes, whatever the merge store holds is returned.
"""

from __future__ import annotations

import asyncio
import math
import time
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from .budget import BudgetLimits, PerformanceStore, TimeBudgetAllocator
from .enrichment import Enricher, apply_enrichment
from .errors import (
    BudgetExhausted,
    MalformedInput,
    QualityUnmet,
    SourceUnavailable,
    ValidationInconclusive,
)
from .logger import ProgressLogger
from .merge import MergeStore, identity_key
from .models import (
    ALL_PLATFORMS,
    CandidateRecord,
    Platform,
    SearchSession,
    SessionMetadata,
    SessionResult,
    SourceOutcome,
    Tier,
    Verdict,
)
from .oracle import NeutralOracle, Oracle, ValidationFloors, neutral_verdict
from .quality import QualityConfig, QualityGuarantor, Strategy
from .scoring import TieredScorer, tier_distribution
from .search import RAW_RESULT_CAP, SourceAdapter, truncate_raw

# Concurrent oracle calls per source batch
ORACLE_CONCURRENCY = 5


def new_session_id() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S") + "_search_" + uuid.uuid4().hex[:6]


def validate_session_input(
    query: str | None,
    sources: Iterable[str] | None,
    location: str | None = None,
    time_budget_seconds: float = 60.0,
    minimum_tier: Tier = "bronze",
    registry: Mapping[str, SourceAdapter] | None = None,
) -> SearchSession:
    """
    Build a SearchSession or raise MalformedInput.

    This is the only hard rejection in the system; it happens before any
    source is contacted.
    """
    if query is None or not str(query).strip():
        raise MalformedInput("query must not be empty")

    requested = list(dict.fromkeys(sources or []))
    if not requested:
        raise MalformedInput("at least one source must be requested")
    unknown = [s for s in requested if s not in ALL_PLATFORMS]
    if unknown:
        raise MalformedInput(f"unknown source(s): {', '.join(unknown)}")
    if registry is not None:
        missing = [s for s in requested if s not in registry]
        if missing:
            raise MalformedInput(f"no adapter registered for: {', '.join(missing)}")

    try:
        budget = float(time_budget_seconds)
    except (TypeError, ValueError) as e:
        raise MalformedInput(f"invalid time budget: {time_budget_seconds!r}") from e
    if math.isnan(budget):
        raise MalformedInput("time budget must be a number")

    try:
        return SearchSession(
            session_id=new_session_id(),
            query_text=str(query),
            location_filter=location or None,
            requested_sources=requested,
            time_budget_seconds=budget,
            minimum_tier=minimum_tier,
        )
    except ValidationError as e:
        raise MalformedInput(str(e)) from e


@dataclass
class _SessionState:
    """Mutable bookkeeping for one run; confined to the event loop."""

    session: SearchSession
    allocator: TimeBudgetAllocator
    store: MergeStore = field(default_factory=MergeStore)
    outcomes: list[SourceOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    dropped: int = 0
    attempt: int = 0


class SearchPipeline:
    """
    Session orchestrator.

    The adapter registry, oracle and enrichers are injected; nothing is
    looked up globally. One pipeline can serve many sessions; per-source
    performance stats carry over between them.
    """

    def __init__(
        self,
        registry: Mapping[Platform, SourceAdapter],
        oracle: Oracle | None = None,
        enrichers: Sequence[Enricher] = (),
        scorer: TieredScorer | None = None,
        quality: QualityConfig | None = None,
        floors: ValidationFloors | None = None,
        performance: PerformanceStore | None = None,
        limits: BudgetLimits | None = None,
        logger: ProgressLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
        raw_cap: int = RAW_RESULT_CAP,
    ):
        self.registry = dict(registry)
        self.oracle = oracle or NeutralOracle()
        self.enrichers = list(enrichers)
        self.scorer = scorer or TieredScorer()
        self.quality = quality or QualityConfig()
        self.floors = floors or ValidationFloors()
        self.limits = limits or (performance.limits if performance else BudgetLimits())
        self.performance = performance or PerformanceStore(self.limits)
        self.logger = logger
        self.clock = clock
        self.raw_cap = raw_cap

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self, session: SearchSession) -> SessionResult:
        """Run one search session. Only MalformedInput escapes."""
        missing = [p for p in session.requested_sources if p not in self.registry]
        if missing:
            raise MalformedInput(f"no adapter registered for: {', '.join(missing)}")
        if not session.session_id:
            session = session.model_copy(update={"session_id": new_session_id()})

        logger = self.logger or ProgressLogger(session.session_id)
        allocator = TimeBudgetAllocator(
            session.time_budget_seconds, self.performance, self.limits, self.clock
        )
        state = _SessionState(session=session, allocator=allocator)
        started_at = datetime.now(UTC)
        guarantor = QualityGuarantor(self.quality, logger)

        logger.phase("Starting search", f"ID={session.session_id}")
        logger.phase(
            "Collecting",
            f"{len(session.requested_sources)} sources, budget {allocator.total_ms / 1000:.0f}s",
        )

        async def retry_collect(retry_session: SearchSession, strategy: Strategy) -> list[CandidateRecord]:
            state.attempt += 1
            await self._collect(state, retry_session, logger, strategy)
            return state.store.candidates()

        try:
            async with asyncio.timeout(allocator.remaining_seconds()):
                await self._collect(state, session, logger)
                logger.deduped(state.store.received, len(state.store))
                logger.phase("Quality check", f"{len(state.store)} candidates")
                outcome = await guarantor.guarantee(
                    session,
                    state.store.candidates(),
                    retry_collect,
                    has_time=lambda: not allocator.is_near_exhaustion(),
                )
        except TimeoutError:
            exhausted = BudgetExhausted(
                f"deadline of {allocator.total_ms / 1000:.0f}s reached with {len(state.store)} candidates"
            )
            state.errors.append(str(exhausted))
            logger.warning(str(exhausted))
            outcome = await guarantor.guarantee(
                session, state.store.candidates(), retry_collect, has_time=lambda: False
            )

        progressive = state.store.get_final(len(session.requested_sources), session.requested_sources)
        is_partial = progressive.is_partial or allocator.is_expired()
        if allocator.should_use_progressive_enhancement() and state.store.has_minimum_results():
            logger.phase("Progressive results", f"completion {progressive.completion_rate:.0%}")

        metadata = SessionMetadata(
            sources_used=[p for p in session.requested_sources if p in progressive.completed_sources],
            processing_time_ms=round(allocator.elapsed_ms(), 1),
            completion_rate=progressive.completion_rate,
            is_partial=is_partial,
            quality_report=outcome.report,
            source_outcomes=state.outcomes,
            dropped_candidates=state.dropped,
            performance=allocator.performance_report(session.requested_sources),
            errors=state.errors,
        )

        logger.tier_distribution(tier_distribution(outcome.candidates))
        if not outcome.report.guarantee_met:
            unmet = QualityUnmet(
                f"quality target unmet: {outcome.report.high_quality_count}/"
                f"{self.quality.minimum_results} candidates above {self.quality.quality_threshold:.0f}"
            )
            metadata.errors.append(str(unmet))
            logger.warning(str(unmet))
        logger.finish(len(outcome.candidates))

        return SessionResult(
            session=session,
            candidates=outcome.candidates,
            metadata=metadata,
            started_at=started_at,
            finished_at=datetime.now(UTC),
        )

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    async def _collect(
        self,
        state: _SessionState,
        session: SearchSession,
        logger: ProgressLogger,
        strategy: Strategy | None = None,
    ) -> None:
        """Fan out to every requested source and join."""
        allocator = state.allocator
        allocation = allocator.allocate(session.requested_sources)
        logger.timeouts(dict(allocation))
        constraints = {"attempt": state.attempt, "strategy": strategy, "max_results": self.raw_cap}

        async with asyncio.TaskGroup() as tg:
            for platform, timeout_ms in allocation.items():
                if allocator.is_near_exhaustion() or timeout_ms <= 0:
                    state.outcomes.append(
                        SourceOutcome(
                            platform=platform,
                            success=False,
                            attempt=state.attempt,
                            error="skipped: budget near exhaustion",
                        )
                    )
                    logger.skip("Budget", f"{platform} not launched")
                    continue
                tg.create_task(
                    self._run_source(state, session, platform, timeout_ms, constraints, logger)
                )

    async def _run_source(
        self,
        state: _SessionState,
        session: SearchSession,
        platform: Platform,
        timeout_ms: int,
        constraints: dict,
        logger: ProgressLogger,
    ) -> None:
        """One adapter call raced against its timeout. Never raises."""
        adapter = self.registry[platform]
        start = self.clock()
        try:
            try:
                raw = await asyncio.wait_for(
                    adapter.search(session.query_text, session.location_filter, constraints),
                    timeout=timeout_ms / 1000,
                )
            except TimeoutError as e:
                raise SourceUnavailable(platform, f"timeout after {timeout_ms}ms") from e
            except Exception as e:
                raise SourceUnavailable(platform, f"{type(e).__name__}: {e}") from e
        except SourceUnavailable as e:
            latency = (self.clock() - start) * 1000
            state.allocator.record_outcome(platform, False, latency)
            state.store.add_result(platform, [], success=False)
            state.errors.append(str(e))
            state.outcomes.append(
                SourceOutcome(
                    platform=platform,
                    success=False,
                    latency_ms=round(latency, 1),
                    timeout_ms=timeout_ms,
                    attempt=state.attempt,
                    error=e.reason,
                )
            )
            logger.source(platform, False, latency, error=e.reason)
            return

        latency = (self.clock() - start) * 1000
        state.allocator.record_outcome(platform, True, latency)

        batch = truncate_raw(raw, self.raw_cap)
        scored = await self._process_batch(state, session, platform, batch, logger)
        accepted = state.store.add_result(platform, scored, success=True)
        state.outcomes.append(
            SourceOutcome(
                platform=platform,
                success=True,
                latency_ms=round(latency, 1),
                timeout_ms=timeout_ms,
                raw_count=len(raw),
                accepted_count=accepted,
                attempt=state.attempt,
            )
        )
        logger.source(platform, True, latency, raw=len(raw), accepted=accepted)

    # ------------------------------------------------------------------
    # Validation, enrichment, scoring
    # ------------------------------------------------------------------

    async def _process_batch(
        self,
        state: _SessionState,
        session: SearchSession,
        platform: Platform,
        batch: Sequence[CandidateRecord],
        logger: ProgressLogger,
    ) -> list[CandidateRecord]:
        semaphore = asyncio.Semaphore(ORACLE_CONCURRENCY)

        async def process(candidate: CandidateRecord) -> CandidateRecord | None:
            async with semaphore:
                return await self._process_candidate(state, session, platform, candidate, logger)

        results = await asyncio.gather(*(process(c) for c in batch))
        return [c for c in results if c is not None]

    async def _process_candidate(
        self,
        state: _SessionState,
        session: SearchSession,
        platform: Platform,
        candidate: CandidateRecord,
        logger: ProgressLogger,
    ) -> CandidateRecord | None:
        if not candidate.has_identity():
            state.dropped += 1
            logger.skip("No identity", candidate.profile_url or platform)
            return None

        try:
            verdict = await self._validate(state, session, platform, candidate)
        except ValidationInconclusive as e:
            state.dropped += 1
            logger.skip("Validation", str(e))
            return None

        candidate = candidate.model_copy(update={"validation_confidence": verdict.confidence})
        candidate = await self._enrich(state, platform, candidate, logger)
        return self.scorer.score(candidate, session.query_text, platform, verdict.dimension_scores)

    async def _validate(
        self,
        state: _SessionState,
        session: SearchSession,
        platform: Platform,
        candidate: CandidateRecord,
    ) -> Verdict:
        """
        Oracle verdict; raises ValidationInconclusive below the floor.

        Fallback verdicts (no oracle, timeout, error, unparseable reply) keep the
        candidate regardless of the floor.
        """
        timeout = state.allocator.timeout_for(platform) / 1000
        try:
            verdict = await asyncio.wait_for(
                self.oracle.validate(candidate, session.query_text, platform), timeout=timeout
            )
        except TimeoutError:
            verdict = neutral_verdict("oracle timeout")
        except Exception as e:
            verdict = neutral_verdict(f"oracle error: {type(e).__name__}")

        if not verdict.is_valid:
            raise ValidationInconclusive(identity_key(candidate), verdict.reason or "rejected by oracle")
        floor = self.floors.for_tier(session.minimum_tier)
        if not verdict.fallback and verdict.confidence < floor:
            raise ValidationInconclusive(
                identity_key(candidate), f"confidence {verdict.confidence:.2f} below {floor:.2f}"
            )
        return verdict

    async def _enrich(
        self,
        state: _SessionState,
        platform: Platform,
        candidate: CandidateRecord,
        logger: ProgressLogger,
    ) -> CandidateRecord:
        """Apply each enricher; any failure keeps the candidate as it was."""
        for enricher in self.enrichers:
            timeout = state.allocator.timeout_for(platform) / 1000
            try:
                enriched = await asyncio.wait_for(enricher.enrich(candidate), timeout=timeout)
            except TimeoutError:
                logger.skip("Enrichment", f"{enricher.name} timed out")
                continue
            except Exception as e:
                logger.skip("Enrichment", f"{enricher.name}: {e}")
                continue
            candidate = apply_enrichment(candidate, enriched)
        return candidate

    async def aclose(self) -> None:
        """Close adapters and enrichers that hold network clients."""
        for adapter in self.registry.values():
            await adapter.aclose()
        for enricher in self.enrichers:
            await enricher.aclose()


# =============================================================================
# CONVENIENCE
# =============================================================================


async def run_search(
    query: str,
    sources: Iterable[str] = ALL_PLATFORMS,
    location: str | None = None,
    time_budget_seconds: float = 60.0,
    minimum_results: int = 10,
    minimum_tier: Tier = "bronze",
    mock: bool = False,
    use_llm: bool = False,
    enrich: bool = False,
    verbose: bool = False,
    registry: Mapping[Platform, SourceAdapter] | None = None,
) -> SessionResult:
    """Validate input, build collaborators, run one session, clean up."""
    from .search import build_registry

    session = validate_session_input(
        query,
        sources,
        location=location,
        time_budget_seconds=time_budget_seconds,
        minimum_tier=minimum_tier,
        registry=registry,
    )
    if registry is None:
        registry = build_registry(session.requested_sources, mock=mock)

    logger = ProgressLogger(session.session_id, verbose=verbose)
    oracle: Oracle | None = None
    if use_llm:
        from .oracle import OpenAIOracle

        oracle = OpenAIOracle(logger=logger)

    enrichers: list[Enricher] = []
    if enrich:
        from .enrichment import ApolloEnricher, PerplexityEnricher

        enrichers = [ApolloEnricher.from_env(), PerplexityEnricher.from_env()]

    pipeline = SearchPipeline(
        registry,
        oracle=oracle,
        enrichers=enrichers,
        quality=QualityConfig(minimum_results=minimum_results),
        logger=logger,
    )
    try:
        return await pipeline.run(session)
    finally:
        await pipeline.aclose()


def search_sync(query: str, output_dir: Path | None = None, **kwargs) -> SessionResult:
    """Blocking wrapper around run_search; optionally writes exports to output_dir."""
    result = asyncio.run(run_search(query, **kwargs))
    if output_dir is not None:
        from .exporter import export_run

        export_run(result, output_dir / result.session.session_id)
    return result
