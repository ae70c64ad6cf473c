"""
Time-budget allocation across unreliable sources.

A PerformanceStore keeps rolling per-platform stats for the life of the
process. A TimeBudgetAllocator is created per search session: it owns the
session's wall-clock deadline, ranks sources by past success and speed, and
hands each adapter call an adaptive timeout.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from pydantic import BaseModel, Field

from .models import Platform


class BudgetLimits(BaseModel):
    """Tunable constants for budget allocation (milliseconds unless noted)."""

    min_budget_seconds: float = Field(default=30.0, gt=0)
    max_budget_seconds: float = Field(default=120.0, gt=0)
    min_timeout_ms: int = Field(default=8_000, gt=0)
    max_timeout_ms: int = Field(default=25_000, gt=0)
    speed_ceiling_ms: float = Field(default=25_000.0, gt=0)
    default_latency_ms: float = Field(default=15_000.0, gt=0)
    remaining_share: float = Field(default=0.25, gt=0, le=1)
    latency_multiplier: float = Field(default=1.5, gt=0)
    max_share_of_remaining: float = Field(default=0.8, gt=0, le=1)
    near_exhaustion_ratio: float = Field(default=0.15, ge=0, le=1)
    near_exhaustion_ms: float = Field(default=12_000.0, ge=0)
    reliability_samples: int = Field(default=10, ge=1)


# Blend weights for source ordering
SUCCESS_WEIGHT = 0.5
SPEED_WEIGHT = 0.3
RELIABILITY_WEIGHT = 0.2


@dataclass
class SourcePerformance:
    """Rolling performance record for one platform."""

    success_count: int = 0
    total_count: int = 0
    average_latency_ms: float = 15_000.0

    @property
    def success_rate(self) -> float:
        if self.total_count == 0:
            return 0.5  # untried sources sit in the middle
        return self.success_count / self.total_count


class PerformanceStore:
    """Per-platform performance records, shared across sessions."""

    def __init__(self, limits: BudgetLimits | None = None):
        self.limits = limits or BudgetLimits()
        self._records: dict[str, SourcePerformance] = {}

    def get(self, platform: Platform) -> SourcePerformance:
        if platform not in self._records:
            self._records[platform] = SourcePerformance(
                average_latency_ms=self.limits.default_latency_ms
            )
        return self._records[platform]

    def record_outcome(self, platform: Platform, success: bool, latency_ms: float) -> None:
        """Fold one adapter call into the rolling stats."""
        perf = self.get(platform)
        perf.total_count += 1
        if success:
            perf.success_count += 1

        if perf.total_count == 1:
            perf.average_latency_ms = latency_ms
        else:
            weight = min(0.3, 1 / perf.total_count)
            perf.average_latency_ms = perf.average_latency_ms * (1 - weight) + latency_ms * weight

    def speed_bonus(self, platform: Platform) -> float:
        ceiling = self.limits.speed_ceiling_ms
        avg = min(self.get(platform).average_latency_ms, ceiling)
        return (ceiling - avg) / ceiling

    def reliability(self, platform: Platform) -> float:
        return min(self.get(platform).total_count / self.limits.reliability_samples, 1.0)

    def blended_score(self, platform: Platform) -> float:
        """0.5*success + 0.3*speed + 0.2*reliability, in [0, 1]."""
        perf = self.get(platform)
        return (
            SUCCESS_WEIGHT * perf.success_rate
            + SPEED_WEIGHT * self.speed_bonus(platform)
            + RELIABILITY_WEIGHT * self.reliability(platform)
        )

    def report(self, platforms: Iterable[Platform] | None = None) -> dict[str, dict[str, float]]:
        """Per-platform summary: success rate (%), avg latency, attempts, reliability."""
        names = list(platforms) if platforms is not None else list(self._records)
        report: dict[str, dict[str, float]] = {}
        for platform in names:
            perf = self.get(platform)
            report[platform] = {
                "success_rate": round(perf.success_rate * 100, 1) if perf.total_count else 0.0,
                "avg_time_ms": round(perf.average_latency_ms),
                "total_attempts": perf.total_count,
                "reliability": round(self.reliability(platform), 2),
            }
        return report


class TimeBudgetAllocator:
    """
    Tracks the wall-clock budget of one search session.

    The deadline is authoritative: once remaining time hits zero, every
    allocation is 0 and the orchestrator stops launching work.
    """

    def __init__(
        self,
        budget_seconds: float,
        performance: PerformanceStore | None = None,
        limits: BudgetLimits | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limits = limits or (performance.limits if performance else BudgetLimits())
        self.performance = performance or PerformanceStore(self.limits)
        self.clock = clock
        budget = max(self.limits.min_budget_seconds, min(self.limits.max_budget_seconds, budget_seconds))
        self.total_ms = budget * 1000
        self.started = clock()

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def elapsed_ms(self) -> float:
        return (self.clock() - self.started) * 1000

    def remaining_ms(self, elapsed_ms: float | None = None) -> float:
        elapsed = self.elapsed_ms() if elapsed_ms is None else elapsed_ms
        return max(0.0, self.total_ms - elapsed)

    def remaining_seconds(self) -> float:
        return self.remaining_ms() / 1000

    def is_expired(self) -> bool:
        return self.remaining_ms() <= 0

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def order_sources(self, sources: Iterable[Platform]) -> list[Platform]:
        """Sort by blended score, best first. Ties keep input order."""
        return sorted(sources, key=lambda p: -self.performance.blended_score(p))

    def timeout_for(self, platform: Platform, elapsed_ms: float | None = None) -> int:
        """Adaptive timeout (ms) for one call to `platform`."""
        remaining = self.remaining_ms(elapsed_ms)
        if remaining <= 0:
            return 0

        limits = self.limits
        candidate = remaining * limits.remaining_share
        perf = self.performance.get(platform)
        if perf.total_count > 0:
            candidate = min(candidate, perf.average_latency_ms * limits.latency_multiplier)

        timeout = max(limits.min_timeout_ms, min(limits.max_timeout_ms, candidate))
        # A single call never takes more than 80% of what is left
        timeout = min(timeout, remaining * limits.max_share_of_remaining)
        return int(timeout)

    def allocate(
        self, sources: Iterable[Platform], elapsed_ms: float | None = None
    ) -> dict[Platform, int]:
        """Timeouts for `sources`, in priority order."""
        elapsed = self.elapsed_ms() if elapsed_ms is None else elapsed_ms
        return {p: self.timeout_for(p, elapsed) for p in self.order_sources(sources)}

    def record_outcome(self, platform: Platform, success: bool, latency_ms: float) -> None:
        """Record an adapter call. Failures update stats and never raise."""
        self.performance.record_outcome(platform, success, latency_ms)

    # ------------------------------------------------------------------
    # Exhaustion signals
    # ------------------------------------------------------------------

    def is_near_exhaustion(self) -> bool:
        """True when new work should not be launched."""
        remaining = self.remaining_ms()
        return (
            remaining / self.total_ms < self.limits.near_exhaustion_ratio
            or remaining < self.limits.near_exhaustion_ms
        )

    def should_use_progressive_enhancement(self) -> bool:
        """True when partial results should be surfaced instead of waiting."""
        remaining = self.remaining_ms()
        return remaining / self.total_ms < 0.2 or remaining < 15_000

    def performance_report(self, sources: Iterable[Platform] | None = None) -> dict[str, dict[str, float]]:
        return self.performance.report(sources)
