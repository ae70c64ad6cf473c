"""
TalentScout structured logging - operator-grade telemetry for search sessions.

Answers three questions:
1. Is the session alive or waiting on a slow source?
2. What phase is it in (collect, score, guarantee)?
3. How many candidates survived each step?
"""

import sys
from datetime import UTC, datetime

# Force line buffering for immediate output (important on Windows/PowerShell)
try:
    sys.stdout.reconfigure(line_buffering=True)  # type: ignore
except Exception:
    pass  # Fallback for non-reconfigurable streams


def _print(*args: object, **kwargs: object) -> None:
    """Print with immediate flush."""
    print(*args, **kwargs, flush=True)


def _eprint(*args: object, **kwargs: object) -> None:
    """Print to stderr with immediate flush."""
    print(*args, **kwargs, file=sys.stderr, flush=True)


class ProgressLogger:
    """
    Structured progress logger for TalentScout search sessions.

    Sources finish in any order, so every line carries enough context
    (platform, counts, elapsed time) to be read on its own.
    """

    def __init__(self, run_id: str, verbose: bool = False, quiet: bool = False):
        self.run_id = run_id
        self.verbose = verbose
        self.quiet = quiet
        self.start_time = datetime.now(UTC)
        self.last_heartbeat = self.start_time
        self.phase_times: dict[str, datetime] = {}

    def _out(self, line: str) -> None:
        if not self.quiet:
            _print(line)

    def phase(self, name: str, detail: str = "") -> None:
        """Log a major phase transition."""
        now = datetime.now(UTC)
        self.phase_times[name] = now
        elapsed = (now - self.start_time).total_seconds()

        if detail:
            self._out(f"[Phase] {name}: {detail} ({elapsed:.1f}s)")
        else:
            self._out(f"[Phase] {name} ({elapsed:.1f}s)")

    def progress(
        self,
        item: str,
        current: int,
        total: int,
        detail: str = "",
    ) -> None:
        """Log a progress update (e.g., source 3/6)."""
        pct = (current / total * 100) if total > 0 else 0
        if detail:
            self._out(f"  [{item} {current}/{total}] {detail} ({pct:.0f}%)")
        else:
            self._out(f"  [{item} {current}/{total}] ({pct:.0f}%)")

    def source(
        self,
        platform: str,
        success: bool,
        latency_ms: float,
        raw: int = 0,
        accepted: int = 0,
        error: str | None = None,
    ) -> None:
        """Log the outcome of one source call."""
        if success:
            self._out(
                f"  [Source] {platform}: {raw} raw -> {accepted} accepted ({latency_ms / 1000:.1f}s)"
            )
        else:
            reason = error or "failed"
            self._out(f"  [Source] {platform}: FAILED {reason} ({latency_ms / 1000:.1f}s)")

    def timeouts(self, allocation: dict[str, int]) -> None:
        """Log per-source timeouts (verbose only)."""
        if self.verbose:
            parts = ", ".join(f"{k}={v / 1000:.0f}s" for k, v in allocation.items())
            self._out(f"    [Budget] {parts}")

    def deduped(self, before: int, after: int) -> None:
        """Log deduplication results."""
        self._out(f"  [Deduped] {before} -> {after} candidates")

    def tier_distribution(self, tiers: dict[str, int]) -> None:
        """Log tier distribution."""
        tier_str = ", ".join(f"{k}={v}" for k, v in sorted(tiers.items()))
        self._out(f"  [Tiers] {tier_str}")

    def retry(self, attempt: int, strategy: str, query: str) -> None:
        """Log a quality guarantor retry."""
        truncated = query[:60] + "..." if len(query) > 60 else query
        self._out(f"  [Retry {attempt}] {strategy}: {truncated}")

    def skip(self, reason: str, detail: str) -> None:
        """Log a skip/drop with reason (verbose only)."""
        if self.verbose:
            self._out(f"    [Skip] {reason}: {detail[:60]}")

    def heartbeat(self, activity: str = "Working") -> None:
        """
        Emit a heartbeat if nothing has happened recently.
        Call this periodically during long waits.
        """
        now = datetime.now(UTC)
        elapsed_since_last = (now - self.last_heartbeat).total_seconds()

        if elapsed_since_last >= 30:  # Heartbeat every 30s
            total_elapsed = (now - self.start_time).total_seconds()
            self._out(f"  [Heartbeat] {activity}... ({total_elapsed:.0f}s elapsed)")
            self.last_heartbeat = now

    def finish(self, candidates: int, output_dir: str = "") -> None:
        """Log session completion."""
        elapsed = (datetime.now(UTC) - self.start_time).total_seconds()
        minutes = int(elapsed // 60)
        seconds = int(elapsed % 60)

        self._out(f"\n[TalentScout] Search complete in {minutes}m{seconds}s")
        self._out(f"  Candidates: {candidates}")
        if output_dir:
            self._out(f"  Output: {output_dir}")

    def error(self, msg: str) -> None:
        """Log an error."""
        _eprint(f"[Error] {msg}")

    def warning(self, msg: str) -> None:
        """Log a warning."""
        _eprint(f"[Warning] {msg}")
