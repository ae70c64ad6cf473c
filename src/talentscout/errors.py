"""
TalentScout error taxonomy.

Only MalformedInput is fatal (raised at the session entry point before any
source runs). Everything else is raised inside a component and caught at the
seam that records it: source outcomes, the dropped-candidate log, the
quality report, or the is_partial flag.
"""

from __future__ import annotations


class TalentScoutError(Exception):
    """Base class for all TalentScout errors."""


class MalformedInput(TalentScoutError, ValueError):
    """Missing or invalid search input. The only hard rejection."""


class SourceUnavailable(TalentScoutError):
    """A source adapter failed or timed out."""

    def __init__(self, platform: str, reason: str):
        self.platform = platform
        self.reason = reason
        super().__init__(f"{platform}: {reason}")


class ValidationInconclusive(TalentScoutError):
    """The oracle rejected a candidate or was not confident enough."""

    def __init__(self, identity: str, reason: str):
        self.identity = identity
        self.reason = reason
        super().__init__(f"{identity}: {reason}")


class QualityUnmet(TalentScoutError):
    """Retries exhausted without reaching the minimum number of good results."""


class BudgetExhausted(TalentScoutError):
    """The session's wall-clock deadline was reached."""
