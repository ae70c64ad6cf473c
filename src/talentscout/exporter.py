"""
TalentScout exporter - flat hand-off of session results to storage and UI.

The canonical format is the SessionResult JSON; CSV rows and the markdown
report are derived from it.
"""

import csv
import json
from pathlib import Path
from typing import TextIO

from .models import CandidateRecord, SessionResult
from .scoring import tier_distribution

# CSV column order (stable schema - derived from CandidateRecord)
CSV_COLUMNS = [
    "name",
    "email",
    "source_platform",
    "platform_username",
    "normalized_name",
    "title",
    "company",
    "location",
    "skills",
    "experience_years",
    "profile_url",
    "linkedin_url",
    "phone",
    "tier",
    "overall_score",
    "skill_match",
    "experience",
    "reputation",
    "freshness",
    "social_proof",
    "platform_bonus",
    "confidence",
    "validation_confidence",
    "risk_flags",
    "discovery_method",
    "collection_timestamp",
    "last_active_at",
]


def candidate_to_row(candidate: CandidateRecord) -> dict[str, str]:
    """Flatten a candidate to a CSV row."""
    return {
        "name": candidate.name or "",
        "email": candidate.email or "",
        "source_platform": candidate.source_platform,
        "platform_username": candidate.platform_username or "",
        "normalized_name": candidate.normalized_name,
        "title": candidate.title or "",
        "company": candidate.company or "",
        "location": candidate.location or "",
        "skills": ";".join(sorted(candidate.skills)),
        "experience_years": f"{candidate.experience_years:.1f}",
        "profile_url": candidate.profile_url or "",
        "linkedin_url": candidate.linkedin_url or "",
        "phone": candidate.phone or "",
        "tier": candidate.tier or "",
        "overall_score": f"{candidate.overall_score:.1f}",
        "skill_match": f"{candidate.skill_match:.1f}",
        "experience": f"{candidate.experience:.1f}",
        "reputation": f"{candidate.reputation:.1f}",
        "freshness": f"{candidate.freshness:.1f}",
        "social_proof": f"{candidate.social_proof:.1f}",
        "platform_bonus": f"{candidate.platform_bonus:.0f}",
        "confidence": f"{candidate.confidence:.2f}",
        "validation_confidence": f"{candidate.validation_confidence:.2f}",
        "risk_flags": ";".join(candidate.risk_flags),
        "discovery_method": candidate.discovery_method,
        "collection_timestamp": candidate.collection_timestamp.isoformat(),
        "last_active_at": candidate.last_active_at.isoformat() if candidate.last_active_at else "",
    }


def export_csv(candidates: list[CandidateRecord], output: Path | TextIO) -> int:
    """Export candidates to CSV. Returns number of rows written."""
    rows = [candidate_to_row(c) for c in candidates]

    if isinstance(output, Path):
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
            writer.writeheader()
            writer.writerows(rows)
    else:
        writer = csv.DictWriter(output, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)

    return len(rows)


def export_json(result: SessionResult, output: Path) -> int:
    """Export the full session result (canonical format). Returns candidate count."""
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(result.model_dump(mode="json"), f, indent=2, default=str)
    return len(result.candidates)


def generate_report(result: SessionResult, output: Path) -> None:
    """Generate a markdown session report."""
    output.parent.mkdir(parents=True, exist_ok=True)
    meta = result.metadata
    quality = meta.quality_report

    report = f"""# TalentScout Search Report

## Session
| Field | Value |
|---|---|
| Session ID | {result.session.session_id} |
| Started | {result.started_at.isoformat()} |
| Finished | {result.finished_at.isoformat() if result.finished_at else "In progress"} |
| Processing time | {meta.processing_time_ms / 1000:.1f}s |
| Sources used | {", ".join(meta.sources_used) or "none"} |
| Completion | {meta.completion_rate:.0%}{" (partial)" if meta.is_partial else ""} |
| Candidates | {len(result.candidates)} |
| Dropped by validation | {meta.dropped_candidates} |

## Query
```
{result.session.query_text}
```

## Candidates by Tier
| Tier | Count |
|---|---|
"""
    for tier, count in sorted(tier_distribution(result.candidates).items(), key=lambda x: -x[1]):
        report += f"| {tier} | {count} |\n"

    report += """
## Sources
| Source | Attempt | Status | Raw | Accepted | Time |
|---|---|---|---|---|---|
"""
    for o in meta.source_outcomes:
        status = "ok" if o.success else (o.error or "failed")
        report += (
            f"| {o.platform} | {o.attempt} | {status} | {o.raw_count} | "
            f"{o.accepted_count} | {o.latency_ms / 1000:.1f}s |\n"
        )

    report += f"""
## Quality
| Metric | Value |
|---|---|
| Strategy | {quality.strategy_used} |
| Retries | {quality.retries_needed} |
| Strategies applied | {", ".join(quality.strategies_applied) or "none"} |
| High-quality candidates | {quality.high_quality_count} |
| Final quality rate | {quality.final_quality_rate:.1f}% |
| Guarantee met | {"yes" if quality.guarantee_met else "no"} |
| Quality compromise | {"yes" if quality.quality_compromise else "no"} |
"""

    if meta.errors:
        report += "\n## Errors\n"
        for err in meta.errors:
            report += f"- {err}\n"

    with open(output, "w", encoding="utf-8") as f:
        f.write(report)


def export_run(result: SessionResult, run_dir: Path) -> Path:
    """Write candidates.json, candidates.csv and report.md into run_dir."""
    run_dir.mkdir(parents=True, exist_ok=True)
    export_json(result, run_dir / "candidates.json")
    export_csv(result.candidates, run_dir / "candidates.csv")
    generate_report(result, run_dir / "report.md")
    return run_dir
