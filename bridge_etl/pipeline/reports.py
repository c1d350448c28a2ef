"""Run summary aggregation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Iterable

from bridge_etl.common.fs import write_json
from bridge_etl.common.models import CanonicalRecord


@dataclass
class RunSummary:
    run_id: str
    strategy: str
    state: str = "FETCHING"
    units: int = 0
    failed_units: int = 0
    fetched: int = 0
    rejected: int = 0
    rejected_by_reason: dict[str, int] = field(default_factory=dict)
    unique: int = 0
    with_condition_score: int = 0
    critical: int = 0
    critical_percent: int = 0
    regions: int = 0
    subdivisions: int = 0
    loaded: int = 0
    failed_batches: int = 0
    refreshed: bool = False
    refresh_error: str | None = None

    @property
    def has_failures(self) -> bool:
        return self.failed_units > 0 or self.failed_batches > 0

    def to_dict(self) -> dict:
        return asdict(self)


def apply_record_stats(summary: RunSummary, records: Iterable[CanonicalRecord], critical_threshold: float) -> None:
    """Fill the condition and region figures; percentage is over scored records."""
    rows = list(records)
    scored = [r.condition_score for r in rows if r.condition_score is not None]
    critical = [score for score in scored if score >= critical_threshold]

    summary.unique = len(rows)
    summary.with_condition_score = len(scored)
    summary.critical = len(critical)
    summary.critical_percent = round(100 * len(critical) / max(len(scored), 1))
    summary.regions = len({r.region for r in rows if r.region})
    summary.subdivisions = len({r.country_subdivision for r in rows if r.country_subdivision})


def format_summary(summary: RunSummary, critical_threshold: float) -> list[str]:
    refresh = "ok" if summary.refreshed else f"failed ({summary.refresh_error})" if summary.refresh_error else "skipped"
    return [
        "Summary:",
        f"  Total bridges:        {summary.unique}",
        f"  With condition score: {summary.with_condition_score}",
        f"  Critical (>={critical_threshold:.1f}):     {summary.critical} ({summary.critical_percent}%)",
        f"  Regions:              {summary.regions}",
        f"  Subdivisions:         {summary.subdivisions}",
        f"  Fetched / rejected:   {summary.fetched} / {summary.rejected}",
        f"  Failed units:         {summary.failed_units} of {summary.units}",
        f"  Loaded rows:          {summary.loaded}",
        f"  Failed batches:       {summary.failed_batches}",
        f"  Aggregate refresh:    {refresh}",
    ]


def write_run_summary(path: Path, summary: RunSummary) -> Path:
    write_json(path, summary.to_dict())
    return path
