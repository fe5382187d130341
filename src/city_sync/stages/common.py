"""Helpers shared by every stage: report output and console summaries."""

from __future__ import annotations

from pathlib import Path

from city_sync.graph.parsing import RejectedRow
from city_sync.identity.types import GraphCityRow
from city_sync.reports import ReportModel, write_report
from city_sync.runtime import StageContext


def finish_stage(
    ctx: StageContext,
    stage: str,
    report: ReportModel,
    summary: list[tuple[str, object]],
    *,
    environment: str | None = None,
) -> Path:
    """Write the stage report and print a human-readable summary to stdout."""
    path = write_report(report, ctx.reports_dir, stage, environment or ctx.environment)

    print(f"\n[{stage}] Done ({ctx.environment})")
    for label, value in summary:
        print(f"- {label}: {value}")
    print(f"- report: {path}\n")
    return path


def dedupe_ids(ids: list[str]) -> list[str]:
    """Drop empty and repeated ids, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for place_id in ids:
        if place_id and place_id not in seen:
            seen.add(place_id)
            result.append(place_id)
    return result


def graph_city_ids(rows: list[GraphCityRow], rejected: list[RejectedRow]) -> list[str]:
    """Every city id the graph holds, including rows refused at the parse boundary."""
    return dedupe_ids([row.id for row in rows] + [r.raw_id for r in rejected])
