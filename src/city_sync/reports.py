"""JSON report artifacts, one per stage run.

Reports are frozen pydantic models serialized with camelCase keys to
``{stage}-{environment}-{timestamp}.json``.  They are an audit trail only
and are never rewritten once on disk.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

logger = structlog.get_logger()


class ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def report_filename(stage: str, environment: str, created_at: datetime | None = None) -> str:
    moment = (created_at or datetime.now(timezone.utc)).astimezone(timezone.utc)
    stamp = moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    stamp = stamp.replace(":", "-").replace(".", "-")
    return f"{stage}-{environment}-{stamp}.json"


def write_report(report: ReportModel, reports_dir: Path, stage: str, environment: str) -> Path:
    """Write ``report`` as a new JSON file and return its path.

    Refuses to overwrite an existing artifact.
    """
    reports_dir.mkdir(parents=True, exist_ok=True)
    filename = report_filename(stage, environment)
    path = reports_dir / filename
    attempt = 1
    while path.exists():
        path = reports_dir / filename.replace(".json", f"-{attempt}.json")
        attempt += 1
    content = report.model_dump_json(by_alias=True, indent=2)
    with open(path, "x", encoding="utf-8") as f:
        f.write(content)
    logger.info("report_written", stage=stage, path=str(path))
    return path
