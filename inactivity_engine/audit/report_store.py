"""
Report Store Module.

Exports the candidate list of a stage run for downstream reporting.
"""

import csv
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

from ..models import Candidate

logger = logging.getLogger(__name__)

REPORT_FORMATS = ("csv", "json")

REPORT_COLUMNS = [
    "id",
    "user_principal_name",
    "display_name",
    "mail",
    "kind",
    "enabled",
    "department",
    "created_at",
    "last_activity",
    "activity_source",
    "inactive_days",
    "licenses",
]


class ReportStore:
    """
    Storage for candidate exports.

    Files are laid out as ``YYYY/MM/<stage>/<run_id>.<format>``.
    """

    def __init__(self, storage_dir: Union[str, Path] = "reports"):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def write_candidates(self, stage: str, run_id: str, candidates: Sequence[Candidate],
                         fmt: str = "csv") -> str:
        """
        Write a candidate export.

        Args:
            stage: Stage name
            run_id: Run identifier
            candidates: Candidates to export
            fmt: "csv" or "json"

        Returns:
            Path of the written file
        """
        if fmt not in REPORT_FORMATS:
            raise ValueError(f"Unsupported report format: {fmt}")

        date_path = datetime.now(timezone.utc).strftime("%Y/%m")
        target_dir = self.storage_dir / date_path / stage
        target_dir.mkdir(parents=True, exist_ok=True)
        target_path = target_dir / f"{run_id}.{fmt}"

        records = [c.to_record() for c in candidates]
        if fmt == "csv":
            with open(target_path, "w", encoding="utf-8", newline="") as f:
                writer = csv.DictWriter(f, fieldnames=REPORT_COLUMNS)
                writer.writeheader()
                writer.writerows(records)
        else:
            with open(target_path, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, default=str)

        logger.info(f"Exported {len(records)} candidates for {stage} to {target_path}")
        return str(target_path)

    def read_report(self, path: Union[str, Path]) -> List[Dict[str, Any]]:
        """Read an export back as a list of records."""
        path = Path(path)
        with open(path, encoding="utf-8", newline="") as f:
            if path.suffix == ".json":
                return json.load(f)
            return list(csv.DictReader(f))
