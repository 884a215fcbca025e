"""
Audit Logging Module.

This module records every lifecycle mutation attempted (or, in dry-run
mode, intended) by a stage run as append-only JSON lines.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from ..models import AuditRecord

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Append-only logger for lifecycle actions.

    Records go to one JSONL file per UTC day under the audit directory.
    """

    def __init__(self, audit_dir: Union[str, Path] = "audit"):
        """
        Initialize the audit logger.

        Args:
            audit_dir: Directory to store audit logs
        """
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)

    def log_event(self, record: AuditRecord) -> str:
        """
        Log an audit event.

        Args:
            record: The audit record to log

        Returns:
            The record ID
        """
        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = self.audit_dir / f"audit_{date_str}.jsonl"

        with open(log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(record.model_dump(mode="json")) + "\n")

        logger.debug(f"Logged audit event {record.id} ({record.action} {record.account_id})")
        return record.id

    def get_events(
        self,
        account_id: Optional[str] = None,
        run_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditRecord]:
        """
        Retrieve audit events, most recent first.

        Args:
            account_id: Filter by account ID
            run_id: Filter by run ID
            start_date: Filter by start date
            end_date: Filter by end date
            limit: Maximum number of records to return

        Returns:
            List of matching AuditRecords
        """
        results: List[AuditRecord] = []
        log_files = sorted(self.audit_dir.glob("audit_*.jsonl"), reverse=True)

        for log_file in log_files:
            if len(results) >= limit:
                break

            with open(log_file, encoding="utf-8") as f:
                lines = f.readlines()

            for line in reversed(lines):
                if len(results) >= limit:
                    break
                if not line.strip():
                    continue

                try:
                    record = AuditRecord(**json.loads(line))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.warning(f"Failed to parse audit record in {log_file}: {e}")
                    continue

                if account_id and record.account_id != account_id:
                    continue
                if run_id and record.run_id != run_id:
                    continue
                if start_date and record.timestamp < start_date:
                    continue
                if end_date and record.timestamp > end_date:
                    continue

                results.append(record)

        return results
