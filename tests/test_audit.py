"""
Tests for the audit trail and candidate exports.
"""

import uuid

import pytest

from inactivity_engine.audit import AuditLogger, ReportStore
from inactivity_engine.models import AuditRecord, Candidate


def record(account_id, run_id="run-1", success=True):
    return AuditRecord(
        id=str(uuid.uuid4()),
        run_id=run_id,
        stage="disable-inactive-members",
        action="disable",
        account_id=account_id,
        success=success,
    )


class TestAuditLogger:
    """Test cases for AuditLogger."""

    def test_log_and_read_back(self, tmp_path):
        audit = AuditLogger(tmp_path)
        record_id = audit.log_event(record("alice"))

        events = audit.get_events()

        assert [e.id for e in events] == [record_id]
        assert len(list(tmp_path.glob("audit_*.jsonl"))) == 1

    def test_most_recent_first_and_filters(self, tmp_path):
        audit = AuditLogger(tmp_path)
        audit.log_event(record("alice", run_id="run-1"))
        audit.log_event(record("bob", run_id="run-2"))
        audit.log_event(record("alice", run_id="run-2", success=False))

        assert [e.account_id for e in audit.get_events()] == ["alice", "bob", "alice"]
        assert [e.run_id for e in audit.get_events(account_id="alice")] == ["run-2", "run-1"]
        assert len(audit.get_events(run_id="run-2")) == 2
        assert len(audit.get_events(limit=1)) == 1

    def test_corrupt_line_skipped(self, tmp_path):
        audit = AuditLogger(tmp_path)
        audit.log_event(record("alice"))
        log_file = next(tmp_path.glob("audit_*.jsonl"))
        with open(log_file, "a", encoding="utf-8") as f:
            f.write("{not json\n")

        assert len(audit.get_events()) == 1


class TestReportStore:
    """Test cases for ReportStore."""

    @pytest.fixture
    def candidates(self, make_account):
        return [
            Candidate(account=make_account("alice", department="Finance"),
                      last_activity="2025-02-01T00:00:00Z", inactive_days=120,
                      license_names=["Office 365 E3", "Power BI Pro"]),
            Candidate(account=make_account("dave")),
        ]

    def test_csv_export(self, tmp_path, candidates):
        store = ReportStore(tmp_path)

        path = store.write_candidates("disable-inactive-members", "run-1", candidates, "csv")
        rows = store.read_report(path)

        assert path.endswith("disable-inactive-members/run-1.csv")
        assert [r["id"] for r in rows] == ["alice", "dave"]
        assert rows[0]["licenses"] == "Office 365 E3;Power BI Pro"
        assert rows[0]["inactive_days"] == "120"
        assert rows[1]["last_activity"] == "never"

    def test_json_export(self, tmp_path, candidates):
        store = ReportStore(tmp_path)

        rows = store.read_report(store.write_candidates("stage", "run-1", candidates, "json"))

        assert rows[0]["department"] == "Finance"
        assert rows[1]["inactive_days"] == ""

    def test_unknown_format(self, tmp_path, candidates):
        with pytest.raises(ValueError):
            ReportStore(tmp_path).write_candidates("stage", "run-1", candidates, "xlsx")
