"""Tests for commit audit logging."""
import logging

import pytest

from junos_reconciler.resources import ApplicationSet
from junos_reconciler.utils.audit_log import (
    CommitRecord,
    CommitTracker,
    audit_logger,
    get_recent_commits,
    setup_audit_logging,
)


@pytest.fixture
def audit_file(tmp_path):
    """Route the audit logger to a temporary file for one test."""
    path = setup_audit_logging(str(tmp_path))
    yield path
    for handler in list(audit_logger.handlers):
        handler.close()
        audit_logger.removeHandler(handler)
    audit_logger.propagate = True
    audit_logger.setLevel(logging.NOTSET)


class TestCommitRecord:
    """Tests for CommitRecord."""

    def test_json_round_trip(self):
        record = CommitRecord(
            timestamp="2024-01-01T00:00:00+00:00",
            device_id="srx-edge",
            operation="create",
            resource_type="junos_application_set",
            identifier="web",
            success=True,
            lines=["set applications application-set web application junos-http"],
        )
        assert CommitRecord.from_json(record.to_json()) == record


class TestCommitTracker:
    """Tests for CommitTracker and get_recent_commits."""

    def test_log_and_read(self, audit_file):
        """Records come back most recent first, filtered on request."""
        tracker = CommitTracker("srx-edge")
        tracker.log_commit("create", "junos_application_set", "web", ["set a"], success=True)
        tracker.log_commit(
            "update", "junos_security_ipsec_vpn", "vpn1", ["set b"],
            success=False, warnings=["w"], error="commit failed",
        )
        CommitTracker("vsrx-lab").log_commit("delete", "junos_application_set", "web", ["delete c"], success=True)

        records = get_recent_commits(audit_file)
        assert [r.operation for r in records] == ["delete", "update", "create"]
        assert records[1].error == "commit failed"
        assert records[1].warnings == ["w"]

        assert len(get_recent_commits(audit_file, device_id="srx-edge")) == 2
        assert len(get_recent_commits(audit_file, resource_type="junos_security_ipsec_vpn")) == 1
        assert len(get_recent_commits(audit_file, limit=1)) == 1

    def test_malformed_lines_skipped(self, tmp_path):
        path = tmp_path / "audit.log"
        path.write_text('not json\n{"unexpected": 1}\n\n')
        assert get_recent_commits(str(path)) == []

    def test_missing_file(self, tmp_path):
        assert get_recent_commits(str(tmp_path / "absent.log")) == []

    @pytest.mark.asyncio
    async def test_engine_commits_are_audited(self, audit_file, engine, device):
        """Every commit attempt of the engine lands in the audit log."""
        await engine.create(ApplicationSet(), {"name": "web", "applications": ["junos-http"]})
        device.fail_commit = "error: commit failed"
        await engine.update(ApplicationSet(), "web", {"name": "web", "applications": ["junos-ssh"]})

        records = get_recent_commits(audit_file, device_id="memory")
        assert [(r.operation, r.success) for r in records] == [("update", False), ("create", True)]
        assert records[1].lines == ["set applications application-set web application junos-http"]
