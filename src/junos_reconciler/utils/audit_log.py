"""Audit logging for configuration commits.

Every commit attempt made by the engine (successful or not) is written as
one JSON line, with the lines that were staged and the warnings/errors the
device returned.
"""
import json
import logging
import os
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

audit_logger = logging.getLogger("junos_reconciler.audit")

DEFAULT_AUDIT_DIR = "~/.junos-reconciler"


def setup_audit_logging(log_dir: Optional[str] = None) -> str:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.junos-reconciler/

    Returns:
        Path of the audit log file
    """
    if log_dir is None:
        log_dir = os.path.expanduser(DEFAULT_AUDIT_DIR)

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    audit_file = os.path.join(log_dir, "audit.log")

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    audit_logger.propagate = False
    return audit_file


@dataclass
class CommitRecord:
    """Record of one commit attempt."""
    timestamp: str
    device_id: str
    operation: str  # create, update, delete
    resource_type: str
    identifier: str
    success: bool
    lines: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "CommitRecord":
        data = json.loads(json_str)
        return cls(**data)


class CommitTracker:
    """Write commit records for one device to the audit log."""

    def __init__(self, device_id: str):
        self.device_id = device_id

    def log_commit(
        self,
        operation: str,
        resource_type: str,
        identifier: str,
        lines: list[str],
        success: bool,
        warnings: Optional[list[str]] = None,
        error: Optional[str] = None,
    ) -> CommitRecord:
        """Log a commit attempt.

        Returns:
            The CommitRecord that was logged
        """
        record = CommitRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            device_id=self.device_id,
            operation=operation,
            resource_type=resource_type,
            identifier=identifier,
            success=success,
            lines=list(lines),
            warnings=list(warnings or []),
            error=error,
        )
        audit_logger.info(record.to_json())
        return record


def get_recent_commits(
    log_file: Optional[str] = None,
    device_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    limit: int = 100,
) -> list[CommitRecord]:
    """Read recent commits from the audit log, most recent first."""
    if log_file is None:
        log_file = os.path.join(os.path.expanduser(DEFAULT_AUDIT_DIR), "audit.log")

    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = CommitRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if device_id and record.device_id != device_id:
                continue
            if resource_type and record.resource_type != resource_type:
                continue
            records.append(record)

    return list(reversed(records[-limit:]))
