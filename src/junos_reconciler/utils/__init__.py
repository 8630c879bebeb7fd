"""Utility modules for retries, logging and auditing."""
from .connection import with_retry, RETRYABLE_EXCEPTIONS
from .logging_config import (
    setup_logging,
    attach_debug_log,
    timed,
    timed_section,
    perf_logger,
)
from .audit_log import CommitTracker, CommitRecord, setup_audit_logging, get_recent_commits

__all__ = [
    "with_retry",
    "RETRYABLE_EXCEPTIONS",
    "setup_logging",
    "attach_debug_log",
    "timed",
    "timed_section",
    "perf_logger",
    "CommitTracker",
    "CommitRecord",
    "setup_audit_logging",
    "get_recent_commits",
]
