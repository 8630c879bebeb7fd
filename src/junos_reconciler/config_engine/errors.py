"""Error taxonomy for the reconciliation engine.

Every error carries a category summary label that ends up in the
diagnostics sink, so callers can tell a failed commit from a commit that
succeeded but had no effect on the device.
"""
from typing import Optional

# Error summaries
START_SESS_ERR = "Start Session Error"
CONFIG_LOCK_ERR = "Config Lock Error"
CONFIG_SET_ERR = "Config Set Error"
CONFIG_COMMIT_ERR = "Config Commit Error"
CONFIG_READ_ERR = "Config Read Error"
PRE_CHECK_ERR = "Pre Check Error"
POST_CHECK_ERR = "Post Check Error"
NOT_FOUND_ERR = "Not Found Error"
DUPLICATE_CONFIG_ERR = "Duplicate Configuration Error"
CONFLICT_CONFIG_ERR = "Conflict Configuration Error"
MISSING_CONFIG_ERR = "Missing Configuration Error"
COMPATIBILITY_ERR = "Compatibility Error"
BAD_ID_FORMAT_ERR = "Bad ID Format"

# Warning summaries
CONFIG_COMMIT_WARN = "Config Commit Warning"
CONFIG_CLEAR_UNLOCK_WARN = "Config Clear/Unlock Warning"


class ReconcilerError(Exception):
    """Base class for all engine errors."""

    summary = "Reconciler Error"

    def __init__(self, message: str, attribute: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.attribute = attribute


# --- Staging ---

class ValidationError(ReconcilerError):
    """Plan rejected before any session is opened."""
    summary = CONFLICT_CONFIG_ERR


class ConflictConfigError(ValidationError):
    summary = CONFLICT_CONFIG_ERR


class MissingConfigError(ValidationError):
    summary = MISSING_CONFIG_ERR


class DuplicateConfigError(ValidationError):
    summary = DUPLICATE_CONFIG_ERR


class PlanResolutionError(MissingConfigError):
    """A value was still unknown once the plan was resolved."""


class StagingError(ReconcilerError):
    """Lines could not be generated from a state (raised after lock)."""
    summary = CONFIG_SET_ERR


# --- Pre/post checks ---

class PreCheckError(ReconcilerError):
    summary = PRE_CHECK_ERR


class DuplicateError(PreCheckError):
    summary = DUPLICATE_CONFIG_ERR


class NotFoundError(PreCheckError):
    summary = NOT_FOUND_ERR


class CompatibilityError(PreCheckError):
    summary = COMPATIBILITY_ERR


class BadIdFormatError(ReconcilerError):
    summary = BAD_ID_FORMAT_ERR


class AllocationError(PreCheckError):
    """No free slot could be allocated, or allocation ran unserialized."""


class PostCheckError(ReconcilerError):
    """Commit succeeded but the device did not end up in the expected state."""
    summary = POST_CHECK_ERR


# --- Session ---

class SessionError(ReconcilerError):
    summary = START_SESS_ERR


class SessionStartError(SessionError):
    summary = START_SESS_ERR


class SessionStateError(SessionError):
    """Operation not allowed in the current session state."""


class LockError(SessionError):
    summary = CONFIG_LOCK_ERR


class ConfigSetError(SessionError):
    summary = CONFIG_SET_ERR


class CommitError(SessionError):
    summary = CONFIG_COMMIT_ERR

    def __init__(self, message: str, warnings: Optional[list[str]] = None):
        super().__init__(message)
        self.warnings = list(warnings or [])


class CommandError(SessionError):
    """A read query was rejected by the device."""
    summary = CONFIG_READ_ERR


# --- Read ---

class ParseError(ReconcilerError):
    summary = CONFIG_READ_ERR


class NotEnoughFieldsError(ParseError):
    def __init__(self, attribute: str, text: str):
        super().__init__(
            f"can't read values for {attribute} in {text!r}: not enough fields",
            attribute=attribute,
        )
        self.text = text
