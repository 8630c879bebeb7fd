"""Schema definitions for the reconciliation engine.

Defines config elements, check/operation results and the tri-state
helpers used while a plan is being validated.
"""
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .diagnostics import Diagnostics
from .errors import (
    ConflictConfigError,
    DuplicateConfigError,
    MissingConfigError,
    PlanResolutionError,
    ReconcilerError,
)


class _Unknown:
    """Marker for a value not yet known at plan time."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN: Any = _Unknown()


def is_unknown(value: Any) -> bool:
    return value is UNKNOWN


def is_null(value: Any) -> bool:
    return value is None


def is_known(value: Any) -> bool:
    return value is not UNKNOWN


def has_known_value(value: Any) -> bool:
    """True when a value (or block) is neither null nor unknown.

    For a block, at least one of its fields must hold a known value.
    """
    if value is None or value is UNKNOWN:
        return False
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return any(has_known_value(getattr(value, f.name)) for f in dataclasses.fields(value))
    if isinstance(value, list):
        return len(value) > 0
    return True


def resolve_unknowns(state: Any, path: str = "") -> None:
    """Reject any value still unknown once the plan is resolved.

    After this pass every field is either a concrete value or None.
    """
    if state is UNKNOWN:
        raise PlanResolutionError(f"value of {path or 'resource'} is unknown after plan", attribute=path or None)
    if dataclasses.is_dataclass(state) and not isinstance(state, type):
        for f in dataclasses.fields(state):
            child = f"{path}.{f.name}" if path else f.name
            resolve_unknowns(getattr(state, f.name), child)
    elif isinstance(state, list):
        for index, item in enumerate(state):
            resolve_unknowns(item, f"{path}[{index}]")


class ElementKind(str, Enum):
    """Granularity of a config element for diffing."""
    SCALAR = "scalar"   # Re-set when its value differs
    BLOCK = "block"     # Deleted and re-set as a whole on any change


@dataclass
class ConfigElement:
    """One diffable unit of a resource's configuration.

    Lines are relative to the resource root (no `set <root> ` prefix).
    """
    key: tuple
    lines: list[str]
    delete_path: str
    kind: ElementKind = ElementKind.SCALAR


@dataclass
class ExistsResult:
    """Outcome of an existence query, with the dump it came from."""
    exists: bool
    dump: str = ""

    def __bool__(self) -> bool:
        return self.exists


@dataclass
class StateDiff:
    """Line-level delta between two states of one resource."""
    delete_lines: list[str] = field(default_factory=list)
    set_lines: list[str] = field(default_factory=list)
    removed: list[tuple] = field(default_factory=list)
    changed: list[tuple] = field(default_factory=list)
    added: list[tuple] = field(default_factory=list)

    @property
    def no_change(self) -> bool:
        return not self.delete_lines and not self.set_lines

    @property
    def total_changes(self) -> int:
        return len(self.removed) + len(self.changed) + len(self.added)

    def lines(self) -> list[str]:
        """Delete lines strictly before set lines."""
        return self.delete_lines + self.set_lines


@dataclass
class OperationResult:
    """Result of one CRUD operation."""
    operation: str
    resource_type: str
    identifier: Optional[str] = None
    state: Any = None
    removed: bool = False
    lines: list[str] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def success(self) -> bool:
        return not self.diagnostics.has_error()

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "resource_type": self.resource_type,
            "identifier": self.identifier,
            "success": self.success,
            "removed": self.removed,
            "lines": self.lines,
            "state": dataclasses.asdict(self.state) if dataclasses.is_dataclass(self.state) else self.state,
            **self.diagnostics.to_dict(),
        }


@dataclass
class ValidationResult:
    """Result of plan validation."""
    errors: list[ReconcilerError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def conflict(self, attribute: Optional[str], message: str) -> None:
        self.errors.append(ConflictConfigError(message, attribute=attribute))

    def missing(self, attribute: Optional[str], message: str) -> None:
        self.errors.append(MissingConfigError(message, attribute=attribute))

    def duplicate(self, attribute: Optional[str], message: str) -> None:
        self.errors.append(DuplicateConfigError(message, attribute=attribute))
