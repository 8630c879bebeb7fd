"""Accumulating error/warning sink passed through every engine step."""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Iterator, Optional

from .errors import ReconcilerError


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass
class Diagnostic:
    """A single reported problem."""
    severity: Severity
    summary: str
    detail: str
    attribute: Optional[str] = None

    def __str__(self) -> str:
        where = f" ({self.attribute})" if self.attribute else ""
        return f"{self.summary}{where}: {self.detail}"


class Diagnostics:
    """Ordered collection of diagnostics.

    Errors and warnings are kept in the order they were reported. Warnings
    never hide errors, and errors never drop warnings.
    """

    def __init__(self):
        self._items: list[Diagnostic] = []

    def add_error(self, summary: str, detail: str) -> None:
        self._items.append(Diagnostic(Severity.ERROR, summary, detail))

    def add_attribute_error(self, path: str, summary: str, detail: str) -> None:
        self._items.append(Diagnostic(Severity.ERROR, summary, detail, attribute=path))

    def add_warning(self, summary: str, detail: str) -> None:
        self._items.append(Diagnostic(Severity.WARNING, summary, detail))

    def append_warnings(self, summary: str, warnings: list[str]) -> None:
        for warning in warnings:
            self.add_warning(summary, warning)

    def add_exception(self, exc: ReconcilerError, summary: Optional[str] = None) -> None:
        """Report an engine error under its own (or an overriding) summary."""
        label = summary or exc.summary
        if exc.attribute:
            self.add_attribute_error(exc.attribute, label, exc.message)
        else:
            self.add_error(label, exc.message)

    def extend(self, other: "Diagnostics") -> None:
        self._items.extend(other)

    def has_error(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self._items)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self._items if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self._items if d.severity == Severity.WARNING]

    def summaries(self) -> list[str]:
        return [d.summary for d in self._items]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def to_dict(self) -> dict:
        return {
            "errors": [asdict(d) for d in self.errors],
            "warnings": [asdict(d) for d in self.warnings],
        }
