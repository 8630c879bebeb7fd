"""Pre-flight validation of declared plans.

Catches logical errors before any device communication. Values still
UNKNOWN at plan time are skipped: they are checked again once resolved.
"""
from typing import Any

from .diff import ID_SEPARATOR
from .schema import ValidationResult, has_known_value, is_unknown


def conflicting_pairs(**blocks: Any) -> list[str]:
    """Messages for every pair of mutually exclusive attributes set together."""
    names = [name for name, value in blocks.items() if has_known_value(value)]
    return [
        f"{first} and {second} cannot be configured together"
        for index, first in enumerate(names)
        for second in names[index + 1:]
    ]


def exclusive(result: ValidationResult, path: str, **blocks: Any) -> None:
    """Report every pair of mutually exclusive attributes set together."""
    for message in conflicting_pairs(**blocks):
        result.conflict(path, message)


def at_least_one(result: ValidationResult, path: str, **values: Any) -> None:
    """Report a block where none of the given attributes is set."""
    if any(is_unknown(value) for value in values.values()):
        return
    if not any(has_known_value(value) for value in values.values()):
        result.missing(path, f"one of {', '.join(values)} must be specified")


class ConfigValidator:
    """Validate a resource plan for logical errors before execution."""

    def validate(self, resource: Any, state: Any) -> ValidationResult:
        """
        Validate a planned state.

        Performs pre-flight checks:
        - Key attributes present and usable in an identifier
        - Resource specific rules (mutually exclusive blocks, required groups)

        Args:
            resource: Resource describing the state
            state: Planned state (may contain UNKNOWN values)

        Returns:
            ValidationResult with errors and warnings
        """
        result = ValidationResult()
        self._validate_keys(resource, state, result)
        resource.validate_config(state, result)
        return result

    def _validate_keys(self, resource: Any, state: Any, result: ValidationResult) -> None:
        for attr in resource.codec.key_attributes:
            value = getattr(state, attr)
            if is_unknown(value):
                continue
            if not value:
                result.missing(attr, f"{attr} must be set")
            elif ID_SEPARATOR in value:
                result.conflict(attr, f"{attr} cannot contain {ID_SEPARATOR!r}")
