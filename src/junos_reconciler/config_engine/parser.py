"""Parser for declared resource plans.

Converts dict/YAML input into a resource's state dataclass, recursing into
nested block dataclasses. Values may be UNKNOWN while a plan is still
being computed; they are kept as is for the validation pass.
"""
import dataclasses
import types
import typing
from typing import Any, Union

from .errors import ConflictConfigError, MissingConfigError
from .schema import UNKNOWN


def _unwrap_optional(hint: Any) -> Any:
    origin = typing.get_origin(hint)
    if origin in (Union, getattr(types, "UnionType", Union)):
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


class PlanParser:
    """Parse a declared plan into typed state."""

    def parse(self, state_class: type, config: dict[str, Any], path: str = "") -> Any:
        """
        Parse a configuration dict into an instance of state_class.

        Args:
            state_class: Dataclass describing the resource (or block)
            config: Declared attributes

        Returns:
            Instance of state_class

        Raises:
            ConflictConfigError: unsupported attribute or bad value type
            MissingConfigError: required attribute missing
        """
        if not isinstance(config, dict):
            raise ConflictConfigError(f"{path or 'resource'} must be a mapping", attribute=path or None)

        hints = typing.get_type_hints(state_class)
        names = {f.name for f in dataclasses.fields(state_class)}
        unsupported = sorted(set(config) - names)
        if unsupported:
            raise ConflictConfigError(
                f"unsupported attribute(s) {', '.join(unsupported)}", attribute=path or None
            )

        values = {}
        for f in dataclasses.fields(state_class):
            child = f"{path}.{f.name}" if path else f.name
            if f.name not in config:
                if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                    raise MissingConfigError(f"missing required attribute {child}", attribute=child)
                continue
            values[f.name] = self._convert(hints[f.name], config[f.name], child)
        return state_class(**values)

    def _convert(self, hint: Any, value: Any, path: str) -> Any:
        if value is UNKNOWN or value is None:
            return value
        hint = _unwrap_optional(hint)
        origin = typing.get_origin(hint)

        if origin is list:
            if not isinstance(value, (list, tuple)):
                raise ConflictConfigError(f"{path} must be a list", attribute=path)
            (item_hint,) = typing.get_args(hint) or (Any,)
            return [self._convert(item_hint, item, f"{path}[{i}]") for i, item in enumerate(value)]

        if dataclasses.is_dataclass(hint):
            if dataclasses.is_dataclass(value):
                return value
            return self.parse(hint, value, path)

        if hint is bool:
            if not isinstance(value, bool):
                raise ConflictConfigError(f"{path} must be a boolean", attribute=path)
            return value
        if hint is int:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConflictConfigError(f"{path} must be an integer", attribute=path)
            return value
        if hint is str:
            if not isinstance(value, str):
                raise ConflictConfigError(f"{path} must be a string", attribute=path)
            return value
        return value
