"""Identity and diff resolution.

Identifiers are derived from key attributes; composite identifiers join
their keys with `_-_` and must split back for import.

Updates are diffed at element granularity: a changed block is deleted and
set again as a whole, a changed scalar is simply set again. Every delete
line comes before every set line.
"""
from typing import Any

from .errors import BadIdFormatError, ConflictConfigError
from .lines import DELETE_LS, SET_LS
from .schema import ElementKind, StateDiff

ID_SEPARATOR = "_-_"


class IdentityResolver:
    """Derive and split resource identifiers."""

    separator = ID_SEPARATOR

    @staticmethod
    def join(*keys: str) -> str:
        for key in keys:
            if not key:
                raise ConflictConfigError("key attribute cannot be empty")
            if ID_SEPARATOR in key:
                raise ConflictConfigError(
                    f"key {key!r} cannot contain the identifier separator {ID_SEPARATOR!r}"
                )
        return ID_SEPARATOR.join(keys)

    @staticmethod
    def split(identifier: str, count: int) -> list[str]:
        parts = identifier.split(ID_SEPARATOR) if count > 1 else [identifier]
        if len(parts) != count or any(part == "" for part in parts):
            raise BadIdFormatError(
                f"missing element(s) in id {identifier!r} with separator {ID_SEPARATOR!r}"
            )
        return parts


class DiffResolver:
    """Compute the delete-then-set line sequence between two states."""

    def diff(self, codec: Any, old: Any, new: Any) -> StateDiff:
        """
        Diff two states of the same resource.

        Args:
            codec: LineCodec of the resource
            old: State read from the device
            new: Planned state

        Returns:
            StateDiff with delete lines and set lines
        """
        root = codec.root_path(new)
        old_elements = {element.key: element for element in codec.elements(old)}
        new_elements = codec.elements(new)
        new_keys = {element.key for element in new_elements}

        result = StateDiff()

        for key, element in old_elements.items():
            if key not in new_keys:
                result.removed.append(key)
                result.delete_lines.append(f"{DELETE_LS}{root} {element.delete_path}")

        for element in new_elements:
            previous = old_elements.get(element.key)
            if previous is None:
                result.added.append(element.key)
            elif previous.lines != element.lines:
                result.changed.append(element.key)
                if previous.kind == ElementKind.BLOCK or element.kind == ElementKind.BLOCK:
                    result.delete_lines.append(f"{DELETE_LS}{root} {previous.delete_path}")
            else:
                continue
            result.set_lines.extend(f"{SET_LS}{root} {line}" for line in element.lines)

        return result

    def update_lines(self, codec: Any, old: Any, new: Any) -> list[str]:
        return self.diff(codec, old, new).lines()


def summarize_diff(diff: StateDiff) -> str:
    """Human-readable summary of a StateDiff."""
    if diff.no_change:
        return "No changes needed"

    lines = [f"Changes: {diff.total_changes} element(s)"]
    for label, keys in (("remove", diff.removed), ("change", diff.changed), ("add", diff.added)):
        for key in keys:
            lines.append(f"  {label}: {' '.join(map(str, key))}")
    return "\n".join(lines)
