"""Line codec contract shared by every resource.

A codec maps a resource state to an ordered list of ConfigElements (and
from there to `set` lines), and rebuilds the state from a `display set
relative` dump of the resource's root.
"""
from abc import ABC, abstractmethod
from typing import Any

from .diff import IdentityResolver
from .errors import StagingError
from .lines import DELETE_LS, SET_LS, iter_config_lines, show_config_command
from .schema import ConfigElement


class LineCodec(ABC):
    """Generate and parse the set-style lines of one resource type."""

    # Dataclass of the resource state; must carry an `id` field
    state_class: type = None
    # Attributes joined (in order) into the identifier
    key_attributes: tuple[str, ...] = ("name",)

    @abstractmethod
    def path_for(self, identifier: str) -> str:
        """Hierarchy path of the resource root (e.g. `applications application-set "web"`)."""

    @abstractmethod
    def elements(self, state: Any) -> list[ConfigElement]:
        """Diffable elements of a state, in generation order."""

    @abstractmethod
    def apply_line(self, state: Any, text: str) -> None:
        """Merge one relative line (without `set `) into a state being read.

        Lines the codec does not model are ignored.
        """

    def identifier(self, state: Any) -> str:
        return IdentityResolver.join(*(getattr(state, attr) for attr in self.key_attributes))

    def keys_of(self, identifier: str) -> dict[str, str]:
        values = IdentityResolver.split(identifier, len(self.key_attributes))
        return dict(zip(self.key_attributes, values))

    def new_state(self, identifier: str) -> Any:
        return self.state_class(id=identifier, **self.keys_of(identifier))

    def root_path(self, state: Any) -> str:
        return self.path_for(self.identifier(state))

    def generate(self, state: Any) -> list[str]:
        """Ordered `set` lines for a state (deterministic)."""
        root = self.root_path(state)
        lines: list[str] = []
        seen: set = set()
        for element in self.elements(state):
            if element.key in seen:
                raise StagingError(
                    f"multiple blocks with the same identifier {' '.join(map(str, element.key))}",
                    attribute=str(element.key[0]),
                )
            seen.add(element.key)
            lines.extend(SET_LS + root + " " + line for line in element.lines)
        if not lines:
            lines.append(SET_LS + root)
        return lines

    def delete_lines(self, state: Any) -> list[str]:
        """A single synthetic delete of the resource root."""
        return [DELETE_LS + self.root_path(state)]

    def show_command(self, identifier: str, relative: bool = True) -> str:
        return show_config_command(self.path_for(identifier), relative=relative)

    def parse(self, dump: str, identifier: str) -> Any:
        """Rebuild a state from a relative set-style dump."""
        state = self.new_state(identifier)
        for text in iter_config_lines(dump):
            self.apply_line(state, text)
        return state
