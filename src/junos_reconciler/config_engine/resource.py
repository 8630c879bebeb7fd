"""Resource contract consumed by the CRUD orchestrator.

A Resource bundles a line codec, an existence checker and the typed check
hooks the engine composes around each operation. Hooks have the fixed
signature `(CheckContext) -> bool`; a hook returning False has already
reported why in the context's diagnostics.
"""
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from .checker import DeviceRole, ExistenceChecker
from .codec import LineCodec
from .coordinator import AllocationCoordinator
from .diagnostics import Diagnostics
from .diff import IdentityResolver
from .errors import DuplicateError, NotFoundError, PostCheckError
from .parser import PlanParser
from .schema import ValidationResult
from .session import ConfigSession


@dataclass
class CheckContext:
    """Everything a check hook may look at."""
    session: ConfigSession
    identifier: str
    state: Any
    diagnostics: Diagnostics
    coordinator: AllocationCoordinator
    # Staged ahead of the generated lines on create
    lead_lines: list[str] = field(default_factory=list)


CheckHook = Callable[[CheckContext], Awaitable[bool]]


class Resource(ABC):
    """Base class of a configurable resource type."""

    type_name: str = ""
    # Human-readable label used in messages (e.g. "application-set")
    label: str = ""
    codec: LineCodec = None
    device_role: DeviceRole = DeviceRole.ANY
    # Serialize reads with the allocation coordinator
    serialize_read: bool = False

    def __init__(self):
        self.checker = ExistenceChecker(self.codec.path_for)
        self._parser = PlanParser()

    def describe(self, identifier: str) -> str:
        keys = IdentityResolver.split(identifier, len(self.codec.key_attributes))
        quoted = ['"' + key + '"' for key in reversed(keys)]
        return f"{self.label} {' in '.join(quoted)}"

    # --- plan ---

    def load_plan(self, config: dict) -> Any:
        """Parse a declared plan into the state dataclass."""
        return self._parser.parse(self.codec.state_class, config)

    def validate_config(self, state: Any, result: ValidationResult) -> None:
        """Resource specific validation; append to result."""

    def import_identifier(self, import_id: str) -> str:
        """Normalize an import id (raises BadIdFormatError when malformed)."""
        IdentityResolver.split(import_id, len(self.codec.key_attributes))
        return import_id

    def is_removed(self, dump: str) -> bool:
        """True when a non-empty dump still means the resource is gone."""
        return False

    async def import_pre_check(self, session: ConfigSession, identifier: str) -> None:
        """Refuse an import before reading (raises PreCheckError)."""

    # --- checks ---

    async def create_pre_check(self, ctx: CheckContext) -> bool:
        result = await self.checker.exists(ctx.session, ctx.identifier)
        if result:
            ctx.diagnostics.add_exception(DuplicateError(f"{self.describe(ctx.identifier)} already exists"))
            return False
        return True

    async def exists_pre_check(self, ctx: CheckContext) -> bool:
        result = await self.checker.exists(ctx.session, ctx.identifier)
        if not result:
            ctx.diagnostics.add_exception(NotFoundError(f"{self.describe(ctx.identifier)} doesn't exist"))
            return False
        return True

    async def create_post_check(self, ctx: CheckContext) -> bool:
        result = await self.checker.exists(ctx.session, ctx.identifier)
        if not result:
            ctx.diagnostics.add_exception(PostCheckError(
                f"{self.describe(ctx.identifier)} does not exist after commit => check your config"
            ))
            return False
        return True

    # --- auto-numbered sub-objects ---

    def needs_allocation(self, state: Any) -> bool:
        return False

    async def allocate(self, ctx: CheckContext) -> list[str]:
        """Fill allocated attributes of ctx.state; return extra lines to stage first."""
        return []

    async def extra_delete_lines(self, session: ConfigSession, state: Any) -> list[str]:
        """Lines deleted along with the resource root."""
        return []

    def carry_over(self, device_state: Any, planned: Any) -> None:
        """Copy device-computed attributes (e.g. allocated units) into an update plan."""

    def restore_plan_attributes(self, device_state: Any, planned: Any) -> None:
        """Copy attributes that never reach the device from the plan into a read state."""
