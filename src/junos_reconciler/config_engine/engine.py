"""Generic CRUD orchestrator.

Every operation follows the same transactional shape:

    open -> lock -> pre-check -> generate & stage -> commit -> post-check -> clear & close
              \\-> (any failure) -> clear & close (compensating) -> report

Clear/unlock and close run on every exit path after the session opened,
including cancellation and deadlines. Errors never escape as exceptions:
they land in the operation's diagnostics with a category summary.
Cancellation (and asyncio timeouts) propagate after cleanup.
"""
import asyncio
import dataclasses
import functools
import logging
from typing import Any, Awaitable, Optional, Union

from ..utils.audit_log import CommitTracker
from ..utils.logging_config import timed_section
from .checker import compatible_with_device_role
from .coordinator import AllocationCoordinator, get_coordinator
from .diagnostics import Diagnostics
from .diff import ID_SEPARATOR, DiffResolver, summarize_diff
from .errors import (
    CONFIG_CLEAR_UNLOCK_WARN,
    CONFIG_COMMIT_WARN,
    CommitError,
    CompatibilityError,
    ConflictConfigError,
    NotFoundError,
    ReconcilerError,
)
from .lines import EMPTY_OUTPUT
from .resource import CheckContext, CheckHook, Resource
from .schema import OperationResult, resolve_unknowns
from .session import Client, ConfigSession
from .validator import ConfigValidator

logger = logging.getLogger(__name__)

PlanInput = Union[dict, Any]


class ResourceEngine:
    """
    Reconcile resources against one device.

    Usage:
        engine = ResourceEngine(Client(settings), coordinator)
        result = await engine.create(ApplicationSet(), {"name": "web", "applications": ["junos-http"]})
        if not result.success:
            for diag in result.diagnostics.errors:
                print(diag)
    """

    def __init__(
        self,
        client: Client,
        coordinator: Optional[AllocationCoordinator] = None,
    ):
        """
        Initialize the engine.

        Args:
            client: Client of the device to reconcile
            coordinator: Process-wide allocation coordinator, shared by
                every engine of the process (get_coordinator() by default)
        """
        self.client = client
        self.coordinator = coordinator or get_coordinator()
        self.validator = ConfigValidator()
        self.diff_resolver = DiffResolver()
        self.tracker = CommitTracker(client.device_id)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def validate_config(self, resource: Resource, plan: PlanInput) -> Diagnostics:
        """Validate a plan that may still contain UNKNOWN values.

        Nothing is sent to the device.
        """
        diags = Diagnostics()
        state = self._load_plan(resource, plan, diags)
        if state is not None:
            self._report_validation(resource, state, diags)
        return diags

    async def create(self, resource: Resource, plan: PlanInput, timeout: Optional[float] = None) -> OperationResult:
        result = OperationResult(operation="create", resource_type=resource.type_name)
        return await self._run(self._create(resource, plan, result), timeout)

    async def read(self, resource: Resource, current: Union[str, Any], timeout: Optional[float] = None) -> OperationResult:
        result = OperationResult(operation="read", resource_type=resource.type_name)
        return await self._run(self._read(resource, current, result), timeout)

    async def update(
        self,
        resource: Resource,
        current: Union[str, Any],
        plan: PlanInput,
        timeout: Optional[float] = None,
    ) -> OperationResult:
        result = OperationResult(operation="update", resource_type=resource.type_name)
        return await self._run(self._update(resource, current, plan, result), timeout)

    async def delete(self, resource: Resource, current: Union[str, Any], timeout: Optional[float] = None) -> OperationResult:
        result = OperationResult(operation="delete", resource_type=resource.type_name)
        return await self._run(self._delete(resource, current, result), timeout)

    async def import_state(self, resource: Resource, import_id: str, timeout: Optional[float] = None) -> OperationResult:
        result = OperationResult(operation="import", resource_type=resource.type_name)
        return await self._run(self._import(resource, import_id, result), timeout)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def _create(self, resource: Resource, plan: PlanInput, result: OperationResult) -> OperationResult:
        diags = result.diagnostics
        state = self._load_plan(resource, plan, diags)
        if state is None or not self._validate(resource, state, diags):
            return result
        identifier = resource.codec.identifier(state)
        result.identifier = identifier

        if self.client.fake_create_setfile:
            logger.info(f"Writing {resource.type_name} {identifier} to set file (fake create)")
            try:
                result.lines = resource.codec.generate(state)
            except ReconcilerError as e:
                diags.add_exception(e)
                return result
            if await self._apply_setfile(result.lines, diags):
                state.id = identifier
                result.state = state
            return result

        session = await self._open_session(diags)
        if session is None:
            return result
        async with timed_section("create", self.client.device_id, resource=resource.type_name):
            try:
                ctx = CheckContext(session, identifier, state, diags, self.coordinator)
                committed = await self._locked_create(resource, ctx, result)
                if committed and await self._run_checks(self._create_post_checks(resource), ctx):
                    state.id = identifier
                    result.state = await self._read_back(session, resource, identifier, state)
            except ReconcilerError as e:
                diags.add_exception(e)
            finally:
                await self._clear_and_close(session, diags)
        return result

    async def _locked_create(self, resource: Resource, ctx: CheckContext, result: OperationResult) -> bool:
        await ctx.session.lock()
        logger.info(f"Pre-checking {resource.type_name} {ctx.identifier}")
        if not await self._run_checks(self._create_pre_checks(resource), ctx):
            return False

        if resource.needs_allocation(ctx.state):
            # Serialized from the free-slot scan until the commit
            async with self.coordinator.hold():
                extra = await resource.allocate(ctx)
                result.lines = ctx.lead_lines + extra + resource.codec.generate(ctx.state)
                return await self._stage_and_commit(ctx.session, resource, ctx.identifier, result)

        result.lines = ctx.lead_lines + resource.codec.generate(ctx.state)
        return await self._stage_and_commit(ctx.session, resource, ctx.identifier, result)

    async def _read(self, resource: Resource, current: Union[str, Any], result: OperationResult) -> OperationResult:
        diags = result.diagnostics
        identifier = self._identifier_of(resource, current)
        result.identifier = identifier

        session = await self._open_session(diags)
        if session is None:
            return result
        try:
            result.state = await self._read_state(session, resource, identifier)
        except ReconcilerError as e:
            diags.add_exception(e)
            return result
        finally:
            await session.close()

        if result.state is None:
            logger.info(f"{resource.type_name} {identifier} no longer exists on {self.client.device_id}")
            result.removed = True
        elif not isinstance(current, str):
            resource.restore_plan_attributes(result.state, current)
        return result

    async def _update(
        self,
        resource: Resource,
        current: Union[str, Any],
        plan: PlanInput,
        result: OperationResult,
    ) -> OperationResult:
        diags = result.diagnostics
        state = self._load_plan(resource, plan, diags)
        if state is None or not self._validate(resource, state, diags):
            return result
        identifier = resource.codec.identifier(state)
        result.identifier = identifier
        previous = self._identifier_of(resource, current)
        if previous != identifier:
            diags.add_exception(ConflictConfigError(
                f"key attributes changed ({previous!r} -> {identifier!r}), the resource must be replaced"
            ))
            return result

        if self.client.fake_update_also:
            logger.info(f"Writing {resource.type_name} {identifier} to set file (fake update)")
            try:
                result.lines = resource.codec.delete_lines(state) + resource.codec.generate(state)
            except ReconcilerError as e:
                diags.add_exception(e)
                return result
            if await self._apply_setfile(result.lines, diags):
                state.id = identifier
                result.state = state
            return result

        session = await self._open_session(diags)
        if session is None:
            return result
        async with timed_section("update", self.client.device_id, resource=resource.type_name):
            try:
                await session.lock()
                ctx = CheckContext(session, identifier, state, diags, self.coordinator)
                if not await self._run_checks([resource.exists_pre_check], ctx):
                    return result
                device_state = await self._read_state(session, resource, identifier)
                if device_state is None:
                    diags.add_exception(NotFoundError(f"{resource.describe(identifier)} doesn't exist"))
                    return result
                resource.carry_over(device_state, state)

                diff = self.diff_resolver.diff(resource.codec, device_state, state)
                logger.info(summarize_diff(diff))
                if diff.no_change:
                    state.id = identifier
                    resource.restore_plan_attributes(device_state, state)
                    result.state = device_state
                    return result

                result.lines = diff.lines()
                if not await self._stage_and_commit(session, resource, identifier, result):
                    return result
                if await self._run_checks(self._create_post_checks(resource), ctx):
                    state.id = identifier
                    result.state = await self._read_back(session, resource, identifier, state)
            except ReconcilerError as e:
                diags.add_exception(e)
            finally:
                await self._clear_and_close(session, diags)
        return result

    async def _delete(self, resource: Resource, current: Union[str, Any], result: OperationResult) -> OperationResult:
        diags = result.diagnostics
        identifier = self._identifier_of(resource, current)
        result.identifier = identifier
        try:
            state = current if not isinstance(current, str) else resource.codec.new_state(identifier)
        except ReconcilerError as e:
            diags.add_exception(e)
            return result

        if self.client.fake_delete_also:
            logger.info(f"Writing delete of {resource.type_name} {identifier} to set file (fake delete)")
            result.lines = resource.codec.delete_lines(state)
            if await self._apply_setfile(result.lines, diags):
                result.removed = True
            return result

        session = await self._open_session(diags)
        if session is None:
            return result
        async with timed_section("delete", self.client.device_id, resource=resource.type_name):
            try:
                await session.lock()
                ctx = CheckContext(session, identifier, state, diags, self.coordinator)
                if not await self._run_checks([resource.exists_pre_check], ctx):
                    return result
                result.lines = resource.codec.delete_lines(state) + await resource.extra_delete_lines(session, state)
                result.removed = await self._stage_and_commit(session, resource, identifier, result)
            except ReconcilerError as e:
                diags.add_exception(e)
            finally:
                await self._clear_and_close(session, diags)
        return result

    async def _import(self, resource: Resource, import_id: str, result: OperationResult) -> OperationResult:
        diags = result.diagnostics
        try:
            identifier = resource.import_identifier(import_id)
        except ReconcilerError as e:
            diags.add_exception(e)
            return result
        result.identifier = identifier

        session = await self._open_session(diags)
        if session is None:
            return result
        try:
            await resource.import_pre_check(session, identifier)
            result.state = await self._read_state(session, resource, identifier)
        except ReconcilerError as e:
            diags.add_exception(e)
            return result
        finally:
            await session.close()

        if result.state is None:
            hint = ID_SEPARATOR.join(f"<{attr}>" for attr in resource.codec.key_attributes)
            diags.add_exception(NotFoundError(
                f"don't find {resource.label} with id {import_id!r} (id must be {hint})"
            ))
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run(self, operation: Awaitable[OperationResult], timeout: Optional[float]) -> OperationResult:
        if timeout is None:
            return await operation
        return await asyncio.wait_for(operation, timeout)

    def _load_plan(self, resource: Resource, plan: PlanInput, diags: Diagnostics) -> Optional[Any]:
        if dataclasses.is_dataclass(plan) and not isinstance(plan, type):
            return plan
        try:
            return resource.load_plan(plan)
        except ReconcilerError as e:
            diags.add_exception(e)
            return None

    def _report_validation(self, resource: Resource, state: Any, diags: Diagnostics) -> bool:
        validation = self.validator.validate(resource, state)
        for error in validation.errors:
            diags.add_exception(error)
        for warning in validation.warnings:
            diags.add_warning("Validation Warning", warning)
        return validation.valid

    def _validate(self, resource: Resource, state: Any, diags: Diagnostics) -> bool:
        """Validate and collapse the plan to known values."""
        if not self._report_validation(resource, state, diags):
            return False
        try:
            resolve_unknowns(state)
        except ReconcilerError as e:
            diags.add_exception(e)
            return False
        return True

    def _identifier_of(self, resource: Resource, current: Union[str, Any]) -> str:
        if isinstance(current, str):
            return current
        return current.id or resource.codec.identifier(current)

    async def _open_session(self, diags: Diagnostics) -> Optional[ConfigSession]:
        try:
            return await self.client.start_new_session()
        except ReconcilerError as e:
            diags.add_exception(e)
            return None

    async def _apply_setfile(self, lines: list[str], diags: Diagnostics) -> bool:
        try:
            session = await self.client.new_setfile_session()
        except ReconcilerError as e:
            diags.add_exception(e)
            return False
        async with session:
            try:
                await session.config_set(lines)
            except ReconcilerError as e:
                diags.add_exception(e)
                return False
        return True

    def _create_pre_checks(self, resource: Resource) -> list[CheckHook]:
        return [functools.partial(self._compatibility_gate, resource), resource.create_pre_check]

    def _create_post_checks(self, resource: Resource) -> list[CheckHook]:
        return [resource.create_post_check]

    async def _run_checks(self, hooks: list[CheckHook], ctx: CheckContext) -> bool:
        for hook in hooks:
            if not await hook(ctx):
                return False
        return True

    async def _compatibility_gate(self, resource: Resource, ctx: CheckContext) -> bool:
        info = ctx.session.system_information
        if not compatible_with_device_role(info, resource.device_role):
            ctx.diagnostics.add_exception(CompatibilityError(f"{resource.type_name}{info.not_compatible_msg()}"))
            return False
        return True

    async def _stage_and_commit(
        self,
        session: ConfigSession,
        resource: Resource,
        identifier: str,
        result: OperationResult,
    ) -> bool:
        """Stage result.lines and commit; False when the commit did not happen."""
        diags = result.diagnostics
        await session.config_set(result.lines)
        description = f"{result.operation} resource {resource.type_name}"
        try:
            warnings = await session.commit(description)
        except CommitError as e:
            diags.append_warnings(CONFIG_COMMIT_WARN, e.warnings)
            diags.add_exception(e)
            self.tracker.log_commit(
                result.operation, resource.type_name, identifier, result.lines,
                success=False, warnings=e.warnings, error=str(e),
            )
            return False
        diags.append_warnings(CONFIG_COMMIT_WARN, warnings)
        self.tracker.log_commit(
            result.operation, resource.type_name, identifier, result.lines,
            success=True, warnings=warnings,
        )
        logger.info(f"Committed {result.operation} of {resource.type_name} {identifier} ({len(result.lines)} lines)")
        return True

    async def _read_state(self, session: ConfigSession, resource: Resource, identifier: str) -> Optional[Any]:
        if resource.serialize_read:
            async with self.coordinator.hold():
                return await self._read_dump(session, resource, identifier)
        return await self._read_dump(session, resource, identifier)

    async def _read_back(self, session: ConfigSession, resource: Resource, identifier: str, planned: Any) -> Any:
        device_state = await self._read_state(session, resource, identifier)
        if device_state is None:
            return planned
        resource.restore_plan_attributes(device_state, planned)
        return device_state

    async def _read_dump(self, session: ConfigSession, resource: Resource, identifier: str) -> Optional[Any]:
        dump = await session.command(resource.codec.show_command(identifier))
        if dump == EMPTY_OUTPUT or resource.is_removed(dump):
            return None
        return resource.codec.parse(dump, identifier)

    async def _clear_and_close(self, session: ConfigSession, diags: Diagnostics) -> None:
        """Release lock and transport; runs on every exit path."""
        try:
            diags.append_warnings(CONFIG_CLEAR_UNLOCK_WARN, await session.config_clear())
        finally:
            await session.close()
