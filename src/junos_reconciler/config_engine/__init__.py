"""Config Engine - transactional reconciliation of Junos set-style configuration.

The engine turns a declared resource into ordered `set` lines, applies
them through a locked candidate configuration, verifies the result and
rebuilds declared state from the device's `display set` dump.

Usage:
    from junos_reconciler.config import ClientSettings
    from junos_reconciler.config_engine import Client, ResourceEngine
    from junos_reconciler.resources import create_resource

    engine = ResourceEngine(Client(ClientSettings.from_env()))
    result = await engine.create(
        create_resource("junos_application_set"),
        {"name": "web", "applications": ["junos-http", "junos-https"]},
    )
"""

from .engine import ResourceEngine
from .session import Client, ConfigSession, SessionState
from .schema import (
    UNKNOWN,
    ConfigElement,
    ElementKind,
    ExistsResult,
    OperationResult,
    StateDiff,
    ValidationResult,
    has_known_value,
    is_known,
    is_null,
    is_unknown,
    resolve_unknowns,
)
from .diagnostics import Diagnostic, Diagnostics, Severity
from .codec import LineCodec
from .checker import DeviceRole, ExistenceChecker, compatible_with_device_role
from .coordinator import AllocationCoordinator, first_free_number, get_coordinator
from .diff import ID_SEPARATOR, DiffResolver, IdentityResolver, summarize_diff
from .parser import PlanParser
from .resource import CheckContext, CheckHook, Resource
from .validator import ConfigValidator
from . import errors

__all__ = [
    # Main engine
    "ResourceEngine",
    "Client",
    "ConfigSession",
    "SessionState",
    # Schema
    "UNKNOWN",
    "ConfigElement",
    "ElementKind",
    "ExistsResult",
    "OperationResult",
    "StateDiff",
    "ValidationResult",
    "has_known_value",
    "is_known",
    "is_null",
    "is_unknown",
    "resolve_unknowns",
    # Diagnostics
    "Diagnostic",
    "Diagnostics",
    "Severity",
    # Components (for resource authors)
    "LineCodec",
    "DeviceRole",
    "ExistenceChecker",
    "compatible_with_device_role",
    "AllocationCoordinator",
    "first_free_number",
    "get_coordinator",
    "ID_SEPARATOR",
    "DiffResolver",
    "IdentityResolver",
    "summarize_diff",
    "PlanParser",
    "CheckContext",
    "CheckHook",
    "Resource",
    "ConfigValidator",
    "errors",
]
