"""Logical interfaces (`interfaces <name>`, e.g. `ge-0/0/3.100`).

A unit configured only with `description NC` and `disable` is a parked
placeholder: it reads as removed, cannot be imported and is replaced on
create. Junos brings some new logical interfaces up administratively
disabled; the commit then succeeds but the unit never passes traffic,
which the post-check reports.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..config_engine.codec import LineCodec
from ..config_engine.errors import DuplicateError, NotFoundError, PostCheckError
from ..config_engine.lines import (
    DELETE_LS,
    conv_atoi,
    cut_prefix,
    iter_config_lines,
    merge_block,
    quote,
    unquote,
)
from ..config_engine.resource import CheckContext, Resource
from ..config_engine.schema import ConfigElement, ElementKind, ValidationResult, is_unknown

logger = logging.getLogger(__name__)

# Description Junos tooling uses to mark a unit as "not configured"
NOT_CONFIGURED = "NC"

# Interfaces whose unit number is not a VLAN tag
NO_VLAN_INTERFACES = ("st0", "irb", "vlan")


@dataclass
class InterfaceAddress:
    cidr_ip: str
    preferred: Optional[bool] = None
    primary: Optional[bool] = None


@dataclass
class FamilyInet:
    address: list[InterfaceAddress] = field(default_factory=list)
    mtu: Optional[int] = None
    filter_input: Optional[str] = None
    filter_output: Optional[str] = None


@dataclass
class FamilyInet6:
    address: list[InterfaceAddress] = field(default_factory=list)
    mtu: Optional[int] = None


@dataclass
class InterfaceLogicalState:
    name: str
    id: Optional[str] = None
    description: Optional[str] = None
    disable: Optional[bool] = None
    encapsulation: Optional[str] = None
    vlan_id: Optional[int] = None
    family_inet: Optional[FamilyInet] = None
    family_inet6: Optional[FamilyInet6] = None
    st0_also_on_destroy: Optional[bool] = None
    vlan_no_compute: Optional[bool] = None


def _family_lines(keyword: str, family) -> list[str]:
    prefix = f"family {keyword}"
    lines = [prefix]
    for address in family.address:
        lines.append(f"{prefix} address {address.cidr_ip}")
        if address.preferred:
            lines.append(f"{prefix} address {address.cidr_ip} preferred")
        if address.primary:
            lines.append(f"{prefix} address {address.cidr_ip} primary")
    if getattr(family, "filter_input", None):
        lines.append(f"{prefix} filter input {quote(family.filter_input)}")
    if getattr(family, "filter_output", None):
        lines.append(f"{prefix} filter output {quote(family.filter_output)}")
    if family.mtu is not None:
        lines.append(f"{prefix} mtu {family.mtu}")
    return lines


def _apply_family_line(family, text: str, attribute: str) -> None:
    value, found = cut_prefix(text, "address ")
    if found:
        cidr_ip, _, flag = value.partition(" ")
        address = merge_block(family.address, "cidr_ip", cidr_ip, lambda key: InterfaceAddress(cidr_ip=key))
        if flag in ("preferred", "primary"):
            setattr(address, flag, True)
        return
    value, found = cut_prefix(text, "mtu ")
    if found:
        family.mtu = conv_atoi(value, f"{attribute}.mtu", minimum=0)
        return
    value, found = cut_prefix(text, "filter input ")
    if found and hasattr(family, "filter_input"):
        family.filter_input = unquote(value)
        return
    value, found = cut_prefix(text, "filter output ")
    if found and hasattr(family, "filter_output"):
        family.filter_output = unquote(value)


class UnitUsage(str, Enum):
    """What a relative dump says about an existing unit."""
    EMPTY = "empty"
    NOT_CONFIGURED = "not_configured"
    IN_USE = "in_use"


def classify_unit(dump: str) -> UnitUsage:
    """Classify the `display set relative` dump of a unit.

    ethernet-switching statements belong to the physical interface and
    are ignored. A unit with no statements, or only its bare `set`, is
    empty.
    """
    texts = []
    for text in iter_config_lines(dump):
        if "ethernet-switching" in text or text == "set":
            continue
        value, found = cut_prefix(text, "description ")
        if found:
            text = "description " + unquote(value)
        texts.append(text)
    if not texts:
        return UnitUsage.EMPTY
    if sorted(texts) == [f"description {NOT_CONFIGURED}", "disable"]:
        return UnitUsage.NOT_CONFIGURED
    return UnitUsage.IN_USE


def vlan_id_from_unit(name: str) -> Optional[int]:
    """VLAN tag implied by the unit number (`ge-0/0/3.100` -> 100)."""
    interface, _, unit = name.partition(".")
    if interface in NO_VLAN_INTERFACES or not unit.isdigit():
        return None
    number = int(unit)
    if 1 <= number <= 4094:
        return number
    return None


class InterfaceLogicalCodec(LineCodec):
    state_class = InterfaceLogicalState

    def path_for(self, identifier: str) -> str:
        return f"interfaces {identifier}"

    def elements(self, state: InterfaceLogicalState) -> list[ConfigElement]:
        elements = []
        if state.description:
            elements.append(ConfigElement(
                ("description",), [f"description {quote(state.description)}"], "description"
            ))
        if state.disable:
            elements.append(ConfigElement(("disable",), ["disable"], "disable"))
        if state.encapsulation:
            elements.append(ConfigElement(
                ("encapsulation",), [f"encapsulation {state.encapsulation}"], "encapsulation"
            ))
        if state.vlan_id is not None:
            elements.append(ConfigElement(("vlan-id",), [f"vlan-id {state.vlan_id}"], "vlan-id"))
        if state.family_inet is not None:
            elements.append(ConfigElement(
                ("family inet",), _family_lines("inet", state.family_inet), "family inet", ElementKind.BLOCK
            ))
        if state.family_inet6 is not None:
            elements.append(ConfigElement(
                ("family inet6",), _family_lines("inet6", state.family_inet6), "family inet6", ElementKind.BLOCK
            ))
        return elements

    def apply_line(self, state: InterfaceLogicalState, text: str) -> None:
        if text == "disable":
            state.disable = True
            return
        value, found = cut_prefix(text, "description ")
        if found:
            state.description = unquote(value)
            return
        value, found = cut_prefix(text, "encapsulation ")
        if found:
            state.encapsulation = value
            return
        value, found = cut_prefix(text, "vlan-id ")
        if found:
            state.vlan_id = conv_atoi(value, "vlan_id", minimum=1, maximum=4094)
            return
        if text == "family inet" or text.startswith("family inet "):
            if state.family_inet is None:
                state.family_inet = FamilyInet()
            _apply_family_line(state.family_inet, text[len("family inet "):], "family_inet")
            return
        if text == "family inet6" or text.startswith("family inet6 "):
            if state.family_inet6 is None:
                state.family_inet6 = FamilyInet6()
            _apply_family_line(state.family_inet6, text[len("family inet6 "):], "family_inet6")


class InterfaceLogical(Resource):
    """Logical unit of a physical interface."""

    type_name = "junos_interface_logical"
    label = "interface"
    codec = InterfaceLogicalCodec()
    serialize_read = True

    def load_plan(self, config: dict) -> InterfaceLogicalState:
        state = super().load_plan(config)
        if state.vlan_id is None and not state.vlan_no_compute and not is_unknown(state.name):
            state.vlan_id = vlan_id_from_unit(state.name)
        return state

    def is_removed(self, dump: str) -> bool:
        return classify_unit(dump) == UnitUsage.NOT_CONFIGURED

    async def _unit_usage(self, session, identifier: str) -> UnitUsage:
        return classify_unit(await session.command(self.codec.show_command(identifier)))

    async def import_pre_check(self, session, identifier: str) -> None:
        if await self._unit_usage(session, identifier) == UnitUsage.NOT_CONFIGURED:
            raise NotFoundError(f"{self.label} {identifier!r} is disabled (NC), import is not possible")

    async def create_pre_check(self, ctx: CheckContext) -> bool:
        usage = await self._unit_usage(ctx.session, ctx.identifier)
        if usage == UnitUsage.IN_USE:
            ctx.diagnostics.add_exception(DuplicateError(f"{self.label} {ctx.identifier!r} already configured"))
            return False
        if usage == UnitUsage.NOT_CONFIGURED:
            logger.info(f"Replacing NC placeholder {ctx.identifier} on {ctx.session.device_id}")
            ctx.lead_lines.append(DELETE_LS + self.codec.path_for(ctx.identifier))
        return True

    def validate_config(self, state: InterfaceLogicalState, result: ValidationResult) -> None:
        if not is_unknown(state.name) and state.name and state.name.count(".") != 1:
            result.conflict("name", f"the name {state.name!r} doesn't contain one dot")
        if state.disable and state.description == NOT_CONFIGURED:
            result.conflict(
                "disable",
                "disable=true and description=NC is not allowed "
                "because the resource might be considered deleted",
            )
        for attribute in ("family_inet", "family_inet6"):
            family = getattr(state, attribute)
            if family is None or is_unknown(family) or is_unknown(family.address):
                continue
            seen: set[str] = set()
            for address in family.address:
                if address.cidr_ip in seen:
                    result.duplicate(
                        f"{attribute}.address",
                        f"multiple address blocks with the same cidr_ip {address.cidr_ip!r} in {attribute} block",
                    )
                seen.add(address.cidr_ip)

    async def create_post_check(self, ctx: CheckContext) -> bool:
        if not await super().create_post_check(ctx):
            return False
        dump = await ctx.session.command(self.codec.show_command(ctx.identifier))
        lines = set(iter_config_lines(dump))
        if "disable" in lines and not ctx.state.disable:
            logger.warning(f"{ctx.identifier} came up disabled on {ctx.session.device_id}")
            ctx.diagnostics.add_exception(PostCheckError(
                f"{self.label} {ctx.identifier!r} always disable after commit => check your config"
            ))
            return False
        return True

    def restore_plan_attributes(self, device_state: InterfaceLogicalState, planned: InterfaceLogicalState) -> None:
        device_state.st0_also_on_destroy = planned.st0_also_on_destroy
        device_state.vlan_no_compute = planned.vlan_no_compute

    async def extra_delete_lines(self, session, state: InterfaceLogicalState) -> list[str]:
        # st0 units stay in place (empty) unless asked otherwise
        if state.name.startswith("st0.") and not state.st0_also_on_destroy:
            return [f"set interfaces {state.name}"]
        return []
