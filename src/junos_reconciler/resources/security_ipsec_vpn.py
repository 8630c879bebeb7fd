"""IPsec VPNs (`security ipsec vpn "<name>"`).

With `bind_interface_auto` the VPN is bound to the first free `st0` unit,
which is created along with the VPN and removed with it when nothing else
was configured on it.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..config_engine.checker import DeviceRole
from ..config_engine.codec import LineCodec
from ..config_engine.lines import (
    DELETE_LS,
    SET_LS,
    cut_prefix,
    first_element,
    iter_config_lines,
    merge_block,
    quote,
    show_config_command,
    unquote,
)
from ..config_engine.resource import CheckContext, Resource
from ..config_engine.schema import ConfigElement, ElementKind, ValidationResult, is_unknown
from ..config_engine.validator import exclusive

logger = logging.getLogger(__name__)

ST0 = "st0"
# Config left on an auto-created unit that still counts as unused
ST0_UNIT_LINES = {"set", "family inet"}


@dataclass
class IpsecIke:
    gateway: str
    policy: str
    identity_local: Optional[str] = None
    identity_remote: Optional[str] = None
    identity_service: Optional[str] = None


@dataclass
class TrafficSelector:
    name: str
    local_ip: Optional[str] = None
    remote_ip: Optional[str] = None


@dataclass
class VpnMonitor:
    destination_ip: Optional[str] = None
    optimized: Optional[bool] = None
    source_interface: Optional[str] = None
    source_interface_auto: Optional[bool] = None


@dataclass
class IpsecVpnState:
    name: str
    id: Optional[str] = None
    bind_interface: Optional[str] = None
    bind_interface_auto: Optional[bool] = None
    copy_outer_dscp: Optional[bool] = None
    df_bit: Optional[str] = None
    establish_tunnels: Optional[str] = None
    ike: Optional[IpsecIke] = None
    traffic_selector: list[TrafficSelector] = field(default_factory=list)
    vpn_monitor: Optional[VpnMonitor] = None


class IpsecVpnCodec(LineCodec):
    state_class = IpsecVpnState

    def path_for(self, identifier: str) -> str:
        return f"security ipsec vpn {quote(identifier)}"

    def elements(self, state: IpsecVpnState) -> list[ConfigElement]:
        elements = []
        if state.bind_interface:
            elements.append(ConfigElement(
                ("bind-interface",), [f"bind-interface {state.bind_interface}"], "bind-interface"
            ))
        if state.copy_outer_dscp:
            elements.append(ConfigElement(("copy-outer-dscp",), ["copy-outer-dscp"], "copy-outer-dscp"))
        if state.df_bit:
            elements.append(ConfigElement(("df-bit",), [f"df-bit {state.df_bit}"], "df-bit"))
        if state.establish_tunnels:
            elements.append(ConfigElement(
                ("establish-tunnels",), [f"establish-tunnels {state.establish_tunnels}"], "establish-tunnels"
            ))
        if state.ike is not None:
            ike = state.ike
            lines = [f"ike gateway {quote(ike.gateway)}", f"ike ipsec-policy {ike.policy}"]
            if ike.identity_local:
                lines.append(f"ike proxy-identity local {ike.identity_local}")
            if ike.identity_remote:
                lines.append(f"ike proxy-identity remote {ike.identity_remote}")
            if ike.identity_service:
                lines.append(f"ike proxy-identity service {quote(ike.identity_service)}")
            elements.append(ConfigElement(("ike",), lines, "ike", ElementKind.BLOCK))
        for selector in state.traffic_selector:
            prefix = f"traffic-selector {quote(selector.name)}"
            lines = []
            if selector.local_ip:
                lines.append(f"{prefix} local-ip {selector.local_ip}")
            if selector.remote_ip:
                lines.append(f"{prefix} remote-ip {selector.remote_ip}")
            elements.append(ConfigElement(("traffic-selector", selector.name), lines, prefix, ElementKind.BLOCK))
        if state.vpn_monitor is not None:
            monitor = state.vpn_monitor
            lines = ["vpn-monitor"]
            if monitor.destination_ip:
                lines.append(f"vpn-monitor destination-ip {monitor.destination_ip}")
            if monitor.optimized:
                lines.append("vpn-monitor optimized")
            if monitor.source_interface:
                lines.append(f"vpn-monitor source-interface {monitor.source_interface}")
            elements.append(ConfigElement(("vpn-monitor",), lines, "vpn-monitor", ElementKind.BLOCK))
        return elements

    def apply_line(self, state: IpsecVpnState, text: str) -> None:
        if text == "copy-outer-dscp":
            state.copy_outer_dscp = True
            return
        for keyword, attribute in (
            ("bind-interface ", "bind_interface"),
            ("df-bit ", "df_bit"),
            ("establish-tunnels ", "establish_tunnels"),
        ):
            value, found = cut_prefix(text, keyword)
            if found:
                setattr(state, attribute, value)
                return
        value, found = cut_prefix(text, "ike ")
        if found:
            self._apply_ike(state, value)
            return
        value, found = cut_prefix(text, "traffic-selector ")
        if found:
            name, rest = first_element(value)
            selector = merge_block(state.traffic_selector, "name", name, lambda key: TrafficSelector(name=key))
            local_ip, found = cut_prefix(rest, "local-ip ")
            if found:
                selector.local_ip = local_ip
            remote_ip, found = cut_prefix(rest, "remote-ip ")
            if found:
                selector.remote_ip = remote_ip
            return
        if text == "vpn-monitor" or text.startswith("vpn-monitor "):
            if state.vpn_monitor is None:
                state.vpn_monitor = VpnMonitor()
            self._apply_monitor(state.vpn_monitor, text[len("vpn-monitor "):])

    def _apply_ike(self, state: IpsecVpnState, text: str) -> None:
        if state.ike is None:
            state.ike = IpsecIke(gateway="", policy="")
        value, found = cut_prefix(text, "gateway ")
        if found:
            state.ike.gateway = unquote(value)
            return
        value, found = cut_prefix(text, "ipsec-policy ")
        if found:
            state.ike.policy = value
            return
        value, found = cut_prefix(text, "proxy-identity local ")
        if found:
            state.ike.identity_local = value
            return
        value, found = cut_prefix(text, "proxy-identity remote ")
        if found:
            state.ike.identity_remote = value
            return
        value, found = cut_prefix(text, "proxy-identity service ")
        if found:
            state.ike.identity_service = unquote(value)

    def _apply_monitor(self, monitor: VpnMonitor, text: str) -> None:
        if text == "optimized":
            monitor.optimized = True
            return
        value, found = cut_prefix(text, "destination-ip ")
        if found:
            monitor.destination_ip = value
            return
        value, found = cut_prefix(text, "source-interface ")
        if found:
            monitor.source_interface = value


class SecurityIpsecVpn(Resource):
    """IPsec VPN, optionally bound to an automatically allocated st0 unit."""

    type_name = "junos_security_ipsec_vpn"
    label = "security ipsec vpn"
    codec = IpsecVpnCodec()
    device_role = DeviceRole.SECURITY

    def validate_config(self, state: IpsecVpnState, result: ValidationResult) -> None:
        exclusive(
            result, "bind_interface",
            bind_interface=state.bind_interface,
            bind_interface_auto=state.bind_interface_auto or None,
        )
        bind = state.bind_interface
        if bind and not is_unknown(bind) and not bind.startswith(ST0 + "."):
            result.conflict("bind_interface", f"bind_interface {bind!r} must be a unit of {ST0}")

        monitor = state.vpn_monitor
        if monitor is not None and not is_unknown(monitor):
            exclusive(
                result, "vpn_monitor",
                source_interface=monitor.source_interface,
                source_interface_auto=monitor.source_interface_auto or None,
            )

        if is_unknown(state.traffic_selector):
            return
        names: set[str] = set()
        for selector in state.traffic_selector:
            if selector.name in names:
                result.duplicate(
                    "traffic_selector",
                    f"multiple traffic_selector blocks with the same name {selector.name!r}",
                )
            names.add(selector.name)
            if not selector.local_ip or not selector.remote_ip:
                result.missing("traffic_selector", f"local_ip and remote_ip must be specified in {selector.name!r}")

    # --- st0 unit allocation ---

    def needs_allocation(self, state: IpsecVpnState) -> bool:
        return bool(state.bind_interface_auto)

    async def allocate(self, ctx: CheckContext) -> list[str]:
        unit = await ctx.coordinator.allocate(ctx.session, ST0)
        ctx.state.bind_interface = unit
        self._bind_monitor(ctx.state)
        return [f"{SET_LS}interfaces {unit} family inet"]

    def carry_over(self, device_state: IpsecVpnState, planned: IpsecVpnState) -> None:
        if planned.bind_interface_auto:
            planned.bind_interface = device_state.bind_interface
        self._bind_monitor(planned)

    def restore_plan_attributes(self, device_state: IpsecVpnState, planned: IpsecVpnState) -> None:
        device_state.bind_interface_auto = planned.bind_interface_auto
        if device_state.vpn_monitor is not None and planned.vpn_monitor is not None:
            device_state.vpn_monitor.source_interface_auto = planned.vpn_monitor.source_interface_auto

    @staticmethod
    def _bind_monitor(state: IpsecVpnState) -> None:
        monitor = state.vpn_monitor
        if monitor is not None and monitor.source_interface_auto:
            monitor.source_interface = state.bind_interface

    async def extra_delete_lines(self, session, state: IpsecVpnState) -> list[str]:
        unit = state.bind_interface
        if not state.bind_interface_auto or not unit:
            return []
        dump = await session.command(show_config_command(f"interfaces {unit}", relative=True))
        remaining = set(iter_config_lines(dump))
        if remaining - ST0_UNIT_LINES:
            logger.info(f"Keeping {unit}: still configured outside of {state.name}")
            return []
        return [f"{DELETE_LS}interfaces {unit}"]
