"""Addresses of a zone's address book.

Identified by zone and name: `<zone>_-_<name>`.
"""
from dataclasses import dataclass
from typing import Optional

from ..config_engine.checker import DeviceRole
from ..config_engine.codec import LineCodec
from ..config_engine.lines import cut_prefix, cut_suffix, quote, require_fields, unquote
from ..config_engine.resource import Resource
from ..config_engine.schema import ConfigElement, ElementKind, ValidationResult, has_known_value, is_unknown

ONLY_ONE_VALUE = "only one of cidr, dns_name, range_from or wildcard must be specified"


@dataclass
class ZoneBookAddressState:
    zone: str
    name: str
    id: Optional[str] = None
    cidr: Optional[str] = None
    description: Optional[str] = None
    dns_name: Optional[str] = None
    dns_ipv4_only: Optional[bool] = None
    dns_ipv6_only: Optional[bool] = None
    range_from: Optional[str] = None
    range_to: Optional[str] = None
    wildcard: Optional[str] = None


class ZoneBookAddressCodec(LineCodec):
    state_class = ZoneBookAddressState
    key_attributes = ("zone", "name")

    def path_for(self, identifier: str) -> str:
        keys = self.keys_of(identifier)
        return f"security zones security-zone {keys['zone']} address-book address {keys['name']}"

    def elements(self, state: ZoneBookAddressState) -> list[ConfigElement]:
        elements = []
        value = self._value_element(state)
        if value is not None:
            elements.append(value)
        if state.description:
            elements.append(ConfigElement(
                ("description",), [f"description {quote(state.description)}"], "description"
            ))
        return elements

    def _value_element(self, state: ZoneBookAddressState) -> Optional[ConfigElement]:
        # The value kinds are a choice: switching kind deletes the previous one
        if state.cidr:
            return ConfigElement(("value",), [state.cidr], state.cidr, ElementKind.BLOCK)
        if state.dns_name:
            line = f"dns-name {state.dns_name}"
            if state.dns_ipv4_only:
                line += " ipv4-only"
            elif state.dns_ipv6_only:
                line += " ipv6-only"
            return ConfigElement(("value",), [line], "dns-name", ElementKind.BLOCK)
        if state.range_from:
            line = f"range-address {state.range_from} to {state.range_to}"
            return ConfigElement(("value",), [line], "range-address", ElementKind.BLOCK)
        if state.wildcard:
            line = f"wildcard-address {state.wildcard}"
            return ConfigElement(("value",), [line], "wildcard-address", ElementKind.BLOCK)
        return None

    def apply_line(self, state: ZoneBookAddressState, text: str) -> None:
        value, found = cut_prefix(text, "description ")
        if found:
            state.description = unquote(value)
            return
        value, found = cut_prefix(text, "dns-name ")
        if found:
            value, ipv4_only = cut_suffix(value, " ipv4-only")
            value, ipv6_only = cut_suffix(value, " ipv6-only")
            state.dns_name = value
            state.dns_ipv4_only = True if ipv4_only else None
            state.dns_ipv6_only = True if ipv6_only else None
            return
        value, found = cut_prefix(text, "range-address ")
        if found:
            fields = require_fields(value, 3, "range-address")  # <from> to <to>
            state.range_from = fields[0]
            state.range_to = fields[2]
            return
        value, found = cut_prefix(text, "wildcard-address ")
        if found:
            state.wildcard = value
            return
        if "/" in text:
            state.cidr = text


class SecurityZoneBookAddress(Resource):
    """One address in the address book of a security zone."""

    type_name = "junos_security_zone_book_address"
    label = "security zone address-book address"
    codec = ZoneBookAddressCodec()
    device_role = DeviceRole.SECURITY

    def describe(self, identifier: str) -> str:
        keys = self.codec.keys_of(identifier)
        return f'{self.label} "{keys["name"]}" in zone "{keys["zone"]}"'

    def validate_config(self, state: ZoneBookAddressState, result: ValidationResult) -> None:
        if has_known_value(state.dns_ipv4_only) and state.dns_name is None:
            result.missing("dns_ipv4_only", "cannot have dns_ipv4_only without dns_name")
        if has_known_value(state.dns_ipv6_only) and state.dns_name is None:
            result.missing("dns_ipv6_only", "cannot have dns_ipv6_only without dns_name")
        if state.dns_ipv4_only and state.dns_ipv6_only:
            result.conflict("dns_ipv4_only", "only one of dns_ipv4_only or dns_ipv6_only can be specified")
        if has_known_value(state.range_to) and state.range_from is None:
            result.missing("range_to", "cannot have range_to without range_from")
        if has_known_value(state.range_from) and state.range_to is None:
            result.missing("range_from", "cannot have range_from without range_to")

        values = {
            "cidr": state.cidr,
            "dns_name": state.dns_name,
            "range_from": state.range_from,
            "wildcard": state.wildcard,
        }
        if any(is_unknown(value) for value in values.values()):
            return
        if sum(1 for value in values.values() if has_known_value(value)) != 1:
            result.conflict("cidr", ONLY_ONE_VALUE)
