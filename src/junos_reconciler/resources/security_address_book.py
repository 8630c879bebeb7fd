"""Security address books (`security address-book "<name>"`).

Every address kind shares the `address <name> ...` namespace of the book,
so a name may only be used once across network, DNS, range and wildcard
addresses. Address descriptions come back on their own line, usually
before the value line, and are merged into the address afterwards.
"""
from dataclasses import dataclass, field
from itertools import chain
from typing import Any, Iterable, Optional

from ..config_engine.checker import DeviceRole
from ..config_engine.codec import LineCodec
from ..config_engine.lines import (
    cut_prefix,
    cut_suffix,
    first_element,
    iter_config_lines,
    merge_block,
    quote,
    require_fields,
    unquote,
)
from ..config_engine.resource import Resource
from ..config_engine.schema import (
    ConfigElement,
    ElementKind,
    ValidationResult,
    has_known_value,
    is_unknown,
)
from ..config_engine.validator import at_least_one, exclusive

GLOBAL_BOOK = "global"


@dataclass
class NetworkAddress:
    name: str
    value: str
    description: Optional[str] = None


@dataclass
class DnsName:
    name: str
    value: str
    description: Optional[str] = None
    ipv4_only: Optional[bool] = None
    ipv6_only: Optional[bool] = None


@dataclass
class RangeAddress:
    name: str
    from_address: str
    to_address: str
    description: Optional[str] = None


@dataclass
class WildcardAddress:
    name: str
    value: str
    description: Optional[str] = None


@dataclass
class AddressSet:
    name: str
    address: list[str] = field(default_factory=list)
    address_set: list[str] = field(default_factory=list)
    description: Optional[str] = None


@dataclass
class AddressBookState:
    name: str
    id: Optional[str] = None
    description: Optional[str] = None
    attach_zone: list[str] = field(default_factory=list)
    network_address: list[NetworkAddress] = field(default_factory=list)
    dns_name: list[DnsName] = field(default_factory=list)
    range_address: list[RangeAddress] = field(default_factory=list)
    wildcard_address: list[WildcardAddress] = field(default_factory=list)
    address_set: list[AddressSet] = field(default_factory=list)


def _addresses(state: AddressBookState) -> Iterable[Any]:
    return chain(state.network_address, state.dns_name, state.range_address, state.wildcard_address)


def _address_value(block: Any) -> str:
    if isinstance(block, DnsName):
        value = f"dns-name {block.value}"
        if block.ipv4_only:
            value += " ipv4-only"
        elif block.ipv6_only:
            value += " ipv6-only"
        return value
    if isinstance(block, RangeAddress):
        return f"range-address {block.from_address} to {block.to_address}"
    if isinstance(block, WildcardAddress):
        return f"wildcard-address {block.value}"
    return block.value


class AddressBookCodec(LineCodec):
    state_class = AddressBookState

    def path_for(self, identifier: str) -> str:
        return f"security address-book {quote(identifier)}"

    def elements(self, state: AddressBookState) -> list[ConfigElement]:
        elements = []
        if state.description:
            elements.append(ConfigElement(
                ("description",), [f"description {quote(state.description)}"], "description"
            ))
        for zone in state.attach_zone:
            line = f"attach zone {zone}"
            elements.append(ConfigElement(("attach zone", zone), [line], line))

        for block in _addresses(state):
            prefix = f"address {block.name}"
            lines = [f"{prefix} {_address_value(block)}"]
            if block.description:
                lines.append(f"{prefix} description {quote(block.description)}")
            elements.append(ConfigElement(("address", block.name), lines, prefix, ElementKind.BLOCK))

        for block in state.address_set:
            prefix = f"address-set {block.name}"
            lines = [f"{prefix} address {member}" for member in block.address]
            lines.extend(f"{prefix} address-set {member}" for member in block.address_set)
            if block.description:
                lines.append(f"{prefix} description {quote(block.description)}")
            elements.append(ConfigElement(("address", block.name), lines, prefix, ElementKind.BLOCK))
        return elements

    def parse(self, dump: str, identifier: str) -> AddressBookState:
        state = self.new_state(identifier)
        descriptions: dict[str, str] = {}
        for text in iter_config_lines(dump):
            rest, found = cut_prefix(text, "address ")
            if found:
                name, rest = first_element(rest)
                value, found = cut_prefix(rest, "description ")
                if found:
                    descriptions[name] = unquote(value)
                    continue
            self.apply_line(state, text)
        for block in _addresses(state):
            if block.name in descriptions:
                block.description = descriptions[block.name]
        return state

    def apply_line(self, state: AddressBookState, text: str) -> None:
        value, found = cut_prefix(text, "description ")
        if found:
            state.description = unquote(value)
            return
        value, found = cut_prefix(text, "attach zone ")
        if found:
            state.attach_zone.append(value)
            return
        rest, found = cut_prefix(text, "address-set ")
        if found:
            self._apply_address_set(state, rest)
            return
        rest, found = cut_prefix(text, "address ")
        if found:
            self._apply_address(state, rest)

    def _apply_address(self, state: AddressBookState, text: str) -> None:
        name, rest = first_element(text)
        value, found = cut_prefix(rest, "description ")
        if found:
            for block in _addresses(state):
                if block.name == name:
                    block.description = unquote(value)
            return
        value, found = cut_prefix(rest, "dns-name ")
        if found:
            block = merge_block(state.dns_name, "name", name, lambda key: DnsName(name=key, value=""))
            value, ipv4_only = cut_suffix(value, " ipv4-only")
            value, ipv6_only = cut_suffix(value, " ipv6-only")
            block.value = value
            block.ipv4_only = True if ipv4_only else block.ipv4_only
            block.ipv6_only = True if ipv6_only else block.ipv6_only
            return
        value, found = cut_prefix(rest, "range-address ")
        if found:
            fields = require_fields(value, 3, "range-address")  # <from> to <to>
            state.range_address.append(RangeAddress(name=name, from_address=fields[0], to_address=fields[2]))
            return
        value, found = cut_prefix(rest, "wildcard-address ")
        if found:
            state.wildcard_address.append(WildcardAddress(name=name, value=value))
            return
        state.network_address.append(NetworkAddress(name=name, value=rest))

    def _apply_address_set(self, state: AddressBookState, text: str) -> None:
        name, rest = first_element(text)
        block = merge_block(state.address_set, "name", name, lambda key: AddressSet(name=key))
        value, found = cut_prefix(rest, "description ")
        if found:
            block.description = unquote(value)
            return
        value, found = cut_prefix(rest, "address ")
        if found:
            block.address.append(value)
            return
        value, found = cut_prefix(rest, "address-set ")
        if found:
            block.address_set.append(value)


class SecurityAddressBook(Resource):
    """Named address book with its addresses and address sets."""

    type_name = "junos_security_address_book"
    label = "security address book"
    codec = AddressBookCodec()
    device_role = DeviceRole.SECURITY

    def validate_config(self, state: AddressBookState, result: ValidationResult) -> None:
        if state.name == GLOBAL_BOOK and has_known_value(state.attach_zone):
            result.conflict("attach_zone", "cannot attach global address book to a zone")

        seen: set[str] = set()
        for attribute in ("network_address", "dns_name", "range_address", "wildcard_address", "address_set"):
            blocks = getattr(state, attribute)
            if is_unknown(blocks) or blocks is None:
                continue
            for block in blocks:
                if attribute == "dns_name":
                    exclusive(
                        result, "dns_name",
                        ipv4_only=block.ipv4_only or None,
                        ipv6_only=block.ipv6_only or None,
                    )
                if attribute == "address_set":
                    at_least_one(result, "address_set", address=block.address, address_set=block.address_set)
                if is_unknown(block.name):
                    continue
                if block.name in seen:
                    result.duplicate(attribute, f"multiple addresses with the same name {block.name!r}")
                seen.add(block.name)

        values = [getattr(state, attribute) for attribute in (
            "description", "attach_zone", "network_address", "dns_name",
            "range_address", "wildcard_address", "address_set",
        )]
        if not any(has_known_value(value) or is_unknown(value) for value in values):
            result.missing(None, "resource with only the name argument is not supported")
