"""IDP custom attacks (`security idp custom-attack "<name>"`).

An attack is exactly one attack type: an anomaly, a signature or a chain
of member attacks. Chain members use the anomaly and signature match
blocks directly; the top-level variants hold one in `match` and add
their own attributes next to it.
"""
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config_engine.checker import DeviceRole
from ..config_engine.codec import LineCodec
from ..config_engine.errors import StagingError
from ..config_engine.lines import (
    conv_atoi,
    cut_prefix,
    first_element,
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
from ..config_engine.validator import conflicting_pairs

MAX_TIME_BINDING_COUNT = 4294967295


# --- protocol header matches ---
# Every header field is a `<field> match <op>` / `<field> value <n>` pair.

@dataclass
class IcmpHeader:
    checksum_validate_match: Optional[str] = None
    checksum_validate_value: Optional[int] = None
    code_match: Optional[str] = None
    code_value: Optional[int] = None
    data_length_match: Optional[str] = None
    data_length_value: Optional[int] = None
    identification_match: Optional[str] = None
    identification_value: Optional[int] = None
    sequence_number_match: Optional[str] = None
    sequence_number_value: Optional[int] = None
    type_match: Optional[str] = None
    type_value: Optional[int] = None


@dataclass
class TcpHeader:
    ack_number_match: Optional[str] = None
    ack_number_value: Optional[int] = None
    checksum_validate_match: Optional[str] = None
    checksum_validate_value: Optional[int] = None
    data_length_match: Optional[str] = None
    data_length_value: Optional[int] = None
    destination_port_match: Optional[str] = None
    destination_port_value: Optional[int] = None
    header_length_match: Optional[str] = None
    header_length_value: Optional[int] = None
    mss_match: Optional[str] = None
    mss_value: Optional[int] = None
    option_match: Optional[str] = None
    option_value: Optional[int] = None
    reserved_match: Optional[str] = None
    reserved_value: Optional[int] = None
    sequence_number_match: Optional[str] = None
    sequence_number_value: Optional[int] = None
    source_port_match: Optional[str] = None
    source_port_value: Optional[int] = None
    urgent_pointer_match: Optional[str] = None
    urgent_pointer_value: Optional[int] = None
    window_scale_match: Optional[str] = None
    window_scale_value: Optional[int] = None
    window_size_match: Optional[str] = None
    window_size_value: Optional[int] = None


@dataclass
class UdpHeader:
    checksum_validate_match: Optional[str] = None
    checksum_validate_value: Optional[int] = None
    data_length_match: Optional[str] = None
    data_length_value: Optional[int] = None
    destination_port_match: Optional[str] = None
    destination_port_value: Optional[int] = None
    source_port_match: Optional[str] = None
    source_port_value: Optional[int] = None


# Attribute name -> (protocol keyword, header class); order is generation order
PROTOCOLS = {
    "protocol_icmp": ("icmp", IcmpHeader),
    "protocol_icmpv6": ("icmpv6", IcmpHeader),
    "protocol_tcp": ("tcp", TcpHeader),
    "protocol_udp": ("udp", UdpHeader),
}


def header_lines(prefix: str, header: Any) -> list[str]:
    lines = []
    for f in dataclasses.fields(header):
        value = getattr(header, f.name)
        if value is None:
            continue
        name, _, kind = f.name.rpartition("_")
        lines.append(f"{prefix}{name.replace('_', '-')} {kind} {value}")
    return lines


def apply_header_line(header: Any, text: str, attribute: str) -> None:
    tokens = require_fields(text, 3, attribute)
    name = f"{tokens[0].replace('-', '_')}_{tokens[1]}"
    if not hasattr(header, name):
        return
    if tokens[1] == "value":
        setattr(header, name, conv_atoi(tokens[2], f"{attribute}.{name}", minimum=0))
    else:
        setattr(header, name, tokens[2])


# --- attack type blocks ---

@dataclass
class AnomalyMatch:
    direction: Optional[str] = None
    test: Optional[str] = None
    shellcode: Optional[str] = None

    def lines(self, prefix: str) -> list[str]:
        prefix += "attack-type anomaly "
        lines = [f"{prefix}direction {self.direction}", f"{prefix}test {quote(self.test)}"]
        if self.shellcode:
            lines.append(f"{prefix}shellcode {self.shellcode}")
        return lines

    def apply(self, text: str) -> None:
        value, found = cut_prefix(text, "direction ")
        if found:
            self.direction = value
            return
        value, found = cut_prefix(text, "test ")
        if found:
            self.test = unquote(value)
            return
        value, found = cut_prefix(text, "shellcode ")
        if found:
            self.shellcode = value


@dataclass
class AttackAnomaly:
    match: AnomalyMatch = field(default_factory=AnomalyMatch)
    service: Optional[str] = None

    def lines(self, prefix: str) -> list[str]:
        return [f"{prefix}attack-type anomaly service {quote(self.service)}"] + self.match.lines(prefix)

    def apply(self, text: str) -> None:
        value, found = cut_prefix(text, "service ")
        if found:
            self.service = unquote(value)
            return
        self.match.apply(text)


@dataclass
class SignatureMatch:
    context: Optional[str] = None
    direction: Optional[str] = None
    negate: Optional[bool] = None
    pattern: Optional[str] = None
    pattern_pcre: Optional[str] = None
    regexp: Optional[str] = None
    shellcode: Optional[str] = None
    protocol_icmp: Optional[IcmpHeader] = None
    protocol_icmpv6: Optional[IcmpHeader] = None
    protocol_tcp: Optional[TcpHeader] = None
    protocol_udp: Optional[UdpHeader] = None

    def problems(self) -> list[tuple[str, str]]:
        """(attribute, message) for protocol blocks that cannot be generated."""
        blocks = {attribute: getattr(self, attribute) for attribute in PROTOCOLS}
        found = [(message.split(" ", 1)[0], message) for message in conflicting_pairs(**blocks)]
        for attribute in PROTOCOLS:
            block = getattr(self, attribute)
            if block is not None and not is_unknown(block) and not has_known_value(block):
                found.append((attribute, f"{attribute} block is empty"))
        return found

    def lines(self, prefix: str) -> list[str]:
        problems = self.problems()
        if problems:
            attribute, message = problems[0]
            raise StagingError(message, attribute=attribute)

        prefix += "attack-type signature "
        lines = [f"{prefix}context {quote(self.context)}", f"{prefix}direction {self.direction}"]
        if self.negate:
            lines.append(f"{prefix}negate")
        if self.pattern:
            lines.append(f"{prefix}pattern {quote(self.pattern)}")
        if self.pattern_pcre:
            lines.append(f"{prefix}pattern-pcre {quote(self.pattern_pcre)}")
        if self.regexp:
            lines.append(f"{prefix}regexp {quote(self.regexp)}")
        if self.shellcode:
            lines.append(f"{prefix}shellcode {self.shellcode}")
        for attribute, (keyword, _) in PROTOCOLS.items():
            block = getattr(self, attribute)
            if block is not None:
                lines.extend(header_lines(f"{prefix}protocol {keyword} ", block))
        return lines

    def apply(self, text: str) -> None:
        if text == "negate":
            self.negate = True
            return
        for keyword, attribute in (
            ("context ", "context"),
            ("pattern ", "pattern"),
            ("pattern-pcre ", "pattern_pcre"),
            ("regexp ", "regexp"),
        ):
            value, found = cut_prefix(text, keyword)
            if found:
                setattr(self, attribute, unquote(value))
                return
        value, found = cut_prefix(text, "direction ")
        if found:
            self.direction = value
            return
        value, found = cut_prefix(text, "shellcode ")
        if found:
            self.shellcode = value
            return
        for attribute, (keyword, header_class) in PROTOCOLS.items():
            value, found = cut_prefix(text, f"protocol {keyword} ")
            if found:
                if getattr(self, attribute) is None:
                    setattr(self, attribute, header_class())
                apply_header_line(getattr(self, attribute), value, attribute)
                return


@dataclass
class AttackSignature:
    match: SignatureMatch = field(default_factory=SignatureMatch)
    protocol_binding: Optional[str] = None

    def lines(self, prefix: str) -> list[str]:
        lines = self.match.lines(prefix)
        if self.protocol_binding:
            lines.append(f"{prefix}attack-type signature protocol-binding {self.protocol_binding}")
        return lines

    def apply(self, text: str) -> None:
        value, found = cut_prefix(text, "protocol-binding ")
        if found:
            self.protocol_binding = value
            return
        self.match.apply(text)


@dataclass
class ChainMember:
    name: str
    attack_type_anomaly: Optional[AnomalyMatch] = None
    attack_type_signature: Optional[SignatureMatch] = None

    def problems(self) -> list[tuple[str, str]]:
        where = f"in member block {self.name!r} in attack_type_chain block"
        if self.attack_type_anomaly is None and self.attack_type_signature is None:
            return [("name", f"one of attack_type_anomaly or attack_type_signature must be specified {where}")]
        if self.attack_type_anomaly is not None and self.attack_type_signature is not None:
            return [(
                "attack_type_anomaly",
                f"attack_type_anomaly and attack_type_signature cannot be configured together {where}",
            )]
        return []

    def lines(self, prefix: str) -> list[str]:
        problems = self.problems()
        if problems:
            attribute, message = problems[0]
            raise StagingError(message, attribute=attribute)
        prefix += f"member {quote(self.name)} "
        if self.attack_type_anomaly is not None:
            return self.attack_type_anomaly.lines(prefix)
        return self.attack_type_signature.lines(prefix)

    def apply(self, text: str) -> None:
        value, found = cut_prefix(text, "attack-type anomaly ")
        if found:
            if self.attack_type_anomaly is None:
                self.attack_type_anomaly = AnomalyMatch()
            self.attack_type_anomaly.apply(value)
            return
        value, found = cut_prefix(text, "attack-type signature ")
        if found:
            if self.attack_type_signature is None:
                self.attack_type_signature = SignatureMatch()
            self.attack_type_signature.apply(value)


@dataclass
class AttackChain:
    expression: Optional[str] = None
    order: Optional[bool] = None
    protocol_binding: Optional[str] = None
    reset: Optional[bool] = None
    scope: Optional[str] = None
    member: list[ChainMember] = field(default_factory=list)

    def lines(self, prefix: str) -> list[str]:
        prefix += "attack-type chain "
        lines = []
        if self.expression:
            lines.append(f"{prefix}expression {quote(self.expression)}")
        if self.order:
            lines.append(f"{prefix}order")
        if self.protocol_binding:
            lines.append(f"{prefix}protocol-binding {self.protocol_binding}")
        if self.reset:
            lines.append(f"{prefix}reset")
        if self.scope:
            lines.append(f"{prefix}scope {self.scope}")
        names: set[str] = set()
        for member in self.member:
            if member.name in names:
                raise StagingError(
                    f"multiple member blocks with the same name {member.name!r} in attack_type_chain block",
                    attribute="attack_type_chain.member",
                )
            names.add(member.name)
            lines.extend(member.lines(prefix))
        return lines

    def apply(self, text: str) -> None:
        if text in ("order", "reset"):
            setattr(self, text, True)
            return
        value, found = cut_prefix(text, "expression ")
        if found:
            self.expression = unquote(value)
            return
        value, found = cut_prefix(text, "protocol-binding ")
        if found:
            self.protocol_binding = value
            return
        value, found = cut_prefix(text, "scope ")
        if found:
            self.scope = value
            return
        value, found = cut_prefix(text, "member ")
        if found:
            name, rest = first_element(value)
            member = merge_block(self.member, "name", name, lambda key: ChainMember(name=key))
            member.apply(rest)


@dataclass
class CustomAttackState:
    name: str
    id: Optional[str] = None
    severity: Optional[str] = None
    recommended_action: Optional[str] = None
    time_binding_count: Optional[int] = None
    time_binding_scope: Optional[str] = None
    attack_type_anomaly: Optional[AttackAnomaly] = None
    attack_type_chain: Optional[AttackChain] = None
    attack_type_signature: Optional[AttackSignature] = None


ATTACK_TYPES = ("attack_type_anomaly", "attack_type_chain", "attack_type_signature")


class CustomAttackCodec(LineCodec):
    state_class = CustomAttackState

    def path_for(self, identifier: str) -> str:
        return f"security idp custom-attack {quote(identifier)}"

    def elements(self, state: CustomAttackState) -> list[ConfigElement]:
        elements = []
        if state.severity:
            elements.append(ConfigElement(("severity",), [f"severity {state.severity}"], "severity"))
        if state.recommended_action:
            elements.append(ConfigElement(
                ("recommended-action",), [f"recommended-action {state.recommended_action}"], "recommended-action"
            ))
        if state.time_binding_count is not None:
            elements.append(ConfigElement(
                ("time-binding count",),
                [f"time-binding count {state.time_binding_count}"],
                "time-binding count",
            ))
        if state.time_binding_scope:
            elements.append(ConfigElement(
                ("time-binding scope",),
                [f"time-binding scope {state.time_binding_scope}"],
                "time-binding scope",
            ))

        conflicts = conflicting_pairs(**{name: getattr(state, name) for name in ATTACK_TYPES})
        if conflicts:
            raise StagingError(conflicts[0])
        for name in ATTACK_TYPES:
            block = getattr(state, name)
            if block is not None:
                elements.append(ConfigElement(("attack-type",), block.lines(""), "attack-type", ElementKind.BLOCK))
        return elements

    def apply_line(self, state: CustomAttackState, text: str) -> None:
        value, found = cut_prefix(text, "severity ")
        if found:
            state.severity = value
            return
        value, found = cut_prefix(text, "recommended-action ")
        if found:
            state.recommended_action = value
            return
        value, found = cut_prefix(text, "time-binding count ")
        if found:
            state.time_binding_count = conv_atoi(
                value, "time_binding_count", minimum=0, maximum=MAX_TIME_BINDING_COUNT
            )
            return
        value, found = cut_prefix(text, "time-binding scope ")
        if found:
            state.time_binding_scope = value
            return
        for prefix, attribute, block_class in (
            ("attack-type anomaly ", "attack_type_anomaly", AttackAnomaly),
            ("attack-type chain ", "attack_type_chain", AttackChain),
            ("attack-type signature ", "attack_type_signature", AttackSignature),
        ):
            value, found = cut_prefix(text, prefix)
            if found:
                if getattr(state, attribute) is None:
                    setattr(state, attribute, block_class())
                getattr(state, attribute).apply(value)
                return


class SecurityIdpCustomAttack(Resource):
    """Custom IDP attack object."""

    type_name = "junos_security_idp_custom_attack"
    label = "security idp custom-attack"
    codec = CustomAttackCodec()
    device_role = DeviceRole.SECURITY

    def validate_config(self, state: CustomAttackState, result: ValidationResult) -> None:
        if state.severity is None:
            result.missing("severity", "severity must be specified")
        if has_known_value(state.time_binding_count) and not 0 <= state.time_binding_count <= MAX_TIME_BINDING_COUNT:
            result.conflict("time_binding_count", f"time_binding_count must be between 0 and {MAX_TIME_BINDING_COUNT}")

        blocks = {name: getattr(state, name) for name in ATTACK_TYPES}
        for message in conflicting_pairs(**blocks):
            result.conflict(None, message)
        if not any(is_unknown(block) for block in blocks.values()) and not any(
            block is not None for block in blocks.values()
        ):
            result.missing(None, f"one of {', '.join(ATTACK_TYPES)} must be specified")

        anomaly = state.attack_type_anomaly
        if has_known_value(anomaly):
            self._require(result, "attack_type_anomaly", anomaly, "service")
            if self._has_match(result, "attack_type_anomaly", anomaly):
                self._require(result, "attack_type_anomaly.match", anomaly.match, "direction", "test")
        signature = state.attack_type_signature
        if has_known_value(signature) and self._has_match(result, "attack_type_signature", signature):
            self._validate_signature(result, "attack_type_signature.match", signature.match)
        chain = state.attack_type_chain
        if has_known_value(chain) and not is_unknown(chain.member):
            self._validate_chain(result, chain)

    def _validate_chain(self, result: ValidationResult, chain: AttackChain) -> None:
        names: set[str] = set()
        for index, member in enumerate(chain.member):
            path = f"attack_type_chain.member[{index}]"
            for attribute, message in member.problems():
                result.conflict(f"{path}.{attribute}", message)
            if not is_unknown(member.name):
                if member.name in names:
                    result.duplicate(
                        f"{path}.name",
                        f"multiple member blocks with the same name {member.name!r} in attack_type_chain block",
                    )
                names.add(member.name)
            if has_known_value(member.attack_type_anomaly):
                self._require(result, f"{path}.attack_type_anomaly", member.attack_type_anomaly, "direction", "test")
            if has_known_value(member.attack_type_signature):
                self._validate_signature(result, f"{path}.attack_type_signature", member.attack_type_signature)

    def _validate_signature(self, result: ValidationResult, path: str, signature: SignatureMatch) -> None:
        self._require(result, path, signature, "context", "direction")
        for attribute, message in signature.problems():
            result.conflict(f"{path}.{attribute}", message)

    @staticmethod
    def _has_match(result: ValidationResult, path: str, block: Any) -> bool:
        if block.match is None:
            result.missing(f"{path}.match", f"match must be specified in {path}")
            return False
        return not is_unknown(block.match)

    @staticmethod
    def _require(result: ValidationResult, path: str, block: Any, *attributes: str) -> None:
        for attribute in attributes:
            if getattr(block, attribute) is None:
                result.missing(f"{path}.{attribute}", f"{attribute} must be specified in {path}")
