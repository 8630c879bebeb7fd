"""Application sets (`applications application-set <name>`)."""
from dataclasses import dataclass, field
from typing import Optional

from ..config_engine.codec import LineCodec
from ..config_engine.lines import cut_prefix, quote, unquote
from ..config_engine.resource import Resource
from ..config_engine.schema import ConfigElement, ValidationResult
from ..config_engine.validator import at_least_one


@dataclass
class ApplicationSetState:
    name: str
    id: Optional[str] = None
    applications: list[str] = field(default_factory=list)
    application_sets: list[str] = field(default_factory=list)
    description: Optional[str] = None


class ApplicationSetCodec(LineCodec):
    state_class = ApplicationSetState

    def path_for(self, identifier: str) -> str:
        return f"applications application-set {identifier}"

    def elements(self, state: ApplicationSetState) -> list[ConfigElement]:
        elements = []
        for application in state.applications:
            line = f"application {application}"
            elements.append(ConfigElement(("application", application), [line], line))
        for application_set in state.application_sets:
            line = f"application-set {application_set}"
            elements.append(ConfigElement(("application-set", application_set), [line], line))
        if state.description:
            elements.append(ConfigElement(
                ("description",), [f"description {quote(state.description)}"], "description"
            ))
        return elements

    def apply_line(self, state: ApplicationSetState, text: str) -> None:
        value, found = cut_prefix(text, "application ")
        if found:
            state.applications.append(value)
            return
        value, found = cut_prefix(text, "application-set ")
        if found:
            state.application_sets.append(value)
            return
        value, found = cut_prefix(text, "description ")
        if found:
            state.description = unquote(value)


class ApplicationSet(Resource):
    """Group of applications referenced by security policies."""

    type_name = "junos_application_set"
    label = "application-set"
    codec = ApplicationSetCodec()

    def validate_config(self, state: ApplicationSetState, result: ValidationResult) -> None:
        at_least_one(
            result, "name",
            applications=state.applications,
            application_sets=state.application_sets,
            description=state.description,
        )
