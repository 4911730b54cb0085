from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Any, Awaitable, Dict, List, Optional

from contracts.spec_types import Change, ChangeType, Fact, Location, OpenApiKind, Result
from engine.entity_rule import Assertion, EntityRule, generic_entity_rule


@dataclass(frozen=True)
class RuleContext:
    """Where an entity sits inside the API, handed to every rule handler."""

    path: Optional[str] = None
    method: Optional[str] = None
    operation_change: Optional[ChangeType] = None
    in_request: Optional[Dict[str, Any]] = None
    in_response: Optional[Dict[str, Any]] = None
    custom: Any = None


def describe_specification(value: Dict[str, Any]) -> str:
    info = value.get("info") or {}
    return str(info.get("title") or "specification")


def describe_operation(value: Dict[str, Any]) -> str:
    return f"{str(value.get('method', '')).upper()} {value.get('pathPattern', '')}"


def describe_parameter(value: Dict[str, Any]) -> str:
    return str(value.get("name", ""))


def describe_body(value: Dict[str, Any]) -> str:
    return str(value.get("contentType", ""))


def describe_field(value: Dict[str, Any]) -> str:
    return str(value.get("key", ""))


def describe_response(value: Dict[str, Any]) -> str:
    return str(value.get("statusCode", ""))


def describe_example(value: Dict[str, Any]) -> str:
    return str(value.get("summary") or value.get("name") or "example")


def _in_request(location: Location) -> bool:
    return "requestBody" in location.conceptual_path


def _in_response(location: Location) -> bool:
    return "responses" in location.conceptual_path


@dataclass(frozen=True)
class RequestRules:
    query_parameter: EntityRule[RuleContext]
    header_parameter: EntityRule[RuleContext]
    path_parameter: EntityRule[RuleContext]
    cookie_parameter: EntityRule[RuleContext]
    request_body: EntityRule[RuleContext]
    body: EntityRule[RuleContext]
    property: EntityRule[RuleContext]


@dataclass(frozen=True)
class ResponseRules:
    # the response entity itself
    added: Assertion
    removed: Assertion
    changed: Assertion
    requirement: Assertion
    # entities nested under a response
    headers: EntityRule[RuleContext]
    body: EntityRule[RuleContext]
    property: EntityRule[RuleContext]


class ApiChangeDsl:
    """
    Standard rule-authoring surface.

    Each registration on a surface queues one check per matching entity;
    `checks()` hands the queued awaitables to the check service.
    """

    def __init__(
        self,
        next_facts: List[Fact],
        changelog: List[Change],
        current_doc: Dict[str, Any],
        next_doc: Dict[str, Any],
        context: Any = None,
    ) -> None:
        self.next_facts = next_facts
        self.changelog = changelog
        self.current_doc = current_doc
        self.next_doc = next_doc
        self.custom_context = context
        self._checks: List[Awaitable[Result]] = []
        self._operation_changes: Dict[tuple, ChangeType] = {
            c.location.conceptual_path: c.change_type
            for c in changelog
            if c.location.kind is OpenApiKind.OPERATION
        }

    def push_check(self, *checks: Awaitable[Result]) -> None:
        self._checks.extend(checks)

    def checks(self) -> List[Awaitable[Result]]:
        return list(self._checks)

    def get_context(self, location: Location) -> RuleContext:
        conceptual = location.conceptual_path
        if len(conceptual) < 3 or conceptual[0] != "operations":
            return RuleContext(custom=self.custom_context)

        path, method = conceptual[1], conceptual[2]
        rest = conceptual[3:]
        in_request: Optional[Dict[str, Any]] = None
        in_response: Optional[Dict[str, Any]] = None

        if rest[:1] == ("requestBody",):
            in_request = {"body": {"content_type": rest[1]} if len(rest) > 1 else None}
        elif rest[:1] == ("parameters",):
            in_request = {"parameter": {"in": rest[1], "name": rest[2]}}
        elif rest[:1] == ("responses",):
            in_response = {"status_code": rest[1]}
            if len(rest) > 3 and rest[2] == "headers":
                in_response["header"] = rest[3]
            elif len(rest) > 2:
                in_response["body"] = {"content_type": rest[2]}

        return RuleContext(
            path=path,
            method=method,
            operation_change=self._operation_changes.get(("operations", path, method)),
            in_request=in_request,
            in_response=in_response,
            custom=self.custom_context,
        )

    def _rule(self, kind: OpenApiKind, describe, location_filter=None) -> EntityRule[RuleContext]:
        return generic_entity_rule(
            kind,
            self.changelog,
            self.next_facts,
            describe,
            self.get_context,
            self.push_check,
            location_filter,
        )

    @cached_property
    def specification(self) -> EntityRule[RuleContext]:
        return self._rule(OpenApiKind.SPECIFICATION, describe_specification)

    @cached_property
    def operations(self) -> EntityRule[RuleContext]:
        return self._rule(OpenApiKind.OPERATION, describe_operation)

    @cached_property
    def request(self) -> RequestRules:
        return RequestRules(
            query_parameter=self._rule(OpenApiKind.REQUEST_QUERY, describe_parameter),
            header_parameter=self._rule(OpenApiKind.REQUEST_HEADER, describe_parameter),
            path_parameter=self._rule(OpenApiKind.REQUEST_PATH, describe_parameter),
            cookie_parameter=self._rule(OpenApiKind.REQUEST_COOKIE, describe_parameter),
            request_body=self._rule(OpenApiKind.REQUEST_BODY, lambda _value: "request body"),
            body=self._rule(OpenApiKind.BODY, describe_body, _in_request),
            property=self._rule(OpenApiKind.FIELD, describe_field, _in_request),
        )

    @cached_property
    def responses(self) -> ResponseRules:
        base = self._rule(OpenApiKind.RESPONSE, describe_response)
        return ResponseRules(
            added=base.added,
            removed=base.removed,
            changed=base.changed,
            requirement=base.requirement,
            headers=self._rule(OpenApiKind.RESPONSE_HEADER, describe_parameter),
            body=self._rule(OpenApiKind.BODY, describe_body, _in_response),
            property=self._rule(OpenApiKind.FIELD, describe_field, _in_response),
        )

    @cached_property
    def body_examples(self) -> EntityRule[RuleContext]:
        return self._rule(OpenApiKind.BODY_EXAMPLE, describe_example)

    @cached_property
    def component_schema_examples(self) -> EntityRule[RuleContext]:
        return self._rule(OpenApiKind.COMPONENT_SCHEMA_EXAMPLE, describe_example)
