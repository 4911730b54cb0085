"""
Breaking-change rules for existing API consumers.

Request side: new constraints clients must satisfy.
Response side: shapes or status codes clients rely on going away.
"""

from __future__ import annotations

from typing import Any, Optional

from contracts.spec_types import ChangeType
from engine.entity_rule import RuleError
from engine.ruleset import Ruleset

DOCS_LINK = "https://swagger.io/docs/specification/about/"


def did_type_change(before: Any, after: Any) -> bool:
    """Both sides declare a type and the declared sets differ."""
    if before is None or after is None:
        return False
    before_set = set(before) if isinstance(before, list) else {before}
    after_set = set(after) if isinstance(after, list) else {after}
    return before_set != after_set


def _flat_type(value: dict) -> Optional[Any]:
    return (value.get("flatSchema") or {}).get("type")


def prevent_request_property_required(dsl) -> None:
    def added(property, context, docs):
        if context.operation_change is ChangeType.ADDED:
            return
        if property.get("required"):
            docs.include_docs_link(DOCS_LINK)
            raise RuleError(
                f"cannot add a required request property '{property.get('key')}' to an existing operation"
            )

    def changed(before, after, context, docs):
        if not before.get("required") and after.get("required"):
            docs.include_docs_link(DOCS_LINK)
            raise RuleError(f"cannot make request property '{after.get('key')}' required")

    dsl.request.property.added.must("not add required request property", added)
    dsl.request.property.changed.must("not make an optional request property required", changed)


def _prevent_require_existing_parameter(parameter_in: str):
    def rule(dsl) -> None:
        def changed(before, after, context, docs):
            if not before.get("required") and after.get("required"):
                raise RuleError("cannot make an optional parameter required")

        getattr(dsl.request, f"{parameter_in}_parameter").changed.must(
            "not make an optional parameter required", changed
        )

    rule.__name__ = f"prevent_require_existing_{parameter_in}_parameter"
    return rule


prevent_require_existing_query_parameter = _prevent_require_existing_parameter("query")
prevent_require_existing_cookie_parameter = _prevent_require_existing_parameter("cookie")
prevent_require_existing_path_parameter = _prevent_require_existing_parameter("path")
prevent_require_existing_header_parameter = _prevent_require_existing_parameter("header")


def prevent_response_property_type_change(dsl) -> None:
    def body_changed(before, after, context, docs):
        if did_type_change(_flat_type(before), _flat_type(after)):
            raise RuleError(
                f"expected response body {after.get('contentType')} root shape to not change type"
            )

    def property_changed(before, after, context, docs):
        if did_type_change(_flat_type(before), _flat_type(after)):
            raise RuleError(f"expected response body property '{after.get('key')}' to not change type")

    dsl.responses.body.changed.must("not change response property type", body_changed)
    dsl.responses.property.changed.must("not change response property type", property_changed)


def prevent_operation_removal(dsl) -> None:
    def removed(operation, context, docs):
        raise RuleError(
            f"cannot remove operation {str(operation.get('method', '')).upper()} {operation.get('pathPattern')}"
        )

    dsl.operations.removed.must("not remove an operation", removed)


def prevent_response_status_code_removal(dsl) -> None:
    def removed(response, context, docs):
        # the whole operation going away is reported once, by prevent_operation_removal
        if context.operation_change is ChangeType.REMOVED:
            return
        raise RuleError(f"cannot remove response status code {response.get('statusCode')}")

    dsl.responses.removed.must("not remove a response status code", removed)


RULESET = Ruleset(
    name="breaking-changes",
    rules={
        "prevent_request_property_required": prevent_request_property_required,
        "prevent_require_existing_query_parameter": prevent_require_existing_query_parameter,
        "prevent_require_existing_cookie_parameter": prevent_require_existing_cookie_parameter,
        "prevent_require_existing_path_parameter": prevent_require_existing_path_parameter,
        "prevent_require_existing_header_parameter": prevent_require_existing_header_parameter,
        "prevent_response_property_type_change": prevent_response_property_type_change,
        "prevent_operation_removal": prevent_operation_removal,
        "prevent_response_status_code_removal": prevent_response_status_code_removal,
    },
    docs_link=DOCS_LINK,
)
