from __future__ import annotations

import re

from engine.entity_rule import RuleError
from engine.ruleset import Ruleset

KEBAB_CASE = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")


def response_headers_kebab_case(dsl) -> None:
    def requirement(header, context, docs):
        name = str(header.get("name", ""))
        if not KEBAB_CASE.match(name):
            raise RuleError(f"response header '{name}' must be kebab-case")

    dsl.responses.headers.requirement.must("be kebab-case", requirement)


def operation_id_declared(dsl) -> None:
    def requirement(operation, context, docs):
        if not operation.get("operationId"):
            raise RuleError(
                f"{str(operation.get('method', '')).upper()} {operation.get('pathPattern')} has no operationId"
            )

    dsl.operations.requirement.should("declare an operationId", requirement)


RULESET = Ruleset(
    name="naming",
    rules={
        "response_headers_kebab_case": response_headers_kebab_case,
        "operation_id_declared": operation_id_declared,
    },
)
