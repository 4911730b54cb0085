from __future__ import annotations

import logging
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

from contracts.spec_types import Fact, Location, OpenApiKind, Result
from engine import json_pointer

log = logging.getLogger("specgate.schema_ruleset")


class SchemaRuleset:
    """
    Validates one fragment of the next document against a JSON schema.

    Produces one failed Result per validation error, anchored at the error's
    path inside the document, or a single passed Result.
    """

    def __init__(self, name: str, schema: Dict[str, Any], pointer: str = "") -> None:
        Draft202012Validator.check_schema(schema)
        self.name = name
        self.schema = schema
        self.pointer = pointer
        self._validator = Draft202012Validator(schema)

    def _fact(self, json_path: List[str], value: Any) -> Fact:
        path = tuple(str(p) for p in json_path)
        return Fact(
            Location(path, path, OpenApiKind.SPECIFICATION),
            value if isinstance(value, dict) else {"value": value},
        )

    def evaluate(self, next_doc: Dict[str, Any]) -> List[Result]:
        base = json_pointer.decode(self.pointer)
        matched, fragment = json_pointer.try_get(next_doc, base)
        if not matched:
            log.debug("schema ruleset %s: nothing at %r", self.name, self.pointer)
            return []

        results: List[Result] = []
        errors = sorted(self._validator.iter_errors(fragment), key=lambda e: list(map(str, e.absolute_path)))
        for err in errors:
            path = [*base, *(str(p) for p in err.absolute_path)]
            results.append(
                Result(
                    passed=False,
                    condition=self.name,
                    where=f"{self.name}: {json_pointer.readable(path) or '(root)'}",
                    is_must=True,
                    is_should=False,
                    change=self._fact(path, err.instance),
                    error=err.message,
                )
            )
        if not results:
            results.append(
                Result(
                    passed=True,
                    condition=self.name,
                    where=f"{self.name}: {json_pointer.readable(base) or '(root)'}",
                    is_must=True,
                    is_should=False,
                    change=self._fact(base, fragment),
                )
            )
        return results

    async def run(self, dsl_input: Any) -> List[Result]:
        return self.evaluate(dsl_input.next_doc)
