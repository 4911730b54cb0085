"""
OpenAPI v3 traverser.

Walks a flattened (dereferenced) document and yields Facts in a stable order:

  specification
  paths (declaration order) x methods (GET, PATCH, POST, PUT, DELETE, HEAD, OPTIONS)
    operation
    parameters (operation level, then path level not overridden)
    request bodies (body, fields, examples) then requestBody
    responses (numeric status codes ascending, then the rest)
      headers, bodies, response
  component schema examples

Precondition: the document is acyclic. Circular references must be left as
`$ref` objects by the loader; those are skipped here with a warning.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from contracts.spec_types import (
    EMPTY_SPEC_MARKER,
    PARAMETER_KINDS,
    Fact,
    Location,
    OpenApiKind,
)
from engine.json_pointer import readable

log = logging.getLogger("specgate.traverser")

METHOD_ORDER = ("get", "patch", "post", "put", "delete", "head", "options")
BRANCH_TYPES = ("oneOf", "anyOf", "allOf")

_NESTED_SCHEMA_KEYS = ("properties", "items", "oneOf", "anyOf", "allOf", "required")
_OPERATION_CHILD_KEYS = ("parameters", "requestBody", "responses")

Path = Tuple[str, ...]


def flat_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in schema.items() if k not in _NESTED_SCHEMA_KEYS}


def ordered_status_codes(responses: Dict[str, Any]) -> List[str]:
    """Numeric codes ascending, then everything else in declaration order."""
    keys = [str(k) for k in responses]
    numeric = sorted((k for k in keys if k.isdigit()), key=int)
    rest = [k for k in keys if not k.isdigit()]
    return numeric + rest


def _status_code_value(code: str) -> Any:
    return int(code) if code.isdigit() else code


def _is_object(value: Any) -> bool:
    return isinstance(value, dict)


def _is_reference(value: Dict[str, Any]) -> bool:
    return "$ref" in value


def _has_type(schema: Dict[str, Any], name: str) -> bool:
    declared = schema.get("type")
    if isinstance(declared, list):
        return name in declared
    return declared == name


class FactAccumulator:
    """Ordered collection of the facts produced by one traversal."""

    def __init__(self, facts: Optional[List[Fact]] = None) -> None:
        self._facts: List[Fact] = list(facts or [])

    def log(self, fact: Fact) -> None:
        self._facts.append(fact)

    def all_facts(self) -> List[Fact]:
        return list(self._facts)

    def by_kind(self, kind: OpenApiKind) -> List[Fact]:
        return [f for f in self._facts if f.location.kind is kind]

    def __iter__(self) -> Iterator[Fact]:
        return iter(self._facts)

    def __len__(self) -> int:
        return len(self._facts)


class OpenApiTraverser:
    format = "openapi3"

    def __init__(self) -> None:
        self.input: Optional[Dict[str, Any]] = None
        self.warnings: List[str] = []
        self.accumulator = FactAccumulator()

    def traverse(self, document: Dict[str, Any]) -> None:
        self.input = document
        self.warnings = []
        self.accumulator = FactAccumulator()
        for fact in self.facts():
            self.accumulator.log(fact)

    # -- warnings ---------------------------------------------------------

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        log.warning(message)

    def _usable(self, value: Any, json_path: Path) -> bool:
        """True when value is a flattened object; warn and skip otherwise."""
        if not _is_object(value):
            self._warn(f"Expected an object at: {readable(json_path)}, found {value!r}")
            return False
        if _is_reference(value):
            self._warn(f"Expected a flattened spec, found a reference at: {readable(json_path)}")
            return False
        return True

    def _mapping(self, value: Any, json_path: Path) -> Dict[str, Any]:
        """value when it is an object, else {} (with a warning unless absent)."""
        if value is None:
            return {}
        if not _is_object(value):
            self._warn(f"Expected an object at: {readable(json_path)}, found {value!r}")
            return {}
        return value

    def _sequence(self, value: Any, json_path: Path) -> List[Any]:
        if value is None:
            return []
        if not isinstance(value, list):
            self._warn(f"Expected a list at: {readable(json_path)}, found {value!r}")
            return []
        return value

    # -- walk -------------------------------------------------------------

    def facts(self) -> Iterator[Fact]:
        doc = self.input
        if not _is_object(doc) or doc.get(EMPTY_SPEC_MARKER) is True:
            return

        spec_value = {k: v for k, v in doc.items() if k not in ("paths", "components")}
        yield Fact(Location((), (), OpenApiKind.SPECIFICATION), spec_value)

        paths = doc.get("paths") or {}
        if not _is_object(paths):
            self._warn(f"Expected an object at: paths, found {paths!r}")
            paths = {}

        for path_pattern, path_item in paths.items():
            path_pattern = str(path_pattern)
            if not self._usable(path_item, ("paths", path_pattern)):
                continue
            for method in METHOD_ORDER:
                operation = path_item.get(method)
                if operation is None:
                    continue
                if self._usable(operation, ("paths", path_pattern, method)):
                    yield from self.traverse_operation(operation, method, path_pattern, path_item)

        components = doc.get("components")
        if _is_object(components) and _is_object(components.get("schemas")):
            for name, schema in components["schemas"].items():
                yield from self.traverse_component_schema(schema, str(name))

    def traverse_operation(
        self,
        operation: Dict[str, Any],
        method: str,
        path_pattern: str,
        path_item: Dict[str, Any],
    ) -> Iterator[Fact]:
        json_path: Path = ("paths", path_pattern, method)
        conceptual: Path = ("operations", path_pattern, method)

        value = {k: v for k, v in operation.items() if k not in _OPERATION_CHILD_KEYS}
        value["pathPattern"] = path_pattern
        value["method"] = method
        yield Fact(Location(json_path, conceptual, OpenApiKind.OPERATION), value)

        yield from self.traverse_parameters(operation, path_item, json_path, conceptual)

        request_body = operation.get("requestBody")
        if request_body is not None:
            body_path = json_path + ("requestBody",)
            body_conceptual = conceptual + ("requestBody",)
            if self._usable(request_body, body_path):
                content = self._mapping(request_body.get("content"), body_path + ("content",))
                for content_type, media in content.items():
                    yield from self.traverse_body(
                        media,
                        str(content_type),
                        body_path + ("content", str(content_type)),
                        body_conceptual + (str(content_type),),
                    )
                yield Fact(
                    Location(body_path, body_conceptual, OpenApiKind.REQUEST_BODY),
                    {k: v for k, v in request_body.items() if k != "content"},
                )

        responses = operation.get("responses") or {}
        if not _is_object(responses):
            self._warn(f"Expected an object at: {readable(json_path + ('responses',))}, found {responses!r}")
            return
        by_str = {str(k): v for k, v in responses.items()}
        for status_code in ordered_status_codes(responses):
            response = by_str[status_code]
            response_path = json_path + ("responses", status_code)
            if self._usable(response, response_path):
                yield from self.traverse_response(
                    response,
                    status_code,
                    response_path,
                    conceptual + ("responses", status_code),
                )

    def traverse_parameters(
        self,
        operation: Dict[str, Any],
        path_item: Dict[str, Any],
        json_path: Path,
        conceptual: Path,
    ) -> Iterator[Fact]:
        seen = set()

        for i, parameter in enumerate(self._sequence(operation.get("parameters"), json_path + ("parameters",))):
            param_path = json_path + ("parameters", str(i))
            if not self._usable(parameter, param_path):
                continue
            fact = self._parameter_fact(parameter, param_path, conceptual)
            if fact is not None:
                seen.add(fact.location.conceptual_path)
                yield fact

        path_pattern = json_path[1]
        for i, parameter in enumerate(self._sequence(path_item.get("parameters"), ("paths", path_pattern, "parameters"))):
            param_path: Path = ("paths", path_pattern, "parameters", str(i))
            if not self._usable(parameter, param_path):
                continue
            fact = self._parameter_fact(parameter, param_path, conceptual)
            # operation-level parameters override shared ones with the same (in, name)
            if fact is not None and fact.location.conceptual_path not in seen:
                yield fact

    def _parameter_fact(self, parameter: Dict[str, Any], json_path: Path, conceptual: Path) -> Optional[Fact]:
        kind = PARAMETER_KINDS.get(str(parameter.get("in")))
        if kind is None:
            return None
        name = str(parameter.get("name", ""))
        return Fact(
            Location(json_path, conceptual + ("parameters", str(parameter["in"]), name), kind),
            dict(parameter),
        )

    def traverse_response(
        self,
        response: Dict[str, Any],
        status_code: str,
        json_path: Path,
        conceptual: Path,
    ) -> Iterator[Fact]:
        for name, header in self._mapping(response.get("headers"), json_path + ("headers",)).items():
            header_path = json_path + ("headers", str(name))
            if self._usable(header, header_path):
                value = dict(header)
                value["name"] = str(name)
                yield Fact(
                    Location(header_path, conceptual + ("headers", str(name)), OpenApiKind.RESPONSE_HEADER),
                    value,
                )

        for content_type, media in self._mapping(response.get("content"), json_path + ("content",)).items():
            yield from self.traverse_body(
                media,
                str(content_type),
                json_path + ("content", str(content_type)),
                conceptual + (str(content_type),),
            )

        value = {k: v for k, v in response.items() if k not in ("headers", "content")}
        value["statusCode"] = _status_code_value(status_code)
        yield Fact(Location(json_path, conceptual, OpenApiKind.RESPONSE), value)

    def traverse_body(
        self,
        media: Any,
        content_type: str,
        json_path: Path,
        conceptual: Path,
    ) -> Iterator[Fact]:
        if not self._usable(media, json_path):
            return

        schema = media.get("schema")
        if schema is not None:
            schema_path = json_path + ("schema",)
            if self._usable(schema, schema_path):
                yield Fact(
                    Location(json_path, conceptual, OpenApiKind.BODY),
                    {"contentType": content_type, "flatSchema": flat_schema(schema)},
                )
                yield from self.traverse_schema(schema, schema_path, conceptual)

        for name, example in self._mapping(media.get("examples"), json_path + ("examples",)).items():
            example_path = json_path + ("examples", str(name))
            if self._usable(example, example_path):
                yield Fact(
                    Location(example_path, conceptual + ("examples", str(name)), OpenApiKind.BODY_EXAMPLE),
                    dict(example),
                )

        if media.get("example") is not None:
            yield Fact(
                Location(json_path + ("example",), conceptual + ("example",), OpenApiKind.BODY_EXAMPLE),
                {"value": media["example"]},
            )

    def traverse_field(
        self,
        key: str,
        schema: Dict[str, Any],
        required: bool,
        json_path: Path,
        conceptual: Path,
    ) -> Iterator[Fact]:
        yield Fact(
            Location(json_path, conceptual, OpenApiKind.FIELD),
            {"key": key, "required": required, "flatSchema": flat_schema(schema)},
        )
        yield from self.traverse_schema(schema, json_path, conceptual)

    def traverse_schema(self, schema: Dict[str, Any], json_path: Path, conceptual: Path) -> Iterator[Fact]:
        for branch_type in BRANCH_TYPES:
            for index, branch in enumerate(self._sequence(schema.get(branch_type), json_path + (branch_type,))):
                branch_path = json_path + (branch_type, str(index))
                if self._usable(branch, branch_path):
                    yield from self.traverse_schema(
                        branch, branch_path, conceptual + (branch_type, str(index))
                    )

        if _has_type(schema, "object") or ("type" not in schema and "properties" in schema):
            required = {str(r) for r in self._sequence(schema.get("required"), json_path + ("required",))}
            properties = self._mapping(schema.get("properties"), json_path + ("properties",))
            for key, field_schema in properties.items():
                key = str(key)
                field_path = json_path + ("properties", key)
                if self._usable(field_schema, field_path):
                    yield from self.traverse_field(
                        key, field_schema, key in required, field_path, conceptual + (key,)
                    )
        elif _has_type(schema, "array") and "items" in schema:
            items = schema["items"]
            items_path = json_path + ("items",)
            if self._usable(items, items_path):
                yield from self.traverse_schema(items, items_path, conceptual + ("items",))

    def traverse_component_schema(self, schema: Any, name: str) -> Iterator[Fact]:
        json_path: Path = ("components", "schemas", name, "example")
        if not self._usable(schema, ("components", "schemas", name)):
            return
        if schema.get("example") is not None:
            yield Fact(
                Location(json_path, json_path, OpenApiKind.COMPONENT_SCHEMA_EXAMPLE),
                {"name": name, "example": schema["example"]},
            )


def traverse(document: Dict[str, Any]) -> List[Fact]:
    traverser = OpenApiTraverser()
    traverser.traverse(document)
    return traverser.accumulator.all_facts()
