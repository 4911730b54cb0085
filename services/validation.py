from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator

from contracts.spec_types import EMPTY_SPEC_MARKER

log = logging.getLogger("specgate.validation")

SCHEMA_DIR = Path(__file__).resolve().parents[1] / "contracts" / "schema"
OPENAPI_SCHEMA = "openapi3.minimal.schema.json"


class SpecValidationError(ValueError):
    def __init__(self, errors: List[str], source: str = "") -> None:
        self.errors = list(errors)
        self.source = source
        prefix = f"{source}: " if source else ""
        super().__init__(prefix + "invalid OpenAPI v3 document: " + "; ".join(self.errors))


def load_schema(name: str) -> dict[str, Any]:
    return json.loads((SCHEMA_DIR / name).read_text(encoding="utf-8"))


@lru_cache(maxsize=None)
def validator_for(name: str) -> Draft202012Validator:
    schema = load_schema(name)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def schema_errors(name: str, payload: Any) -> List[str]:
    errors = sorted(validator_for(name).iter_errors(payload), key=lambda e: list(map(str, e.absolute_path)))
    out: List[str] = []
    for err in errors:
        where = "/".join(str(p) for p in err.absolute_path) or "(root)"
        out.append(f"{where}: {err.message}")
    return out


def validate_openapi_v3_document(document: Any, source: str = "") -> None:
    """Minimal shape check needed before traversal. Empty specs always pass."""
    if isinstance(document, dict) and document.get(EMPTY_SPEC_MARKER) is True:
        return
    errors = schema_errors(OPENAPI_SCHEMA, document)
    if errors:
        log.warning("openapi validation failed source=%s errors=%d", source or "<memory>", len(errors))
        raise SpecValidationError(errors, source)
