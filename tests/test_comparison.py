from __future__ import annotations

import copy

import pytest
import yaml

from contracts.spec_types import ChangeType
from engine.rulesets import check_service_for
from services.comparison import compare
from services.spec_loader import SpecLoadError
from services.validation import SpecValidationError, validate_openapi_v3_document
from tests.fixtures.openapi_docs import pets_doc


def _write(path, doc):
    path.write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")
    return path.name


@pytest.mark.asyncio
async def test_compare_attaches_sourcemaps(tmp_path):
    before = pets_doc()
    after = pets_doc()
    after["paths"]["/pets"]["post"]["requestBody"]["content"]["application/json"]["schema"]["required"] = ["name"]
    del after["paths"]["/pets"]["get"]["responses"]["default"]

    outcome = await compare(
        check_service_for(),
        _write(tmp_path / "before.yaml", before),
        _write(tmp_path / "after.yaml", after),
        cwd=tmp_path,
    )

    assert outcome.has_blocking_results
    failures = {r.condition: r for r in outcome.results if not r.passed}
    required = failures["not make an optional request property required"]
    assert required.sourcemap is not None
    assert required.sourcemap.file_path.endswith("after.yaml")

    removed = failures["not remove a response status code"]
    assert removed.change.change_type is ChangeType.REMOVED
    assert removed.sourcemap.file_path.endswith("before.yaml")

    serialized = outcome.to_dict()
    assert set(serialized) == {"results", "changes"}
    assert serialized["results"][0]["sourcemap"]["startLine"] >= 1


@pytest.mark.asyncio
async def test_compare_from_empty_spec(tmp_path):
    outcome = await compare(check_service_for(), None, _write(tmp_path / "api.yaml", pets_doc()), cwd=tmp_path)
    assert outcome.changes
    assert all(c.change_type is ChangeType.ADDED for c in outcome.changes)
    assert not outcome.has_blocking_results


@pytest.mark.asyncio
async def test_compare_fails_when_a_load_fails(tmp_path):
    with pytest.raises(SpecLoadError):
        await compare(check_service_for(), "missing.yaml", _write(tmp_path / "api.yaml", pets_doc()), cwd=tmp_path)


@pytest.mark.asyncio
async def test_compare_rejects_non_openapi_documents(tmp_path):
    (tmp_path / "bad.yaml").write_text("swagger: '2.0'\n", encoding="utf-8")
    with pytest.raises(SpecValidationError) as exc:
        await compare(check_service_for(), None, "bad.yaml", cwd=tmp_path)
    assert any("openapi" in e for e in exc.value.errors)


def test_validation_accepts_minimal_document():
    validate_openapi_v3_document(pets_doc())
    with pytest.raises(SpecValidationError):
        validate_openapi_v3_document({"openapi": "2.0", "info": {"title": "x", "version": "1"}})


@pytest.mark.asyncio
async def test_reference_and_inline_schema_are_the_same_api(tmp_path):
    pet = {"type": "object", "required": ["id"], "properties": {"id": {"type": "string"}}}

    def document(schema):
        return {
            "openapi": "3.0.1",
            "info": {"title": "Pets", "version": "1.0.0"},
            "paths": {
                "/pets": {
                    "get": {
                        "responses": {
                            "200": {
                                "description": "ok",
                                "content": {"application/json": {"schema": schema}},
                            }
                        }
                    }
                }
            },
            "components": {"schemas": {"Pet": copy.deepcopy(pet)}},
        }

    referenced = _write(tmp_path / "referenced.yaml", document({"$ref": "#/components/schemas/Pet"}))
    inlined = _write(tmp_path / "inlined.yaml", document(copy.deepcopy(pet)))

    outcome = await compare(check_service_for(), referenced, inlined, cwd=tmp_path)
    assert outcome.changes == []
    assert not [r for r in outcome.results if not r.passed]

    reverse = await compare(check_service_for(), inlined, referenced, cwd=tmp_path)
    assert reverse.changes == []
