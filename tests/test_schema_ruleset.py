from __future__ import annotations

import pytest
from jsonschema.exceptions import SchemaError

from engine.check_service import ApiCheckService
from engine.rulesets import check_service_for
from engine.schema_ruleset import SchemaRuleset
from tests.fixtures.openapi_docs import pets_doc

INFO_SCHEMA = {
    "type": "object",
    "required": ["title", "version", "contact"],
    "properties": {"version": {"type": "string", "pattern": "^[0-9]+\\.[0-9]+\\.[0-9]+$"}},
}


def test_each_error_becomes_a_failed_result():
    doc = pets_doc()
    doc["info"]["version"] = "v1"
    results = SchemaRuleset("info block", INFO_SCHEMA, pointer="/info").evaluate(doc)

    assert [r.passed for r in results] == [False, False]
    assert all(r.is_must and r.condition == "info block" for r in results)
    paths = sorted(r.location.json_path for r in results)
    assert paths == [("info",), ("info", "version")]


def test_valid_fragment_passes_once():
    doc = pets_doc()
    doc["info"]["version"] = "1.0.0"
    doc["info"]["contact"] = {"name": "api team"}
    (result,) = SchemaRuleset("info block", INFO_SCHEMA, pointer="/info").evaluate(doc)
    assert result.passed
    assert result.where == "info block: info"


def test_missing_fragment_yields_nothing():
    assert SchemaRuleset("x", {"type": "object"}, pointer="/components").evaluate(pets_doc()) == []


def test_invalid_schema_is_rejected_up_front():
    with pytest.raises(SchemaError):
        SchemaRuleset("broken", {"type": "not-a-type"})


@pytest.mark.asyncio
async def test_batch_results_follow_rule_results():
    service = ApiCheckService().merge_with(check_service_for())
    service.use_schema_ruleset(SchemaRuleset("info block", INFO_SCHEMA, pointer="/info"))
    after = pets_doc()
    del after["paths"]["/pets"]["post"]

    results = await service.run_rules(pets_doc(), after)

    conditions = [r.condition for r in results]
    assert conditions[-1] == "info block"
    assert conditions.index("not remove an operation") < conditions.index("info block")
    assert [b.name for b in service.additional_results] == ["info block"]
