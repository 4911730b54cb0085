from __future__ import annotations

import pytest

from engine.rulesets import DEFAULT_RULESET, UnknownRulesetError, check_service_for, get_ruleset
from engine.rulesets.breaking_changes import did_type_change
from tests.fixtures.openapi_docs import minimal_doc, pets_doc, pets_doc_without_post


def _failures(results):
    return [r for r in results if not r.passed]


async def _breaking(before, after):
    return await check_service_for(["breaking-changes"]).run_rules(before, after)


@pytest.mark.asyncio
async def test_scenario_a_optional_request_property_made_required():
    after = pets_doc()
    after["paths"]["/pets"]["post"]["requestBody"]["content"]["application/json"]["schema"]["required"] = ["name"]
    (failure,) = _failures(await _breaking(pets_doc(), after))
    assert failure.condition == "not make an optional request property required"
    assert failure.is_blocking
    assert "'name'" in failure.error


@pytest.mark.asyncio
async def test_required_property_on_new_operation_is_allowed():
    after = pets_doc()
    after["paths"]["/pets"]["post"]["requestBody"]["content"]["application/json"]["schema"]["required"] = ["name"]
    results = await _breaking(pets_doc_without_post(), after)
    assert _failures(results) == []
    assert any(r.condition == "not add required request property" for r in results)


@pytest.mark.asyncio
async def test_required_property_on_existing_operation_fails():
    after = pets_doc()
    schema = after["paths"]["/pets"]["post"]["requestBody"]["content"]["application/json"]["schema"]
    schema["properties"]["age"] = {"type": "integer"}
    schema["required"] = ["age"]
    (failure,) = _failures(await _breaking(pets_doc(), after))
    assert failure.error == "cannot add a required request property 'age' to an existing operation"


@pytest.mark.asyncio
async def test_scenario_b_new_operation_does_not_trigger_removal_rules():
    results = await _breaking(pets_doc_without_post(), pets_doc())
    assert _failures(results) == []
    assert not [r for r in results if r.where.startswith("removed")]


@pytest.mark.asyncio
async def test_scenario_c_response_property_type_change():
    after = pets_doc()
    items = after["paths"]["/pets"]["get"]["responses"]["200"]["content"]["application/json"]["schema"]["items"]
    items["properties"]["name"]["type"] = "integer"
    (failure,) = _failures(await _breaking(pets_doc(), after))
    assert failure.condition == "not change response property type"
    assert failure.error == "expected response body property 'name' to not change type"


@pytest.mark.asyncio
async def test_scenario_d_empty_spec_to_populated():
    empty = minimal_doc()
    empty["x-specgate-empty-spec"] = True
    results = await _breaking(empty, pets_doc())
    assert _failures(results) == []


@pytest.mark.asyncio
async def test_query_parameter_made_required():
    after = pets_doc()
    after["paths"]["/pets"]["get"]["parameters"][0]["required"] = True
    (failure,) = _failures(await _breaking(pets_doc(), after))
    assert failure.error == "cannot make an optional parameter required"


@pytest.mark.asyncio
async def test_required_true_to_false_is_not_flagged():
    before = pets_doc()
    before["paths"]["/pets"]["get"]["parameters"][0]["required"] = True
    assert _failures(await _breaking(before, pets_doc())) == []


@pytest.mark.asyncio
async def test_operation_removal_reported_once():
    failures = _failures(await _breaking(pets_doc(), pets_doc_without_post()))
    assert [f.error for f in failures] == ["cannot remove operation POST /pets"]


@pytest.mark.asyncio
async def test_status_code_removal():
    after = pets_doc()
    del after["paths"]["/pets"]["get"]["responses"]["default"]
    (failure,) = _failures(await _breaking(pets_doc(), after))
    assert failure.error == "cannot remove response status code default"


@pytest.mark.asyncio
async def test_naming_ruleset():
    doc = pets_doc()
    doc["paths"]["/pets"]["get"]["responses"]["200"]["headers"]["X_Rate"] = {"schema": {"type": "integer"}}
    del doc["paths"]["/pets"]["post"]["operationId"]
    results = await check_service_for(["naming"]).run_rules(doc, doc)
    failures = _failures(results)
    assert sorted(f.condition for f in failures) == ["be kebab-case", "declare an operationId"]
    blocking = [f for f in failures if f.is_blocking]
    assert [f.error for f in blocking] == ["response header 'X_Rate' must be kebab-case"]


def test_default_ruleset_alias():
    assert get_ruleset("default").name == DEFAULT_RULESET == "breaking-changes"
    with pytest.raises(UnknownRulesetError):
        get_ruleset("nope")


@pytest.mark.parametrize(
    "before, after, changed",
    [
        ("string", "integer", True),
        ("string", "string", False),
        (None, "string", False),
        (["string", "null"], ["null", "string"], False),
        (["string"], ["string", "null"], True),
    ],
)
def test_did_type_change(before, after, changed):
    assert did_type_change(before, after) is changed
