from __future__ import annotations

from contracts.spec_types import ChangeType, Fact, Location, OpenApiKind
from engine.differ import facts_to_changelog
from engine.traverser import traverse
from services.canonical import compact_json
from tests.fixtures.openapi_docs import pets_doc, pets_doc_without_post


def _diff(before, after):
    return facts_to_changelog(traverse(before), traverse(after))


def _serialized(changes):
    return compact_json([c.to_dict() for c in changes])


def test_self_diff_is_empty():
    assert _diff(pets_doc(), pets_doc()) == []


def test_diff_is_deterministic():
    before = pets_doc()
    after = pets_doc()
    after["paths"]["/pets"]["get"]["responses"]["200"]["description"] = "all pets"
    del after["paths"]["/pets"]["post"]
    runs = {_serialized(_diff(before, after)) for _ in range(5)}
    assert len(runs) == 1


def test_diff_completeness():
    before = pets_doc()
    after = pets_doc()
    after["paths"]["/pets"]["get"]["parameters"][0]["required"] = True
    del after["paths"]["/pets"]["get"]["responses"]["default"]
    after["paths"]["/pets"]["get"]["responses"]["404"] = {"description": "missing"}

    before_facts = {f.location.identity: f for f in traverse(before)}
    after_facts = {f.location.identity: f for f in traverse(after)}
    changes = facts_to_changelog(before_facts.values(), after_facts.values())
    by_key = {}
    for change in changes:
        assert change.location.identity not in by_key
        by_key[change.location.identity] = change

    for key in before_facts.keys() - after_facts.keys():
        assert by_key[key].change_type is ChangeType.REMOVED
    for key in after_facts.keys() - before_facts.keys():
        assert by_key[key].change_type is ChangeType.ADDED
    for key in before_facts.keys() & after_facts.keys():
        if before_facts[key].value == after_facts[key].value:
            assert key not in by_key
        else:
            assert by_key[key].change_type is ChangeType.CHANGED


def test_order_is_added_and_changed_then_removed():
    before = pets_doc()
    after = pets_doc()
    del after["paths"]["/pets"]["get"]["responses"]["default"]
    after["info"]["version"] = "2.0.0"
    after["paths"]["/pets"]["post"]["responses"]["400"] = {"description": "bad"}

    changes = _diff(before, after)
    assert [c.change_type for c in changes] == [ChangeType.CHANGED, ChangeType.ADDED, ChangeType.REMOVED]
    assert changes[0].location.kind is OpenApiKind.SPECIFICATION
    assert changes[1].location.conceptual_path[-1] == "400"
    assert changes[2].removed["statusCode"] == "default"


def test_boolean_and_integer_are_different_values():
    loc = Location(("x",), ("x",), OpenApiKind.SPECIFICATION)
    changes = facts_to_changelog([Fact(loc, {"v": 1})], [Fact(loc, {"v": True})])
    assert len(changes) == 1
    assert changes[0].changed.before == {"v": 1}
    assert changes[0].changed.after == {"v": True}


def test_key_order_does_not_count_as_change():
    loc = Location(("x",), ("x",), OpenApiKind.SPECIFICATION)
    assert facts_to_changelog([Fact(loc, {"a": 1, "b": 2})], [Fact(loc, {"b": 2, "a": 1})]) == []


def test_scenario_a_optional_property_becomes_required():
    before = pets_doc()
    after = pets_doc()
    after["paths"]["/pets"]["post"]["requestBody"]["content"]["application/json"]["schema"]["required"] = ["name"]

    changes = _diff(before, after)
    assert len(changes) == 1
    change = changes[0]
    assert change.change_type is ChangeType.CHANGED
    assert change.location.kind is OpenApiKind.FIELD
    assert change.location.conceptual_path[-1] == "name"
    assert change.changed.before["required"] is False
    assert change.changed.after["required"] is True


def test_scenario_b_new_operation_is_added_with_nested_facts():
    changes = _diff(pets_doc_without_post(), pets_doc())
    assert changes
    assert all(c.change_type is ChangeType.ADDED for c in changes)
    assert changes[0].location.kind is OpenApiKind.OPERATION
    assert changes[0].added["method"] == "post"
    kinds = {c.location.kind for c in changes}
    assert {OpenApiKind.REQUEST_HEADER, OpenApiKind.BODY, OpenApiKind.FIELD, OpenApiKind.REQUEST_BODY, OpenApiKind.RESPONSE} <= kinds


def test_scenario_c_response_property_type_change():
    before = pets_doc()
    after = pets_doc()
    items = after["paths"]["/pets"]["get"]["responses"]["200"]["content"]["application/json"]["schema"]["items"]
    items["properties"]["name"]["type"] = "integer"

    changes = _diff(before, after)
    assert len(changes) == 1
    assert changes[0].location.kind is OpenApiKind.FIELD
    assert changes[0].changed.before["flatSchema"]["type"] == "string"
    assert changes[0].changed.after["flatSchema"]["type"] == "integer"


def test_renamed_path_is_removed_plus_added():
    before = pets_doc_without_post()
    after = pets_doc_without_post()
    after["paths"]["/animals"] = after["paths"].pop("/pets")
    changes = _diff(before, after)
    added = [c for c in changes if c.change_type is ChangeType.ADDED]
    removed = [c for c in changes if c.change_type is ChangeType.REMOVED]
    assert len(added) == len(removed) > 0
    assert not [c for c in changes if c.change_type is ChangeType.CHANGED]


def test_change_serialization_shape():
    before = pets_doc()
    after = pets_doc()
    del after["paths"]["/pets"]["get"]["responses"]["default"]
    (change,) = _diff(before, after)
    assert change.to_dict() == {
        "location": {
            "jsonPath": "/paths/~1pets/get/responses/default",
            "conceptualPath": ["operations", "/pets", "get", "responses", "default"],
            "kind": "response",
        },
        "changeType": "removed",
        "removed": {"before": {"description": "error", "statusCode": "default"}},
    }
