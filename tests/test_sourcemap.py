from __future__ import annotations

import pytest

from engine import json_pointer
from services.sourcemap import JsonSchemaSourcemap, position_to_lines

ROOT_YAML = """\
openapi: 3.0.1
paths:
  /a:
    get:
      responses:
        '200':
          description: ok
"""


def _sourcemap():
    sourcemap = JsonSchemaSourcemap("root.yaml")
    sourcemap.add_file_if_missing_from_contents("root.yaml", ROOT_YAML)
    sourcemap.add_file_if_missing_from_contents("other.yaml", "Thing:\n  type: string\n")
    return sourcemap


def test_lines_for_nested_node():
    preview = _sourcemap().find_file_and_lines("/paths/~1a/get/responses/200")
    assert preview.file_path == "root.yaml"
    assert (preview.start_line, preview.end_line) == (7, 7)
    assert ROOT_YAML[preview.start_position:preview.end_position] == "description: ok"


def test_ref_mapping_switches_file():
    sourcemap = _sourcemap()
    sourcemap.log_ref("/paths/~1a/get/responses/200/content", 1, "/Thing")
    assert sourcemap.find_file_position("/paths/~1a/get/responses/200/content/type") == ("other.yaml", "/Thing/type")
    preview = sourcemap.find_file_and_lines("/paths/~1a/get/responses/200/content/type")
    assert preview.file_path == "other.yaml"
    assert preview.start_line == 2


def test_unknown_pointer_has_no_preview():
    assert _sourcemap().find_file_and_lines("/paths/~1b") is None


def test_files_are_added_once():
    sourcemap = _sourcemap()
    again = sourcemap.add_file_if_missing_from_contents("root.yaml", "ignored: true\n")
    assert again.index == 0
    assert len(sourcemap.files) == 2


def test_position_to_lines():
    assert position_to_lines("a\nb\nc\n", 2, 5) == (2, 3)


@pytest.mark.parametrize(
    "parts, pointer",
    [
        ([], ""),
        (["paths", "/pets", "get"], "/paths/~1pets/get"),
        (["a~b"], "/a~0b"),
    ],
)
def test_json_pointer_compile_and_decode(parts, pointer):
    assert json_pointer.compile(parts) == pointer
    assert json_pointer.decode(pointer) == parts


def test_json_pointer_lookup():
    doc = {"a": [{"b": 1}]}
    assert json_pointer.try_get(doc, "/a/0/b") == (True, 1)
    assert json_pointer.try_get(doc, "/a/1") == (False, None)
    assert json_pointer.decode("#/a") == ["a"]
    with pytest.raises(KeyError):
        json_pointer.get(doc, "/missing")
