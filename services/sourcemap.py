"""
Source positions for a dereferenced document.

Every file that contributed to the document is kept with its text and its
`yaml.compose` node tree. Each `$ref` the loader replaced is recorded as
`pointer-from-root -> (file index, pointer-in-file)`, so a pointer into the
flattened document can be walked back to the file and node it came from.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import yaml

from contracts.spec_types import LinePreview
from engine import json_pointer

log = logging.getLogger("specgate.sourcemap")


@dataclass
class SourceFile:
    path: str
    index: int
    contents: str
    ast: Optional[yaml.Node]


def compose_ast(contents: str) -> Optional[yaml.Node]:
    try:
        return yaml.compose(contents, Loader=yaml.SafeLoader)
    except yaml.YAMLError as exc:
        # tab-indented JSON is valid JSON but not valid YAML 1.1
        log.debug("no source positions available: %s", exc)
        return None


def resolve_pointer_in_ast(node: Optional[yaml.Node], parts: List[str]) -> Optional[yaml.Node]:
    for part in parts:
        if isinstance(node, yaml.MappingNode):
            for key_node, value_node in node.value:
                if str(key_node.value) == part:
                    node = value_node
                    break
            else:
                return None
        elif isinstance(node, yaml.SequenceNode):
            if not part.isdigit() or int(part) >= len(node.value):
                return None
            node = node.value[int(part)]
        else:
            return None
    return node


def node_span(node: yaml.Node) -> Tuple[int, int]:
    """Start/end offsets; block collections end at their last child, not the next key."""
    start = node.start_mark.index
    end = node.end_mark.index
    if isinstance(node, yaml.MappingNode) and node.value:
        end = node.value[-1][1].end_mark.index
    elif isinstance(node, yaml.SequenceNode) and node.value:
        end = node.value[-1].end_mark.index
    return start, end


def position_to_lines(contents: str, start: int, end: int) -> Tuple[int, int]:
    start_line = contents.count("\n", 0, start) + 1
    end_line = start_line + contents.count("\n", start, end)
    return start_line, end_line


class JsonSchemaSourcemap:
    def __init__(self, root_file_path: str) -> None:
        self.root_file_path = root_file_path
        self.files: List[SourceFile] = []
        self.ref_mappings: Dict[str, Tuple[int, str]] = {}

    def file_by_path(self, path: str) -> Optional[SourceFile]:
        for f in self.files:
            if f.path == path:
                return f
        return None

    def add_file_if_missing_from_contents(self, path: str, contents: str) -> SourceFile:
        existing = self.file_by_path(path)
        if existing is not None:
            return existing
        source = SourceFile(path=path, index=len(self.files), contents=contents, ast=compose_ast(contents))
        self.files.append(source)
        return source

    def log_ref(self, pointer_from_root: str, file_index: int, pointer_in_file: str) -> None:
        self.ref_mappings[pointer_from_root] = (file_index, pointer_in_file)

    def find_file_position(self, pointer_from_root: str) -> Optional[Tuple[str, str]]:
        """(file path, pointer inside that file) for a pointer into the flattened document."""
        root = self.file_by_path(self.root_file_path)
        if root is None:
            return None

        current = root.index
        in_root: List[str] = []
        in_file: List[str] = []
        for component in json_pointer.decode(pointer_from_root):
            in_root.append(component)
            hit = self.ref_mappings.get(json_pointer.compile(in_root))
            if hit is not None:
                current, starting = hit
                in_file = json_pointer.decode(starting)
            else:
                in_file.append(component)

        return self.files[current].path, json_pointer.compile(in_file)

    def find_file_and_lines(self, pointer_from_root: str) -> Optional[LinePreview]:
        position = self.find_file_position(pointer_from_root)
        if position is None:
            return None
        file_path, pointer_in_file = position
        source = self.file_by_path(file_path)
        if source is None or source.ast is None:
            return None
        node = resolve_pointer_in_ast(source.ast, json_pointer.decode(pointer_in_file))
        if node is None:
            return None

        start, end = node_span(node)
        start_line, end_line = position_to_lines(source.contents, start, end)
        return LinePreview(
            file_path=file_path,
            start_line=start_line,
            end_line=end_line,
            start_position=start,
            end_position=end,
        )
