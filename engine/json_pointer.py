from __future__ import annotations

from typing import Any, Iterable, List, Tuple


def _escape(segment: str) -> str:
    return segment.replace("~", "~0").replace("/", "~1")


def _unescape(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def compile(parts: Iterable[Any]) -> str:
    parts = [str(p) for p in parts]
    if not parts:
        return ""
    return "/" + "/".join(_escape(p) for p in parts)


def decode(pointer: str) -> List[str]:
    if pointer in ("", "#"):
        return []
    if pointer.startswith("#"):
        pointer = pointer[1:]
    if not pointer.startswith("/"):
        raise ValueError(f"invalid json pointer: {pointer!r}")
    return [_unescape(p) for p in pointer[1:].split("/")]


def append(pointer: str, *parts: Any) -> str:
    return compile([*decode(pointer), *parts])


def readable(parts: Iterable[Any]) -> str:
    return " > ".join(str(p) for p in parts)


def try_get(doc: Any, pointer_or_parts: Any) -> Tuple[bool, Any]:
    """Return (matched, value) without raising on a missing path."""
    parts = decode(pointer_or_parts) if isinstance(pointer_or_parts, str) else list(pointer_or_parts)
    node = doc
    for part in parts:
        if isinstance(node, dict):
            if part not in node:
                return False, None
            node = node[part]
        elif isinstance(node, list):
            try:
                idx = int(part)
            except (TypeError, ValueError):
                return False, None
            if idx < 0 or idx >= len(node):
                return False, None
            node = node[idx]
        else:
            return False, None
    return True, node


def get(doc: Any, pointer: str) -> Any:
    matched, value = try_get(doc, pointer)
    if not matched:
        raise KeyError(pointer)
    return value
