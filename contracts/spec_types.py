from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

PathSegment = str
EMPTY_SPEC_MARKER = "x-specgate-empty-spec"
EXEMPTIONS_KEY = "x-specgate-exemptions"


class OpenApiKind(str, Enum):
    SPECIFICATION = "specification"
    OPERATION = "operation"
    REQUEST_HEADER = "request-header"
    REQUEST_QUERY = "request-query"
    REQUEST_COOKIE = "request-cookie"
    REQUEST_PATH = "request-path"
    BODY = "body"
    REQUEST_BODY = "requestBody"
    FIELD = "field"
    RESPONSE = "response"
    RESPONSE_HEADER = "response-header"
    BODY_EXAMPLE = "body-example"
    COMPONENT_SCHEMA_EXAMPLE = "component-schema-example"


PARAMETER_KINDS: Dict[str, OpenApiKind] = {
    "query": OpenApiKind.REQUEST_QUERY,
    "header": OpenApiKind.REQUEST_HEADER,
    "path": OpenApiKind.REQUEST_PATH,
    "cookie": OpenApiKind.REQUEST_COOKIE,
}


class ChangeType(str, Enum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


def _escape(segment: str) -> str:
    return segment.replace("~", "~0").replace("/", "~1")


@dataclass(frozen=True)
class Location:
    """
    Address of one fact.

    json_path points at the node inside one document snapshot.
    conceptual_path identifies the same entity across snapshots and is what
    the differ aligns on.
    """

    json_path: Tuple[PathSegment, ...]
    conceptual_path: Tuple[PathSegment, ...]
    kind: OpenApiKind

    @property
    def json_pointer(self) -> str:
        if not self.json_path:
            return ""
        return "/" + "/".join(_escape(str(p)) for p in self.json_path)

    @property
    def identity(self) -> Tuple[str, Tuple[PathSegment, ...]]:
        return (self.kind.value, self.conceptual_path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jsonPath": self.json_pointer,
            "conceptualPath": list(self.conceptual_path),
            "kind": self.kind.value,
        }


@dataclass(frozen=True)
class Fact:
    location: Location
    value: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"location": self.location.to_dict(), "value": self.value}


@dataclass(frozen=True)
class ChangedValue:
    before: Dict[str, Any]
    after: Dict[str, Any]


@dataclass(frozen=True)
class Change:
    location: Location
    change_type: ChangeType
    added: Optional[Dict[str, Any]] = None
    changed: Optional[ChangedValue] = None
    removed: Optional[Dict[str, Any]] = None

    @classmethod
    def for_added(cls, fact: Fact) -> "Change":
        return cls(location=fact.location, change_type=ChangeType.ADDED, added=fact.value)

    @classmethod
    def for_changed(cls, before: Fact, after: Fact) -> "Change":
        return cls(
            location=after.location,
            change_type=ChangeType.CHANGED,
            changed=ChangedValue(before=before.value, after=after.value),
        )

    @classmethod
    def for_removed(cls, fact: Fact) -> "Change":
        return cls(location=fact.location, change_type=ChangeType.REMOVED, removed=fact.value)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "location": self.location.to_dict(),
            "changeType": self.change_type.value,
        }
        if self.change_type is ChangeType.ADDED:
            out["added"] = self.added
        elif self.change_type is ChangeType.CHANGED and self.changed is not None:
            out["changed"] = {"before": self.changed.before, "after": self.changed.after}
        elif self.change_type is ChangeType.REMOVED:
            out["removed"] = {"before": self.removed}
        return out


def js_iso(value: datetime) -> str:
    """Millisecond UTC timestamp ending in Z, the shape downstream tooling reads."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class LinePreview:
    file_path: str
    start_line: int
    end_line: int
    start_position: int
    end_position: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "startPosition": self.start_position,
            "endPosition": self.end_position,
        }


@dataclass(frozen=True)
class Result:
    """Outcome of one rule assertion against one entity."""

    passed: bool
    condition: str
    where: str
    is_must: bool
    is_should: bool
    change: Union[Change, Fact]
    docs_link: Optional[str] = None
    effective_on_date: Optional[datetime] = None
    error: Optional[str] = None
    exempted: bool = False
    sourcemap: Optional[LinePreview] = None

    @property
    def location(self) -> Location:
        return self.change.location

    @property
    def is_blocking(self) -> bool:
        return not self.passed and not self.exempted and self.is_must

    def with_exemption(self) -> "Result":
        return replace(self, exempted=True)

    def with_sourcemap(self, sourcemap: Optional[LinePreview]) -> "Result":
        return replace(self, sourcemap=sourcemap)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "passed": self.passed,
            "condition": self.condition,
            "where": self.where,
            "isMust": self.is_must,
            "isShould": self.is_should,
            "change": self.change.to_dict(),
        }
        if self.docs_link is not None:
            out["docsLink"] = self.docs_link
        if self.effective_on_date is not None:
            out["effectiveOnDate"] = js_iso(self.effective_on_date)
        if self.error is not None:
            out["error"] = self.error
        out["exempted"] = self.exempted
        if self.sourcemap is not None:
            out["sourcemap"] = self.sourcemap.to_dict()
        return out


@dataclass
class CompareResult:
    results: List[Result] = field(default_factory=list)
    changes: List[Change] = field(default_factory=list)

    @property
    def has_blocking_results(self) -> bool:
        return any(r.is_blocking for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "changes": [c.to_dict() for c in self.changes],
        }
