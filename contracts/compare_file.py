from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CompareInputRow(BaseModel):
    """One `{from, to, context}` row of a bulk-compare input file."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    from_: Optional[str] = Field(default=None, alias="from")
    to: str = Field(min_length=1)
    context: dict[str, Any]


class LocationModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    jsonPath: str
    conceptualPath: list[str]
    kind: str


class ChangedModel(BaseModel):
    before: Any
    after: Any


class RemovedModel(BaseModel):
    before: Any


class ChangeModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    location: LocationModel
    changeType: Literal["added", "changed", "removed"]
    added: Any = None
    changed: Optional[ChangedModel] = None
    removed: Optional[RemovedModel] = None


class FactModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    location: LocationModel
    value: Any


class SourcemapModel(BaseModel):
    filePath: str
    startLine: int
    endLine: int
    startPosition: int
    endPosition: int


class ResultModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    passed: bool
    condition: str
    where: str
    isMust: bool
    isShould: bool
    change: ChangeModel | FactModel
    docsLink: Optional[str] = None
    effectiveOnDate: Optional[str] = None
    error: Optional[str] = None
    exempted: bool = False
    sourcemap: Optional[SourcemapModel] = None


class ComparisonInputs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None


class ComparisonEntry(BaseModel):
    results: list[ResultModel]
    changes: list[ChangeModel]
    inputs: ComparisonInputs


class BulkCompareFile(BaseModel):
    comparisons: list[ComparisonEntry] = Field(default_factory=list)
