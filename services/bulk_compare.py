"""
Bulk comparisons.

Input file:

    {"comparisons": [{"from": "a.yaml", "to": "b.yaml", "context": {...}}, ...]}

Rows are checked with CompareInputRow; a bad row is skipped and marks the
run as failed. Valid rows run through a sliding window of at most `parallel`
comparisons; a comparison that fails to load is recorded on its own entry and
never cancels its siblings.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from contracts.compare_file import BulkCompareFile, CompareInputRow
from contracts.spec_types import CompareResult
from engine.check_service import ApiCheckService
from services.canonical import compact_json
from services.comparison import compare
from services.config import parallel_comparisons
from services.validation import schema_errors

log = logging.getLogger("specgate.bulk_compare")

BULK_INPUT_SCHEMA = "bulk_compare_input.schema.json"
DEFAULT_OUTPUT_FILENAME = "bulk-compare-output.json"


class BulkInputError(ValueError):
    pass


@dataclass
class Comparison:
    id: str
    to_file_name: str
    context: Dict[str, Any]
    from_file_name: Optional[str] = None
    loading: bool = True
    error: bool = False
    error_details: Optional[str] = None
    data: Optional[CompareResult] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"id": self.id}
        if self.from_file_name is not None:
            out["fromFileName"] = self.from_file_name
        out["toFileName"] = self.to_file_name
        out["context"] = self.context
        out["loading"] = self.loading
        if not self.loading:
            out["error"] = self.error
            if self.error:
                out["errorDetails"] = self.error_details
            elif self.data is not None:
                out["data"] = self.data.to_dict()
        return out


@dataclass
class ParsedInput:
    comparisons: Dict[str, Comparison]
    skipped_parsing: bool = False


@dataclass
class BulkCompareOutcome:
    comparisons: Dict[str, Comparison]
    skipped_parsing: bool = False
    number_of_errors: int = 0
    number_of_comparisons_with_errors: int = 0
    number_of_comparisons_with_a_change: int = 0
    has_load_error: bool = False
    has_blocking_results: bool = False
    output_file: Optional[Path] = None
    counters: Dict[str, int] = field(default_factory=dict)

    @property
    def error_message(self) -> Optional[str]:
        if self.skipped_parsing:
            return "Could not read all of the comparison inputs"
        if self.has_load_error:
            return "Could not run all of the comparisons"
        if self.has_blocking_results:
            return "Some checks did not pass"
        return None

    @property
    def ok(self) -> bool:
        return self.error_message is None


def parse_json_comparison_input(path: Path) -> ParsedInput:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise BulkInputError(f"{path}: could not read bulk input: {exc}") from exc

    errors = schema_errors(BULK_INPUT_SCHEMA, raw)
    if errors:
        raise BulkInputError(f"{path}: invalid bulk input: " + "; ".join(errors))

    comparisons: Dict[str, Comparison] = {}
    skipped = False
    for index, row in enumerate(raw.get("comparisons") or []):
        try:
            parsed = CompareInputRow.model_validate(row)
        except ValidationError as exc:
            log.warning(
                "skipping comparison %d, expected {from?, to, context}: %s",
                index,
                json.dumps(row, default=str)[:200],
            )
            log.debug("row %d validation: %s", index, exc)
            skipped = True
            continue
        comparison_id = str(uuid.uuid4())
        comparisons[comparison_id] = Comparison(
            id=comparison_id,
            from_file_name=parsed.from_,
            to_file_name=parsed.to,
            context=parsed.context,
        )
    return ParsedInput(comparisons=comparisons, skipped_parsing=skipped)


async def compare_specs(
    check_service: ApiCheckService,
    comparisons: Dict[str, Comparison],
    on_comparison_complete: Callable[[str, CompareResult], None],
    on_comparison_error: Callable[[str, BaseException], None],
    parallel: Optional[int] = None,
    cwd: Optional[Path] = None,
) -> None:
    """Run every comparison with at most `parallel` in flight at once."""
    limit = max(1, parallel or parallel_comparisons())

    async def run_one(comparison_id: str, comparison: Comparison) -> None:
        try:
            outcome = await compare(
                check_service,
                comparison.from_file_name,
                comparison.to_file_name,
                comparison.context,
                cwd=cwd,
            )
        except Exception as exc:
            on_comparison_error(comparison_id, exc)
            return
        on_comparison_complete(comparison_id, outcome)

    in_flight: set[asyncio.Task] = set()
    for comparison_id, comparison in comparisons.items():
        if len(in_flight) >= limit:
            done, in_flight = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()
        in_flight.add(asyncio.create_task(run_one(comparison_id, comparison)))

    if in_flight:
        done, _ = await asyncio.wait(in_flight)
        for task in done:
            task.result()


def render_bulk_compare_file(comparisons: Dict[str, Comparison]) -> Dict[str, Any]:
    """Artifact of every comparison that loaded; failed ones have no results to export."""
    entries: List[Dict[str, Any]] = []
    for comparison in comparisons.values():
        if comparison.loading or comparison.error or comparison.data is None:
            continue
        inputs: Dict[str, Any] = {}
        if comparison.from_file_name is not None:
            inputs["from"] = comparison.from_file_name
        inputs["to"] = comparison.to_file_name
        entries.append(
            {
                "results": [r.to_dict() for r in comparison.data.results],
                "changes": [c.to_dict() for c in comparison.data.changes],
                "inputs": inputs,
            }
        )
    payload = {"comparisons": entries}
    BulkCompareFile.model_validate(payload)
    return payload


def write_bulk_compare_file(payload: Dict[str, Any], path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(compact_json(payload), encoding="utf-8")
    return path.resolve()


async def bulk_compare(
    check_service: ApiCheckService,
    input_path: Path,
    *,
    parallel: Optional[int] = None,
    cwd: Optional[Path] = None,
    output_path: Optional[Path] = None,
) -> BulkCompareOutcome:
    parsed = parse_json_comparison_input(input_path)
    outcome = BulkCompareOutcome(comparisons=parsed.comparisons, skipped_parsing=parsed.skipped_parsing)

    def on_complete(comparison_id: str, result: CompareResult) -> None:
        comparison = outcome.comparisons[comparison_id]
        failed = [r for r in result.results if not r.passed]
        if failed:
            outcome.number_of_comparisons_with_errors += 1
            outcome.number_of_errors += len(failed)
        if result.has_blocking_results:
            outcome.has_blocking_results = True
        if result.changes:
            outcome.number_of_comparisons_with_a_change += 1
        comparison.loading = False
        comparison.error = False
        comparison.data = result

    def on_error(comparison_id: str, error: BaseException) -> None:
        comparison = outcome.comparisons[comparison_id]
        log.warning(
            "comparison failed from=%s to=%s: %s",
            comparison.from_file_name or "<empty>",
            comparison.to_file_name,
            error,
        )
        outcome.has_load_error = True
        comparison.loading = False
        comparison.error = True
        comparison.error_details = str(error)

    await compare_specs(check_service, parsed.comparisons, on_complete, on_error, parallel=parallel, cwd=cwd)

    outcome.counters = {
        "numberOfErrors": outcome.number_of_errors,
        "numberOfComparisons": len(outcome.comparisons),
        "numberOfComparisonsWithErrors": outcome.number_of_comparisons_with_errors,
        "numberOfComparisonsWithAChange": outcome.number_of_comparisons_with_a_change,
    }
    log.info("bulk compare finished %s", outcome.counters)

    if output_path is not None:
        outcome.output_file = write_bulk_compare_file(render_bulk_compare_file(outcome.comparisons), output_path)
    return outcome
