from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

from contracts.spec_types import Change, ChangeType, CompareResult, Result
from engine.check_service import ApiCheckService, DslInput
from engine.differ import facts_to_changelog
from services.spec_loader import ParseResult, load_spec, parse_spec_version
from services.validation import validate_openapi_v3_document

log = logging.getLogger("specgate.comparison")


def _attach_sourcemap(result: Result, from_spec: ParseResult, to_spec: ParseResult) -> Result:
    change = result.change
    removed = isinstance(change, Change) and change.change_type is ChangeType.REMOVED
    sourcemap = from_spec.sourcemap if removed else to_spec.sourcemap
    return result.with_sourcemap(sourcemap.find_file_and_lines(result.location.json_pointer))


async def generate_spec_results(
    check_service: ApiCheckService,
    from_spec: ParseResult,
    to_spec: ParseResult,
    context: Any = None,
) -> CompareResult:
    current_facts, next_facts = check_service.generate_facts(from_spec.json_like, to_spec.json_like)
    changes = facts_to_changelog(current_facts, next_facts)
    results = await check_service.run_rules_with_facts(
        DslInput(
            context=context,
            next_facts=next_facts,
            current_facts=current_facts,
            changelog=changes,
            next_doc=to_spec.json_like,
            current_doc=from_spec.json_like,
        )
    )
    return CompareResult(
        results=[_attach_sourcemap(r, from_spec, to_spec) for r in results],
        changes=changes,
    )


async def _load_and_validate(ref: Optional[str], cwd: Path) -> ParseResult:
    spec_input = parse_spec_version(ref, cwd=cwd)
    parsed = await load_spec(spec_input, cwd)
    validate_openapi_v3_document(parsed.json_like, spec_input.label)
    return parsed


async def compare(
    check_service: ApiCheckService,
    from_ref: Optional[str],
    to_ref: Optional[str],
    context: Any = None,
    cwd: Optional[Path] = None,
) -> CompareResult:
    """
    Load both references concurrently, validate them and run the rules.

    Either load failing fails the comparison with the first error raised;
    there are no partial results.
    """
    cwd = Path(cwd) if cwd is not None else Path.cwd()
    hooks = check_service.hooks
    hooks.before_comparison(from_ref, to_ref or "")
    try:
        from_spec, to_spec = await asyncio.gather(
            _load_and_validate(from_ref, cwd),
            _load_and_validate(to_ref, cwd),
        )
        outcome = await generate_spec_results(check_service, from_spec, to_spec, context)
    except Exception as exc:
        hooks.after_comparison(from_ref, to_ref or "", None, exc)
        raise
    hooks.after_comparison(from_ref, to_ref or "", outcome.results)
    return outcome
