"""
Rule engine.

A check service is an ordered list of rule registrations. Running it
traverses both documents, diffs the facts and evaluates every registration
concurrently against the same input bundle.

Two registration families:

  ImmediateRule  fn(dsl_input) -> list of awaitables, one Result each (entity DSLs)
  BatchRule      fn(dsl_input) -> awaitable list of Results (schema-style rulesets)

Failing assertions are data. A registration function that raises is a program
error and propagates out of run_rules / run_rules_with_facts.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from contracts.spec_types import EXEMPTIONS_KEY, Change, ChangeType, Fact, Result
from engine.api_change_dsl import ApiChangeDsl
from engine.differ import facts_to_changelog
from engine.hooks import RunHooks
from engine.traverser import OpenApiTraverser
from services.canonical import parse_execution_date

log = logging.getLogger("specgate.check_service")


@dataclass(frozen=True)
class DslInput:
    context: Any
    next_facts: List[Fact]
    current_facts: List[Fact]
    changelog: List[Change]
    next_doc: Dict[str, Any]
    current_doc: Dict[str, Any]


@dataclass(frozen=True)
class ImmediateRule:
    fn: Callable[[DslInput], List[Awaitable[Result]]]
    name: Optional[str] = None


@dataclass(frozen=True)
class BatchRule:
    fn: Callable[[DslInput], Awaitable[List[Result]]]
    name: Optional[str] = None


Registration = Union[ImmediateRule, BatchRule]
DslRule = Callable[[Any], None]


def _standard_dsl(dsl_input: DslInput) -> ApiChangeDsl:
    return ApiChangeDsl(
        dsl_input.next_facts,
        dsl_input.changelog,
        dsl_input.current_doc,
        dsl_input.next_doc,
        dsl_input.context,
    )


def _close_pending(awaitables: List[Awaitable[Any]]) -> None:
    for pending in awaitables:
        if inspect.iscoroutine(pending):
            pending.close()


def _exemptions_along(doc: Any, json_path: Tuple[str, ...]) -> set:
    """Union of exemption lists on every object from the root down to json_path."""
    found: set = set()
    node = doc
    for segment in (None, *json_path):
        if segment is not None:
            if isinstance(node, dict) and segment in node:
                node = node[segment]
            elif isinstance(node, list) and segment.isdigit() and int(segment) < len(node):
                node = node[int(segment)]
            else:
                break
        if isinstance(node, dict):
            listed = node.get(EXEMPTIONS_KEY)
            if isinstance(listed, list):
                found.update(str(x) for x in listed)
            elif isinstance(listed, str):
                found.add(listed)
    return found


def apply_exemptions(results: List[Result], current_doc: Any, next_doc: Any) -> List[Result]:
    out: List[Result] = []
    for result in results:
        if result.passed:
            out.append(result)
            continue
        change = result.change
        exemptions = _exemptions_along(next_doc, result.location.json_path)
        # removed entities only exist in the previous document
        if isinstance(change, Change) and change.change_type is ChangeType.REMOVED:
            exemptions |= _exemptions_along(current_doc, result.location.json_path)
        if result.condition in exemptions:
            log.info("exempted %r at %s", result.condition, result.location.json_pointer)
            out.append(result.with_exemption())
        else:
            out.append(result)
    return out


class ApiCheckService:
    def __init__(
        self,
        get_execution_date: Optional[Callable[[Any], Optional[datetime]]] = None,
        hooks: Optional[RunHooks] = None,
    ) -> None:
        self.get_execution_date = get_execution_date
        self.hooks = hooks or RunHooks()
        self.registrations: List[Registration] = []

    @property
    def rules(self) -> List[ImmediateRule]:
        return [r for r in self.registrations if isinstance(r, ImmediateRule)]

    @property
    def additional_results(self) -> List[BatchRule]:
        return [r for r in self.registrations if isinstance(r, BatchRule)]

    # -- registration -----------------------------------------------------

    def merge_with(self, other: "ApiCheckService") -> "ApiCheckService":
        self.registrations.extend(other.registrations)
        return self

    def use_dsl(self, dsl_constructor: Callable[[DslInput], Any], *rules: DslRule) -> "ApiCheckService":
        def runner(dsl_input: DslInput) -> List[Awaitable[Result]]:
            dsl = dsl_constructor(dsl_input)
            try:
                for rule in rules:
                    rule(dsl)
            except Exception:
                _close_pending(dsl.checks())
                raise
            return dsl.checks()

        self.registrations.append(ImmediateRule(runner))
        return self

    def use_rules_from(self, rules: DslRule) -> "ApiCheckService":
        return self.use_dsl(_standard_dsl, rules)

    def use_rules(self, rules_map: Dict[str, DslRule]) -> "ApiCheckService":
        return self.use_dsl(_standard_dsl, *rules_map.values())

    def use_dsl_with_named_rules(
        self, dsl_constructor: Callable[[DslInput], Any], rules_map: Dict[str, DslRule]
    ) -> "ApiCheckService":
        return self.use_dsl(dsl_constructor, *rules_map.values())

    def use_ruleset(self, ruleset: Any) -> "ApiCheckService":
        log.debug("registering ruleset %s", ruleset.name)
        self.use_rules(ruleset.rules)
        return self

    def use_schema_ruleset(self, schema_ruleset: Any) -> "ApiCheckService":
        return self.register_batch(schema_ruleset.run, name=schema_ruleset.name)

    def register_batch(
        self, fn: Callable[[DslInput], Awaitable[List[Result]]], name: Optional[str] = None
    ) -> "ApiCheckService":
        self.registrations.append(BatchRule(fn, name=name))
        return self

    # -- running ----------------------------------------------------------

    def generate_facts(self, current_doc: Dict[str, Any], next_doc: Dict[str, Any]) -> Tuple[List[Fact], List[Fact]]:
        current = OpenApiTraverser()
        current.traverse(current_doc)
        following = OpenApiTraverser()
        following.traverse(next_doc)
        return current.accumulator.all_facts(), following.accumulator.all_facts()

    def _execution_date(self, context: Any) -> Optional[datetime]:
        if self.get_execution_date is None:
            return None
        return parse_execution_date(self.get_execution_date(context))

    async def run_rules_with_facts(self, dsl_input: DslInput) -> List[Result]:
        self.hooks.before_rules(dsl_input.context)

        immediate: List[Awaitable[Result]] = []
        batches: List[Awaitable[List[Result]]] = []
        try:
            for registration in self.registrations:
                if isinstance(registration, ImmediateRule):
                    immediate.extend(registration.fn(dsl_input))
                else:
                    batches.append(registration.fn(dsl_input))
        except Exception:
            _close_pending(immediate)
            _close_pending(batches)
            raise

        settled = await asyncio.gather(
            asyncio.gather(*immediate),
            asyncio.gather(*batches),
        )
        single_results: List[Result] = list(settled[0])
        batch_results: List[Result] = [r for batch in settled[1] for r in batch]

        date = self._execution_date(dsl_input.context)
        results = [
            r
            for r in single_results + batch_results
            if r.effective_on_date is None or date is None or date > parse_execution_date(r.effective_on_date)
        ]
        results = apply_exemptions(results, dsl_input.current_doc, dsl_input.next_doc)

        self.hooks.after_rules(dsl_input.context, results)
        return results

    async def run_rules(self, current_doc: Dict[str, Any], next_doc: Dict[str, Any], context: Any = None) -> List[Result]:
        current_facts, next_facts = self.generate_facts(current_doc, next_doc)
        return await self.run_rules_with_facts(
            DslInput(
                context=context,
                next_facts=next_facts,
                current_facts=current_facts,
                changelog=facts_to_changelog(current_facts, next_facts),
                next_doc=next_doc,
                current_doc=current_doc,
            )
        )
