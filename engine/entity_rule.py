"""
Entity rule adapter.

Projects a changelog (plus the next snapshot's facts) onto one entity kind and
hands rule authors four surfaces: added / removed / changed / requirement, each
with a blocking `must` and an advisory `should`. A failing assertion is data:
anything raised inside a handler becomes a failed Result.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar, Union

from contracts.spec_types import Change, ChangeType, Fact, Location, OpenApiKind, Result
from services.canonical import parse_execution_date

Ctx = TypeVar("Ctx")

AddedHandler = Callable[[Any, Any, "DocsLinkHelper"], Any]
ChangedHandler = Callable[[Any, Any, Any, "DocsLinkHelper"], Any]
PushCheck = Callable[..., None]
LocationFilter = Callable[[Location], bool]


class RuleError(Exception):
    """Raised by rule handlers to fail an assertion with a readable message."""

    def __init__(self, message: str, *, docs_link: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.docs_link = docs_link


class DocsLinkHelper:
    def __init__(self) -> None:
        self.docs_link: Optional[str] = None
        self.effective_on_date: Optional[datetime] = None

    def include_docs_link(self, link: str) -> None:
        self.docs_link = link

    def becomes_effective_on(self, when: Union[datetime, str]) -> None:
        self.effective_on_date = parse_execution_date(when)


async def run_check(
    change: Union[Change, Fact],
    docs: DocsLinkHelper,
    where: str,
    condition: str,
    must: bool,
    handler: Callable[[], Any],
) -> Result:
    error: Optional[str] = None
    try:
        outcome = handler()
        if inspect.isawaitable(outcome):
            await outcome
    except RuleError as exc:
        error = exc.message
        if exc.docs_link and docs.docs_link is None:
            docs.include_docs_link(exc.docs_link)
    except Exception as exc:
        error = str(exc) or exc.__class__.__name__

    return Result(
        passed=error is None,
        condition=condition,
        where=where,
        is_must=must,
        is_should=not must,
        change=change,
        docs_link=docs.docs_link,
        effective_on_date=docs.effective_on_date,
        error=error,
    )


@dataclass(frozen=True)
class Assertion:
    must: Callable[[str, Callable[..., Any]], None]
    should: Callable[[str, Callable[..., Any]], None]


@dataclass(frozen=True)
class EntityRule(Generic[Ctx]):
    added: Assertion
    removed: Assertion
    changed: Assertion
    requirement: Assertion


def generic_entity_rule(
    kind: OpenApiKind,
    changelog: List[Change],
    next_facts: List[Fact],
    describe_where: Callable[[Any], str],
    get_context: Callable[[Location], Ctx],
    push_check: PushCheck,
    location_filter: Optional[LocationFilter] = None,
) -> EntityRule[Ctx]:
    def _selected(location: Location) -> bool:
        return location.kind is kind and (location_filter is None or location_filter(location))

    of_kind = [c for c in changelog if _selected(c.location)]
    added = [c for c in of_kind if c.change_type is ChangeType.ADDED]
    removed = [c for c in of_kind if c.change_type is ChangeType.REMOVED]
    changed = [c for c in of_kind if c.change_type is ChangeType.CHANGED]
    requirements = [f for f in next_facts if _selected(f.location)]
    label = kind.value

    def added_handler(must: bool):
        def register(statement: str, handler: AddedHandler) -> None:
            checks: List[Awaitable[Result]] = []
            for item in added:
                docs = DocsLinkHelper()
                where = f"added {label}: {describe_where(item.added)}"
                checks.append(
                    run_check(
                        item, docs, where, statement, must,
                        lambda item=item, docs=docs: handler(item.added, get_context(item.location), docs),
                    )
                )
            push_check(*checks)

        return register

    def removed_handler(must: bool):
        def register(statement: str, handler: AddedHandler) -> None:
            checks: List[Awaitable[Result]] = []
            for item in removed:
                docs = DocsLinkHelper()
                where = f"removed {label}: {describe_where(item.removed)}"
                checks.append(
                    run_check(
                        item, docs, where, statement, must,
                        lambda item=item, docs=docs: handler(item.removed, get_context(item.location), docs),
                    )
                )
            push_check(*checks)

        return register

    def changed_handler(must: bool):
        def register(statement: str, handler: ChangedHandler) -> None:
            checks: List[Awaitable[Result]] = []
            for item in changed:
                docs = DocsLinkHelper()
                where = f"updated {label}: {describe_where(item.changed.after)}"
                checks.append(
                    run_check(
                        item, docs, where, statement, must,
                        lambda item=item, docs=docs: handler(
                            item.changed.before, item.changed.after, get_context(item.location), docs
                        ),
                    )
                )
            push_check(*checks)

        return register

    def requirement_handler(must: bool):
        def register(statement: str, handler: AddedHandler) -> None:
            checks: List[Awaitable[Result]] = []
            for fact in requirements:
                docs = DocsLinkHelper()
                where = f"requirement for {label}: {describe_where(fact.value)}"
                checks.append(
                    run_check(
                        fact, docs, where, statement, must,
                        lambda fact=fact, docs=docs: handler(fact.value, get_context(fact.location), docs),
                    )
                )
            push_check(*checks)

        return register

    return EntityRule(
        added=Assertion(must=added_handler(True), should=added_handler(False)),
        removed=Assertion(must=removed_handler(True), should=removed_handler(False)),
        changed=Assertion(must=changed_handler(True), should=changed_handler(False)),
        requirement=Assertion(must=requirement_handler(True), should=requirement_handler(False)),
    )
