"""
Facts -> changelog.

Facts are aligned by conceptual location (kind + conceptual path), never by
json path: json paths shift when arrays are reordered or references are
flattened. A renamed entity therefore shows up as removed + added.

Order: after-snapshot order for added/changed, then before-snapshot order for
removed.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Tuple

from contracts.spec_types import Change, Fact, PathSegment
from services.canonical import values_equal

log = logging.getLogger("specgate.differ")

FactKey = Tuple[str, Tuple[PathSegment, ...]]


def index_facts(facts: Iterable[Fact]) -> Dict[FactKey, Fact]:
    index: Dict[FactKey, Fact] = {}
    for fact in facts:
        key = fact.location.identity
        if key in index:
            # first-seen position, last-seen value
            log.debug("duplicate conceptual location %s, keeping last", key)
        index[key] = fact
    return index


def facts_to_changelog(past_facts: Iterable[Fact], current_facts: Iterable[Fact]) -> List[Change]:
    past = index_facts(past_facts)
    current = index_facts(current_facts)

    changelog: List[Change] = []
    for key, after in current.items():
        before = past.get(key)
        if before is None:
            changelog.append(Change.for_added(after))
        elif not values_equal(before.value, after.value):
            changelog.append(Change.for_changed(before, after))

    for key, before in past.items():
        if key not in current:
            changelog.append(Change.for_removed(before))

    return changelog
