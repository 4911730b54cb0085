from __future__ import annotations

from typing import Dict, Iterable, Optional

from engine.check_service import ApiCheckService
from engine.hooks import RunHooks
from engine.ruleset import Ruleset
from engine.rulesets import breaking_changes, naming

BUILTIN_RULESETS: Dict[str, Ruleset] = {
    breaking_changes.RULESET.name: breaking_changes.RULESET,
    naming.RULESET.name: naming.RULESET,
}
DEFAULT_RULESET = breaking_changes.RULESET.name


class UnknownRulesetError(KeyError):
    pass


def get_ruleset(name: str) -> Ruleset:
    if name == "default":
        name = DEFAULT_RULESET
    try:
        return BUILTIN_RULESETS[name]
    except KeyError:
        raise UnknownRulesetError(
            f"unknown ruleset {name!r}; expected one of {sorted(BUILTIN_RULESETS) + ['default']}"
        ) from None


def check_service_for(
    names: Optional[Iterable[str]] = None,
    *,
    get_execution_date=None,
    hooks: Optional[RunHooks] = None,
) -> ApiCheckService:
    service = ApiCheckService(get_execution_date=get_execution_date, hooks=hooks)
    for name in names or [DEFAULT_RULESET]:
        service.use_ruleset(get_ruleset(name))
    return service
