from __future__ import annotations

import logging
from typing import Any, List, Optional

from contracts.spec_types import Result

log = logging.getLogger("specgate.hooks")


class RunHooks:
    """No-op observer for rule runs and comparisons. Subclass what you need."""

    def before_rules(self, context: Any) -> None:
        return None

    def after_rules(self, context: Any, results: List[Result]) -> None:
        return None

    def before_comparison(self, from_ref: Optional[str], to_ref: str) -> None:
        return None

    def after_comparison(
        self,
        from_ref: Optional[str],
        to_ref: str,
        results: Optional[List[Result]],
        error: Optional[BaseException] = None,
    ) -> None:
        return None


class LoggingHooks(RunHooks):
    def before_rules(self, context: Any) -> None:
        log.debug("running rules context=%s", context)

    def after_rules(self, context: Any, results: List[Result]) -> None:
        failed = sum(1 for r in results if not r.passed)
        log.info("rules finished total=%d failed=%d", len(results), failed)

    def before_comparison(self, from_ref: Optional[str], to_ref: str) -> None:
        log.info("comparing from=%s to=%s", from_ref or "<empty>", to_ref)

    def after_comparison(self, from_ref, to_ref, results, error=None) -> None:
        if error is not None:
            log.warning("comparison failed from=%s to=%s error=%s", from_ref, to_ref, error)
            return
        blocking = sum(1 for r in results or [] if r.is_blocking)
        log.info("comparison done from=%s to=%s blocking=%d", from_ref, to_ref, blocking)


class CompositeHooks(RunHooks):
    def __init__(self, *hooks: RunHooks) -> None:
        self.hooks = [h for h in hooks if h is not None]

    def before_rules(self, context):
        for h in self.hooks:
            h.before_rules(context)

    def after_rules(self, context, results):
        for h in self.hooks:
            h.after_rules(context, results)

    def before_comparison(self, from_ref, to_ref):
        for h in self.hooks:
            h.before_comparison(from_ref, to_ref)

    def after_comparison(self, from_ref, to_ref, results, error=None):
        for h in self.hooks:
            h.after_comparison(from_ref, to_ref, results, error)
