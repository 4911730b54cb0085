from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

DslRule = Callable[[Any], None]


@dataclass(frozen=True)
class Ruleset:
    """Named group of DSL rules registered together."""

    name: str
    rules: Dict[str, DslRule] = field(default_factory=dict)
    docs_link: Optional[str] = None

    def names(self) -> list[str]:
        return list(self.rules)
