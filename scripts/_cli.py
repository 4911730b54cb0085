from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Iterable, List, Optional

from contracts.spec_types import Result
from services.config import ConfigError, CliConfig, detect_cli_config, load_cli_config, log_level


class UserError(RuntimeError):
    """Bad command-line input; reported on stderr with exit code 1."""


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, log_level(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )


def load_project_config(cwd: Path) -> CliConfig:
    try:
        return load_cli_config(detect_cli_config(cwd))
    except ConfigError as exc:
        raise UserError(str(exc)) from exc


def parse_context(raw: Optional[str]) -> Any:
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise UserError(f"--context must be JSON: {exc}") from exc


def fail(message: str) -> int:
    print(f"error: {message}", file=sys.stderr)
    return 1


def visible_results(results: Iterable[Result], verbose: bool) -> List[Result]:
    return [r for r in results if verbose or (not r.passed and not r.exempted)]


def render_pretty(results: Iterable[Result], verbose: bool) -> str:
    lines: List[str] = []
    for r in visible_results(results, verbose):
        if r.passed:
            status = "PASS"
        elif r.exempted:
            status = "EXEMPT"
        else:
            status = "FAIL" if r.is_must else "WARN"
        lines.append(f"{status} {r.where}")
        lines.append(f"     {r.condition}")
        if r.error:
            lines.append(f"     {r.error}")
        if r.sourcemap is not None:
            lines.append(f"     at {r.sourcemap.file_path}:{r.sourcemap.start_line}")
        if r.docs_link:
            lines.append(f"     docs: {r.docs_link}")
    return "\n".join(lines)
