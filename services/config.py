"""
Runtime configuration.

Process settings come from SG_* environment variables. Project settings come
from an optional `specgate.yml` in the working directory:

    files:
      - path: openapi.yaml
        id: public-api
    rules:
      - breaking-changes
      - ruleset: naming
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml

from engine.check_service import ApiCheckService
from engine.hooks import CompositeHooks, LoggingHooks, RunHooks
from engine.rulesets import DEFAULT_RULESET, UnknownRulesetError, check_service_for, get_ruleset
from services.metrics import PrometheusHooks
from services.validation import schema_errors

log = logging.getLogger("specgate.config")

CONFIG_FILE_NAMES = ("specgate.yml", "specgate.yaml")
CONFIG_SCHEMA = "specgate_config.schema.json"


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def parallel_comparisons() -> int:
    return max(1, _env_int("SG_PARALLEL_COMPARISONS", 4))


def max_concurrent_fetches() -> int:
    return max(1, _env_int("SG_MAX_CONCURRENT_FETCHES", 4))


def http_timeout_seconds() -> float:
    return float(max(1, _env_int("SG_HTTP_TIMEOUT_SECONDS", 30)))


def log_level() -> str:
    return _env_str("SG_LOG_LEVEL", "WARNING").upper()


def metrics_enabled() -> bool:
    return _env_bool("SG_METRICS_ENABLED", False)


def metrics_file() -> str:
    return _env_str("SG_METRICS_FILE", "specgate-metrics.prom")


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ConfigFile:
    path: str
    id: str


@dataclass(frozen=True)
class CliConfig:
    files: List[ConfigFile] = field(default_factory=list)
    rulesets: List[str] = field(default_factory=lambda: [DEFAULT_RULESET])
    source: Optional[str] = None


def detect_cli_config(directory: Path) -> Optional[Path]:
    for name in CONFIG_FILE_NAMES:
        candidate = Path(directory) / name
        if candidate.is_file():
            return candidate
    return None


def _ruleset_name(entry: Any) -> str:
    return entry if isinstance(entry, str) else str(entry["ruleset"])


def load_cli_config(path: Optional[Path]) -> CliConfig:
    if path is None:
        return CliConfig()

    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"{path}: could not read config: {exc}") from exc
    if raw is None:
        raw = {}

    errors = schema_errors(CONFIG_SCHEMA, raw)
    if errors:
        raise ConfigError(f"{path}: invalid config: " + "; ".join(errors))

    rulesets = [_ruleset_name(r) for r in raw.get("rules") or []] or [DEFAULT_RULESET]
    files = [ConfigFile(path=str(f["path"]), id=str(f["id"])) for f in raw.get("files") or []]
    log.debug("loaded config %s rulesets=%s files=%d", path, rulesets, len(files))
    return CliConfig(files=files, rulesets=rulesets, source=str(path))


def build_check_service(
    config: CliConfig,
    *,
    extra_rulesets: Optional[List[str]] = None,
    hooks: Optional[RunHooks] = None,
    get_execution_date=None,
) -> ApiCheckService:
    """Merge every configured ruleset (plus any named on the command line) into one service."""
    all_hooks: List[RunHooks] = [LoggingHooks()]
    if hooks is not None:
        all_hooks.append(hooks)
    if metrics_enabled():
        all_hooks.append(PrometheusHooks())

    names: List[str] = []
    try:
        for requested in [*config.rulesets, *(extra_rulesets or [])]:
            name = get_ruleset(requested).name
            if name not in names:
                names.append(name)
    except UnknownRulesetError as exc:
        raise ConfigError(str(exc.args[0])) from exc

    service = ApiCheckService(get_execution_date=get_execution_date, hooks=CompositeHooks(*all_hooks))
    for name in names:
        service.merge_with(check_service_for([name]))
    return service


def prometheus_hooks_of(service: ApiCheckService) -> Optional[PrometheusHooks]:
    hooks = service.hooks
    candidates = hooks.hooks if isinstance(hooks, CompositeHooks) else [hooks]
    for candidate in candidates:
        if isinstance(candidate, PrometheusHooks):
            return candidate
    return None


def export_metrics(service: ApiCheckService, cwd: Path) -> Optional[Path]:
    """Write collected counters to SG_METRICS_FILE when metrics are enabled."""
    hooks = prometheus_hooks_of(service)
    if hooks is None:
        return None
    path = Path(metrics_file())
    if not path.is_absolute():
        path = Path(cwd) / path
    path.parent.mkdir(parents=True, exist_ok=True)
    hooks.write_textfile(str(path))
    log.info("wrote metrics to %s", path)
    return path
