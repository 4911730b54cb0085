#!/usr/bin/env python3
from __future__ import annotations

# ruff: noqa: E402

import argparse
import asyncio
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts._cli import UserError, fail, load_project_config, parse_context, render_pretty, setup_logging, visible_results
from services.comparison import compare
from services.config import ConfigError, build_check_service, export_metrics
from services.spec_loader import SpecLoadError
from services.validation import SpecValidationError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Compare two OpenAPI documents and run API checks")
    parser.add_argument("--from", dest="from_ref", default=None, help="from file, rev:file or URL; defaults to an empty spec")
    parser.add_argument("--to", dest="to_ref", default=None, help="to file, rev:file or URL; defaults to an empty spec")
    parser.add_argument("--context", default=None, help="JSON context handed to the rules")
    parser.add_argument("--ruleset", action="append", default=None, help="ruleset to run (repeatable)")
    parser.add_argument("--output", choices=["pretty", "json"], default="pretty")
    parser.add_argument("--verbose", action="store_true", help="show all checks, even passing")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    cwd = Path.cwd()

    try:
        context = parse_context(args.context)
        config = load_project_config(cwd)
        check_service = build_check_service(config, extra_rulesets=args.ruleset)
    except (UserError, ConfigError) as exc:
        return fail(str(exc))

    try:
        outcome = asyncio.run(compare(check_service, args.from_ref, args.to_ref, context, cwd=cwd))
    except (SpecLoadError, SpecValidationError) as exc:
        return fail(f"could not load two specifications to compare: {exc}")
    finally:
        export_metrics(check_service, cwd)

    if args.output == "json":
        print(json.dumps([r.to_dict() for r in visible_results(outcome.results, args.verbose)], indent=2))
    else:
        print(f"Comparing {args.from_ref or 'Empty Spec'} to {args.to_ref or 'Empty Spec'}")
        rendered = render_pretty(outcome.results, args.verbose)
        if rendered:
            print(rendered)
        print(f"{len(outcome.changes)} changes, {len(outcome.results)} checks")

    return 1 if outcome.has_blocking_results else 0


if __name__ == "__main__":
    raise SystemExit(main())
