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

from scripts._cli import UserError, fail, load_project_config, render_pretty, setup_logging
from services.bulk_compare import DEFAULT_OUTPUT_FILENAME, BulkInputError, bulk_compare
from services.config import ConfigError, build_check_service, export_metrics


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run many spec comparisons from one JSON input file")
    parser.add_argument("--input", required=True, help='JSON file: {"comparisons": [{"from", "to", "context"}]}')
    parser.add_argument("--ruleset", action="append", default=None, help="ruleset to run (repeatable)")
    parser.add_argument("--output", choices=["pretty", "json"], default="pretty")
    parser.add_argument("--verbose", action="store_true", help="show all checks, even passing")
    parser.add_argument("--create-file", action="store_true", help=f"write results to {DEFAULT_OUTPUT_FILENAME}")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    cwd = Path.cwd()

    try:
        config = load_project_config(cwd)
        check_service = build_check_service(config, extra_rulesets=args.ruleset)
    except (UserError, ConfigError) as exc:
        return fail(str(exc))

    try:
        outcome = asyncio.run(
            bulk_compare(
                check_service,
                Path(args.input),
                cwd=cwd,
                output_path=cwd / DEFAULT_OUTPUT_FILENAME if args.create_file else None,
            )
        )
    except BulkInputError as exc:
        return fail(str(exc))
    finally:
        export_metrics(check_service, cwd)

    if args.output == "json":
        print(json.dumps([c.to_dict() for c in outcome.comparisons.values()], indent=2))
    else:
        print("Bulk comparing\n")
        for comparison in outcome.comparisons.values():
            print(f"Comparing {comparison.from_file_name or 'Empty spec'} to {comparison.to_file_name}")
            if comparison.error:
                print(f"Error loading file: {comparison.error_details}")
            elif comparison.data is not None:
                rendered = render_pretty(comparison.data.results, args.verbose)
                if rendered:
                    print(rendered)
            print()
        if outcome.output_file is not None:
            print(f"Results of this run can be found at: {outcome.output_file}")

    if not outcome.ok:
        return fail(str(outcome.error_message))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
