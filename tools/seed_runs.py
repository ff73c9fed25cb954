#!/usr/bin/env python3
"""Seed the drop-in runs table from a JSON file.

Usage:
  python3 tools/seed_runs.py
  python3 tools/seed_runs.py --file tools/seed_runs.json --endpoint http://localhost:8000
  python3 tools/seed_runs.py --dry-run

Each entry goes through the same create path as POST /runs, so every seeded
run gets a fresh id and edit token. The tokens are printed once and never
stored anywhere else; hand them to the run organizers.

Environment:
  TABLE_NAME, DYNAMODB_ENDPOINT, DYNAMODB_REGION (see create_table.py)
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

_REPO_ROOT = Path(__file__).resolve().parent.parent
_LAMBDA_ROOT = _REPO_ROOT / "backend" / "lambda"
for _path in (_LAMBDA_ROOT / "runs_api", _LAMBDA_ROOT / "shared_layer" / "python"):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

from errors import RunsApiError  # noqa: E402
from lifecycle import create_run  # noqa: E402
from persistence import RunStore  # noqa: E402
from runfinder_shared.aws_clients import _get_ddb  # noqa: E402
from validation import validate_create  # noqa: E402

DEFAULT_FILE = str(Path(__file__).with_name("seed_runs.json"))
DEFAULT_TABLE = os.environ.get("TABLE_NAME", "mcrrc-drop-in-runs")
DEFAULT_ENDPOINT = os.environ.get("DYNAMODB_ENDPOINT", "")
DEFAULT_REGION = os.environ.get("DYNAMODB_REGION", os.environ.get("AWS_REGION", "us-east-1"))


def load_seed(path: str) -> List[Dict[str, Any]]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("runs", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of runs or an object with a 'runs' list")
    return data


def seed(runs: List[Dict[str, Any]], store: Optional[RunStore], dry_run: bool = False) -> int:
    """Create each run and print its name and edit token. Returns the failure count."""
    failures = 0
    for index, body in enumerate(runs):
        label = body.get("name", f"entry {index}") if isinstance(body, dict) else f"entry {index}"
        try:
            if dry_run:
                validate_create(body)
                print(f"[DRY-RUN] {label}: valid")
                continue
            record = create_run(body, store=store)
        except RunsApiError as exc:
            failures += 1
            print(f"[ERROR] {label}: {exc.message}", file=sys.stderr)
            continue
        print(f"[OK] {record['name']}  id={record['id']}  editToken={record['editToken']}")
    return failures


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed drop-in runs from a JSON file")
    parser.add_argument("--file", default=DEFAULT_FILE)
    parser.add_argument("--endpoint", default=DEFAULT_ENDPOINT)
    parser.add_argument("--table", default=DEFAULT_TABLE)
    parser.add_argument("--region", default=DEFAULT_REGION)
    parser.add_argument("--dry-run", action="store_true", help="Validate entries without writing")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    runs = load_seed(args.file)

    store = None
    if not args.dry_run:
        client = _get_ddb(region=args.region, endpoint_url=args.endpoint or None)
        store = RunStore(client=client, table_name=args.table)

    failures = seed(runs, store, dry_run=args.dry_run)
    print(f"{len(runs) - failures}/{len(runs)} run(s) {'validated' if args.dry_run else 'created'}")
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
