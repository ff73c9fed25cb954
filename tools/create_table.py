#!/usr/bin/env python3
"""Create the drop-in runs DynamoDB table and its active-runs index.

Usage:
  python3 tools/create_table.py
  python3 tools/create_table.py --endpoint http://localhost:8000 --table mcrrc-drop-in-runs

Environment:
  TABLE_NAME         default table name (mcrrc-drop-in-runs)
  RUNS_INDEX_NAME    default index name (GSI1)
  DYNAMODB_ENDPOINT  default endpoint (unset means AWS)
  DYNAMODB_REGION    default region (falls back to AWS_REGION, then us-east-1)

An existing table is reported and left untouched.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

_LAMBDA_ROOT = Path(__file__).resolve().parent.parent / "backend" / "lambda"
for _path in (_LAMBDA_ROOT / "runs_api", _LAMBDA_ROOT / "shared_layer" / "python"):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

from records import PUBLIC_FIELDS  # noqa: E402
from runfinder_shared.aws_clients import _get_ddb  # noqa: E402

DEFAULT_TABLE = os.environ.get("TABLE_NAME", "mcrrc-drop-in-runs")
DEFAULT_INDEX = os.environ.get("RUNS_INDEX_NAME", "GSI1")
DEFAULT_ENDPOINT = os.environ.get("DYNAMODB_ENDPOINT", "")
DEFAULT_REGION = os.environ.get("DYNAMODB_REGION", os.environ.get("AWS_REGION", "us-east-1"))

# Every public field is copied into the index so list queries never touch the
# base table. editToken is not public and stays out.
INDEX_PROJECTION: List[str] = list(PUBLIC_FIELDS)


def table_definition(table_name: str, index_name: str) -> Dict[str, Any]:
    return {
        "TableName": table_name,
        "AttributeDefinitions": [
            {"AttributeName": "PK", "AttributeType": "S"},
            {"AttributeName": "SK", "AttributeType": "S"},
            {"AttributeName": "GSI1PK", "AttributeType": "S"},
            {"AttributeName": "GSI1SK", "AttributeType": "S"},
        ],
        "KeySchema": [
            {"AttributeName": "PK", "KeyType": "HASH"},
            {"AttributeName": "SK", "KeyType": "RANGE"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": index_name,
                "KeySchema": [
                    {"AttributeName": "GSI1PK", "KeyType": "HASH"},
                    {"AttributeName": "GSI1SK", "KeyType": "RANGE"},
                ],
                "Projection": {
                    "ProjectionType": "INCLUDE",
                    "NonKeyAttributes": list(INDEX_PROJECTION),
                },
            }
        ],
        "BillingMode": "PAY_PER_REQUEST",
    }


def create_table(ddb: Any, table_name: str, index_name: str) -> bool:
    """Create the table. Returns False when it already exists."""
    try:
        ddb.create_table(**table_definition(table_name, index_name))
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") == "ResourceInUseException":
            return False
        raise
    ddb.get_waiter("table_exists").wait(TableName=table_name)
    return True


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the drop-in runs DynamoDB table")
    parser.add_argument("--endpoint", default=DEFAULT_ENDPOINT, help="DynamoDB endpoint URL (e.g. DynamoDB Local)")
    parser.add_argument("--table", default=DEFAULT_TABLE)
    parser.add_argument("--index", default=DEFAULT_INDEX)
    parser.add_argument("--region", default=DEFAULT_REGION)
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    ddb = _get_ddb(region=args.region, endpoint_url=args.endpoint or None)
    try:
        created = create_table(ddb, args.table, args.index)
    except ClientError as exc:
        print(f"[ERROR] CreateTable failed for {args.table}: {exc}", file=sys.stderr)
        return 1

    if created:
        print(f"[OK] Created table {args.table} with index {args.index}")
    else:
        print(f"[SKIP] Table {args.table} already exists")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
