"""runfinder_shared.aws_clients — Lazy-singleton AWS service clients.

The DynamoDB client is created on first call and cached for the lifetime of
the Lambda container. Setting DYNAMODB_ENDPOINT points it at DynamoDB Local.
"""

from __future__ import annotations

import os
from typing import Optional

import boto3
from botocore.config import Config

# ---------------------------------------------------------------------------
# Defaults (overridable via env)
# ---------------------------------------------------------------------------

DYNAMODB_REGION: str = os.environ.get(
    "DYNAMODB_REGION", os.environ.get("AWS_REGION", "us-east-1")
)
DYNAMODB_ENDPOINT: str = os.environ.get("DYNAMODB_ENDPOINT", "")

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_ddb = None


def _get_ddb(region: Optional[str] = None, endpoint_url: Optional[str] = None):
    """Get (or create) the DynamoDB client singleton."""
    global _ddb
    if _ddb is None:
        kwargs = {
            "region_name": region or DYNAMODB_REGION,
            "config": Config(retries={"max_attempts": 3, "mode": "standard"}),
        }
        endpoint = endpoint_url or DYNAMODB_ENDPOINT
        if endpoint:
            kwargs["endpoint_url"] = endpoint
        _ddb = boto3.client("dynamodb", **kwargs)
    return _ddb


def _reset_clients() -> None:
    """Drop cached clients so the next call rebuilds them."""
    global _ddb
    _ddb = None
