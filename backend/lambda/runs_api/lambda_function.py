"""runs_api/lambda_function.py — Drop-in run listings API

Lambda API behind API Gateway for the Run Finder site. Each request maps to
one lifecycle call.

Routes:
  GET     /runs                 — list active runs
  POST    /runs                 — create run (response includes editToken)
  GET     /runs/{id}?token=...  — get run (token needed for inactive runs)
  PUT     /runs/{id}?token=...  — partial update (token required)
  OPTIONS *                     — CORS preflight

Environment variables:
  TABLE_NAME          default: mcrrc-drop-in-runs
  RUNS_INDEX_NAME     default: GSI1
  DYNAMODB_REGION     default: AWS_REGION or us-east-1
  DYNAMODB_ENDPOINT   optional (DynamoDB Local)
  CORS_ORIGIN         default: *
  LOG_LEVEL           default: INFO
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional
from urllib.parse import unquote

from botocore.exceptions import BotoCoreError, ClientError

from config import logger
from errors import RunsApiError
from lifecycle import create_run, get_run, list_runs, update_run
from runfinder_shared.http_utils import _error, _json_body, _path_method, _preflight, _success

# ---------------------------------------------------------------------------
# Path parsing & routing
# ---------------------------------------------------------------------------

_RE_COLLECTION = re.compile(r"^(?:/[A-Za-z0-9_-]+)?/runs/?$")
_RE_RUN = re.compile(r"^(?:/[A-Za-z0-9_-]+)?/runs/(?P<id>[^/]+)/?$")


def _run_id(event: Dict[str, Any], path: str) -> Optional[str]:
    params = event.get("pathParameters") or {}
    if params.get("id"):
        return unquote(str(params["id"]))
    m = _RE_RUN.match(path)
    if m:
        return unquote(m.group("id"))
    return None


def _token(event: Dict[str, Any]) -> Optional[str]:
    query_params = event.get("queryStringParameters") or {}
    return query_params.get("token") or None


def _dispatch(event: Dict[str, Any], method: str, path: str) -> Dict[str, Any]:
    if _RE_COLLECTION.match(path):
        if method == "GET":
            return _success(list_runs())
        if method == "POST":
            try:
                body = _json_body(event)
            except ValueError as exc:
                return _error(400, str(exc))
            return _success(create_run(body), 201)
        return _error(405, f"Method {method} not allowed. Use GET or POST.")

    run_id = _run_id(event, path)
    if run_id is not None:
        if method == "GET":
            return _success(get_run(run_id, _token(event)))
        if method == "PUT":
            # A malformed body is only reported once the token has been checked.
            try:
                body = _json_body(event)
            except ValueError:
                body = None
            return _success(update_run(run_id, _token(event), body))
        return _error(405, f"Method {method} not allowed. Use GET or PUT.")

    return _error(404, f"No route matched: {method} {path}")


def lambda_handler(event: Dict, context: Any) -> Dict:
    method, path = _path_method(event)

    # CORS preflight
    if method == "OPTIONS":
        return _preflight()

    try:
        return _dispatch(event, method, path)
    except RunsApiError as exc:
        return _error(exc.status_code, exc.message, code=exc.code)
    except (BotoCoreError, ClientError) as exc:
        logger.exception("DynamoDB request failed: %s", exc)
        return _error(500, "Database request failed.")
