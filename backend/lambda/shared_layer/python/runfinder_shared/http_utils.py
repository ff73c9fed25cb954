"""runfinder_shared.http_utils — HTTP response helpers with CORS.

Standard response envelope and error formatting used by the Run Finder
API Lambda functions.
"""

from __future__ import annotations

import base64
import json
import os
from decimal import Decimal
from typing import Any, Dict, Tuple

CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "*")
CORS_HEADERS = {
    "Access-Control-Allow-Origin": CORS_ORIGIN,
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "GET,POST,PUT,OPTIONS",
}

_DEFAULT_CODES = {
    400: "INVALID_INPUT",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    """Build a standard API Gateway response with CORS headers."""
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            **CORS_HEADERS,
        },
        "body": json.dumps(body, default=_json_default),
    }


def _success(data: Any, status_code: int = 200) -> Dict[str, Any]:
    return _response(status_code, {"success": True, "data": data})


def _error(status_code: int, message: str, **extra: Any) -> Dict[str, Any]:
    """Build a standard error response.

    Args:
        status_code: HTTP status code.
        message: Human-readable error message.
        **extra: ``code`` overrides the envelope code; anything else is
                 merged into the payload.
    """
    code = str(extra.pop("code", "") or "").strip().upper()
    if not code:
        code = _DEFAULT_CODES.get(status_code, "INTERNAL_ERROR")
    payload: Dict[str, Any] = {
        "success": False,
        "error": message,
        "error_envelope": {
            "code": code,
            "message": message,
            "retryable": status_code >= 500,
        },
    }
    if extra:
        payload.update(extra)
    return _response(status_code, payload)


def _preflight() -> Dict[str, Any]:
    return {"statusCode": 204, "headers": dict(CORS_HEADERS), "body": ""}


def _json_body(event: Dict[str, Any]) -> Any:
    """Parse the JSON body from an API Gateway event (handles base64).

    Raises ValueError when the body is missing or is not valid JSON.
    """
    raw = event.get("body")
    if raw in (None, ""):
        raise ValueError("Invalid JSON body")
    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ValueError("Invalid JSON body") from exc


def _path_method(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract HTTP method and path from an API Gateway v1 or v2 event."""
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    method = (http.get("method") or event.get("httpMethod") or "GET").upper()
    path = event.get("rawPath") or http.get("path") or event.get("path") or "/"
    return method, path
