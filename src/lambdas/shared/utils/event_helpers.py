"""Event helper utilities for Lambda proxy integration events.

Provides case-insensitive header lookup and JSON body extraction for
Lambda handlers operating on raw event dicts.
"""

import base64
from typing import Any

import orjson


class InvalidBodyError(ValueError):
    """Raised when the request body is not a JSON object."""


def get_header(event: dict, name: str, default: str | None = None) -> str | None:
    """Get a header value with case-insensitive lookup.

    Args:
        event: Proxy integration event dict.
        name: Header name (any case).
        default: Value to return if header is not present.

    Returns:
        Header value or default.
    """
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return default


def get_http_method(event: dict) -> str:
    """HTTP method from a REST (v1) or HTTP API (v2) event, upper-cased."""
    method = event.get("httpMethod") or (
        (event.get("requestContext") or {}).get("http") or {}
    ).get("method", "")
    return str(method).upper()


def get_json_body(event: dict) -> dict[str, Any]:
    """Parse the request body as a JSON object.

    A missing body parses as an empty object.

    Raises:
        InvalidBodyError: Body is not valid JSON or not an object.
    """
    body = event.get("body") or "{}"
    try:
        if event.get("isBase64Encoded"):
            body = base64.b64decode(body)
        payload = orjson.loads(body)
    except (orjson.JSONDecodeError, ValueError) as e:
        raise InvalidBodyError("Invalid JSON body") from e
    if not isinstance(payload, dict):
        raise InvalidBodyError("JSON body must be an object")
    return payload
