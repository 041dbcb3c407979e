"""Response builder utilities for Lambda proxy integration responses.

Provides standardized response construction using orjson for serialization.
Produces responses in the proxy integration format:
    {"statusCode": int, "headers": dict, "body": str, "isBase64Encoded": bool}
"""

import orjson
from pydantic import ValidationError

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def json_response(
    status_code: int,
    body: dict | list,
    headers: dict[str, str] | None = None,
) -> dict:
    """Build a JSON proxy integration response.

    Args:
        status_code: HTTP status code.
        body: Response body (will be serialized with orjson).
        headers: Additional response headers.

    Returns:
        Proxy integration response dict.
    """
    response_headers = {"Content-Type": "application/json; charset=utf-8"}
    if headers:
        response_headers.update(headers)
    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": orjson.dumps(body).decode(),
        "isBase64Encoded": False,
    }


def no_content_response(headers: dict[str, str] | None = None) -> dict:
    """Build an empty 204 response (CORS preflight)."""
    return {
        "statusCode": 204,
        "headers": dict(headers or {}),
        "body": "",
        "isBase64Encoded": False,
    }


def error_response(
    status_code: int,
    message: str,
    headers: dict[str, str] | None = None,
    **fields,
) -> dict:
    """Build an error response: {"error": message, **fields}."""
    return json_response(status_code, {"error": message, **fields}, headers)


def validation_error_response(
    exc: ValidationError, headers: dict[str, str] | None = None
) -> dict:
    """Build a 400 validation error response.

    Produces: {"error": "Invalid request", "detail": [{"loc": [...], "msg": "...", "type": "..."}]}
    """
    detail = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    return json_response(400, {"error": "Invalid request", "detail": detail}, headers)
