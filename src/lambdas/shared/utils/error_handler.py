"""Top-level error handler for HTTP Lambda handlers.

Wraps handler functions in try/except to produce structured error responses:
- InvalidBodyError and pydantic ValidationError -> 400
- ActivationError -> its own status and machine-readable code
- everything else -> 500 with full traceback logging

Usage:
    from src.lambdas.shared.utils.error_handler import handle_request

    def lambda_handler(event, context):
        return handle_request(_handle, event, context)

    def _handle(event, context):
        # Business logic here
        ...
"""

import logging
import traceback

from pydantic import ValidationError

from src.lambdas.shared.errors import ActivationError
from src.lambdas.shared.utils.event_helpers import InvalidBodyError, get_http_method
from src.lambdas.shared.utils.response_builder import (
    error_response,
    json_response,
    validation_error_response,
)
from src.lib.metrics import get_correlation_id

logger = logging.getLogger(__name__)


def handle_request(handler_fn, event: dict, context, headers=None) -> dict:
    """Execute a handler function with structured error handling.

    Args:
        handler_fn: The handler function to execute. Must accept (event, context)
            and return a proxy integration response dict.
        event: Proxy integration event dict.
        context: Lambda context object.
        headers: Extra headers added to error responses (e.g. CORS).

    Returns:
        Proxy integration response dict. On success, returns whatever
        handler_fn returns. On error, returns a structured error response.
    """
    correlation_id = get_correlation_id(
        getattr(context, "function_name", None) or "request", context
    )
    try:
        return handler_fn(event, context)
    except InvalidBodyError as exc:
        return error_response(400, str(exc), headers)
    except ValidationError as exc:
        logger.warning(
            "Validation error",
            extra={
                "correlation_id": correlation_id,
                "method": get_http_method(event),
                "error_count": len(exc.errors()),
            },
        )
        return validation_error_response(exc, headers)
    except ActivationError as exc:
        level = logging.ERROR if exc.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "Request failed",
            extra={
                "correlation_id": correlation_id,
                "code": exc.code.value,
                "status": exc.status_code,
            },
        )
        return json_response(exc.status_code, exc.to_body(), headers)
    except Exception as exc:
        logger.error(
            "Unhandled exception in handler",
            extra={
                "correlation_id": correlation_id,
                "method": get_http_method(event),
                "error_type": type(exc).__name__,
                "error_message": str(exc),
                "traceback": traceback.format_exc(),
            },
        )
        return error_response(500, "Internal server error", headers)
