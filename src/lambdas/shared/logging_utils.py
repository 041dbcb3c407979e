"""
Secure logging utilities to prevent log injection and sensitive data exposure.

Webhook bodies from the identity provider and Stripe carry user-controlled
text (emails, names, metadata) and bearer tokens. Everything that reaches a
log line goes through one of these helpers first:

- sanitize_for_log(): strips CRLF/control characters and caps length
- mask_email(): keeps only enough of an address to correlate tickets
- get_safe_error_info(): exception type only, never the message
- redact_sensitive_fields(): blanks token/secret/password keys in dicts

Security References:
- OWASP Logging Cheat Sheet: https://cheatsheetseries.owasp.org/cheatsheets/Logging_Cheat_Sheet.html
"""

import re
from typing import Any

# Maximum length for logged user input to prevent log flooding
MAX_LOG_INPUT_LENGTH = 200

# Sensitive field names that should never be logged
SENSITIVE_FIELDS = {
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "signature",
    "credential",
}


def sanitize_for_log(value: Any, max_length: int = MAX_LOG_INPUT_LENGTH) -> str:
    """
    Sanitize a value for safe logging by removing CRLF and limiting length.

    Args:
        value: Value to sanitize (will be converted to string)
        max_length: Maximum length of output (default: 200)

    Returns:
        Sanitized string safe for logging

    Example:
        >>> sanitize_for_log("user-1\\n[FAKE] admin granted")
        'user-1 [FAKE] admin granted'
    """
    text = str(value)

    # Remove CRLF characters to prevent log injection
    text = text.replace("\r", " ").replace("\n", " ").replace("\t", " ")

    # Remove other control characters
    text = re.sub(r"[\x00-\x1f\x7f-\x9f]", " ", text)

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text


def mask_email(email: Any) -> str:
    """
    Mask the local part of an email address for logging.

    Example:
        >>> mask_email("jane.doe@example.com")
        'j***@example.com'
        >>> mask_email("not-an-email")
        '***'
    """
    text = sanitize_for_log(email or "")
    local, sep, domain = text.partition("@")
    if not sep or not local or not domain:
        return "***"
    return f"{local[0]}***@{domain}"


def get_safe_error_info(exception: Exception) -> dict[str, str]:
    """
    Extract safe information from an exception for logging.

    Returns only the exception type, NOT the message: identity API error
    bodies and pydantic messages can echo user input.

    Example:
        >>> try:
        ...     raise ValueError("user input here")
        ... except Exception as e:
        ...     get_safe_error_info(e)
        {'error_type': 'ValueError'}
    """
    return {"error_type": type(exception).__name__}


def redact_sensitive_fields(data: dict[str, Any]) -> dict[str, Any]:
    """
    Redact sensitive fields from a dictionary before logging.

    Args:
        data: Dictionary that may contain sensitive fields

    Returns:
        New dictionary with sensitive fields replaced with '***REDACTED***'

    Example:
        >>> redact_sensitive_fields({"email": "a@b.c", "access_token": "eyJ..."})
        {'email': 'a@b.c', 'access_token': '***REDACTED***'}
    """
    result = {}
    for key, value in data.items():
        if any(sensitive in str(key).lower() for sensitive in SENSITIVE_FIELDS):
            result[key] = "***REDACTED***"
        elif isinstance(value, dict):
            result[key] = redact_sensitive_fields(value)
        else:
            result[key] = value
    return result
