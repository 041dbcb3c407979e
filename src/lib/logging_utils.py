"""
Logging Utilities
=================

Shared logging helpers for the membership Lambdas.

For On-Call Engineers:
    Some warnings are routine: an unknown email on the activation page,
    an unhandled Stripe event type, a checkout for an already active
    account. These go through log_expected_warning() and are downgraded
    to DEBUG under pytest so error-path tests stay quiet.

For Developers:
    Use log_expected_warning() for conditions that user input or Stripe
    can trigger at any time. Real faults (config missing, identity API
    down) still use logger.error() or logger.warning() directly.
"""

import logging
import sys


def _is_running_in_pytest() -> bool:
    """Check if code is running inside pytest, whatever ENVIRONMENT says."""
    return "pytest" in sys.modules


def log_expected_warning(logger: logging.Logger, message: str, **kwargs) -> None:
    """
    Log a warning that normal traffic is expected to produce.

    Logged at DEBUG under pytest, WARNING otherwise.

    Args:
        logger: The logger instance to use
        message: The warning message
        **kwargs: Additional arguments (e.g., extra={})
    """
    if _is_running_in_pytest():
        logger.debug(message, **kwargs)
    else:
        logger.warning(message, **kwargs)
