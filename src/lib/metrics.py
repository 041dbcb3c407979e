"""
CloudWatch metrics and JSON logging for the membership Lambdas.

For On-Call Engineers:
    Metrics (namespace "MembershipAccess", always dimensioned by Environment):
    - LoginResolved {Source}: login webhook produced an access decision
    - LoginBlocked: inactive account refused while ENFORCE_LOGIN_BLOCK is on
    - TimedWindowMinted {Role}: a fresh timed-access window started
    - SignupRoleAssigned {Role}: signup webhook added the default role
    - CheckoutCreated {Plan}: Stripe Checkout Session created
    - SubscriptionActivated {Plan}: paid session extended a subscription
    - SubscriptionDeactivated {Reason}: subscription marked inactive
    - WebhookRejected: Stripe signature verification failed
    - WebhookLatencyMs {EventType}: time spent handling one Stripe event

    Top-level handler log lines carry a correlation_id of the form
    "<lambda>-<aws_request_id>", e.g. "stripe-webhook-8f14e45f-...":

    ```
    fields @timestamp, level, message, correlation_id
    | filter correlation_id like /stripe-webhook/ and level = "ERROR"
    | sort @timestamp desc
    ```

Security Notes:
    - Metric dimensions never carry emails, user ids or session ids
    - A failed put_metric_data is logged and swallowed
"""

import json
import logging
import os
import time
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)

METRIC_NAMESPACE = "MembershipAccess"

CLOUDWATCH_CONFIG = Config(
    retries={"max_attempts": 3, "mode": "adaptive"},
    connect_timeout=5,
    read_timeout=10,
)


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``extra={...}`` fields land at the top level."""

    _STANDARD_ATTRS = frozenset(
        logging.LogRecord("", 0, "", 0, "", None, None).__dict__
    ) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_lambda_logger(name: str) -> logging.Logger:
    """Module logger at LOG_LEVEL with a single JsonFormatter stream handler."""
    lambda_logger = logging.getLogger(name)
    lambda_logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
    if not lambda_logger.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(JsonFormatter())
        lambda_logger.addHandler(stream)
    return lambda_logger


def get_correlation_id(prefix: str, context: Any) -> str:
    """Tag for log lines belonging to one invocation: ``{prefix}-{aws_request_id}``.

    A missing context (local runs, direct calls in tests) yields
    ``{prefix}-unknown``.
    """
    return f"{prefix}-{getattr(context, 'aws_request_id', 'unknown')}"


def get_cloudwatch_client(region_name: str | None = None) -> Any:
    region = region_name or os.environ.get("AWS_DEFAULT_REGION", "us-east-1")
    return boto3.client("cloudwatch", region_name=region, config=CLOUDWATCH_CONFIG)


def emit_metric(
    name: str,
    value: float = 1,
    unit: str = "Count",
    dimensions: dict[str, str] | None = None,
    region_name: str | None = None,
) -> None:
    """Put one data point in the MembershipAccess namespace.

    Args:
        name: Metric name, e.g. "SubscriptionActivated"
        value: Data point value
        unit: CloudWatch unit ("Count", "Milliseconds", ...)
        dimensions: Extra dimensions; Environment is always appended
        region_name: AWS region override
    """
    metric_dimensions = [
        {"Name": key, "Value": str(val)} for key, val in (dimensions or {}).items()
    ]
    metric_dimensions.append(
        {"Name": "Environment", "Value": os.environ.get("ENVIRONMENT", "dev")}
    )

    try:
        get_cloudwatch_client(region_name).put_metric_data(
            Namespace=METRIC_NAMESPACE,
            MetricData=[
                {
                    "MetricName": name,
                    "Value": value,
                    "Unit": unit,
                    "Timestamp": datetime.now(UTC),
                    "Dimensions": metric_dimensions,
                }
            ],
        )
    except Exception as e:
        logger.error(
            "Failed to emit metric",
            extra={"metric_name": name, "error_type": type(e).__name__},
        )
        return

    logger.debug("Metric emitted", extra={"metric_name": name, "value": value})


class Timer:
    """Measure a block in milliseconds and emit it as a metric on exit.

    Example:
        >>> with Timer("WebhookLatencyMs", dimensions={"EventType": "checkout.session.completed"}):
        ...     dispatch_event(stripe_event, now)
    """

    def __init__(
        self,
        metric_name: str,
        dimensions: dict[str, str] | None = None,
        emit: bool = True,
    ):
        self.metric_name = metric_name
        self.dimensions = dimensions
        self.emit = emit
        self.elapsed_ms: float = 0
        self._started: float = 0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
        if self.emit:
            emit_metric(
                self.metric_name,
                self.elapsed_ms,
                unit="Milliseconds",
                dimensions=self.dimensions,
            )
        return False
