"""Utility functions for shared Lambda code."""

from src.lambdas.shared.utils.timestamps import format_timestamp, parse_timestamp

__all__ = [
    "format_timestamp",
    "parse_timestamp",
]
