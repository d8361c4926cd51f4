"""
Shared utilities for mnemo.
"""

from .retry import (
    RetryConfig,
    RetryResult,
    calculate_delay,
    parse_json_with_retry,
    retry_with_backoff,
)

__all__ = [
    "RetryConfig",
    "RetryResult",
    "calculate_delay",
    "parse_json_with_retry",
    "retry_with_backoff",
]
