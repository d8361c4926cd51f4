"""
Retry helpers with exponential backoff.

Used for:
- Backoff delays of failed embedding jobs (no jitter, so retries are predictable)
- Retrying transient provider HTTP failures
- Lenient JSON parsing of synthesizer replies
"""

import json
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Type


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        initial_delay_ms: Delay before the first retry, in milliseconds
        max_delay_ms: Upper bound on any single delay, in milliseconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to add +/-25% random jitter to each delay
    """
    max_attempts: int = 3
    initial_delay_ms: float = 250.0
    max_delay_ms: float = 1000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True

    @classmethod
    def for_jobs(cls, max_retries: int, base_delay_seconds: float) -> "RetryConfig":
        """Deterministic doubling backoff for the embedding job queue."""
        return cls(
            max_attempts=max_retries,
            initial_delay_ms=base_delay_seconds * 1000.0,
            max_delay_ms=float("inf"),
            backoff_multiplier=2.0,
            jitter=False,
        )


@dataclass
class RetryResult:
    """
    Result of a retry operation.

    Attributes:
        success: Whether the operation succeeded
        result: The result value if successful
        attempts: Number of attempts made
        error: The final error if failed
        error_history: Error messages from each failed attempt
    """
    success: bool
    result: Any = None
    attempts: int = 0
    error: Optional[Exception] = None
    error_history: List[str] = field(default_factory=list)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for a given attempt with exponential backoff.

    Args:
        attempt: Attempt number (0-based); attempt 0 waits initial_delay_ms
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay_ms = min(
        config.initial_delay_ms * (config.backoff_multiplier ** attempt),
        config.max_delay_ms,
    )

    if config.jitter:
        delay_ms *= 0.75 + random.random() * 0.5

    return delay_ms / 1000.0


def retry_with_backoff(
    operation: Callable[[], Any],
    config: RetryConfig,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    operation_name: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> RetryResult:
    """
    Execute a blocking operation with retry and exponential backoff.

    Exceptions not listed in retry_on end the loop immediately.

    Args:
        operation: Callable to execute (takes no arguments)
        config: Retry configuration
        retry_on: Exception types worth retrying
        operation_name: Name for logging
        sleep: Sleep function (injectable for tests)

    Returns:
        RetryResult with success/failure info

    Example:
        >>> result = retry_with_backoff(lambda: client.embed(texts), RetryConfig())
        >>> if not result.success:
        ...     raise result.error
    """
    error_history: List[str] = []

    for attempt in range(config.max_attempts):
        try:
            result = operation()
        except retry_on as e:
            error_history.append(str(e))
            logger.warning(
                f"{operation_name} failed on attempt {attempt + 1}/{config.max_attempts}: {e}"
            )
            if attempt == config.max_attempts - 1:
                logger.error(f"{operation_name} exhausted all {config.max_attempts} attempts")
                return RetryResult(
                    success=False,
                    attempts=attempt + 1,
                    error=e,
                    error_history=error_history,
                )
            delay = calculate_delay(attempt, config)
            logger.debug(f"Backing off for {delay:.3f}s before retry")
            sleep(delay)
        except Exception as e:
            logger.error(f"{operation_name} failed with non-retryable error: {e}")
            error_history.append(str(e))
            return RetryResult(
                success=False,
                attempts=attempt + 1,
                error=e,
                error_history=error_history,
            )
        else:
            if attempt > 0:
                logger.info(f"{operation_name} succeeded after {attempt + 1} attempts")
            return RetryResult(
                success=True,
                result=result,
                attempts=attempt + 1,
                error_history=error_history,
            )

    return RetryResult(success=False, attempts=0, error_history=error_history)


def _extract_first_object(content: str) -> Optional[str]:
    """First balanced {...} block in content, ignoring braces inside strings."""
    start = content.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(content)):
        ch = content[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return content[start:i + 1]
    return None


def parse_json_with_retry(
    content: str,
    extract_embedded: bool = False,
) -> Tuple[bool, Optional[Dict[str, Any]], List[str]]:
    """
    Parse a JSON object, tolerating surrounding whitespace and prose.

    Strategies, in order:
    1. Direct parse of the stripped content
    2. Optional extraction of the first {...} block (model replies often wrap
       JSON in prose or code fences)

    Args:
        content: String content to parse
        extract_embedded: If True, try to extract the first JSON object from text

    Returns:
        Tuple of (success, parsed_dict, error_list). A top-level value that
        is not an object counts as a failure.
    """
    errors: List[str] = []
    candidates = [("Direct", content.strip())]

    if extract_embedded:
        embedded = _extract_first_object(content)
        if embedded is None:
            errors.append("Embedded parse failed: no complete JSON object found")
        else:
            candidates.append(("Embedded", embedded))

    for label, text in candidates:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            errors.append(f"{label} parse failed: {e}")
            continue
        if isinstance(parsed, dict):
            return True, parsed, errors
        errors.append(f"{label} parse returned {type(parsed).__name__}, expected object")

    return False, None, errors
