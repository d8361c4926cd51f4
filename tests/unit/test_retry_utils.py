"""
Unit tests for retry and JSON parsing helpers.
"""

import pytest

from mnemo.utils.retry import (
    RetryConfig,
    calculate_delay,
    parse_json_with_retry,
    retry_with_backoff,
)


class TestCalculateDelay:
    """Tests for calculate_delay."""

    def test_job_backoff_doubles(self):
        config = RetryConfig.for_jobs(max_retries=3, base_delay_seconds=5.0)
        assert [calculate_delay(i, config) for i in range(4)] == [5.0, 10.0, 20.0, 40.0]

    def test_capped(self):
        config = RetryConfig(initial_delay_ms=250, max_delay_ms=1000, jitter=False)
        assert calculate_delay(5, config) == 1.0

    def test_jitter_bounds(self):
        config = RetryConfig(initial_delay_ms=1000, max_delay_ms=1000, jitter=True)
        for _ in range(50):
            assert 0.75 <= calculate_delay(0, config) <= 1.25


class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    def test_success_after_failures(self):
        calls = []
        sleeps = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("down")
            return "ok"

        config = RetryConfig(max_attempts=3, initial_delay_ms=100, jitter=False)
        result = retry_with_backoff(flaky, config, retry_on=(ConnectionError,), sleep=sleeps.append)

        assert result.success
        assert result.result == "ok"
        assert result.attempts == 3
        assert result.error_history == ["down", "down"]
        assert sleeps == [0.1, 0.2]

    def test_exhausted(self):
        def always_fails():
            raise ConnectionError("down")

        config = RetryConfig(max_attempts=2, initial_delay_ms=0, jitter=False)
        result = retry_with_backoff(always_fails, config, sleep=lambda s: None)

        assert not result.success
        assert result.attempts == 2
        assert isinstance(result.error, ConnectionError)

    def test_non_retryable_stops(self):
        calls = []

        def broken():
            calls.append(1)
            raise KeyError("missing")

        config = RetryConfig(max_attempts=5, jitter=False)
        result = retry_with_backoff(broken, config, retry_on=(ConnectionError,), sleep=lambda s: None)

        assert not result.success
        assert len(calls) == 1
        assert isinstance(result.error, KeyError)


class TestParseJsonWithRetry:
    """Tests for parse_json_with_retry."""

    def test_direct(self):
        ok, data, errors = parse_json_with_retry('  {"a": 1}  ')
        assert ok
        assert data == {"a": 1}
        assert errors == []

    def test_embedded(self):
        content = 'Here you go:\n```json\n{"a": {"b": "}"}}\n```'
        ok, data, errors = parse_json_with_retry(content, extract_embedded=True)

        assert ok
        assert data == {"a": {"b": "}"}}
        assert errors[0].startswith("Direct parse failed")

    def test_embedded_disabled(self):
        ok, data, _ = parse_json_with_retry('prefix {"a": 1}')
        assert not ok
        assert data is None

    def test_non_object(self):
        ok, _, errors = parse_json_with_retry("[1, 2]")
        assert not ok
        assert "expected object" in errors[0]

    @pytest.mark.parametrize("content", ["", "no braces here", '{"unterminated": '])
    def test_failures(self, content):
        ok, data, errors = parse_json_with_retry(content, extract_embedded=True)
        assert not ok
        assert data is None
        assert errors
