"""
Unit tests for step-level retry with exponential backoff.
"""

import pytest

from genqueue.retry import backoff_delay, retry_async


class TestBackoffDelay:
    """Tests for backoff_delay."""

    def test_doubles_per_attempt(self):
        """Test the 2s, 4s, 8s schedule."""
        assert backoff_delay(1, 2.0) == 2.0
        assert backoff_delay(2, 2.0) == 4.0
        assert backoff_delay(3, 2.0) == 8.0

    def test_rejects_attempt_zero(self):
        """Test that attempts are 1-based."""
        with pytest.raises(ValueError):
            backoff_delay(0, 2.0)


class TestRetryAsync:
    """Tests for retry_async."""

    async def test_returns_first_success(self, recording_sleep):
        """Test that a succeeding operation runs once without sleeping."""
        calls = []

        async def operation():
            calls.append(1)
            return "ok"

        result = await retry_async(
            operation, max_attempts=3, base_delay=2.0, sleep=recording_sleep
        )

        assert result == "ok"
        assert len(calls) == 1
        assert recording_sleep.delays == []

    async def test_retries_until_success(self, recording_sleep):
        """Test recovery on the third attempt."""
        attempts = []

        async def operation():
            attempts.append(1)
            if len(attempts) < 3:
                raise RuntimeError("transient")
            return len(attempts)

        result = await retry_async(
            operation, max_attempts=3, base_delay=2.0, sleep=recording_sleep
        )

        assert result == 3
        assert recording_sleep.delays == [2.0, 4.0]

    async def test_raises_last_error_when_exhausted(self, recording_sleep):
        """Test that the final exception propagates after max attempts."""
        attempts = []

        async def operation():
            attempts.append(1)
            raise RuntimeError(f"failure {len(attempts)}")

        with pytest.raises(RuntimeError, match="failure 3"):
            await retry_async(
                operation, max_attempts=3, base_delay=2.0, sleep=recording_sleep
            )

        assert len(attempts) == 3
        assert recording_sleep.delays == [2.0, 4.0]

    async def test_rejects_zero_attempts(self, recording_sleep):
        """Test that at least one attempt is required."""

        async def operation():
            return None

        with pytest.raises(ValueError):
            await retry_async(operation, max_attempts=0, base_delay=1.0, sleep=recording_sleep)
