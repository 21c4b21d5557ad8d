"""
Tests for retry logic with exponential backoff.
"""

import pytest
from unittest.mock import AsyncMock, patch
from shared.retry import retry_with_backoff
from shared.errors import RetryableError, ValidationError


@pytest.fixture(autouse=True)
def no_sleep():
    """Record backoff delays without waiting."""
    with patch("shared.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.mark.asyncio
async def test_retry_succeeds_on_first_attempt():
    """Test that function succeeds on first attempt."""
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=0.1)
    async def successful_function():
        nonlocal call_count
        call_count += 1
        return "success"

    result = await successful_function()
    assert result == "success"
    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_succeeds_after_retries():
    """Test that function succeeds after retries."""
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=0.1)
    async def retryable_function():
        nonlocal call_count
        call_count += 1
        if call_count < 2:
            raise RetryableError("Temporary failure")
        return "success"

    result = await retryable_function()
    assert result == "success"
    assert call_count == 2


@pytest.mark.asyncio
async def test_retry_fails_after_max_attempts():
    """Test that function raises exception after max attempts."""
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=0.1)
    async def always_fails():
        nonlocal call_count
        call_count += 1
        raise RetryableError("Always fails")

    with pytest.raises(RetryableError, match="Always fails"):
        await always_fails()

    assert call_count == 3


@pytest.mark.asyncio
async def test_retry_exponential_backoff(no_sleep):
    """Test that backoff delay doubles per attempt."""
    @retry_with_backoff(max_attempts=3, base_delay=1)
    async def always_fails():
        raise RetryableError("Retry")

    with pytest.raises(RetryableError):
        await always_fails()

    assert [c.args[0] for c in no_sleep.await_args_list] == [1, 2]


@pytest.mark.asyncio
async def test_retry_only_on_retryable_error():
    """Test that non-retryable errors are not retried."""
    call_count = 0

    @retry_with_backoff(max_attempts=3, base_delay=0.1)
    async def non_retryable_error():
        nonlocal call_count
        call_count += 1
        raise ValidationError("Non-retryable")

    with pytest.raises(ValidationError, match="Non-retryable"):
        await non_retryable_error()

    assert call_count == 1


@pytest.mark.asyncio
async def test_retry_custom_retryable_exceptions():
    """Test that custom retryable exceptions work."""
    call_count = 0

    @retry_with_backoff(
        max_attempts=3,
        base_delay=0.1,
        retryable_exceptions=(ConnectionError, RetryableError)
    )
    async def custom_retryable():
        nonlocal call_count
        call_count += 1
        if call_count < 2:
            raise ConnectionError("Connection failed")
        return "success"

    result = await custom_retryable()
    assert result == "success"
    assert call_count == 2


def test_retry_rejects_sync_function():
    """Only coroutine functions can be decorated."""
    with pytest.raises(TypeError):
        @retry_with_backoff(max_attempts=3)
        def sync_function():
            return "success"


@pytest.mark.asyncio
async def test_retry_logs_attempts(caplog):
    """Test that retry attempts are logged."""
    import logging
    logging.getLogger("retry").setLevel(logging.WARNING)

    @retry_with_backoff(max_attempts=2, base_delay=0.1)
    async def logged_function():
        raise RetryableError("Retry")

    with pytest.raises(RetryableError):
        await logged_function()

    log_messages = [record.message for record in caplog.records]
    assert any("Retry attempt" in msg for msg in log_messages)
