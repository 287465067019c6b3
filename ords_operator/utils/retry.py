"""
Retry utilities for Kubernetes API calls.

Provides the retry predicate used by the object store and the bounded,
fixed-delay helpers used by teardown, where a secret may be deleted by
another process mid-flight or a status write may race another writer.
"""
from typing import Awaitable, Callable, Optional, TypeVar

from kubernetes_asyncio.client.rest import ApiException
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from ords_operator.config.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

# HTTP status codes that are retryable
RETRYABLE_STATUS_CODES = {
    408,  # Request Timeout
    429,  # Too Many Requests (rate limiting)
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}


def is_retryable_k8s_error(exception: BaseException) -> bool:
    """
    Determine if a Kubernetes API exception should trigger a retry.

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable, False otherwise
    """
    if isinstance(exception, (ConnectionError, TimeoutError)):
        return True
    if not isinstance(exception, ApiException):
        return False
    return exception.status in RETRYABLE_STATUS_CODES


def k8s_retrying(max_attempts: int = 3) -> AsyncRetrying:
    """
    Retry controller for transient API failures (exponential backoff).

    Example:
        async for attempt in k8s_retrying():
            with attempt:
                pod = await core_api.read_namespaced_pod(name, namespace)
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(is_retryable_k8s_error),
        reraise=True,
    )


async def retry_until_found(
    fetch: Callable[[], Awaitable[Optional[T]]],
    attempts: int,
    delay: float,
    on_miss: Optional[Callable[[int], None]] = None,
) -> Optional[T]:
    """
    Call ``fetch`` until it returns something other than None.

    Args:
        fetch: Async callable returning the object or None when absent
        attempts: Maximum number of calls
        delay: Fixed delay in seconds between calls
        on_miss: Optional callback invoked with the attempt number after each miss

    Returns:
        The fetched object, or None when every attempt missed
    """
    def _after(retry_state) -> None:
        if on_miss is not None:
            on_miss(retry_state.attempt_number)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_result(lambda result: result is None),
        after=_after,
        retry_error_callback=lambda retry_state: None,
    )
    return await retrying(fetch)


async def retry_until_success(
    action: Callable[[], Awaitable[object]],
    attempts: int,
    delay: float,
    operation: str,
) -> bool:
    """
    Call ``action`` until it completes without raising.

    Args:
        action: Async callable performing the operation
        attempts: Maximum number of calls
        delay: Fixed delay in seconds between calls
        operation: Name used in log events

    Returns:
        True when one call succeeded, False after the last failure
    """
    def _log_failure(retry_state) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            "bounded_retry_attempt_failed",
            operation=operation,
            attempt=retry_state.attempt_number,
            max_attempts=attempts,
            error=str(error),
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_exception(lambda e: isinstance(e, Exception)),
        after=_log_failure,
    )
    try:
        await retrying(action)
    except RetryError:
        logger.error("bounded_retry_exhausted", operation=operation, max_attempts=attempts)
        return False
    return True
