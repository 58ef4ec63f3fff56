import asyncio
from typing import Awaitable, Callable, Any, Optional
from loguru import logger


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
    on_retry: Optional[Callable[[int, Exception, float], Awaitable[None]]] = None,
    abort: Optional[Callable[[], bool]] = None,
    label: str = "call",
) -> Any:
    """
    Retry an async function with exponential backoff

    Args:
        func: Zero-argument async callable to retry
        max_attempts: Maximum number of attempts (first call included)
        delay: Initial delay between retries in seconds
        backoff: Backoff multiplier
        exceptions: Tuple of exceptions that trigger a retry
        on_retry: Optional async callback before each retry
            (receives attempt number, exception and the upcoming delay)
        abort: Optional predicate checked before every retry; when it returns
            True the last exception is raised instead of retrying
        label: Name used in log messages

    Returns:
        Result of successful function call

    Raises:
        Last exception if all attempts fail or the retry was aborted
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    current_delay = delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except exceptions as e:
            if attempt >= max_attempts:
                logger.error(f"{label}: all {max_attempts} attempts failed: {e}")
                raise

            if abort is not None and abort():
                logger.info(f"{label}: attempt {attempt} failed and retry aborted: {e}")
                raise

            logger.warning(
                f"{label}: attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {current_delay}s..."
            )

            if on_retry:
                await on_retry(attempt, e, current_delay)

            await asyncio.sleep(current_delay)
            current_delay *= backoff

            # The abort condition may have flipped while sleeping
            if abort is not None and abort():
                logger.info(f"{label}: retry aborted after attempt {attempt}: {e}")
                raise
