import functools
import time

from src.utils.logging import get_logger

logger = get_logger(__name__)


class RateLimitedError(Exception):
    """Exception to indicate a function was rate limited."""

    def __init__(self, retry_after: float | None = None, message: str = "Rate limited"):
        self.retry_after = retry_after
        super().__init__(message)


def _handle_rate_limit_error(
    e: RateLimitedError,
    attempt: int,
    max_retries: int,
    base_delay: float,
    max_delay: float,
    func_name: str,
) -> float:
    """Handle a rate limit error - calculate delay and log, or re-raise when out of budget."""
    if attempt >= max_retries - 1:
        logger.error(f"Max retries reached for {func_name}")
        raise e

    # Determine delay: use server-provided retry_after or exponential backoff
    delay = e.retry_after if e.retry_after else base_delay * (2**attempt)
    delay_source = "server says" if e.retry_after else "calculated delay"

    # A webhook delivery cannot wait for long resets, let the caller surface it
    if delay > max_delay:
        logger.warning(
            f"Rate limited, {delay_source} wait {delay} seconds exceeds {max_delay}s - giving up"
        )
        raise e

    logger.warning(
        f"Rate limited, {delay_source} wait {delay} seconds before retry {attempt + 1}/{max_retries}"
    )

    return delay


def rate_limited(max_retries: int = 3, base_delay: float = 2, max_delay: float = 30):
    """
    Decorator to add exponential backoff retry logic for rate limiting.
    The decorated function should raise RateLimitedError when rate limited.

    Args:
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds for exponential backoff
        max_delay: Longest single wait we accept before giving up

    Usage:
        @rate_limited()
        def api_call():
            response = session.get(url)
            if response.status_code == 429:
                raise RateLimitedError(retry_after=int(response.headers["Retry-After"]))
            return response
    """

    def decorator(func):
        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except RateLimitedError as e:
                    delay = _handle_rate_limit_error(
                        e, attempt, max_retries, base_delay, max_delay, func.__name__
                    )
                    time.sleep(delay)

            raise Exception(f"Unexpected error in retry logic for {func.__name__}")

        return sync_wrapper

    return decorator
