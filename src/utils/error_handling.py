"""Exception recording for work that must not abort a whole sync run."""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any, Literal, TypedDict

import newrelic.agent
import structlog


class ErrorCounter(TypedDict, total=False):
    """Counter dict for tracking success/failure metrics."""

    successful: int
    failed: int


def increment(counter: ErrorCounter, key: Literal["successful", "failed"]) -> None:
    counter[key] = counter.get(key, 0) + 1


@contextmanager
def record_exception_and_ignore(
    logger: structlog.BoundLogger,
    context: str,
    counter: ErrorCounter,
    **log_fields: Any,
) -> Generator[None]:
    """Run a block, counting its outcome instead of letting an exception escape.

    On exception the error is logged with `log_fields` and the exception type,
    recorded to New Relic and counted as failed. The caller sees the block as
    having produced nothing.

    Example:
        counter = {}
        with record_exception_and_ignore(logger, "Failed to reconcile file", counter, path=path):
            result = reconcile(path)

        logger.info("Reconciled", ok=counter.get("successful", 0), failed=counter.get("failed", 0))
    """
    try:
        yield
    except Exception as e:
        logger.error(f"{context}: {e}", error_type=type(e).__name__, **log_fields)
        newrelic.agent.record_exception()
        increment(counter, "failed")
    else:
        increment(counter, "successful")
