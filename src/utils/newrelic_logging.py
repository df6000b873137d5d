"""New Relic logging integration helpers."""

from collections.abc import MutableMapping
from typing import Any

import newrelic.agent


def newrelic_error_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor that sends error-level logs to New Relic.

    Passes through all log levels unchanged. notice_error is a no-op when the
    agent was never initialized.
    """
    if method_name in ("error", "critical"):
        newrelic.agent.notice_error()

    return event_dict
