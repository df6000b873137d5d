"""Routes accepted webhook deliveries to the sync orchestrator."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from connectors.github.github_push_event import GitHubPingEvent, GitHubPushEvent
from src.ingest.gatekeeper.webhook_gate import GateDecision
from src.publish.errors import SyncError, UnsupportedEvent, ValidationFailed
from src.publish.orchestrator import SyncOrchestrator
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

PONG = "pong"


@dataclass
class DispatchResult:
    success: bool
    message: str
    status_code: int = 200
    results: list[dict[str, Any]] = field(default_factory=list)
    error: SyncError | None = None

    @classmethod
    def from_error(cls, error: SyncError, results: list[dict[str, Any]] | None = None) -> "DispatchResult":
        return cls(
            success=False,
            message=error.message,
            status_code=error.status_code,
            results=results or [],
            error=error,
        )


class WebhookDispatcher:
    def __init__(self, orchestrator: SyncOrchestrator):
        self.orchestrator = orchestrator

    def dispatch(self, decision: GateDecision) -> DispatchResult:
        """Handle an accepted delivery. Blocks for the duration of a push sync."""
        if not decision.accepted:
            raise ValueError("Only accepted webhook deliveries can be dispatched")

        with LogContext(event=decision.event, delivery_id=decision.delivery_id):
            logger.info(
                f"Received {decision.event} event from GitHub for repository '{decision.full_name}'"
            )
            match decision.event:
                case "ping":
                    result = self._handle_ping(decision.payload)
                case "push":
                    result = self._handle_push(decision.payload)
                case _:
                    result = DispatchResult.from_error(
                        UnsupportedEvent(f"Unsupported event: {decision.event}")
                    )

            if result.success:
                logger.info("SUCCESS - honored webhook event")
            else:
                logger.warning(
                    "FAILED - webhook event could not be processed successfully",
                    status_code=result.status_code,
                    reason=result.message,
                )
            return result

    def _handle_ping(self, payload: dict[str, Any]) -> DispatchResult:
        try:
            ping = GitHubPingEvent.model_validate(payload)
            logger.info("GitHub ping", hook_id=ping.hook_id, zen=ping.zen)
        except ValidationError:
            # A ping never triggers side effects, an odd payload is not worth failing it
            logger.debug("Could not parse ping payload")
        return DispatchResult(success=True, message=PONG)

    def _handle_push(self, payload: dict[str, Any]) -> DispatchResult:
        try:
            push = GitHubPushEvent.model_validate(payload)
        except ValidationError as e:
            return DispatchResult.from_error(
                ValidationFailed(
                    f"Invalid push payload: {e.error_count()} validation errors",
                    code="invalid_push_payload",
                )
            )

        logger.info(
            f"Processing commit from '{push.before}' up to '{push.after}' made on "
            f"'{push.pusher.date}' by '{push.pusher.name} ({push.pusher.username})' for ref '{push.ref}'",
            branch=push.branch,
        )

        outcome = self.orchestrator.sync_by_full_name(push.repository.full_name)
        results = [summary.to_dict() for summary in outcome.value or []]
        if outcome.error is not None:
            return DispatchResult.from_error(outcome.error, results)

        return DispatchResult(
            success=True,
            message=f"Published {len(results)} configuration(s) of {push.repository.full_name}",
            results=results,
        )
