"""Authentication gate for inbound GitHub webhook deliveries.

Checks run top to bottom and the first failure wins:

1. User-Agent present (403 no_user_agent) and from GitHub-Hookshot (403 who_are_you)
2. X-GitHub-Event present (400 no_github_event)
3. X-Hub-Signature present (401 no_signature)
4. Body is JSON with repository.full_name (500 invalid_data)
5. Event is ping or push (501 unsupported_event)
6. A webhook secret is configured (500 no_server_secret)
7. Signature matches HMAC-SHA1 of the raw body (401 signature_mismatch)
"""

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from connectors.github.github_webhook_handler import (
    DELIVERY_HEADER,
    EVENT_HEADER,
    HOOKSHOT_USER_AGENT,
    SIGNATURE_HEADER,
    USER_AGENT_HEADER,
    verify_github_webhook,
)
from src.publish.errors import (
    AuthenticationFailed,
    SyncError,
    UnsupportedEvent,
    ValidationFailed,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_EVENTS = frozenset({"ping", "push"})


@dataclass
class GateDecision:
    """Terminal state of the gate: accepted, or rejected with an error."""

    accepted: bool
    event: str | None = None
    delivery_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    error: SyncError | None = None

    @property
    def status_code(self) -> int:
        return self.error.status_code if self.error else 200

    @property
    def code(self) -> str | None:
        return self.error.code if self.error else None

    @property
    def message(self) -> str:
        return self.error.message if self.error else "accepted"

    @property
    def full_name(self) -> str | None:
        repository = self.payload.get("repository")
        return repository.get("full_name") if isinstance(repository, dict) else None


class WebhookGate:
    """Validates webhook requests before anything is dispatched.

    The secret is looked up per request so settings changes apply without a
    restart.
    """

    def __init__(self, secret_provider: Callable[[], str | None]):
        self.secret_provider = secret_provider

    def check(self, headers: Mapping[str, str], body: bytes) -> GateDecision:
        """Run all checks against a request.

        Args:
            headers: Request headers, names in any case
            body: Raw, unparsed request body
        """
        headers = {name.lower(): value for name, value in headers.items()}
        event = headers.get(EVENT_HEADER) or None
        delivery_id = headers.get(DELIVERY_HEADER) or None

        def reject(error: SyncError, payload: dict[str, Any] | None = None) -> GateDecision:
            logger.warning(
                "Rejected webhook",
                code=error.code,
                status_code=error.status_code,
                reason=error.message,
                event=event,
                delivery_id=delivery_id,
            )
            return GateDecision(
                accepted=False,
                event=event,
                delivery_id=delivery_id,
                payload=payload or {},
                error=error,
            )

        user_agent = headers.get(USER_AGENT_HEADER, "")
        if not user_agent:
            return reject(AuthenticationFailed("No user agent", code="no_user_agent", status_code=403))
        if HOOKSHOT_USER_AGENT not in user_agent:
            return reject(AuthenticationFailed("Who are you ?", code="who_are_you", status_code=403))

        if not event:
            return reject(ValidationFailed("No event from github", code="no_github_event"))

        if not headers.get(SIGNATURE_HEADER):
            return reject(AuthenticationFailed("No signature", code="no_signature", status_code=401))

        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return reject(
                ValidationFailed("Invalid data: body is not JSON", code="invalid_data", status_code=500)
            )
        if not isinstance(payload, dict) or not isinstance(payload.get("repository"), dict):
            return reject(
                ValidationFailed(
                    "Invalid data: repository not set", code="invalid_data", status_code=500
                )
            )
        if not payload["repository"].get("full_name"):
            return reject(
                ValidationFailed(
                    'Invalid data: full name of repository not set in "repository"',
                    code="invalid_data",
                    status_code=500,
                ),
                payload,
            )

        if event not in SUPPORTED_EVENTS:
            return reject(UnsupportedEvent(f"Unsupported event: {event}", code="unsupported_event"), payload)

        secret = (self.secret_provider() or "").strip()
        if not secret:
            return reject(
                AuthenticationFailed(
                    "No secret configured on server", code="no_server_secret", status_code=500
                ),
                payload,
            )

        try:
            verify_github_webhook(headers, body, secret)
        except ValueError:
            return reject(
                AuthenticationFailed("Signature mismatch", code="signature_mismatch", status_code=401),
                payload,
            )

        logger.info(
            "Accepted webhook",
            event=event,
            delivery_id=delivery_id,
            repository=payload["repository"]["full_name"],
        )
        return GateDecision(accepted=True, event=event, delivery_id=delivery_id, payload=payload)
