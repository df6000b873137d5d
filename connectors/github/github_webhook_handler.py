import hashlib
import hmac
import json

from src.utils.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-hub-signature"
EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"
USER_AGENT_HEADER = "user-agent"
HOOKSHOT_USER_AGENT = "GitHub-Hookshot"


def compute_github_signature(body: bytes, secret: str) -> str:
    """Signature GitHub sends in X-Hub-Signature: "sha1=" + hex HMAC-SHA1 of the raw body."""
    return "sha1=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha1).hexdigest()


def verify_github_webhook(headers: dict[str, str], body: bytes, secret: str) -> None:
    """Verify a GitHub webhook signature against the raw request body.

    Args:
        headers: Webhook headers with lower-cased names
        body: Raw, unparsed request body
        secret: Shared webhook secret

    Raises:
        ValueError: If the secret is empty, the signature is missing or does not match
    """
    if not secret:
        raise ValueError("No secret configured on server")

    signature = headers.get(SIGNATURE_HEADER, "")
    if not signature:
        raise ValueError("Missing X-Hub-Signature header")

    expected = compute_github_signature(body, secret)

    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        raise ValueError("Signature mismatch")


def extract_github_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from a GitHub webhook for observability.

    Safely extracts key information without failing webhook processing.
    Excludes names of people to avoid logging PII.

    Returns:
        Dictionary containing extracted metadata with at least payload_size
    """
    metadata: dict[str, str | int | bool] = {"payload_size": len(body_str)}

    metadata["hook_id"] = headers.get("x-github-hook-id", "")
    metadata["event_type"] = headers.get(EVENT_HEADER, "unknown")
    metadata["delivery_id"] = headers.get(DELIVERY_HEADER, "")
    metadata["user_agent"] = headers.get(USER_AGENT_HEADER, "")

    try:
        payload = json.loads(body_str)
    except (json.JSONDecodeError, ValueError):
        metadata["parse_error"] = "Failed to parse JSON"
        return metadata

    if not isinstance(payload, dict):
        metadata["parse_error"] = "Payload is not a JSON object"
        return metadata

    if ref := payload.get("ref"):
        metadata["ref"] = str(ref)
    if repository := payload.get("repository"):
        if isinstance(repository, dict):
            metadata["repository"] = str(repository.get("full_name", ""))
            metadata["repository_id"] = str(repository.get("id", ""))

    return metadata
