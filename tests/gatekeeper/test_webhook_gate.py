"""Tests for the webhook authentication gate, one check at a time."""

import json

import pytest

from connectors.github.github_webhook_handler import compute_github_signature
from src.ingest.gatekeeper.webhook_gate import WebhookGate

SECRET = "s3cret"
PUSH_BODY = json.dumps(
    {
        "ref": "refs/heads/main",
        "before": "a" * 40,
        "after": "b" * 40,
        "repository": {"full_name": "acme/docs"},
        "pusher": {"name": "octocat"},
    }
).encode()


def _headers(body: bytes = PUSH_BODY, event: str = "push", secret: str = SECRET, **overrides) -> dict:
    headers = {
        "User-Agent": "GitHub-Hookshot/044aadd",
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": "72d3162e-cc78-11e3-81ab-4c9367dc0958",
        "X-Hub-Signature": compute_github_signature(body, secret),
    }
    headers.update(overrides)
    return {name: value for name, value in headers.items() if value is not None}


@pytest.fixture
def gate():
    return WebhookGate(lambda: SECRET)


class TestWebhookGate:
    def test_accepts_signed_push(self, gate):
        decision = gate.check(_headers(), PUSH_BODY)

        assert decision.accepted
        assert decision.event == "push"
        assert decision.delivery_id == "72d3162e-cc78-11e3-81ab-4c9367dc0958"
        assert decision.full_name == "acme/docs"
        assert decision.status_code == 200
        assert decision.error is None

    def test_header_names_are_case_insensitive(self, gate):
        headers = {name.lower(): value for name, value in _headers().items()}

        assert gate.check(headers, PUSH_BODY).accepted

    def test_accepts_ping(self, gate):
        body = json.dumps({"zen": "Keep it logically awesome.", "hook_id": 1, "repository": {"full_name": "acme/docs"}}).encode()

        decision = gate.check(_headers(body, event="ping"), body)

        assert decision.accepted
        assert decision.event == "ping"

    @pytest.mark.parametrize(
        ("overrides", "status_code", "code"),
        [
            ({"User-Agent": None}, 403, "no_user_agent"),
            ({"User-Agent": "curl/8.4.0"}, 403, "who_are_you"),
            ({"X-GitHub-Event": None}, 400, "no_github_event"),
            ({"X-Hub-Signature": None}, 401, "no_signature"),
        ],
    )
    def test_header_checks(self, gate, overrides, status_code, code):
        decision = gate.check(_headers(**overrides), PUSH_BODY)

        assert not decision.accepted
        assert decision.status_code == status_code
        assert decision.code == code

    def test_user_agent_checked_before_event(self, gate):
        decision = gate.check(_headers(**{"User-Agent": "curl/8.4.0", "X-GitHub-Event": None}), PUSH_BODY)

        assert decision.code == "who_are_you"

    def test_body_not_json(self, gate):
        body = b"payload=%7B%7D"

        decision = gate.check(_headers(body), body)

        assert decision.status_code == 500
        assert decision.code == "invalid_data"

    def test_repository_missing(self, gate):
        body = json.dumps({"ref": "refs/heads/main"}).encode()

        decision = gate.check(_headers(body), body)

        assert decision.code == "invalid_data"
        assert decision.message == "Invalid data: repository not set"

    def test_full_name_missing(self, gate):
        body = json.dumps({"repository": {"name": "docs"}}).encode()

        decision = gate.check(_headers(body), body)

        assert decision.code == "invalid_data"
        assert "full name" in decision.message

    def test_unsupported_event(self, gate):
        decision = gate.check(_headers(event="issues"), PUSH_BODY)

        assert decision.status_code == 501
        assert decision.code == "unsupported_event"
        assert decision.message == "Unsupported event: issues"

    def test_unsupported_event_checked_before_signature(self, gate):
        decision = gate.check(_headers(event="issues", secret="wrong"), PUSH_BODY)

        assert decision.code == "unsupported_event"

    @pytest.mark.parametrize("secret", [None, "", "   "])
    def test_no_server_secret(self, secret):
        decision = WebhookGate(lambda: secret).check(_headers(), PUSH_BODY)

        assert decision.status_code == 500
        assert decision.code == "no_server_secret"

    def test_server_secret_is_trimmed(self):
        assert WebhookGate(lambda: f"  {SECRET}\n").check(_headers(), PUSH_BODY).accepted

    def test_wrong_secret(self, gate):
        decision = gate.check(_headers(secret="not-the-secret"), PUSH_BODY)

        assert not decision.accepted
        assert decision.status_code == 401
        assert decision.code == "signature_mismatch"
        assert decision.error.kind.value == "authentication_failed"

    def test_tampered_body(self, gate):
        tampered = PUSH_BODY.replace(b"acme/docs", b"acme/evil")

        decision = gate.check(_headers(), tampered)

        assert decision.code == "signature_mismatch"

    def test_secret_read_per_request(self):
        secrets = iter(["first", SECRET])
        gate = WebhookGate(lambda: next(secrets))

        assert not gate.check(_headers(), PUSH_BODY).accepted
        assert gate.check(_headers(), PUSH_BODY).accepted
