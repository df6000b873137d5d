"""Route definitions for gatekeeper service."""

import asyncio

from fastapi import APIRouter, HTTPException, Request

from connectors.github.github_webhook_handler import extract_github_webhook_metadata
from src.ingest.gatekeeper.models import WebhookErrorDetail, WebhookResponse
from src.ingest.gatekeeper.webhook_dispatcher import WebhookDispatcher
from src.ingest.gatekeeper.webhook_gate import WebhookGate
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

router = APIRouter()


async def handle_github_webhook(request: Request) -> WebhookResponse:
    """Gate, then dispatch, a GitHub webhook delivery."""
    gate: WebhookGate = request.app.state.webhook_gate
    dispatcher: WebhookDispatcher = request.app.state.webhook_dispatcher

    body = await request.body()
    headers = dict(request.headers)

    metadata = extract_github_webhook_metadata(headers, body.decode("utf-8", errors="replace"))
    logger.info("Received github webhook", **metadata)

    decision = gate.check(headers, body)
    if not decision.accepted:
        raise HTTPException(
            status_code=decision.status_code,
            detail=WebhookErrorDetail(
                code=decision.code or "rejected",
                message=decision.message,
                delivery_id=decision.delivery_id,
            ).model_dump(),
        )

    with LogContext(delivery_id=decision.delivery_id, repository=decision.full_name):
        # Syncing is blocking I/O, keep it off the event loop
        result = await asyncio.to_thread(dispatcher.dispatch, decision)

    if not result.success:
        raise HTTPException(
            status_code=result.status_code,
            detail={
                **WebhookErrorDetail(
                    code=result.error.code if result.error else "dispatch_failed",
                    message=result.message,
                    delivery_id=decision.delivery_id,
                ).model_dump(),
                "results": result.results,
            },
        )

    return WebhookResponse(
        success=True,
        message=result.message,
        event=decision.event,
        delivery_id=decision.delivery_id,
        results=result.results,
    )


@router.post("/webhooks/github", response_model=WebhookResponse)
async def github_webhook(request: Request):
    """Process GitHub webhook."""
    return await handle_github_webhook(request)


# Legacy WordPress plugin route, existing hooks keep pointing at it
@router.post("/giw/v1/publish", response_model=WebhookResponse)
async def publish_webhook(request: Request):
    """Process GitHub webhook on the legacy publish route."""
    return await handle_github_webhook(request)
