"""Gatekeeper FastAPI service receiving GitHub webhooks and publishing repositories."""

import datetime
from contextlib import asynccontextmanager
from pathlib import Path

import newrelic.agent

from src.utils.config import get_gitpress_environment

# Initialize New Relic with the gatekeeper-specific TOML config and environment
config_path = Path(__file__).parent / "newrelic.toml"
gitpress_env = get_gitpress_environment()
newrelic.agent.initialize(str(config_path), environment=gitpress_env)

from fastapi import FastAPI, HTTPException, Request

from src.clients.github import GitHubClient
from src.clients.wordpress import WordPressContentStore
from src.ingest.gatekeeper.routes import router as webhook_router
from src.ingest.gatekeeper.webhook_dispatcher import WebhookDispatcher
from src.ingest.gatekeeper.webhook_gate import WebhookGate
from src.publish.orchestrator import SyncOrchestrator
from src.publish.reconciler import ReconciliationEngine
from src.publish.repository_config import RepositoryConfigStore
from src.utils.config import get_config_value
from src.utils.logging import get_logger, get_logging_failure_count

logger = get_logger(__name__)

DEFAULT_GATEKEEPER_PORT = 8001


def get_gatekeeper_port() -> int:
    return int(get_config_value("GATEKEEPER_PORT", DEFAULT_GATEKEEPER_PORT))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services on startup and handle graceful shutdown."""
    logger.info("🚀 Starting Gatekeeper service...")

    config_store = RepositoryConfigStore()
    settings = config_store.general_settings()

    github_client = GitHubClient(
        username=settings.github_username, access_token=settings.github_access_token
    )
    content_store = WordPressContentStore.from_config()
    orchestrator = SyncOrchestrator(
        config_store=config_store,
        client=github_client,
        engine=ReconciliationEngine(content_store),
    )

    app.state.config_store = config_store
    app.state.github_client = github_client
    app.state.content_store = content_store
    app.state.orchestrator = orchestrator
    app.state.webhook_gate = WebhookGate(lambda: config_store.general_settings().webhook_secret)
    app.state.webhook_dispatcher = WebhookDispatcher(orchestrator)

    logger.info("✅ Gatekeeper service startup complete", config_path=str(config_store.path))

    yield

    logger.info("🛑 Shutting down Gatekeeper service...")

    content_store.close()
    github_client.session.close()

    logger.info("✅ Gatekeeper service shutdown complete")


def create_app(lifespan_handler=lifespan) -> FastAPI:
    app = FastAPI(
        title="gitpress Gatekeeper",
        description="GitHub webhook gateway with signature verification that publishes repositories",
        version="1.0.0",
        lifespan=lifespan_handler,
    )

    @app.get("/health/live")
    async def liveness_check():
        """Liveness probe endpoint - checks if the application is alive."""
        return {"status": "alive", "timestamp": datetime.datetime.now().isoformat()}

    @app.get("/health/ready")
    async def readiness_check(request: Request):
        """Readiness probe endpoint - checks that repository configurations can be read."""
        try:
            config_store: RepositoryConfigStore = request.app.state.config_store
            repositories = config_store.all_repositories()
            return {
                "status": "ready",
                "components": {
                    "config_store": "healthy",
                    "repositories": len(repositories),
                    "logging_failures": get_logging_failure_count(),
                },
            }
        except Exception as e:
            newrelic.agent.record_exception()

            logger.error(f"Readiness check failed: {e}")
            raise HTTPException(status_code=503, detail={"status": "not_ready", "error": str(e)})

    app.include_router(webhook_router)
    return app


app = create_app()


def main():
    """Run the gatekeeper service."""
    import uvicorn

    from src.utils.logging import get_uvicorn_log_config

    uvicorn.run(
        "src.ingest.gatekeeper.main:app",
        host="0.0.0.0",
        port=get_gatekeeper_port(),
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    main()
