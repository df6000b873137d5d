#!/usr/bin/env python3
"""
gitpress CLI

Publish configured GitHub repositories by hand and run the webhook service.
"""

from datetime import UTC, datetime

import typer
from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.table import Table

from src.clients.content_store import ContentStore
from src.clients.github import GitHubClient
from src.clients.memory_content_store import InMemoryContentStore
from src.clients.wordpress import WordPressContentStore
from src.publish.orchestrator import SyncOrchestrator
from src.publish.reconciler import ReconciliationEngine
from src.publish.repository_config import RepositoryConfigStore
from src.publish.results import SyncStatus, SyncSummary

# Load environment variables
load_dotenv()

app = typer.Typer(
    name="gitpress",
    help="Publish markdown from GitHub repositories into WordPress",
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    SyncStatus.CREATED: "green",
    SyncStatus.UPDATED: "cyan",
    SyncStatus.SKIPPED: "dim",
    SyncStatus.FAILED: "red",
}


def log_info(message: str) -> None:
    """Log info message with emoji."""
    console.print(f"ℹ️  {message}", style="blue")


def log_success(message: str) -> None:
    """Log success message with emoji."""
    console.print(f"✅ {message}", style="green")


def log_error(message: str) -> None:
    """Log error message with emoji."""
    console.print(f"❌ {message}", style="red")


def build_orchestrator(
    config_store: RepositoryConfigStore, dry_run: bool
) -> tuple[SyncOrchestrator, ContentStore]:
    settings = config_store.general_settings()
    client = GitHubClient(username=settings.github_username, access_token=settings.github_access_token)

    store: ContentStore
    if dry_run:
        store = InMemoryContentStore()
    else:
        store = WordPressContentStore.from_config()

    orchestrator = SyncOrchestrator(
        config_store=config_store,
        client=client,
        engine=ReconciliationEngine(store),
        record_last_publish=not dry_run,
    )
    return orchestrator, store


def print_summary(summary: SyncSummary) -> None:
    title = f"{summary.full_name}#{summary.branch} ({summary.config_id})"
    if summary.error:
        log_error(f"{title}: {summary.error.message}")
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Record", justify="right")
    table.add_column("Details")

    for result in summary.results:
        details = result.reason or ", ".join(
            f"{name}: {step.status.value}" for name, step in result.steps.items()
        )
        table.add_row(
            result.path,
            f"[{STATUS_STYLES[result.status]}]{result.status.value}[/]",
            str(result.record_id or ""),
            details,
        )

    console.print(table)
    counts = ", ".join(f"{count} {status}" for status, count in summary.counts.items())
    console.print(f"[dim]{counts}[/dim]")


@app.command()
def repos() -> None:
    """List configured repositories and when they were last published."""
    config_store = RepositoryConfigStore()
    configs = config_store.all_repositories()
    if not configs:
        log_info(f"No repositories configured in {config_store.path}")
        return

    table = Table(title="Configured repositories", box=box.ROUNDED)
    for column in ("ID", "Repository", "Branch", "Folder", "Post type", "Last publish"):
        table.add_column(column)

    for config in configs:
        last_publish = (
            datetime.fromtimestamp(config.last_publish, UTC).strftime("%Y-%m-%d %H:%M:%S UTC")
            if config.last_publish
            else "never"
        )
        table.add_row(
            config.config_id,
            config.full_name,
            config.branch,
            config.folder or "/",
            config.effective_post_type,
            last_publish,
        )
    console.print(table)


@app.command()
def sync(
    config_id: str = typer.Argument(..., help="Configuration ID of the repository"),
    force: bool = typer.Option(False, "--force", help="Update records even if the source is unchanged"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Reconcile against an in-memory store"),
) -> None:
    """Publish one configured repository."""
    config_store = RepositoryConfigStore()
    orchestrator, _ = build_orchestrator(config_store, dry_run)

    outcome = orchestrator.sync_by_id(config_id, force=force)
    if outcome.error is not None:
        log_error(f"{outcome.error.message} ({outcome.error.code})")
        raise typer.Exit(1)

    summary = outcome.value
    if summary is None:
        log_error(f"No sync summary returned for {config_id}")
        raise typer.Exit(1)

    print_summary(summary)
    if summary.failures:
        raise typer.Exit(1)
    log_success(f"Published {config_id}")


@app.command("sync-repo")
def sync_repo(
    full_name: str = typer.Argument(..., help="Repository as OWNER/REPO"),
    force: bool = typer.Option(False, "--force", help="Update records even if the source is unchanged"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Reconcile against an in-memory store"),
) -> None:
    """Publish every configuration of a repository, across all branches."""
    config_store = RepositoryConfigStore()
    orchestrator, _ = build_orchestrator(config_store, dry_run)

    outcome = orchestrator.sync_by_full_name(full_name, force=force)
    for summary in outcome.value or []:
        print_summary(summary)

    if outcome.error is not None:
        log_error(f"{outcome.error.message} ({outcome.error.code})")
        raise typer.Exit(1)
    log_success(f"Published {full_name}")


@app.command()
def serve(
    port: int | None = typer.Option(None, "--port", "-p", help="Port to listen on"),
) -> None:
    """Run the webhook service."""
    import uvicorn

    from src.ingest.gatekeeper.main import get_gatekeeper_port
    from src.utils.logging import get_uvicorn_log_config

    uvicorn.run(
        "src.ingest.gatekeeper.main:app",
        host="0.0.0.0",
        port=port or get_gatekeeper_port(),
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    app()
