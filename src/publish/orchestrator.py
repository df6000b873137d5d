"""Synchronizes configured repositories into the content store.

One orchestration pass (one call to an entry point) fetches every tree it
needs at most once, reconciles each matched file and records the
configuration's last-sync time.
"""

import contextvars
import threading
from concurrent.futures import ThreadPoolExecutor

from connectors.github.github_tree import RemoteFile, RemoteTree
from connectors.github.github_tree_fetcher import TreeFetcher
from src.clients.github import GitHubClient
from src.publish.content_record import PropertyError
from src.publish.errors import (
    NotConfigured,
    RemoteNotFound,
    RemoteUnauthorized,
    RemoteUnavailable,
    SyncError,
    ValidationFailed,
)
from src.publish.front_matter import MarkdownRenderer
from src.publish.reconciler import ReconciliationEngine
from src.publish.record_builder import RecordBuilder
from src.publish.repository_config import (
    GeneralSettings,
    RepositoryConfig,
    RepositoryConfigStore,
)
from src.publish.results import FileSyncResult, Outcome, SyncStatus, SyncSummary
from src.utils.config import get_sync_max_workers
from src.utils.error_handling import ErrorCounter, record_exception_and_ignore
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

TreeKey = tuple[str, str, str]

TREE_FETCH_ERRORS = (RemoteUnavailable, RemoteNotFound, RemoteUnauthorized)


class TreeCache:
    """Trees fetched during one orchestration pass, keyed by (owner, repository, branch).

    Concurrent lookups of the same key wait for a single fetch. Fetch errors
    are cached as well, a failing tree is not requested twice in one pass.
    """

    def __init__(self, fetcher: TreeFetcher):
        self.fetcher = fetcher
        self.fetch_count = 0
        self._trees: dict[TreeKey, RemoteTree] = {}
        self._errors: dict[TreeKey, SyncError] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[TreeKey, threading.Lock] = {}

    def _key_lock(self, key: TreeKey) -> threading.Lock:
        with self._lock:
            return self._key_locks.setdefault(key, threading.Lock())

    def get(self, owner: str, repository: str, branch: str) -> RemoteTree:
        key = (owner, repository, branch)
        with self._key_lock(key):
            if key in self._trees:
                logger.debug("Using cached repository structure", repository=f"{owner}/{repository}")
                return self._trees[key]
            if key in self._errors:
                raise self._errors[key]

            self.fetch_count += 1
            try:
                tree = self.fetcher.fetch(owner, repository, branch)
            except TREE_FETCH_ERRORS as e:
                self._errors[key] = e
                raise
            self._trees[key] = tree
            return tree

    def __len__(self) -> int:
        return len(self._trees)


class SyncOrchestrator:
    """Entry points for synchronizing one, or every matching, repository configuration."""

    def __init__(
        self,
        config_store: RepositoryConfigStore,
        client: GitHubClient,
        engine: ReconciliationEngine,
        fetcher: TreeFetcher | None = None,
        max_workers: int | None = None,
        record_last_publish: bool = True,
    ):
        self.config_store = config_store
        self.client = client
        self.engine = engine
        self.fetcher = fetcher or TreeFetcher(client)
        self.max_workers = max(1, max_workers if max_workers is not None else get_sync_max_workers())
        self.record_last_publish = record_last_publish

    def new_tree_cache(self) -> TreeCache:
        return TreeCache(self.fetcher)

    def sync_config(
        self,
        config: RepositoryConfig,
        force: bool = False,
        tree_cache: TreeCache | None = None,
    ) -> Outcome[SyncSummary]:
        """Synchronize a single configuration.

        Failures of individual files are reported in the summary; only tree
        fetch failures and an empty file selection are returned as errors.
        """
        tree_cache = tree_cache or self.new_tree_cache()
        settings = self.config_store.general_settings()
        summary = SyncSummary(
            config_id=config.config_id, full_name=config.full_name, branch=config.branch
        )

        with LogContext(config_id=config.config_id, repository=config.full_name, branch=config.branch):
            logger.info(f"Publishing repository {config}", force=force)

            try:
                tree = tree_cache.get(config.username, config.repository, config.branch)
            except TREE_FETCH_ERRORS as e:
                logger.error(f"Failed to fetch repository structure: {e.message}", error_kind=e.kind.value)
                return Outcome.failure(e)

            files = self._select_files(tree, config, settings)
            if not files:
                logger.warning("No files to publish", folder=config.folder)
                return Outcome.failure(
                    NotConfigured(
                        f"No files to publish in {config} (folder '{config.folder or '/'}')",
                        code="no_files",
                        config_id=config.config_id,
                    )
                )

            builder = RecordBuilder(self.client, MarkdownRenderer(settings.allowed_file_types))
            for result in self._reconcile_files(files, config, builder, force):
                summary.add(result)

            if self.record_last_publish:
                config.last_publish = self.config_store.mark_published(config.config_id)

            summary.finish()
            logger.info(
                f"Published repository {config}",
                counts=summary.counts,
                failures=len(summary.failures),
            )
            return Outcome.success(summary)

    def sync_by_id(self, config_id: str, force: bool = False) -> Outcome[SyncSummary]:
        config = self.config_store.get(config_id)
        if config is None:
            logger.warning("Repository configuration not found", config_id=config_id)
            return Outcome.failure(
                NotConfigured(
                    f"repository configuration '{config_id}' is unknown",
                    code="repository_unknown",
                    config_id=config_id,
                )
            )
        return self.sync_config(config, force=force)

    def sync_by_full_name(self, full_name: str, force: bool = False) -> Outcome[list[SyncSummary]]:
        """Synchronize every configuration of owner/repository, across all branches.

        Returns the per-configuration summaries. A configuration that fails
        as a whole keeps its error on `SyncSummary.error`; the outcome only
        carries an error when nothing matched or every configuration failed.
        """
        try:
            configs = self.config_store.find_by_full_name(full_name)
        except ValidationFailed as e:
            logger.warning(e.message)
            return Outcome.failure(e)

        if not configs:
            logger.warning("No configuration for repository", repository=full_name)
            return Outcome.failure(
                NotConfigured(
                    f"repository '{full_name}' is not configured",
                    code="repository_unknown",
                    full_name=full_name,
                )
            )

        tree_cache = self.new_tree_cache()
        summaries = []
        for config in configs:
            outcome = self.sync_config(config, force=force, tree_cache=tree_cache)
            if outcome.value is not None:
                summaries.append(outcome.value)
            else:
                summaries.append(
                    SyncSummary(
                        config_id=config.config_id,
                        full_name=config.full_name,
                        branch=config.branch,
                        error=outcome.error,
                    ).finish()
                )

        errors = [summary.error for summary in summaries if summary.error is not None]
        if len(errors) == len(summaries):
            return Outcome(value=summaries, error=errors[0])
        return Outcome.success(summaries)

    def _select_files(
        self, tree: RemoteTree, config: RepositoryConfig, settings: GeneralSettings
    ) -> list[RemoteFile]:
        folder_tree = tree.subtree(config.folder)
        if folder_tree is None:
            return []
        allowed = {file_type.lower() for file_type in settings.allowed_file_types}
        return [remote_file for remote_file in folder_tree.walk() if remote_file.file_type in allowed]

    def _reconcile_files(
        self,
        files: list[RemoteFile],
        config: RepositoryConfig,
        builder: RecordBuilder,
        force: bool,
    ) -> list[FileSyncResult]:
        if self.max_workers == 1 or len(files) == 1:
            return [self._sync_file(remote_file, config, builder, force) for remote_file in files]

        # Each task runs in a copy of the caller's context so log context carries over
        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="gitpress-sync"
        ) as executor:
            futures = [
                executor.submit(
                    contextvars.copy_context().run,
                    self._sync_file,
                    remote_file,
                    config,
                    builder,
                    force,
                )
                for remote_file in files
            ]
            return [future.result() for future in futures]

    def _sync_file(
        self,
        remote_file: RemoteFile,
        config: RepositoryConfig,
        builder: RecordBuilder,
        force: bool,
    ) -> FileSyncResult:
        result: FileSyncResult | None = None
        counter: ErrorCounter = {}
        with record_exception_and_ignore(
            logger, "Failed to reconcile file", counter, path=remote_file.path
        ):
            result = self._reconcile_file(remote_file, config, builder, force)

        if result is None:
            result = FileSyncResult.failed(remote_file.path, "unexpected error, see logs")
        return result

    def _reconcile_file(
        self,
        remote_file: RemoteFile,
        config: RepositoryConfig,
        builder: RecordBuilder,
        force: bool,
    ) -> FileSyncResult:
        try:
            record = builder.build(remote_file, config)
        except SyncError as e:
            logger.error(f"Failed to read {remote_file.path}: {e.message}", error_kind=e.kind.value)
            return FileSyncResult.failed(remote_file.path, e.message)
        except PropertyError as e:
            logger.error(f"Invalid front matter in {remote_file.path}: {e}")
            return FileSyncResult.failed(remote_file.path, str(e))

        if record is None:
            return FileSyncResult(path=remote_file.path, status=SyncStatus.SKIPPED, reason="skip_file")

        return self.engine.reconcile(remote_file, record, force=force)
