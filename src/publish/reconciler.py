"""Reconciles one remote file with its managed record in the content store.

Side effects run in a fixed order, rolling forward on failure:

1. identity resolution and upsert (the only step allowed to fail the file)
2. visibility (sticky flag)
3. taxonomy terms
4. cover image

The file's status comes from step 1 alone. Steps 2-4 report into
`FileSyncResult.steps` and the record's `last_error`.
"""

import threading
from typing import Literal

import newrelic.agent

from connectors.github.github_tree import RemoteFile
from src.clients.content_store import ContentStore
from src.publish.content_record import ContentRecord
from src.publish.errors import StoreOperationFailed, SyncError, TaxonomyUnknown
from src.publish.results import FileSyncResult, StepResult, StepStatus, SyncStatus
from src.utils.error_handling import ErrorCounter, increment
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

META_SHA = "sha"
META_GITHUB_URL = "github_url"
META_SOURCE_PATH = "source_path"

STEP_VISIBILITY = "visibility"
STEP_TAXONOMY = "taxonomy"
STEP_COVER_IMAGE = "cover_image"


class MissingIdentity(RuntimeError):
    """A step that needs a stored record ran before the record had an ID."""


class ReconciliationEngine:
    def __init__(self, store: ContentStore, clear_old_terms: bool = True):
        self.store = store
        self.clear_old_terms = clear_old_terms
        self.step_counter: ErrorCounter = {}
        self._counter_lock = threading.Lock()

    def reconcile(
        self, remote_file: RemoteFile, record: ContentRecord, force: bool = False
    ) -> FileSyncResult:
        """Make the stored record for `remote_file` match `record`.

        Args:
            remote_file: The file the record was built from
            record: Record template, its ID is filled in by identity resolution
            force: Write the record even when the stored source sha is unchanged
        """
        with LogContext(path=remote_file.path, slug=record.post_name):
            result = self._resolve_identity(remote_file, record, force)
            if result.status == SyncStatus.FAILED:
                return result

            result.steps[STEP_VISIBILITY] = self._reconcile_visibility(record)
            result.steps[STEP_TAXONOMY] = self._reconcile_taxonomy(record)
            result.steps[STEP_COVER_IMAGE] = self._reconcile_cover_image(record)

            logger.info(
                f"{result.status.value.upper()} {record}",
                status=result.status.value,
                record_id=record.ID,
                steps={name: step.status.value for name, step in result.steps.items()},
            )
            return result

    def _resolve_identity(
        self, remote_file: RemoteFile, record: ContentRecord, force: bool
    ) -> FileSyncResult:
        record.clear_error()
        if not record.post_name:
            record.record_error("record has no slug")
            logger.error("Failed to publish record without slug")
            return FileSyncResult.failed(remote_file.path, "record has no slug")

        record.meta_input[META_SHA] = remote_file.sha
        record.meta_input[META_GITHUB_URL] = remote_file.github_url
        record.meta_input[META_SOURCE_PATH] = remote_file.path

        try:
            existing = self.store.find_record(record.post_type, record.post_name)
            if existing is not None:
                record.ID = existing.id
                if not force and existing.meta.get(META_SHA) == remote_file.sha:
                    # Only certifies that the record exists with the same source sha
                    return FileSyncResult(
                        path=remote_file.path,
                        status=SyncStatus.SKIPPED,
                        reason="unchanged",
                        record_id=existing.id,
                    )

            record_id = self.store.create_or_update(record.to_attributes())
        except SyncError as e:
            record.record_error(e.message)
            logger.error(f"Failed to publish {record}: {e.message}", error_kind=e.kind.value)
            return FileSyncResult.failed(remote_file.path, e.message)

        if not record_id:
            record.record_error("record ID is empty")
            logger.error(f"Failed to publish {record}: record ID is empty")
            return FileSyncResult.failed(remote_file.path, "record ID is empty")

        status = SyncStatus.UPDATED if existing is not None else SyncStatus.CREATED
        record.ID = record_id
        return FileSyncResult(path=remote_file.path, status=status, record_id=record_id)

    def _reconcile_visibility(self, record: ContentRecord) -> StepResult:
        record.clear_error()
        record_id = self._require_id(record)

        logger.debug(f"{'SET' if record.sticky else 'UNSET'} sticky", record_id=record_id)
        try:
            self.store.set_sticky(record_id, record.sticky)
        except StoreOperationFailed as e:
            return self._step_failed(record, f"Failed to update sticky flag of {record}", e)

        self._count("successful")
        return StepResult(StepStatus.SUCCESS)

    def _reconcile_taxonomy(self, record: ContentRecord) -> StepResult:
        record.clear_error()
        record_id = self._require_id(record)

        if self.clear_old_terms:
            try:
                self.store.clear_term_relationships(record_id, record.post_type)
            except StoreOperationFailed as e:
                record.record_error(e.message)
                logger.warning(f"Failed to clear taxonomies of {record}: {e.message}")

        if not record.taxonomy:
            return StepResult(StepStatus.SKIPPED, "no taxonomy")

        failures = []
        for taxonomy, terms in record.taxonomy.items():
            try:
                self.store.assign_terms(record_id, taxonomy, terms)
                logger.debug("ADD taxonomy", taxonomy=taxonomy, terms=terms)
            except TaxonomyUnknown:
                logger.info(f"SKIP taxonomy [{taxonomy}], does not exist", taxonomy=taxonomy)
            except StoreOperationFailed as e:
                record.record_error(e.message)
                logger.error(f"FAILED to add taxonomy [{taxonomy}] to {record}: {e.message}")
                newrelic.agent.record_exception()
                failures.append(f"{taxonomy}: {e.message}")

        if failures:
            self._count("failed")
            return StepResult(StepStatus.FAILED, "; ".join(failures))

        self._count("successful")
        return StepResult(StepStatus.SUCCESS)

    def _reconcile_cover_image(self, record: ContentRecord) -> StepResult:
        record.clear_error()
        record_id = self._require_id(record)

        if not record.featured_image:
            logger.debug("SKIP cover image, not set")
            return StepResult(StepStatus.SKIPPED, "no cover image")

        logger.info("SET cover image", record_id=record_id, image=record.featured_image)
        try:
            self.store.attach_cover_image(record_id, record.featured_image)
        except StoreOperationFailed as e:
            return self._step_failed(record, f"Failed to attach cover image to {record}", e)

        self._count("successful")
        return StepResult(StepStatus.SUCCESS)

    def _require_id(self, record: ContentRecord) -> int:
        if not record.ID:
            raise MissingIdentity(f"{record} has no ID, publish it first")
        return record.ID

    def _step_failed(self, record: ContentRecord, context: str, error: SyncError) -> StepResult:
        record.record_error(error.message)
        logger.error(f"{context}: {error.message}")
        newrelic.agent.record_exception()
        self._count("failed")
        return StepResult(StepStatus.FAILED, error.message)

    def _count(self, key: Literal["successful", "failed"]) -> None:
        with self._counter_lock:
            increment(self.step_counter, key)
