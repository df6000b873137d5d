"""Tests for the sync orchestrator and its per-pass tree cache."""

import json
from unittest.mock import Mock, patch

import pytest

from connectors.github.github_tree import RemoteTree
from connectors.github.github_tree_fetcher import TreeFetcher
from src.clients.github import GitHubClient
from src.clients.memory_content_store import InMemoryContentStore
from src.publish.errors import RemoteNotFound, RemoteUnavailable
from src.publish.orchestrator import SyncOrchestrator, TreeCache
from src.publish.reconciler import ReconciliationEngine
from src.publish.repository_config import RepositoryConfigStore
from src.publish.results import SyncStatus

SETTINGS = {
    "general_settings": {"webhook_secret": "s3cret"},
    "repositories": {
        "docs-main": {"username": "acme", "repository": "docs", "branch": "main", "folder": "guide"},
        "docs-next": {"username": "acme", "repository": "docs", "branch": "next"},
        "blog": {"username": "acme", "repository": "blog", "branch": "main"},
    },
}

RAW_FILES = {
    "guide/intro.md": "---\ntitle: Intro\ntags: start\n---\nWelcome",
    "guide/setup.md": "See [intro](./intro.md)",
    "guide/draft.md": "---\nskip_file: true\n---\nNot yet",
    "README.md": "# Docs",
}


def _tree(owner: str, repository: str, branch: str, paths: list[str]) -> RemoteTree:
    entries = [{"path": path, "type": "blob", "sha": f"{branch}-{path}"} for path in paths]
    return RemoteTree.from_entries(owner, repository, branch, entries)


def _raw_content(raw_url: str) -> str:
    for path, content in RAW_FILES.items():
        if raw_url.endswith(f"/{path}"):
            return content
    raise RemoteNotFound(f"Not found on GitHub (404) [{raw_url}]")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("GITHUB_WEBHOOK_SECRET", "GITHUB_USERNAME", "GITHUB_ACCESS_TOKEN"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def config_store(tmp_path):
    path = tmp_path / "gitpress.json"
    path.write_text(json.dumps(SETTINGS))
    return RepositoryConfigStore(path)


@pytest.fixture
def fetcher():
    fetcher = Mock(spec=TreeFetcher)
    fetcher.fetch.side_effect = lambda owner, repository, branch: _tree(
        owner,
        repository,
        branch,
        ["guide/intro.md", "guide/setup.md", "guide/draft.md", "guide/logo.png", "README.md"],
    )
    return fetcher


@pytest.fixture
def client():
    client = Mock(spec=GitHubClient)
    client.get_raw_content.side_effect = _raw_content
    return client


@pytest.fixture
def store():
    return InMemoryContentStore()


@pytest.fixture
def orchestrator(config_store, client, store, fetcher):
    return SyncOrchestrator(
        config_store=config_store,
        client=client,
        engine=ReconciliationEngine(store),
        fetcher=fetcher,
        max_workers=1,
    )


class TestTreeCache:
    def test_fetches_each_key_once(self, fetcher):
        cache = TreeCache(fetcher)

        first = cache.get("acme", "docs", "main")
        second = cache.get("acme", "docs", "main")
        cache.get("acme", "docs", "next")

        assert first is second
        assert cache.fetch_count == 2
        assert len(cache) == 2

    def test_errors_are_cached(self):
        fetcher = Mock(spec=TreeFetcher)
        fetcher.fetch.side_effect = RemoteUnavailable("GitHub is down")
        cache = TreeCache(fetcher)

        for _ in range(2):
            with pytest.raises(RemoteUnavailable):
                cache.get("acme", "docs", "main")

        assert fetcher.fetch.call_count == 1
        assert len(cache) == 0


class TestSyncConfig:
    def test_publishes_folder(self, orchestrator, config_store, store):
        outcome = orchestrator.sync_by_id("docs-main")

        assert outcome.ok
        summary = outcome.value
        statuses = {result.path: result.status for result in summary.results}
        assert statuses == {
            "guide/intro.md": SyncStatus.CREATED,
            "guide/setup.md": SyncStatus.CREATED,
            "guide/draft.md": SyncStatus.SKIPPED,
        }
        assert summary.counts == {"created": 2, "updated": 0, "skipped": 1, "failed": 0}
        assert store.find_record("post", "intro") is not None
        assert store.records[store.find_record("post", "intro").id].terms == {"post_tag": ["start"]}
        setup = store.records[store.find_record("post", "setup").id]
        assert 'href="./intro/"' in setup.attributes["post_content"]
        assert config_store.get("docs-main").last_publish > 0

    def test_second_run_skips_unchanged(self, orchestrator):
        orchestrator.sync_by_id("docs-main")

        summary = orchestrator.sync_by_id("docs-main").value

        assert summary.counts["skipped"] == 3
        assert summary.counts["created"] == 0

    def test_force_updates(self, orchestrator):
        orchestrator.sync_by_id("docs-main")

        summary = orchestrator.sync_by_id("docs-main", force=True).value

        assert summary.counts["updated"] == 2

    def test_unknown_config(self, orchestrator, fetcher):
        outcome = orchestrator.sync_by_id("missing")

        assert not outcome.ok
        assert outcome.error.code == "repository_unknown"
        fetcher.fetch.assert_not_called()

    def test_tree_fetch_failure(self, orchestrator, fetcher, store):
        fetcher.fetch.side_effect = RemoteNotFound("Repository tree not found on GitHub")

        outcome = orchestrator.sync_by_id("docs-main")

        assert outcome.error.kind.value == "remote_not_found"
        assert store.operations == []

    def test_missing_folder(self, orchestrator, fetcher):
        fetcher.fetch.side_effect = lambda owner, repository, branch: _tree(
            owner, repository, branch, ["README.md"]
        )

        outcome = orchestrator.sync_by_id("docs-main")

        assert outcome.error.code == "no_files"

    def test_file_fetch_failure_is_isolated(self, orchestrator, client):
        def flaky(raw_url):
            if raw_url.endswith("/guide/setup.md"):
                raise RemoteUnavailable("Timed out fetching setup.md")
            return _raw_content(raw_url)

        client.get_raw_content.side_effect = flaky

        summary = orchestrator.sync_by_id("docs-main").value

        assert summary.failures == [("guide/setup.md", "Timed out fetching setup.md")]
        assert summary.counts["created"] == 1

    @patch("src.utils.error_handling.newrelic.agent.record_exception")
    def test_unexpected_error_is_contained(self, _mock_record, orchestrator, client):
        def broken(raw_url):
            if raw_url.endswith("/guide/intro.md"):
                raise KeyError("boom")
            return _raw_content(raw_url)

        client.get_raw_content.side_effect = broken

        summary = orchestrator.sync_by_id("docs-main").value

        assert dict(summary.failures)["guide/intro.md"] == "unexpected error, see logs"
        assert summary.counts["created"] == 1

    def test_dry_run_does_not_record_last_publish(self, config_store, client, store, fetcher):
        orchestrator = SyncOrchestrator(
            config_store=config_store,
            client=client,
            engine=ReconciliationEngine(store),
            fetcher=fetcher,
            max_workers=1,
            record_last_publish=False,
        )

        orchestrator.sync_by_id("docs-main")

        assert config_store.get("docs-main").last_publish == 0

    def test_concurrent_workers(self, config_store, client, store, fetcher):
        orchestrator = SyncOrchestrator(
            config_store=config_store,
            client=client,
            engine=ReconciliationEngine(store),
            fetcher=fetcher,
            max_workers=4,
        )

        summary = orchestrator.sync_by_id("docs-next").value

        assert [result.path for result in summary.results] == [
            "guide/intro.md",
            "guide/setup.md",
            "guide/draft.md",
            "README.md",
        ]
        assert summary.counts["created"] == 3


class TestSyncByFullName:
    def test_reconciles_every_branch(self, orchestrator, fetcher):
        outcome = orchestrator.sync_by_full_name("acme/docs")

        assert outcome.ok
        assert [summary.config_id for summary in outcome.value] == ["docs-main", "docs-next"]
        assert fetcher.fetch.call_count == 2

    def test_unconfigured_repository(self, orchestrator, fetcher):
        outcome = orchestrator.sync_by_full_name("acme/unknown")

        assert outcome.error.code == "repository_unknown"
        fetcher.fetch.assert_not_called()

    def test_invalid_name(self, orchestrator):
        outcome = orchestrator.sync_by_full_name("acme")

        assert outcome.error.code == "repository_name_invalid"

    def test_partial_failure_is_kept_per_config(self, orchestrator, fetcher):
        def fetch(owner, repository, branch):
            if branch == "next":
                raise RemoteNotFound("No tree for branch next")
            return _tree(owner, repository, branch, ["guide/intro.md"])

        fetcher.fetch.side_effect = fetch

        outcome = orchestrator.sync_by_full_name("acme/docs")

        assert outcome.ok
        by_id = {summary.config_id: summary for summary in outcome.value}
        assert by_id["docs-main"].error is None
        assert by_id["docs-next"].error.kind.value == "remote_not_found"

    def test_every_config_failed(self, orchestrator, fetcher):
        fetcher.fetch.side_effect = RemoteUnavailable("GitHub is down")

        outcome = orchestrator.sync_by_full_name("acme/docs")

        assert not outcome.ok
        assert outcome.error.kind.value == "remote_unavailable"
        assert len(outcome.value) == 2

    def test_same_branch_configs_fetch_tree_once(self, tmp_path, client, store, fetcher):
        settings = {
            "repositories": {
                "docs-guide": {"username": "acme", "repository": "docs", "branch": "main", "folder": "guide"},
                "docs-root": {"username": "acme", "repository": "docs", "branch": "main"},
            }
        }
        path = tmp_path / "same-branch.json"
        path.write_text(json.dumps(settings))
        orchestrator = SyncOrchestrator(
            config_store=RepositoryConfigStore(path),
            client=client,
            engine=ReconciliationEngine(store),
            fetcher=fetcher,
            max_workers=1,
        )

        outcome = orchestrator.sync_by_full_name("acme/docs")

        assert outcome.ok
        assert len(outcome.value) == 2
        fetcher.fetch.assert_called_once_with("acme", "docs", "main")
