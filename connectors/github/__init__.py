# Tree model
# Webhook payloads
from connectors.github.github_push_event import (
    GitHubPingEvent,
    GitHubPushEvent,
    GitHubPusher,
    GitHubRepositoryRef,
)
from connectors.github.github_tree import RemoteFile, RemoteTree, split_file_name

# Fetchers
from connectors.github.github_tree_fetcher import TreeFetcher

# Webhook Handlers
from connectors.github.github_webhook_handler import (
    compute_github_signature,
    extract_github_webhook_metadata,
    verify_github_webhook,
)

__all__ = [
    # Tree model
    "RemoteFile",
    "RemoteTree",
    "split_file_name",
    # Fetchers
    "TreeFetcher",
    # Webhook payloads
    "GitHubPingEvent",
    "GitHubPushEvent",
    "GitHubPusher",
    "GitHubRepositoryRef",
    # Webhook Handlers
    "compute_github_signature",
    "verify_github_webhook",
    "extract_github_webhook_metadata",
]
