"""Fetches the recursive tree of a branch and folds it into a RemoteTree."""

from connectors.github.github_tree import RemoteTree
from src.clients.github import GitHubClient
from src.publish.errors import RemoteUnavailable
from src.utils.logging import get_logger
from src.utils.rate_limiter import RateLimitedError

logger = get_logger(__name__)


class TreeFetcher:
    """Builds RemoteTree instances from GitHub's recursive tree API."""

    def __init__(self, client: GitHubClient):
        self.client = client

    def fetch(self, owner: str, repository: str, branch: str) -> RemoteTree:
        """Fetch the full tree for a branch.

        Raises:
            RemoteUnavailable: Transport error, timeout or exhausted rate limit
            RemoteNotFound: No tree for the given reference
            RemoteUnauthorized: Credentials rejected
        """
        logger.info(
            "Building repository structure",
            repository=f"{owner}/{repository}",
            branch=branch,
        )

        try:
            data = self.client.get_tree(owner, repository, branch)
        except RateLimitedError as e:
            raise RemoteUnavailable(
                f"Rate limited by GitHub fetching tree of {owner}/{repository}#{branch}",
                retry_after=e.retry_after,
            ) from e

        entries = data["tree"]
        tree = RemoteTree.from_entries(owner, repository, branch, entries)

        logger.info(
            "Built repository structure",
            repository=f"{owner}/{repository}",
            branch=branch,
            tree_sha=data.get("sha"),
            entries=len(entries),
            files=len(tree),
        )
        return tree
