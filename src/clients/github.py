"""GitHub client utility for reading repository trees and raw file contents."""

import time
from typing import Any

import requests
from requests.auth import HTTPBasicAuth

from src.publish.errors import RemoteNotFound, RemoteUnauthorized, RemoteUnavailable
from src.utils.config import get_github_timeout_seconds
from src.utils.logging import get_logger
from src.utils.rate_limiter import RateLimitedError, rate_limited

logger = get_logger(__name__)

API_HEADERS = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
}


class GitHubClient:
    """A client for the two GitHub reads a sync needs: the recursive tree and raw file bodies.

    Authenticates with HTTP basic auth (username + personal access token) when
    credentials are configured, anonymously otherwise.
    """

    def __init__(
        self,
        username: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.timeout = timeout if timeout is not None else get_github_timeout_seconds()
        self.session = session or requests.Session()
        if username and access_token:
            logger.info("Initializing GitHub client with basic authentication")
            self.session.auth = HTTPBasicAuth(username, access_token)
        else:
            logger.info("Initializing GitHub client without credentials")

    def tree_url(self, owner: str, repository: str, branch: str) -> str:
        return f"https://api.github.com/repos/{owner}/{repository}/git/trees/{branch}?recursive=1"

    @rate_limited()
    def get_tree(self, owner: str, repository: str, branch: str) -> dict[str, Any]:
        """Get the recursive tree listing of a branch.

        Returns:
            The decoded API response, guaranteed to contain a "tree" list

        Raises:
            RemoteUnavailable: On transport errors, timeouts or unexpected statuses
            RemoteUnauthorized: When GitHub rejects the credentials
            RemoteNotFound: When there is no tree for the reference
            RateLimitedError: When rate limited (retried by the decorator)
        """
        url = self.tree_url(owner, repository, branch)
        response = self._get(url, headers=API_HEADERS)

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteUnavailable(f"Invalid JSON in tree response from {url}", url=url) from e

        if not isinstance(data, dict) or not isinstance(data.get("tree"), list):
            raise RemoteNotFound(
                f"Repository tree not found on GitHub [{url}]",
                owner=owner,
                repository=repository,
                branch=branch,
            )

        if data.get("truncated"):
            logger.warning(
                "GitHub returned a truncated tree listing, some files will be missing",
                repository=f"{owner}/{repository}",
                branch=branch,
                entries=len(data["tree"]),
            )

        return data

    @rate_limited()
    def get_raw_content(self, raw_url: str) -> str:
        """Fetch a raw file body, e.g. from raw.githubusercontent.com."""
        response = self._get(raw_url)
        response.encoding = response.encoding or "utf-8"
        return response.text

    def _get(self, url: str, headers: dict[str, str] | None = None) -> requests.Response:
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            logger.error(f"Timed out fetching {url}: {e}")
            raise RemoteUnavailable(f"Timed out fetching {url}", url=url) from e
        except requests.RequestException as e:
            logger.error(f"Error fetching {url}: {e}")
            raise RemoteUnavailable(f"Failed to fetch {url}: {e}", url=url) from e

        if response.status_code == 200:
            return response

        if response.status_code in (403, 429) and "rate limit" in response.text.lower():
            raise RateLimitedError(retry_after=self._calculate_retry_after(response))
        if response.status_code in (401, 403):
            raise RemoteUnauthorized(
                f"GitHub rejected the credentials ({response.status_code}) for {url}",
                url=url,
            )
        if response.status_code in (404, 409, 422):
            # 409 is returned for empty repositories, 422 for unresolvable refs
            raise RemoteNotFound(f"Not found on GitHub ({response.status_code}) [{url}]", url=url)

        raise RemoteUnavailable(
            f"Unexpected status {response.status_code} fetching {url}",
            url=url,
            status=response.status_code,
        )

    def _calculate_retry_after(self, response: requests.Response) -> int | None:
        """Seconds to wait according to Retry-After or X-RateLimit-Reset headers."""
        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return int(retry_after)

        reset = response.headers.get("X-RateLimit-Reset")
        if reset and reset.isdigit():
            return max(1, int(reset) - int(time.time()))

        return None
