"""Builds the ContentRecord a remote markdown file should be published as."""

import re

from connectors.github.github_tree import RemoteFile
from src.clients.github import GitHubClient
from src.publish.content_record import ContentRecord
from src.publish.errors import RemoteUnavailable
from src.publish.front_matter import (
    MarkdownRenderer,
    apply_content_template,
    parse_front_matter,
    resolve_relative_url,
)
from src.publish.repository_config import RepositoryConfig
from src.utils.logging import get_logger
from src.utils.rate_limiter import RateLimitedError
from src.utils.type_conversion import is_truthy

logger = get_logger(__name__)

SKIP_FILE_PROPERTY = "skip_file"

_SLUG_INVALID_CHARS = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Lower-case ASCII slug: `Getting Started_2` -> `getting-started-2`."""
    return _SLUG_INVALID_CHARS.sub("-", value.lower()).strip("-")


class RecordBuilder:
    def __init__(self, client: GitHubClient, renderer: MarkdownRenderer | None = None):
        self.client = client
        self.renderer = renderer or MarkdownRenderer()

    def build(self, remote_file: RemoteFile, config: RepositoryConfig) -> ContentRecord | None:
        """Fetch, parse and render a file into a record template.

        Front matter wins over the configuration's defaults. Returns None when
        the file opts out of publishing with `skip_file: yes`.

        Raises:
            RemoteUnavailable, RemoteNotFound, RemoteUnauthorized: Fetching the raw file failed
            ValidationFailed: The front matter is not a YAML mapping
            PropertyError: The front matter names a reserved or ambiguous property
        """
        try:
            raw = self.client.get_raw_content(remote_file.raw_url)
        except RateLimitedError as e:
            raise RemoteUnavailable(
                f"Rate limited by GitHub fetching {remote_file.path}", retry_after=e.retry_after
            ) from e
        front_matter, body = parse_front_matter(raw)

        if is_truthy(front_matter.pop(SKIP_FILE_PROPERTY, False)):
            logger.info("SKIP file, marked with skip_file", path=remote_file.path)
            return None

        defaults = {
            "post_type": config.effective_post_type,
            "post_author": config.post_author,
            "post_title": remote_file.slug,
            "post_name": slugify(remote_file.slug),
        }
        record = ContentRecord.from_properties(front_matter, defaults=defaults)

        html = self.renderer.render(body, base_url=remote_file.raw_url)
        record.post_content = apply_content_template(config.content_template, html)

        if record.featured_image:
            record.featured_image = resolve_relative_url(record.featured_image, remote_file.raw_url)

        return record
