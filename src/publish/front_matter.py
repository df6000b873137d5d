"""Front matter parsing and markdown rendering for published files.

A published markdown file looks like:

    ---
    title: Getting started
    stick_post: yes
    taxonomy:
      category: [guides]
    ---
    # Body in markdown

The YAML block becomes the record's properties, the body is rendered to HTML
and substituted into the repository's content template.
"""

import posixpath
import re
from typing import Any
from urllib.parse import urljoin, urlsplit

import yaml
from markdown_it import MarkdownIt
from markdown_it.token import Token

from src.publish.errors import ValidationFailed
from src.utils.logging import get_logger

logger = get_logger(__name__)

FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)
CONTENT_PLACEHOLDER = "%%content%%"


def parse_front_matter(content: str) -> tuple[dict[str, Any], str]:
    """Split a document into its front matter mapping and the remaining body.

    Documents without front matter yield an empty mapping and the full content.

    Raises:
        ValidationFailed: If the front matter is not valid YAML or not a mapping
    """
    content = content.lstrip("\ufeff")
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return {}, content

    try:
        front_matter = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise ValidationFailed(f"Invalid YAML front matter: {e}", code="invalid_front_matter") from e

    if front_matter is None:
        front_matter = {}
    if not isinstance(front_matter, dict):
        raise ValidationFailed(
            "Front matter must be a mapping of properties", code="invalid_front_matter"
        )

    return {str(key): value for key, value in front_matter.items()}, content[match.end() :]


def is_relative_url(url: str) -> bool:
    parts = urlsplit(url)
    return not parts.scheme and not parts.netloc and not url.startswith("#")


def remove_extension_relative_url(url: str, allowed_file_types: list[str]) -> str:
    """Turn a relative link to a published file into a link to its post.

    ./hello/abcd.md?param=value.md#heading => ./hello/abcd/?param=value.md#heading

    Links to other file types, absolute URLs and paths without an extension
    are returned unchanged.
    """
    if not is_relative_url(url):
        return url

    parts = urlsplit(url)
    if not parts.path:
        return url

    directory, file_name = posixpath.split(parts.path)
    stem, dot, extension = file_name.rpartition(".")
    if not dot or not stem:
        return url
    if extension.lower() not in allowed_file_types:
        return url

    final_url = f"{directory or '.'}/{stem}/"
    if parts.query:
        final_url += f"?{parts.query}"
    if parts.fragment:
        final_url += f"#{parts.fragment}"
    return final_url


def resolve_relative_url(url: str, base_url: str) -> str:
    """Resolve a relative URL against the raw URL of the file that references it."""
    if not url or not is_relative_url(url):
        return url
    return urljoin(base_url, url)


def apply_content_template(template: str, content: str) -> str:
    """Substitute rendered content into a repository's content template."""
    if CONTENT_PLACEHOLDER not in template:
        logger.warning("Content template has no placeholder, rendered content is dropped")
    return template.replace(CONTENT_PLACEHOLDER, content)


class MarkdownRenderer:
    """Renders markdown bodies to HTML, rewriting links between published files.

    Relative links to files of an allowed type point at the post the file is
    published as; relative image sources point at the raw file on GitHub.
    """

    def __init__(self, allowed_file_types: list[str] | None = None):
        self.allowed_file_types = [t.lower() for t in (allowed_file_types or ["md"])]
        self.md = MarkdownIt("commonmark").enable("table").enable("strikethrough")

    def render(self, body: str, base_url: str | None = None) -> str:
        tokens = self.md.parse(body)
        for token in tokens:
            if token.children:
                self._rewrite_links(token.children, base_url)
        return self.md.renderer.render(tokens, self.md.options, {})

    def _rewrite_links(self, tokens: list[Token], base_url: str | None) -> None:
        for token in tokens:
            if token.type == "link_open":
                href = token.attrGet("href")
                if isinstance(href, str):
                    token.attrSet("href", remove_extension_relative_url(href, self.allowed_file_types))
            elif token.type == "image" and base_url:
                src = token.attrGet("src")
                if isinstance(src, str):
                    token.attrSet("src", resolve_relative_url(src, base_url))
