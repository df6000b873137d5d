"""WordPress REST API content store.

Authenticates with an application password over HTTP basic auth and talks to
the `/wp-json/wp/v2` endpoints for posts (any post type with `show_in_rest`),
taxonomies, terms and media.

The site must register the `sha`, `github_url` and `source_path` post meta keys
with `show_in_rest` (`register_post_meta`). WordPress neither stores nor
returns unregistered meta over REST, and without `sha` an unchanged file
cannot be skipped.
"""

from __future__ import annotations

import hashlib
import mimetypes
import posixpath
import re
from typing import Any
from urllib.parse import urlsplit

import httpx

from src.clients.content_store import StoredRecord
from src.publish.errors import StoreOperationFailed, TaxonomyUnknown
from src.publish.reconciler import META_SHA
from src.utils.config import (
    get_content_store_timeout_seconds,
    get_wordpress_application_password,
    get_wordpress_url,
    get_wordpress_username,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

SUCCESS_STATUS_MIN = 200
SUCCESS_STATUS_MAX = 299

# Record attribute -> REST field
ATTRIBUTE_FIELDS = {
    "post_title": "title",
    "post_name": "slug",
    "post_author": "author",
    "post_status": "status",
    "post_content": "content",
    "post_excerpt": "excerpt",
    "menu_order": "menu_order",
    "meta_input": "meta",
    "post_date": "date",
    "post_date_gmt": "date_gmt",
    "post_password": "password",
    "post_parent": "parent",
    "page_template": "template",
    "comment_status": "comment_status",
    "ping_status": "ping_status",
}


def cover_media_slug(source_url: str) -> str:
    """Slug of the media item holding the image at `source_url`, stable across syncs."""
    stem = posixpath.splitext(posixpath.basename(urlsplit(source_url).path))[0]
    stem = re.sub(r"[^a-z0-9]+", "-", stem.lower()).strip("-")[:60] or "cover-image"
    digest = hashlib.sha1(source_url.encode("utf-8")).hexdigest()[:12]
    return f"{stem}-{digest}"


class WordPressContentStore:
    """ContentStore backed by a WordPress site."""

    def __init__(
        self,
        *,
        site_url: str,
        username: str,
        application_password: str,
        timeout_seconds: float | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not site_url:
            raise ValueError("site_url is required")

        self._api_base_url = f"{site_url.rstrip('/')}/wp-json"
        self._timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else get_content_store_timeout_seconds()
        )
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            base_url=self._api_base_url,
            auth=(username, application_password),
            headers={"Accept": "application/json", "User-Agent": "gitpress/1.0"},
            timeout=self._timeout_seconds,
        )
        self._rest_bases: dict[str, str] = {}
        self._taxonomies: dict[str, dict[str, str]] = {}
        # Post type of every record seen by find_record or create_or_update
        self._record_types: dict[int, str] = {}
        # Featured media ID of every record seen, to skip rewriting the same cover image
        self._featured_media: dict[int, int | None] = {}
        self._warned_missing_sha: set[str] = set()

    @classmethod
    def from_config(cls) -> WordPressContentStore:
        site_url = get_wordpress_url()
        if not site_url:
            raise ValueError("WORDPRESS_URL is not configured")
        return cls(
            site_url=site_url,
            username=get_wordpress_username() or "",
            application_password=get_wordpress_application_password() or "",
        )

    def __enter__(self) -> WordPressContentStore:
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    # ContentStore
    # ------------------------------------------------------------------
    def find_record(self, post_type: str, slug: str) -> StoredRecord | None:
        items = self._request(
            "GET",
            f"/wp/v2/{self._rest_base(post_type)}",
            params={"slug": slug, "status": "any", "context": "edit", "per_page": 1},
        )
        if not items:
            return None

        item = items[0]
        record_id = int(item["id"])
        meta = item.get("meta") or {}
        if META_SHA not in meta and post_type not in self._warned_missing_sha:
            # WordPress only returns meta keys registered with show_in_rest
            logger.warning(
                "Stored record has no source sha meta, every sync will update it. "
                "Register the sha, github_url and source_path meta keys with show_in_rest.",
                post_type=post_type,
                record_id=record_id,
            )
            self._warned_missing_sha.add(post_type)

        self._record_types[record_id] = post_type
        self._featured_media[record_id] = item.get("featured_media")
        return StoredRecord(
            id=record_id,
            post_type=post_type,
            slug=item.get("slug", slug),
            status=item.get("status"),
            meta=meta,
        )

    def create_or_update(self, attributes: dict[str, Any]) -> int:
        post_type = attributes.get("post_type") or "post"
        payload = {
            ATTRIBUTE_FIELDS[name]: value
            for name, value in attributes.items()
            if name in ATTRIBUTE_FIELDS and value is not None
        }

        record_id = attributes.get("ID")
        path = f"/wp/v2/{self._rest_base(post_type)}"
        if record_id:
            path = f"{path}/{record_id}"

        data = self._request("POST", path, json=payload)
        record_id = int(data["id"])
        self._record_types[record_id] = post_type
        if "featured_media" in data:
            self._featured_media[record_id] = data["featured_media"]
        return record_id

    def set_sticky(self, record_id: int, sticky: bool) -> None:
        post_type = self._post_type_of(record_id)
        if post_type != "post":
            # Only the "post" type knows about stickiness
            if sticky:
                logger.warning("Post type cannot be sticky", record_id=record_id, post_type=post_type)
            return
        self._request("POST", f"/wp/v2/posts/{record_id}", json={"sticky": sticky})

    def object_taxonomies(self, post_type: str) -> list[str]:
        return list(self._taxonomy_rest_bases(post_type))

    def clear_term_relationships(self, record_id: int, post_type: str) -> None:
        rest_bases = self._taxonomy_rest_bases(post_type)
        if not rest_bases:
            return
        self._request(
            "POST",
            f"/wp/v2/{self._rest_base(post_type)}/{record_id}",
            json={rest_base: [] for rest_base in rest_bases.values()},
        )

    def assign_terms(self, record_id: int, taxonomy: str, terms: list[str]) -> None:
        post_type = self._post_type_of(record_id)
        rest_bases = self._taxonomy_rest_bases(post_type)
        if taxonomy not in rest_bases:
            raise TaxonomyUnknown(
                f"Taxonomy '{taxonomy}' does not exist for post type '{post_type}'",
                taxonomy=taxonomy,
            )

        taxonomy_base = rest_bases[taxonomy]
        term_ids = [self._term_id(taxonomy_base, term) for term in terms]
        self._request(
            "POST",
            f"/wp/v2/{self._rest_base(post_type)}/{record_id}",
            json={taxonomy_base: term_ids},
        )

    def attach_cover_image(self, record_id: int, source_url: str) -> int:
        """Set the record's featured media to the image at `source_url`.

        The media item is named after a digest of the URL, so a later sync finds
        and reuses it instead of uploading the image again. Nothing is written
        when the record already shows that media item.
        """
        media_slug = cover_media_slug(source_url)
        media_id = self._find_media(media_slug)
        if media_id is None:
            media_id = self._upload_cover_image(source_url, media_slug)

        if self._featured_media.get(record_id) == media_id:
            logger.debug("Cover image already set", record_id=record_id, media_id=media_id)
            return media_id

        post_type = self._post_type_of(record_id)
        self._request(
            "POST",
            f"/wp/v2/{self._rest_base(post_type)}/{record_id}",
            json={"featured_media": media_id},
        )
        self._featured_media[record_id] = media_id
        return media_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _find_media(self, media_slug: str) -> int | None:
        items = self._request("GET", "/wp/v2/media", params={"slug": media_slug, "per_page": 1})
        return int(items[0]["id"]) if items else None

    def _upload_cover_image(self, source_url: str, media_slug: str) -> int:
        try:
            # The image host is not WordPress, never send it the application password
            response = self._client.get(source_url, auth=None, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise StoreOperationFailed(
                f"Failed to download cover image {source_url}: {exc}", url=source_url
            ) from exc
        if not SUCCESS_STATUS_MIN <= response.status_code <= SUCCESS_STATUS_MAX:
            raise StoreOperationFailed(
                f"Failed to download cover image {source_url} ({response.status_code})",
                url=source_url,
            )

        extension = posixpath.splitext(urlsplit(source_url).path)[1].lower()
        file_name = f"{media_slug}{extension}"
        content_type = (
            response.headers.get("Content-Type")
            or mimetypes.guess_type(file_name)[0]
            or "application/octet-stream"
        )
        media = self._request(
            "POST",
            "/wp/v2/media",
            content=response.content,
            headers={
                "Content-Type": content_type,
                "Content-Disposition": f'attachment; filename="{file_name}"',
            },
        )
        logger.info("Uploaded cover image", url=source_url, media_id=media.get("id"))
        return int(media["id"])

    def _rest_base(self, post_type: str) -> str:
        if post_type not in self._rest_bases:
            data = self._request("GET", f"/wp/v2/types/{post_type}")
            self._rest_bases[post_type] = data.get("rest_base") or post_type
        return self._rest_bases[post_type]

    def _taxonomy_rest_bases(self, post_type: str) -> dict[str, str]:
        if post_type not in self._taxonomies:
            data = self._request("GET", "/wp/v2/taxonomies", params={"type": post_type})
            self._taxonomies[post_type] = {
                slug: taxonomy.get("rest_base") or slug for slug, taxonomy in (data or {}).items()
            }
        return self._taxonomies[post_type]

    def _post_type_of(self, record_id: int) -> str:
        return self._record_types.get(record_id, "post")

    def _term_id(self, taxonomy_base: str, term: str) -> int:
        existing = self._request(
            "GET", f"/wp/v2/{taxonomy_base}", params={"search": term, "per_page": 100}
        )
        for item in existing or []:
            if term in (item.get("name"), item.get("slug")):
                return int(item["id"])

        created = self._request("POST", f"/wp/v2/{taxonomy_base}", json={"name": term})
        logger.info("Created term", taxonomy=taxonomy_base, term=term, term_id=created.get("id"))
        return int(created["id"])

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        try:
            response = self._client.request(
                method, path, params=params, json=json, content=content, headers=headers
            )
        except httpx.TimeoutException as exc:
            logger.warning("WordPress request timed out", method=method, path=path)
            raise StoreOperationFailed(
                f"WordPress request {method} {path} timed out", code="store_timeout", path=path
            ) from exc
        except httpx.TransportError as exc:
            logger.warning("WordPress transport failure", method=method, path=path, error=str(exc))
            raise StoreOperationFailed(
                f"WordPress request {method} {path} failed: {exc}", path=path
            ) from exc

        if not SUCCESS_STATUS_MIN <= response.status_code <= SUCCESS_STATUS_MAX:
            error_body = self._safe_get_content(response)
            logger.error(
                "WordPress API request failed",
                method=method,
                path=path,
                status_code=response.status_code,
                response_body=error_body,
            )
            message = error_body.get("message") if isinstance(error_body, dict) else None
            raise StoreOperationFailed(
                f"WordPress request {method} {path} failed with status {response.status_code}"
                + (f": {message}" if message else ""),
                path=path,
                status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise StoreOperationFailed(f"Invalid JSON from WordPress for {method} {path}") from exc

    @staticmethod
    def _safe_get_content(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text
