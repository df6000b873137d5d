"""In-process content store, used for dry runs and tests."""

import threading
from dataclasses import dataclass, field
from typing import Any

from src.clients.content_store import StoredRecord
from src.publish.errors import StoreOperationFailed, TaxonomyUnknown

DEFAULT_TAXONOMIES = {"post": ["category", "post_tag"], "page": []}


@dataclass
class MemoryRecord:
    id: int
    attributes: dict[str, Any]
    sticky: bool = False
    terms: dict[str, list[str]] = field(default_factory=dict)
    cover_image_id: int | None = None


class InMemoryContentStore:
    """A ContentStore keeping records in a dict.

    Every write is appended to `operations` so callers can assert on exactly
    which side effects happened.
    """

    def __init__(self, taxonomies: dict[str, list[str]] | None = None):
        self.taxonomies = taxonomies if taxonomies is not None else dict(DEFAULT_TAXONOMIES)
        self.records: dict[int, MemoryRecord] = {}
        self.media: dict[int, str] = {}
        self.operations: list[tuple[Any, ...]] = []
        self._next_id = 1
        self._lock = threading.Lock()

    def _allocate_id(self) -> int:
        record_id = self._next_id
        self._next_id += 1
        return record_id

    def _get(self, record_id: int) -> MemoryRecord:
        record = self.records.get(record_id)
        if record is None:
            raise StoreOperationFailed(f"Record {record_id} does not exist", record_id=record_id)
        return record

    def find_record(self, post_type: str, slug: str) -> StoredRecord | None:
        with self._lock:
            for record in self.records.values():
                attributes = record.attributes
                if attributes.get("post_type") == post_type and attributes.get("post_name") == slug:
                    return StoredRecord(
                        id=record.id,
                        post_type=post_type,
                        slug=slug,
                        status=attributes.get("post_status"),
                        meta=dict(attributes.get("meta_input", {})),
                    )
        return None

    def create_or_update(self, attributes: dict[str, Any]) -> int:
        if not attributes.get("post_name"):
            raise StoreOperationFailed("Records need a slug", attributes=sorted(attributes))

        with self._lock:
            record_id = attributes.get("ID")
            if record_id:
                record = self._get(record_id)
                merged_meta = {**record.attributes.get("meta_input", {}), **attributes.get("meta_input", {})}
                record.attributes.update(attributes)
                record.attributes["meta_input"] = merged_meta
                self.operations.append(("update", record_id))
                return record_id

            record_id = self._allocate_id()
            self.records[record_id] = MemoryRecord(id=record_id, attributes={**attributes, "ID": record_id})
            self.operations.append(("create", record_id))
            return record_id

    def set_sticky(self, record_id: int, sticky: bool) -> None:
        with self._lock:
            self._get(record_id).sticky = sticky
            self.operations.append(("sticky", record_id, sticky))

    def object_taxonomies(self, post_type: str) -> list[str]:
        return list(self.taxonomies.get(post_type, []))

    def clear_term_relationships(self, record_id: int, post_type: str) -> None:
        with self._lock:
            record = self._get(record_id)
            for taxonomy in self.object_taxonomies(post_type):
                record.terms.pop(taxonomy, None)
            self.operations.append(("clear_terms", record_id, post_type))

    def assign_terms(self, record_id: int, taxonomy: str, terms: list[str]) -> None:
        with self._lock:
            record = self._get(record_id)
            post_type = record.attributes.get("post_type", "post")
            if taxonomy not in self.object_taxonomies(post_type):
                raise TaxonomyUnknown(
                    f"Taxonomy '{taxonomy}' does not exist for post type '{post_type}'",
                    taxonomy=taxonomy,
                )
            record.terms[taxonomy] = list(terms)
            self.operations.append(("terms", record_id, taxonomy, tuple(terms)))

    def attach_cover_image(self, record_id: int, source_url: str) -> int:
        with self._lock:
            record = self._get(record_id)
            media_id = next(
                (media_id for media_id, url in self.media.items() if url == source_url), None
            )
            if media_id is None:
                media_id = self._allocate_id()
                self.media[media_id] = source_url
            record.cover_image_id = media_id
            self.operations.append(("cover_image", record_id, source_url))
            return media_id
