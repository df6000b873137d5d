"""Boundary of the content store that published records are written to."""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class StoredRecord:
    """The parts of an existing record the publish pipeline needs to look at."""

    id: int
    post_type: str
    slug: str
    status: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)


class ContentStore(Protocol):
    """Create/update records, pin them, assign taxonomy terms and set cover images.

    Implementations raise StoreOperationFailed for any failure, and
    TaxonomyUnknown from assign_terms when the taxonomy does not exist for the
    record's post type.
    """

    def find_record(self, post_type: str, slug: str) -> StoredRecord | None: ...

    def create_or_update(self, attributes: dict[str, Any]) -> int: ...

    def set_sticky(self, record_id: int, sticky: bool) -> None: ...

    def object_taxonomies(self, post_type: str) -> list[str]: ...

    def clear_term_relationships(self, record_id: int, post_type: str) -> None: ...

    def assign_terms(self, record_id: int, taxonomy: str, terms: list[str]) -> None: ...

    def attach_cover_image(self, record_id: int, source_url: str) -> int: ...
