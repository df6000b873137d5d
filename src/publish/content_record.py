"""Normalized representation of one managed content item (a post).

A record has a small set of typed fields the publish pipeline acts on and one
`extra` map for everything else (other native post attributes, unknown front
matter keys). Property names are resolved in three layers:

1. aliases translate alternate names to canonical ones (`stick_post` -> `sticky`)
2. explicit values given by the source
3. defaults, only when no explicit value exists

Resolution is done by the pure functions below; the record itself never
intercepts attribute access.
"""

import datetime
import functools
from dataclasses import dataclass, field, fields
from typing import Any

from src.utils.type_conversion import is_truthy, safe_int

TAXONOMY_PREFIX = "taxonomy."

ALIASES: dict[str, str] = {
    "stick_post": "sticky",
    "isSticky": "sticky",
    "author": "post_author",
    "title": "post_title",
    "slug": "post_name",
    "custom_fields": "meta_input",
    "image": "featured_image",
    "image_url": "featured_image",
    "status": "post_status",
    "excerpt": "post_excerpt",
    "tags": "taxonomy.post_tag",
    "categories": "taxonomy.category",
}

DEFAULTS: dict[str, Any] = {
    "ID": None,
    "post_type": "post",
    "post_status": "draft",
    "sticky": False,
    "post_name": None,
    "meta_input": {},
    "taxonomy": {},
    "featured_image": None,
}

# Native post attributes forwarded to the content store from `extra`
NATIVE_ATTRIBUTES = frozenset(
    {
        "post_date",
        "post_date_gmt",
        "post_modified",
        "post_modified_gmt",
        "post_content_filtered",
        "post_password",
        "post_parent",
        "post_mime_type",
        "page_template",
        "comment_status",
        "ping_status",
        "to_ping",
        "pinged",
        "guid",
        "import_id",
    }
)


class PropertyError(ValueError):
    """Base class for property resolution errors."""


class ProtectedProperty(PropertyError):
    """A property name collides with a structural attribute of the record."""

    def __init__(self, name: str, via: str | None = None):
        self.name = name
        self.via = via
        detail = f" (via alias '{via}')" if via else ""
        super().__init__(f"Property name '{name}' is reserved{detail}")


class AmbiguousProperty(PropertyError):
    """A case-insensitive lookup matched more than one explicit key."""

    def __init__(self, name: str, matches: list[str]):
        self.name = name
        self.matches = matches
        super().__init__(f"Property '{name}' is ambiguous, matches {sorted(matches)}")


@functools.cache
def _protected_names() -> frozenset[str]:
    structural = {"last_error", "extra", "aliases", "defaults", "case_sensitive"}
    methods = {name for name in dir(ContentRecord) if not name.startswith("_")}
    data_fields = {f.name for f in fields(ContentRecord)} - structural
    return frozenset((structural | methods) - data_fields)


def _assert_not_protected(name: str, via: str | None = None) -> None:
    protected = _protected_names()
    if name in protected or name.lower() in {p.lower() for p in protected}:
        raise ProtectedProperty(name, via=via)


def resolve_property_name(
    name: str, aliases: dict[str, str] = ALIASES, case_sensitive: bool = False
) -> str:
    """Translate `name` through the alias map.

    Raises:
        ProtectedProperty: If the name, or the alias target, is a structural name
    """
    _assert_not_protected(name)
    for alias, canonical in aliases.items():
        matched = alias == name if case_sensitive else alias.lower() == name.lower()
        if matched:
            _assert_not_protected(canonical, via=name)
            return canonical
    return name


def find_explicit_keys(
    name: str,
    values: dict[str, Any],
    aliases: dict[str, str] = ALIASES,
    case_sensitive: bool = False,
) -> list[str]:
    """Keys of `values` that resolve to the same canonical name as `name`."""
    canonical = resolve_property_name(name, aliases, case_sensitive)
    if not case_sensitive:
        canonical = canonical.lower()
    matches = []
    for key in values:
        resolved = resolve_property_name(key, aliases, case_sensitive)
        if (resolved if case_sensitive else resolved.lower()) == canonical:
            matches.append(key)
    return matches


def resolve_property(
    name: str,
    values: dict[str, Any],
    defaults: dict[str, Any] = DEFAULTS,
    aliases: dict[str, str] = ALIASES,
    case_sensitive: bool = False,
) -> Any:
    """Resolve a property: alias, then explicit value, then default, then None.

    Raises:
        AmbiguousProperty: When more than one explicit key resolves to `name`
        ProtectedProperty: When `name` resolves to a structural name
    """
    canonical = resolve_property_name(name, aliases, case_sensitive)
    matches = find_explicit_keys(name, values, aliases, case_sensitive)
    if len(matches) > 1:
        raise AmbiguousProperty(canonical, matches)
    if matches:
        return values[matches[0]]

    for key, value in defaults.items():
        if key == canonical or (not case_sensitive and key.lower() == canonical.lower()):
            # Defaults are shared, hand out copies of mutable values
            return value.copy() if isinstance(value, dict | list) else value
    return None


def normalize_terms(terms: Any) -> list[str]:
    """Accept a list of terms or a comma separated string."""
    if terms is None:
        return []
    if isinstance(terms, str):
        return [term.strip() for term in terms.split(",") if term.strip()]
    if isinstance(terms, list | tuple | set):
        return [str(term).strip() for term in terms if str(term).strip()]
    return [str(terms)]


def normalize_taxonomy(value: Any) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        return {}
    return {str(name): normalize_terms(terms) for name, terms in value.items()}


def to_plain_value(value: Any) -> Any:
    """Turn YAML dates and times into ISO 8601 strings, recursing into dicts and lists.

    A bare date becomes midnight of that day, which is the form post dates take.
    """
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time()).isoformat()
    if isinstance(value, datetime.time):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_plain_value(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [to_plain_value(item) for item in value]
    return value


@dataclass
class ContentRecord:
    """One managed content item, as handed to the content store."""

    ID: int | None = None
    post_title: str | None = None
    post_name: str | None = None
    post_author: int | None = None
    post_type: str = "post"
    post_status: str = "draft"
    post_content: str = ""
    post_excerpt: str | None = None
    menu_order: int | None = None
    meta_input: dict[str, Any] = field(default_factory=dict)
    sticky: bool = False
    taxonomy: dict[str, list[str]] = field(default_factory=dict)
    featured_image: str | None = None

    extra: dict[str, Any] = field(default_factory=dict)
    case_sensitive: bool = False
    last_error: str | None = field(default=None, compare=False)

    @classmethod
    def from_properties(
        cls,
        properties: dict[str, Any],
        defaults: dict[str, Any] | None = None,
        case_sensitive: bool = False,
    ) -> "ContentRecord":
        """Build a record from loosely named properties (e.g. parsed front matter).

        `defaults` is layered on top of the built-in defaults; explicit
        properties win over both.

        Raises:
            ProtectedProperty: If a property name is structural
            AmbiguousProperty: If two properties resolve to the same name
        """
        merged_defaults = {**DEFAULTS, **(defaults or {})}
        record = cls(case_sensitive=case_sensitive)
        typed = {f.name for f in fields(cls)} - {"extra", "case_sensitive", "last_error"}

        resolved: dict[str, str] = {}
        for key in properties:
            canonical = resolve_property_name(key, ALIASES, case_sensitive)
            folded = canonical if case_sensitive else canonical.lower()
            if folded in resolved:
                raise AmbiguousProperty(canonical, [resolved[folded], key])
            resolved[folded] = key

        for name in sorted(typed):
            value = resolve_property(name, properties, merged_defaults, ALIASES, case_sensitive)
            if value is not None:
                record.set(name, value)

        typed_lower = {name.lower() for name in typed}
        for key, value in properties.items():
            canonical = resolve_property_name(key, ALIASES, case_sensitive)
            if canonical.startswith(TAXONOMY_PREFIX):
                taxonomy_name = canonical[len(TAXONOMY_PREFIX) :]
                record.taxonomy.setdefault(taxonomy_name, [])
                record.taxonomy[taxonomy_name].extend(normalize_terms(value))
            elif canonical.lower() not in typed_lower:
                record.extra[canonical] = value

        return record

    def get(self, name: str) -> Any:
        """Read a property by any of its names."""
        canonical = resolve_property_name(name, ALIASES, self.case_sensitive)
        if canonical.startswith(TAXONOMY_PREFIX):
            return self.taxonomy.get(canonical[len(TAXONOMY_PREFIX) :], [])
        field_name = self._field_name(canonical)
        if field_name is not None:
            return getattr(self, field_name)
        return resolve_property(canonical, self.extra, {}, {}, self.case_sensitive)

    def set(self, name: str, value: Any) -> None:
        """Write a property by any of its names, coercing typed fields."""
        canonical = resolve_property_name(name, ALIASES, self.case_sensitive)
        if canonical.startswith(TAXONOMY_PREFIX):
            self.taxonomy[canonical[len(TAXONOMY_PREFIX) :]] = normalize_terms(value)
            return

        field_name = self._field_name(canonical)
        if field_name is None:
            self.extra[canonical] = value
            return

        if field_name == "sticky":
            value = is_truthy(value)
        elif field_name in ("ID", "post_author", "menu_order"):
            value = safe_int(value)
        elif field_name == "meta_input":
            value = dict(value) if isinstance(value, dict) else {}
        elif field_name == "taxonomy":
            value = normalize_taxonomy(value)
        elif field_name in ("post_type", "post_status", "post_content"):
            value = "" if value is None else str(value)
        elif value is not None:
            value = str(value)
        setattr(self, field_name, value)

    def _field_name(self, canonical: str) -> str | None:
        data_fields = [f.name for f in fields(self) if f.name not in ("extra", "case_sensitive", "last_error")]
        if canonical in data_fields:
            return canonical
        if not self.case_sensitive:
            for name in data_fields:
                if name.lower() == canonical.lower():
                    return name
        return None

    def clear_error(self) -> None:
        self.last_error = None

    def record_error(self, error: str) -> None:
        """Keep the first failure of the current step."""
        if self.last_error is None:
            self.last_error = error

    def has_error(self) -> bool:
        return bool(self.last_error)

    def to_attributes(self) -> dict[str, Any]:
        """Attributes for a create-or-update call on the content store.

        Only native post attributes are included; sticky, taxonomy and the
        featured image are applied by separate steps.
        """
        attributes: dict[str, Any] = {
            "post_type": self.post_type,
            "post_status": self.post_status,
            "post_content": self.post_content,
            "meta_input": to_plain_value(dict(self.meta_input)),
        }
        for name in ("ID", "post_title", "post_name", "post_author", "post_excerpt", "menu_order"):
            value = getattr(self, name)
            if value is not None:
                attributes[name] = value
        for name, value in self.extra.items():
            if name in NATIVE_ATTRIBUTES:
                attributes[name] = to_plain_value(value)
        return attributes

    def __str__(self) -> str:
        return f"{self.post_type}:{self.post_name or '<unnamed>'}#{self.ID or 'new'}"
