"""Value types describing a fetched repository tree.

A RemoteTree is built once per fetch by folding the flat path list of a
recursive git tree listing into nested directories:

    guide/intro.md, guide/setup.md, README.md

becomes

    {"guide": {"intro": <RemoteFile>, "setup": <RemoteFile>}, "README": <RemoteFile>}

Leaf keys are file slugs (the file name without its final extension); the
full path stays available on the RemoteFile itself.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, computed_field

from src.utils.logging import get_logger

logger = get_logger(__name__)

RAW_URL_TEMPLATE = "https://raw.githubusercontent.com/{owner}/{repository}/{branch}/{path}"
GITHUB_URL_TEMPLATE = "https://github.com/{owner}/{repository}/blob/{branch}/{path}"


def split_file_name(file_name: str) -> tuple[str, str]:
    """Split a file name into (slug, lower-cased extension).

    Only the final extension is removed, dot-files keep their name.
    """
    stem, dot, extension = file_name.rpartition(".")
    if not dot or not stem:
        return file_name, ""
    return stem, extension.lower()


class RemoteFile(BaseModel, frozen=True):
    """One file (blob) of a repository tree."""

    owner: str
    repository: str
    branch: str
    path: str
    sha: str
    raw_url: str
    github_url: str
    file_type: str

    @classmethod
    def from_tree_entry(
        cls, owner: str, repository: str, branch: str, entry: dict[str, Any]
    ) -> RemoteFile:
        path = entry["path"]
        url_args = {"owner": owner, "repository": repository, "branch": branch, "path": path}
        return cls(
            owner=owner,
            repository=repository,
            branch=branch,
            path=path,
            sha=entry.get("sha", ""),
            raw_url=RAW_URL_TEMPLATE.format(**url_args),
            github_url=GITHUB_URL_TEMPLATE.format(**url_args),
            file_type=split_file_name(path.rsplit("/", 1)[-1])[1],
        )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def slug(self) -> str:
        return split_file_name(self.name)[0]

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repository}"

    def __str__(self) -> str:
        return f"{self.full_name}#{self.branch}:{self.path}"


class RemoteTree:
    """Ordered mapping from path segment to a RemoteFile leaf or a nested RemoteTree."""

    def __init__(self, name: str = "", path: str = ""):
        self.name = name
        self.path = path
        self._items: dict[str, RemoteFile | RemoteTree] = {}

    @classmethod
    def from_entries(
        cls, owner: str, repository: str, branch: str, entries: list[dict[str, Any]]
    ) -> RemoteTree:
        """Fold a flat recursive tree listing into a RemoteTree.

        Entries of type "tree" are skipped, directories are created on first descent.
        """
        root = cls()
        for entry in entries:
            if entry.get("type") != "blob":
                continue
            root.add(RemoteFile.from_tree_entry(owner, repository, branch, entry))
        return root

    def add(self, remote_file: RemoteFile) -> None:
        """Fold one file into the tree.

        A leaf is keyed by its slug. When the slug is already taken by a
        different file or by a directory, the full file name is used instead,
        so sibling files like `intro.md` and `intro.txt` both survive. A file
        keyed by its slug gives way, to its own full name, to a file whose full
        name is that key. Only an entry with the very same path replaces an
        earlier one.
        """
        segments = remote_file.path.split("/")
        node = self
        for segment in segments[:-1]:
            child = node._items.get(segment)
            if isinstance(child, RemoteFile):
                # A file slug holds the directory name, move the file to its full name
                node._move_to_full_name(segment)
                child = None
            if child is None:
                child = RemoteTree(segment, f"{node.path}/{segment}" if node.path else segment)
                node._items[segment] = child
            node = child

        key = remote_file.slug
        taken = node._items.get(key)
        if taken is not None and taken.path != remote_file.path:
            key = remote_file.name
            taken = node._items.get(key)
            if isinstance(taken, RemoteFile) and taken.path != remote_file.path:
                node._move_to_full_name(key)
                taken = None

        if taken is not None:
            logger.warning(
                "Later tree entry replaces earlier entry with the same path",
                key=key,
                path=remote_file.path,
                replaced_sha=getattr(taken, "sha", None),
                sha=remote_file.sha,
            )
        node._items[key] = remote_file

    def _move_to_full_name(self, key: str) -> None:
        """Re-key the file stored under its slug `key` by its full file name."""
        moved = self._items.pop(key)
        occupant = self._items.get(moved.name)
        if isinstance(occupant, RemoteFile) and occupant.path != moved.path:
            # Full names only grow longer, so this ends
            self._move_to_full_name(moved.name)
        self._items[moved.name] = moved

    def __getitem__(self, key: str) -> RemoteFile | RemoteTree:
        return self._items[key]

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        """Number of leaves in this tree, at any depth."""
        return sum(1 for _ in self.walk())

    def items(self):
        return self._items.items()

    def keys(self):
        return self._items.keys()

    def is_empty(self) -> bool:
        return not self._items

    def walk(self) -> Iterator[RemoteFile]:
        """Yield every leaf depth-first in insertion order."""
        for item in self._items.values():
            if isinstance(item, RemoteTree):
                yield from item.walk()
            else:
                yield item

    def paths(self) -> list[str]:
        return [remote_file.path for remote_file in self.walk()]

    def subtree(self, folder: str) -> RemoteTree | None:
        """Return the directory at `folder` ("" or "/" is the tree itself), or None if absent."""
        node: RemoteTree = self
        for segment in [s for s in folder.strip("/").split("/") if s]:
            child = node._items.get(segment)
            if not isinstance(child, RemoteTree):
                return None
            node = child
        return node

    def get(self, path: str) -> RemoteFile | None:
        """Look up a leaf by its full repository path."""
        directory, _, file_name = path.rpartition("/")
        node = self.subtree(directory)
        if node is None:
            return None
        for key in (split_file_name(file_name)[0], file_name):
            item = node._items.get(key)
            if isinstance(item, RemoteFile) and item.path == path:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            key: item.to_dict()
            if isinstance(item, RemoteTree)
            else item.model_dump(include={"path", "sha", "raw_url", "github_url", "file_type"})
            for key, item in self._items.items()
        }

    def __repr__(self) -> str:
        return f"RemoteTree(path={self.path!r}, items={list(self._items)})"
