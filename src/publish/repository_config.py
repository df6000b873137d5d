"""Repository configurations and general settings, persisted as one JSON file.

File layout:

    {
      "general_settings": {"webhook_secret": "...", "github_username": "...", ...},
      "repositories": {
        "docs-main": {"username": "acme", "repository": "docs", "branch": "main", ...}
      }
    }

Secrets and credentials from the environment override the file.
"""

import json
import os
import tempfile
import threading
import time
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from src.publish.errors import ValidationFailed
from src.utils.config import (
    get_config_path,
    get_github_access_token,
    get_github_username,
    get_github_webhook_secret,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

CONTENT_PLACEHOLDER = "%%content%%"
DEFAULT_POST_TYPE = "post"


class RepositoryConfig(BaseModel):
    """One repository-to-content mapping."""

    config_id: str = ""
    username: str
    repository: str
    folder: str = ""
    branch: str = "master"
    post_type: str = ""
    post_author: int = 1
    content_template: str = CONTENT_PLACEHOLDER
    last_publish: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.username}/{self.repository}"

    @property
    def effective_post_type(self) -> str:
        return self.post_type or DEFAULT_POST_TYPE

    def __str__(self) -> str:
        return f"{self.full_name}#{self.branch}"


class GeneralSettings(BaseModel):
    webhook_secret: str = ""
    github_username: str = ""
    github_access_token: str = ""
    allowed_file_types: list[str] = Field(default_factory=lambda: ["md"])


class _SettingsFile(BaseModel):
    general_settings: GeneralSettings = Field(default_factory=GeneralSettings)
    repositories: dict[str, RepositoryConfig] = Field(default_factory=dict)


def split_full_name(full_name: str) -> tuple[str, str]:
    """Split "owner/repository" into its two parts.

    Raises:
        ValidationFailed: If the name is not exactly two non-empty segments
    """
    parts = full_name.split("/")
    if len(parts) != 2 or not all(parts):
        raise ValidationFailed(
            f"repository name '{full_name}' does not follow syntax '<username>/<repository>'",
            code="repository_name_invalid",
            full_name=full_name,
        )
    return parts[0], parts[1]


class RepositoryConfigStore:
    """Thread-safe access to the settings file.

    The orchestrator only ever writes `last_publish`; everything else is
    managed outside of gitpress.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or get_config_path())
        self._lock = threading.Lock()

    def _load(self) -> _SettingsFile:
        if not self.path.exists():
            logger.warning("Settings file does not exist, using empty configuration", path=str(self.path))
            return _SettingsFile()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            settings = _SettingsFile.model_validate(raw)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Invalid settings file {self.path}: {e}") from e

        for config_id, config in settings.repositories.items():
            config.config_id = config_id
        return settings

    def _save(self, settings: _SettingsFile) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = settings.model_dump(mode="json")
        for config in data["repositories"].values():
            config.pop("config_id", None)

        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def general_settings(self) -> GeneralSettings:
        with self._lock:
            settings = self._load().general_settings

        overrides = {
            "webhook_secret": get_github_webhook_secret(),
            "github_username": get_github_username(),
            "github_access_token": get_github_access_token(),
        }
        return settings.model_copy(
            update={key: value for key, value in overrides.items() if value is not None}
        )

    def all_repositories(self) -> list[RepositoryConfig]:
        """All configurations in file order. Entries with an empty ID are ignored."""
        with self._lock:
            repositories = self._load().repositories
        return [config for config_id, config in repositories.items() if config_id]

    def get(self, config_id: str) -> RepositoryConfig | None:
        if not config_id:
            return None
        with self._lock:
            return self._load().repositories.get(config_id)

    def find_by_full_name(self, full_name: str) -> list[RepositoryConfig]:
        """Every configuration whose owner and repository match, across all branches.

        Raises:
            ValidationFailed: If full_name is not "<owner>/<repository>"
        """
        username, repository = split_full_name(full_name)
        return [
            config
            for config in self.all_repositories()
            if config.username == username and config.repository == repository
        ]

    def save_repository(self, config: RepositoryConfig) -> None:
        if not config.config_id:
            raise ValueError("Repository configuration needs a config_id to be saved")
        with self._lock:
            settings = self._load()
            settings.repositories[config.config_id] = config
            self._save(settings)

    def mark_published(self, config_id: str, timestamp: int | None = None) -> int:
        """Persist the last-sync time of a configuration and return it."""
        published_at = timestamp if timestamp is not None else int(time.time())
        with self._lock:
            settings = self._load()
            config = settings.repositories.get(config_id)
            if config is None:
                logger.warning("Cannot record last publish, configuration vanished", config_id=config_id)
                return published_at
            config.last_publish = published_at
            self._save(settings)
        return published_at
