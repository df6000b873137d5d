"""Pydantic models for the GitHub webhook payloads we consume."""

from pydantic import BaseModel, ConfigDict


class GitHubPusher(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    username: str | None = None
    email: str | None = None
    date: str | None = None


class GitHubRepositoryRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    full_name: str
    default_branch: str | None = None


class GitHubPushEvent(BaseModel):
    """Payload of a push event, reduced to the fields a sync needs."""

    model_config = ConfigDict(extra="ignore")

    ref: str
    before: str
    after: str
    pusher: GitHubPusher
    repository: GitHubRepositoryRef

    @property
    def branch(self) -> str | None:
        """Branch name for refs/heads/* refs, None for tags."""
        prefix = "refs/heads/"
        return self.ref[len(prefix) :] if self.ref.startswith(prefix) else None


class GitHubPingEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    zen: str | None = None
    hook_id: int | None = None
    repository: GitHubRepositoryRef
