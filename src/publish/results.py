"""Result types for reconciliation and synchronization runs."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.publish.errors import SyncError


class SyncStatus(str, Enum):
    """Outcome of reconciling one remote file."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Outcome of one side-effect step of a reconciliation."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StepResult:
    status: StepStatus
    reason: str | None = None


@dataclass
class FileSyncResult:
    """Outcome of reconciling one file, plus per-step diagnostics.

    `status` is decided by identity resolution alone; the visibility, taxonomy
    and cover image steps only contribute diagnostics in `steps`.
    """

    path: str
    status: SyncStatus
    reason: str | None = None
    record_id: int | None = None
    steps: dict[str, StepResult] = field(default_factory=dict)

    @classmethod
    def failed(cls, path: str, reason: str) -> "FileSyncResult":
        return cls(path=path, status=SyncStatus.FAILED, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status.value,
            "reason": self.reason,
            "record_id": self.record_id,
            "steps": {
                name: {"status": step.status.value, "reason": step.reason}
                for name, step in self.steps.items()
            },
        }


@dataclass
class SyncSummary:
    """Aggregated outcome of synchronizing one repository configuration."""

    config_id: str
    full_name: str
    branch: str
    results: list[FileSyncResult] = field(default_factory=list)
    error: SyncError | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    def add(self, result: FileSyncResult) -> None:
        self.results.append(result)

    def finish(self) -> "SyncSummary":
        self.finished_at = datetime.now(UTC)
        return self

    @property
    def counts(self) -> dict[str, int]:
        counter = Counter(result.status for result in self.results)
        return {status.value: counter.get(status, 0) for status in SyncStatus}

    @property
    def failures(self) -> list[tuple[str, str]]:
        return [
            (result.path, result.reason or "unknown error")
            for result in self.results
            if result.status == SyncStatus.FAILED
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "config_id": self.config_id,
            "repository": self.full_name,
            "branch": self.branch,
            "counts": self.counts,
            "failures": [{"path": path, "reason": reason} for path, reason in self.failures],
            "error": self.error.to_dict() if self.error else None,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class Outcome[T]:
    """Either a value or a tagged error, returned by orchestration entry points."""

    value: T | None = None
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: SyncError) -> "Outcome[T]":
        return cls(error=error)
