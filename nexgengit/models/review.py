"""Shared data structures for review processing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class StepStatus(str, Enum):
    SUCCESS = "success"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass(slots=True)
class StepResult(Generic[T]):
    """Outcome of one pipeline step; ``value`` is only set on success."""

    status: StepStatus
    value: T | None = None
    reason: str | None = None

    @classmethod
    def success(cls, value: T) -> "StepResult[T]":
        return cls(StepStatus.SUCCESS, value=value)

    @classmethod
    def ignored(cls, reason: str) -> "StepResult[T]":
        return cls(StepStatus.IGNORED, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> "StepResult[T]":
        return cls(StepStatus.FAILED, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.SUCCESS


@dataclass(slots=True)
class ReviewArtifact:
    body: str
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_fallback: bool = False


@dataclass(slots=True)
class PipelineResult:
    """Final outcome of one delivery, mapped to a transport acknowledgment."""

    status: StepStatus
    step: str
    reason: str | None = None
    comment_id: int | None = None
