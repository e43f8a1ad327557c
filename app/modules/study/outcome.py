"""Explicit results for pipeline steps that are allowed to fail."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Generic, Optional, TypeVar

from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class FailureKind(str, Enum):
    SOFT = "soft"
    HARD = "hard"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def soft_failure(cls, error: str) -> "Outcome[T]":
        return cls(ok=False, error=error, kind=FailureKind.SOFT)

    @classmethod
    def hard_failure(cls, error: str) -> "Outcome[T]":
        return cls(ok=False, error=error, kind=FailureKind.HARD)

    def value_or(self, default: Any) -> Any:
        return self.value if self.ok else default


async def soft(step: str, awaitable: Awaitable[T]) -> Outcome[T]:
    """Await a step whose failure the pipeline absorbs; the failure is logged."""
    try:
        return Outcome.success(await awaitable)
    except Exception as e:  # noqa: BLE001
        logger.warning("%s failed (continuing): %s", step, e)
        return Outcome.soft_failure(f"{step}: {e}")
