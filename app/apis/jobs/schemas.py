from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class JobStatusResponse(BaseModel):
    status: str
    progress: Optional[int] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    attempts_made: Optional[int] = None


class QueueStats(BaseModel):
    queued: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    dead_letters: int = 0
