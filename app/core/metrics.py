"""Append-only generation metrics kept as JSON lines on disk.

``open()`` creates the directory and reloads the most recent records;
``close()`` flushes pending lines and drops the in-memory copy. Inside an
event loop the file append runs on the default executor. Writes never raise:
a metrics failure must not fail a generation.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections import Counter, deque
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from app.core.logging import get_logger

logger = get_logger(__name__)

METRICS_FILE = "generations.jsonl"


class GenerationMetric(BaseModel):
    runtime: str
    knowledge_source: str
    mode: str
    topic: str
    card_count: int = 0
    duration_ms: int = 0
    success: bool
    error_message: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)


class MetricsRecorder:
    def __init__(self, directory: str | Path = ".metrics", *, max_in_memory: int = 1000) -> None:
        self.directory = Path(directory)
        self.path = self.directory / METRICS_FILE
        self.max_in_memory = max(1, int(max_in_memory))
        self._records: deque[GenerationMetric] = deque(maxlen=self.max_in_memory)
        self._pending: list[str] = []
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._opened = False

    def open(self) -> None:
        if self._opened:
            return
        self.directory.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            with self.path.open("r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        self._records.append(GenerationMetric.model_validate_json(line))
                    except ValidationError:
                        logger.warning("skipping malformed metrics line")
        self._opened = True
        logger.info("metrics loaded %d records from %s", len(self._records), self.path)

    def close(self) -> None:
        self._flush()
        with self._lock:
            self._records.clear()
        self._opened = False

    def record_generation(self, **fields: Any) -> Optional[GenerationMetric]:
        try:
            metric = GenerationMetric(**fields)
        except ValidationError as e:
            logger.error("invalid metric dropped: %s", e)
            return None

        with self._lock:
            self._records.append(metric)
            if not self._opened:
                return metric
            self._pending.append(metric.model_dump_json() + "\n")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._flush()
        else:
            loop.run_in_executor(None, self._flush)
        return metric

    async def flush(self) -> None:
        """Wait until every recorded metric has reached the file."""
        await asyncio.to_thread(self._flush)

    def _flush(self) -> None:
        with self._write_lock:
            with self._lock:
                lines, self._pending = self._pending, []
            if not lines:
                return
            try:
                with self.path.open("a", encoding="utf-8") as f:
                    f.writelines(lines)
            except OSError as e:
                logger.error("failed to write %d metrics: %s", len(lines), e)

    def get_metrics(
        self,
        *,
        runtime: Optional[str] = None,
        knowledge_source: Optional[str] = None,
        since: Optional[float] = None,
        success: Optional[bool] = None,
    ) -> list[GenerationMetric]:
        with self._lock:
            records = list(self._records)
        if runtime is not None:
            records = [r for r in records if r.runtime == runtime]
        if knowledge_source is not None:
            records = [r for r in records if r.knowledge_source == knowledge_source]
        if since is not None:
            records = [r for r in records if r.timestamp >= since]
        if success is not None:
            records = [r for r in records if r.success is success]
        return records

    def get_summary(self) -> dict[str, Any]:
        records = self.get_metrics()
        total = len(records)
        successes = [r for r in records if r.success]
        avg = sum(r.duration_ms for r in successes) / len(successes) if successes else 0
        topics = Counter(r.topic for r in records)
        return {
            "total_generations": total,
            "success_rate": round(len(successes) / total * 100, 2) if total else 0,
            "avg_duration_ms": round(avg),
            "by_runtime": dict(Counter(r.runtime for r in records)),
            "by_knowledge_source": dict(Counter(r.knowledge_source for r in records)),
            "top_topics": [{"topic": t, "count": c} for t, c in topics.most_common(10)],
        }
