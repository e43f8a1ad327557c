"""In-process TTL caches shared by the study service and the backends."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from cachetools import TTLCache


def build_ttl_cache(*, ttl_seconds: int, max_entries: int = 100) -> TTLCache:
    return TTLCache(maxsize=max(1, int(max_entries)), ttl=max(1, int(ttl_seconds)))


def hash_key(*parts: Any) -> str:
    """Stable short key for arbitrary (JSON-able) parts."""
    content = ":".join(
        json.dumps(p, sort_keys=True, default=str) if isinstance(p, (dict, list)) else str(p)
        for p in parts
    )
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]
