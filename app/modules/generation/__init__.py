from app.modules.generation.base import (
    BackendUnavailableError,
    GenerationBackend,
    GenerationError,
    MalformedOutputError,
    SearchProvider,
    UnknownBackendError,
)
from app.modules.generation.resolver import (
    BackendRegistry,
    FallbackBackend,
    FallbackSearch,
    build_registry,
    build_search,
)

__all__ = [
    "BackendRegistry",
    "BackendUnavailableError",
    "FallbackBackend",
    "FallbackSearch",
    "GenerationBackend",
    "GenerationError",
    "MalformedOutputError",
    "SearchProvider",
    "UnknownBackendError",
    "build_registry",
    "build_search",
]
