from typing import Optional
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import PostgresDsn


class PostgresSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    host: str = Field(default="localhost", alias="POSTGRES_HOST")
    port: int = Field(default=5432, alias="POSTGRES_DB_PORT")
    db_name: str = Field(default="studygen", alias="POSTGRES_DB_NAME")
    user: str = Field(default="postgres", alias="POSTGRES_DB_USER")
    password: str = Field(default="postgres", alias="POSTGRES_DB_PASSWORD")

    @computed_field
    def connection_string(self) -> PostgresDsn:
        return PostgresDsn(
            f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db_name}"
        )


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    name: str = Field(default="studygen", alias="APP_NAME")
    version: str = Field(default="v1", alias="API_VERSION")
    port: int = Field(default=9000, alias="APP_PORT")
    mode: str = Field(default="prod", alias="MODE")
    # "memory" keeps jobs, decks and quiz attempts in-process; "postgres" uses SQLAlchemy
    storage_backend: str = Field(default="memory", alias="STORAGE_BACKEND")

    @computed_field
    def is_production(self) -> bool:
        return self.mode != "dev"

    @computed_field
    def is_testing(self) -> bool:
        return self.mode == "test"


class OllamaSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    base_url: str = Field(default="http://localhost:11434", alias="OLLAMA_BASE_URL")
    model: str = Field(default="llama3.2:latest", alias="OLLAMA_MODEL")
    timeout: float = Field(default=60.0, alias="OLLAMA_TIMEOUT")
    parse_retries: int = Field(default=2, alias="OLLAMA_PARSE_RETRIES")
    cache_ttl: int = Field(default=3600, alias="OLLAMA_CACHE_TTL")


class SearchSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    serper_api_key: Optional[str] = Field(default=None, alias="SERPER_API_KEY")
    serper_url: str = Field(
        default="https://google.serper.dev/search", alias="SERPER_URL"
    )
    timeout: float = Field(default=10.0, alias="SEARCH_TIMEOUT")


class CoordinatorSettings(BaseSettings):
    """Remote tool service tried before the direct backends when enabled."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    enabled: bool = Field(default=False, alias="COORDINATOR_ENABLED")
    url: str = Field(default="http://localhost:3100", alias="COORDINATOR_URL")
    timeout: float = Field(default=5.0, alias="COORDINATOR_TIMEOUT")


class RetrievalSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    fetch_timeout: float = Field(default=4.0, alias="FETCH_TIMEOUT")
    fetch_max_bytes: int = Field(default=500_000, alias="FETCH_MAX_BYTES")
    site_char_limit: int = Field(default=2000, alias="SITE_CHAR_LIMIT")
    max_sources: int = Field(default=5, alias="MAX_SOURCES")
    deep_dive_sources: int = Field(default=3, alias="DEEP_DIVE_SOURCES")
    web_context_ttl: int = Field(default=86400, alias="WEB_CONTEXT_TTL")
    web_context_max_entries: int = Field(default=100, alias="WEB_CONTEXT_MAX_ENTRIES")


class QueueSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    concurrency: int = Field(default=2, alias="QUEUE_CONCURRENCY")
    max_attempts: int = Field(default=3, alias="QUEUE_MAX_ATTEMPTS")
    backoff_base: float = Field(default=2.0, alias="QUEUE_BACKOFF_BASE")
    enqueue_recommended: bool = Field(default=False, alias="QUEUE_ENQUEUE_RECOMMENDED")
    result_cache_ttl: int = Field(default=3600, alias="RESULT_CACHE_TTL")


class MetricsSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    enabled: bool = Field(default=True, alias="METRICS_ENABLED")
    directory: str = Field(default=".metrics", alias="METRICS_DIR")
    max_in_memory: int = Field(default=1000, alias="METRICS_MAX_IN_MEMORY")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=lambda: AppSettings())
    postgres: PostgresSettings = Field(default_factory=lambda: PostgresSettings())
    ollama: OllamaSettings = Field(default_factory=lambda: OllamaSettings())
    search: SearchSettings = Field(default_factory=lambda: SearchSettings())
    coordinator: CoordinatorSettings = Field(
        default_factory=lambda: CoordinatorSettings()
    )
    retrieval: RetrievalSettings = Field(default_factory=lambda: RetrievalSettings())
    queue: QueueSettings = Field(default_factory=lambda: QueueSettings())
    metrics: MetricsSettings = Field(default_factory=lambda: MetricsSettings())

    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    openrouter_api_key: Optional[str] = Field(default=None, alias="OPENROUTER_API_KEY")

    # Hosted model provider selection: "google" or "openrouter"
    model_provider: str = Field(default="google", alias="MODEL_PROVIDER")
    hosted_model: str = Field(default="gemini-2.0-flash", alias="HOSTED_MODEL")
    openrouter_model: str = Field(
        default="meta-llama/llama-3.1-8b-instruct", alias="OPENROUTER_MODEL"
    )

    # Runtime used when a request does not name one
    default_runtime: str = Field(default="ollama", alias="DEFAULT_RUNTIME")

    @computed_field
    def hosted_enabled(self) -> bool:
        if (self.model_provider or "google").lower() == "openrouter":
            return bool(self.openrouter_api_key)
        return bool(self.gemini_api_key)


settings = Settings()
