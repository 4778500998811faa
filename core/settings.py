from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, PostgresDsn, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CustomSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env.docker",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class AppSettings(CustomSettings):
    ENVIRONMENT: Literal["local", "dev", "prod"] = Field(default="local")
    LOG_LEVEL: str = Field(default="INFO")
    JSON_LOGS: bool = Field(default=True)


class PgDbSettings(CustomSettings):
    POSTGRES_ENGINE: str = Field(default="postgresql+asyncpg")
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: SecretStr = Field(default="postgres")
    POSTGRES_DB: str = Field(default="expertise")
    POSTGRES_HOST: str = Field(default="localhost")
    POSTGRES_PORT: int = Field(default=5432)
    DATABASE_URL: PostgresDsn | str = Field(default="")
    POSTGRES_POOL_SIZE: int = Field(default=5, ge=1)
    POSTGRES_MAX_OVERFLOW: int = Field(default=10, ge=0)

    @model_validator(mode="before")
    def validate_postgres_dsn(cls, data: dict):
        if isinstance(data, dict) and not data.get("DATABASE_URL"):
            _built_uri = PostgresDsn.build(
                scheme=data.get("POSTGRES_ENGINE", "postgresql+asyncpg"),
                username=data.get("POSTGRES_USER", "postgres"),
                password=data.get("POSTGRES_PASSWORD", "postgres"),
                host=data.get("POSTGRES_HOST", "localhost"),
                port=int(data.get("POSTGRES_PORT", 5432)),
                path=data.get("POSTGRES_DB", "expertise"),
            ).unicode_string()
            data["DATABASE_URL"] = _built_uri
        return data


class EmbeddingSettings(CustomSettings):
    """Configuration for the external embedding endpoint and batch generator.

    Set via env vars:
    - EMBEDDING_SERVICE_URL (empty means "not configured")
    - EMBEDDING_API_KEY
    - EMBEDDING_MODEL_ID
    - EMBEDDING_DIMENSIONS
    - EMBEDDING_INPUT_TYPE
    - EMBEDDING_BATCH_SIZE
    - EMBEDDING_MAX_RETRIES
    - EMBEDDING_RETRY_BACKOFF_MS
    - EMBEDDING_TIMEOUT_SECONDS
    - EMBEDDING_MAX_PARALLEL_BATCHES
    """

    EMBEDDING_SERVICE_URL: str = Field(default="")
    EMBEDDING_API_KEY: SecretStr = Field(default="")
    EMBEDDING_MODEL_ID: str = Field(default="qwen3-embedding-8b")
    EMBEDDING_DIMENSIONS: int = Field(default=4096)
    EMBEDDING_INPUT_TYPE: str = Field(default="passage")
    EMBEDDING_BATCH_SIZE: int = Field(default=32, ge=1)
    EMBEDDING_MAX_RETRIES: int = Field(default=3, ge=1)
    EMBEDDING_RETRY_BACKOFF_MS: int = Field(default=1000, ge=0)
    EMBEDDING_TIMEOUT_SECONDS: int = Field(default=15, ge=1)
    EMBEDDING_MAX_PARALLEL_BATCHES: int = Field(default=4, ge=1)
    DEFAULT_STRATEGY: str = Field(default="text-based")


class SimilaritySettings(CustomSettings):
    """Configuration for pgvector similarity search.

    Set via env vars:
    - SIMILARITY_THRESHOLD
    - SIMILARITY_MAX_CANDIDATES
    - SIMILARITY_FILTER_BY_ENTITY_TYPE
    - SIMILARITY_DEFAULT_METRIC_TYPE
    - SIMILARITY_DEFAULT_DIMENSIONS
    - SIMILARITY_NORMALIZATION ("uniform" or "per_metric")
    - SIMILARITY_EUCLIDEAN_DISTANCE_BOUND
    """

    SIMILARITY_THRESHOLD: float = Field(default=0.6, ge=0.0, le=1.0)
    SIMILARITY_MAX_CANDIDATES: int = Field(default=100, ge=1)
    SIMILARITY_FILTER_BY_ENTITY_TYPE: bool = Field(default=True)
    SIMILARITY_DEFAULT_METRIC_TYPE: str = Field(default="general")
    SIMILARITY_DEFAULT_DIMENSIONS: int = Field(default=384)
    SIMILARITY_NORMALIZATION: Literal["uniform", "per_metric"] = Field(
        default="uniform"
    )
    SIMILARITY_EUCLIDEAN_DISTANCE_BOUND: float = Field(default=2.0, gt=0.0)


class Settings(BaseModel):
    APP: AppSettings = Field(default_factory=AppSettings)
    DATABASE: PgDbSettings = Field(default_factory=PgDbSettings)
    EMBEDDING: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    SIMILARITY: SimilaritySettings = Field(default_factory=SimilaritySettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()


SETTINGS = get_settings()
