"""Configuration management for Query Synthesis Service"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Service Configuration
    SERVICE_NAME: str = "Query Synthesis Service"

    # Redis Configuration
    REDIS_URL: str = "redis://redis:6379/2"

    # Result Cache Configuration
    CACHE_KEY_PREFIX: str = "query_cache"
    CACHE_EXACT_TTL_SECONDS: int = 3600  # 1 hour
    CACHE_SEMANTIC_TTL_SECONDS: int = 86400  # 24 hours
    CACHE_SIMILARITY_THRESHOLD: float = 0.85

    # OpenMetadata Configuration
    OPENMETADATA_API_ENDPOINT: str = "http://openmetadata-server:8585/api"
    OPENMETADATA_JWT_TOKEN: str = ""
    OPENMETADATA_TIMEOUT: int = 30
    OPENMETADATA_SERVICE: str = "data-pipeline-service"
    OPENMETADATA_DATABASE: str = "default"
    OPENMETADATA_SCHEMA: str = "default"
    MAX_RELEVANT_TABLES: int = 5

    # Trino Configuration
    TRINO_HOST: str = "trino"
    TRINO_PORT: int = 8080
    TRINO_CATALOG: str = "iceberg"
    TRINO_SCHEMA: str = "default"
    TRINO_USER: str = "trino"
    TRINO_AUTH_TYPE: str = "none"
    TRINO_TIMEOUT: int = 300
    MAX_RESULT_ROWS: int = 10000

    # Ollama Configuration
    OLLAMA_HOST: str = "http://ollama:11434"
    OLLAMA_MODEL: str = "llama3.1:70b"
    OLLAMA_TEMPERATURE: float = 0.1
    OLLAMA_TIMEOUT: int = 180

    # Resilience Configuration
    QUERY_TIMEOUT_SECONDS: float = 300  # 5 minutes for full query processing
    AI_TIMEOUT_SECONDS: float = 30
    RETRY_ATTEMPTS: int = 3
    BACKOFF_MULTIPLIER_SECONDS: float = 2  # waits of 2^attempt seconds
    DB_BREAKER_FAILURE_RATE: float = 0.5
    DB_BREAKER_SAMPLING_SECONDS: float = 30
    DB_BREAKER_MIN_THROUGHPUT: int = 3
    AI_BREAKER_CONSECUTIVE_FAILURES: int = 5
    BREAKER_COOLDOWN_SECONDS: float = 60

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
