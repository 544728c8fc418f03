"""Configuration settings for syncweave.

Values are read from the environment (and an optional ``.env`` file).
"""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Syncweave settings.

    Attributes:
        ENVIRONMENT: Deployment environment name (local, dev, prd)
        LOCAL_DEVELOPMENT: Human-readable log output when true
        LOG_LEVEL: Root log level
        POSTGRES_HOST: Mirror store database host
        POSTGRES_PORT: Mirror store database port
        POSTGRES_USER: Mirror store database user
        POSTGRES_PASSWORD: Mirror store database password
        POSTGRES_DB: Mirror store database name
        DATABASE_URL: Full SQLAlchemy URL, overrides the POSTGRES_* values
        TEMPORAL_HOST: Temporal frontend host
        TEMPORAL_PORT: Temporal frontend port
        TEMPORAL_NAMESPACE: Temporal namespace
        TEMPORAL_TASK_QUEUE: Task queue polled by the sync worker
        TEMPORAL_DISABLE_SANDBOX: Run workflows unsandboxed (debugging only)
        TEMPORAL_GRACEFUL_SHUTDOWN_TIMEOUT: Seconds running activities get on shutdown
        WORKER_METRICS_PORT: Port of the worker control/metrics server
        SLACK_API_BASE_URL: Slack Web API base URL
        GOOGLE_DRIVE_API_BASE_URL: Google Drive v3 API base URL
        SOURCE_HTTP_TIMEOUT_SECONDS: Network timeout for source API calls
        CONNECTION_SERVICE_URL: OAuth connection service holding provider tokens
        CONNECTION_SERVICE_SECRET_KEY: Secret key for the connection service
        SLACK_INTEGRATION_ID: Connection service integration id for Slack
        GOOGLE_DRIVE_INTEGRATION_ID: Connection service integration id for Google Drive
        DOCUMENT_INDEX_URL: Base URL of the downstream document index
        DOCUMENT_INDEX_API_KEY: API key for the document index
        SYNC_MAX_CONCURRENCY: Fan-out limit for nested syncs inside one activity
        REDIS_HOST: Redis host (access token cache)
        REDIS_PORT: Redis port
        REDIS_DB: Redis database number
        REDIS_PASSWORD: Redis password
        REDIS_URL: Full Redis URL, overrides the REDIS_* values
        REDIS_SOCKET_TIMEOUT_SECONDS: Connect and read timeout of Redis calls
        ACCESS_TOKEN_CACHE_TTL_SECONDS: How long an access token is served from Redis
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=True)

    ENVIRONMENT: str = "local"
    LOCAL_DEVELOPMENT: bool = False
    LOG_LEVEL: str = "INFO"

    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "syncweave"
    POSTGRES_PASSWORD: str = "syncweave"
    POSTGRES_DB: str = "syncweave"
    DATABASE_URL: Optional[str] = None

    TEMPORAL_HOST: str = "localhost"
    TEMPORAL_PORT: int = 7233
    TEMPORAL_NAMESPACE: str = "default"
    TEMPORAL_TASK_QUEUE: str = "syncweave-connectors"
    TEMPORAL_DISABLE_SANDBOX: bool = False
    TEMPORAL_GRACEFUL_SHUTDOWN_TIMEOUT: int = 300
    WORKER_METRICS_PORT: int = 8888

    SLACK_API_BASE_URL: str = "https://slack.com/api"
    GOOGLE_DRIVE_API_BASE_URL: str = "https://www.googleapis.com/drive/v3"
    SOURCE_HTTP_TIMEOUT_SECONDS: float = 30.0

    CONNECTION_SERVICE_URL: str = "http://localhost:3003"
    CONNECTION_SERVICE_SECRET_KEY: Optional[str] = None
    SLACK_INTEGRATION_ID: str = "slack"
    GOOGLE_DRIVE_INTEGRATION_ID: str = "google-drive"

    DOCUMENT_INDEX_URL: str = "http://localhost:3001"
    DOCUMENT_INDEX_API_KEY: Optional[str] = None

    SYNC_MAX_CONCURRENCY: int = 8

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None
    REDIS_URL: Optional[str] = None
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0
    ACCESS_TOKEN_CACHE_TTL_SECONDS: int = 60

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return level

    @property
    def temporal_address(self) -> str:
        """Temporal frontend address (host:port)."""
        return f"{self.TEMPORAL_HOST}:{self.TEMPORAL_PORT}"

    @property
    def sqlalchemy_database_uri(self) -> str:
        """Async SQLAlchemy URL for the mirror store."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        """Redis URL of the token cache."""
        if self.REDIS_URL:
            return self.REDIS_URL
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()
