"""Application configuration"""

from urllib.parse import quote_plus

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Memory plugin settings.

    The database is configured either with DATABASE_URL or with the
    POSTGRES_* variables; OPENAI_API_KEY enables embeddings.
    """

    # Database
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = ""
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = ""
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 0
    DB_POOL_TIMEOUT: float = 10.0
    DB_CREATE_SCHEMA: bool = False

    # OpenAI for embeddings
    OPENAI_API_KEY: str = ""
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_MAX_CHARS: int = 30000  # ~8000 tokens
    EMBEDDING_TIMEOUT: float = 30.0

    # Jobs
    BACKFILL_DELAY_MS: int = 200

    # Hooks
    AUTO_CAPTURE: bool = True
    AUTO_RECALL: bool = True
    DEFAULT_AGENT_ID: str = "aleff"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON_FORMAT: bool = True

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def is_postgres_configured(self) -> bool:
        return bool(
            self.DATABASE_URL
            or (
                self.POSTGRES_HOST
                and self.POSTGRES_USER
                and self.POSTGRES_PASSWORD
                and self.POSTGRES_DB
            )
        )

    @property
    def is_embedding_configured(self) -> bool:
        return bool(self.OPENAI_API_KEY)

    @property
    def ASYNC_DATABASE_URL(self) -> str:
        """SQLAlchemy URL using the asyncpg driver."""
        if self.DATABASE_URL:
            url = self.DATABASE_URL
            for prefix in ("postgresql://", "postgres://"):
                if url.startswith(prefix):
                    return "postgresql+asyncpg://" + url[len(prefix) :]
            return url
        if not self.is_postgres_configured:
            return ""
        return (
            f"postgresql+asyncpg://{quote_plus(self.POSTGRES_USER)}:"
            f"{quote_plus(self.POSTGRES_PASSWORD)}@{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


def get_settings() -> Settings:
    """Load settings from the environment."""
    return Settings()
