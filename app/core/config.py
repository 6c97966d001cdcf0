from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "scenestack"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = False
    TIMEZONE: str = "UTC"
    LOG_DIR: str = "app/logs"

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "scenestack"

    # In-memory SQLite unless a real test database is configured
    SQLALCHEMY_DATABASE_URI_TEST: str = "sqlite://"

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        return (
            f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # Free tier quotas
    FREE_TIER_MAX_CREATED_GROUPS: int = 1
    FREE_TIER_MAX_JOINED_GROUPS: int = 1

    # Feeds and statistics
    FEED_DEFAULT_TAKE: int = 20
    FEED_MAX_TAKE: int = 100
    TOP_MOVIES_LIMIT: int = 10
    TOP_REWATCHED_LIMIT: int = 5

    # Account lifecycle
    ACCOUNT_DELETION_GRACE_DAYS: int = 30
    ACCOUNT_CLEANUP_HOUR: int = 3
    ACCOUNT_CLEANUP_MINUTE: int = 0

    ENABLE_TELEGRAM: bool = False
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_USER_ID: str = ""


settings = Settings()  # type: ignore
