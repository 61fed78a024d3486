"""Queue and document store settings loaded from the environment.

Uses pydantic-settings. Every value can come from a QUEUE_* environment
variable or a local .env file, and every value is defaulted so a bare
QueueSettings() connects to a local MongoDB with the stock credentials.
"""

from urllib.parse import quote_plus

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from docqueue.domain.models import DEFAULT_QUEUE_TYPE


class QueueSettings(BaseSettings):
    """Queue defaults (type, attempts, lease) and MongoDB connection parameters."""

    model_config = SettingsConfigDict(
        env_prefix="QUEUE_",
        env_file=".env",
        extra="ignore",
    )

    type: str = Field(default=DEFAULT_QUEUE_TYPE, min_length=1)
    max_attempts: int = Field(default=5, ge=1)
    lease_seconds: float = Field(default=300, ge=1)

    db_host: str = "localhost"
    db_port: int = 27017
    db_user: str = "root"
    db_pass: str = "pass"
    db_name: str = ""
    db_collection: str = "queue"

    @property
    def mongo_uri(self) -> str:
        """mongodb:// connection string with URL-quoted credentials."""
        return (
            f"mongodb://{quote_plus(self.db_user)}:{quote_plus(self.db_pass)}"
            f"@{self.db_host}:{self.db_port}/"
        )

    @property
    def database(self) -> str:
        """Database name; an empty QUEUE_DB_NAME falls back to "queue"."""
        return self.db_name or "queue"


def get_settings() -> QueueSettings:
    """Return a freshly loaded settings instance."""
    return QueueSettings()
