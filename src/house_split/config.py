"""Configuration management for house-split."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database path
    database_path: Path = Path.home() / ".house_split" / "house_split.db"

    # Groups
    default_environment_name: str = "Home"  # Environment created with every group

    # Dashboard
    uncategorized_label: str = "Uncategorized"  # Bucket for bills without category

    # Inbox
    notification_limit: int = 100
    history_limit: int = 50

    # Event delivery (optional)
    webhook_url: str | None = None
    webhook_timeout: float = 10.0

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ValueError(
            f"Failed to load settings. Check the environment variables or the "
            f".env file in the current directory.\n"
            f"Error: {e}"
        ) from e
