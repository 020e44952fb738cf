"""Configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///changegate.db"

    # Logging
    log_level: str = "info"
    json_logs: bool = False
    # Include captured field values in approval log events
    log_changed_values: bool = False

    # Keep approved/rejected rows with their final state instead of deleting them
    archive_decisions: bool = False

    # Snapshot blobs
    snapshot_schema_version: str = "1.0"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "CHANGEGATE_",
    }


settings = Settings()
