import enum
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class PersistFailurePolicy(str, enum.Enum):
    """What the pool does with an in-memory mutation whose save failed."""

    KEEP = "keep"
    ROLLBACK = "rollback"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Image Registry API"
    app_version: str = "1.0.0"
    env: str = "development"
    debug: bool = False

    listen_host: str = "0.0.0.0"
    listen_port: int = 8080

    # Empty means log to stderr
    log_file: str = ""

    image_dir: Path = Path("./images")
    manifests_file: Path = Path("./manifests.json")

    persist_failure_policy: PersistFailurePolicy = PersistFailurePolicy.KEEP
    download_chunk_size: int = 64 * 1024


settings = Settings()
