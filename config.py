import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Runtime configuration for the reconciliation service."""

    database_path: str = Field(default_factory=lambda: os.getenv("DB_NAME", "contacts.db"))
    busy_timeout: float = Field(default_factory=lambda: float(os.getenv("DB_BUSY_TIMEOUT", "5.0")))
    allow_empty_identify: bool = Field(default_factory=lambda: _env_bool("ALLOW_EMPTY_IDENTIFY", "true"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    host: str = Field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: int(os.getenv("PORT", "8000")))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
