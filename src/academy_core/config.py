"""Application settings loaded from the environment."""
import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    """Runtime configuration for the API and database layer."""

    database_url: str = "sqlite:///./academy.db"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    sql_echo: bool = False


def _split_origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Build settings from environment variables (and .env, if present).

    Returns:
        Cached Settings instance
    """
    values = {}
    if os.getenv("DATABASE_URL"):
        values["database_url"] = os.getenv("DATABASE_URL").strip()
    if os.getenv("CORS_ORIGINS"):
        values["cors_origins"] = _split_origins(os.getenv("CORS_ORIGINS"))
    if os.getenv("LOG_LEVEL"):
        values["log_level"] = os.getenv("LOG_LEVEL").upper()
    if os.getenv("SQL_ECHO"):
        values["sql_echo"] = os.getenv("SQL_ECHO").lower() in ("1", "true", "yes")
    return Settings(**values)
