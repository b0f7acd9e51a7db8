"""Application settings loaded from the environment."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration.

    Every field can be overridden with an ``EDUEXAMINE_``-prefixed environment
    variable or a ``.env`` file next to the process.
    """

    model_config = SettingsConfigDict(
        env_prefix="EDUEXAMINE_", env_file=".env", extra="ignore"
    )

    database_url: str = "sqlite:///./eduexamine.db"
    sql_echo: bool = False

    # Token issuance
    jwt_secret: str = "accesssecret"
    refresh_secret: str = "refreshsecret"
    jwt_algorithm: str = "HS256"
    access_token_minutes: int = 60
    refresh_token_days: int = 7

    # Pass threshold applied when an exam has none configured
    default_pass_percentage: float = 35.0

    # Base URL used to build shareable guest exam links
    frontend_url: str = "http://localhost:3000"

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
