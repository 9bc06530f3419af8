"""Configuration for the Challenge service."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ChallengeSettings(BaseSettings):
    """Challenge service settings."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CHALLENGE_", extra="ignore")

    # Invitations
    candidate_search_limit: int = 20

    # Completion sweep
    scheduler_interval_seconds: int = 60
    scheduler_batch_size: int = 100

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True


@lru_cache
def get_challenge_settings() -> ChallengeSettings:
    """Get cached challenge settings instance."""
    return ChallengeSettings()
