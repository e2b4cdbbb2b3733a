from functools import lru_cache
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./profnet.db"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Messaging policy: maximum graph distance a sender may reach
    BASE_REACHABILITY_CAP: int = 3
    NEW_ACCOUNT_REACHABILITY_CAP: int = 5

    # Accounts younger than this are classified "new"
    NEW_ACCOUNT_MAX_AGE_DAYS: int = 30

    # Attempts for a unit of work hitting a transient store error
    STORE_RETRY_LIMIT: int = 3

    @model_validator(mode="after")
    def validate_caps(self) -> "Settings":
        """Relaxed cap must never be tighter than the base cap."""
        if self.BASE_REACHABILITY_CAP < 1:
            raise ValueError("BASE_REACHABILITY_CAP must be at least 1")
        if self.NEW_ACCOUNT_REACHABILITY_CAP < self.BASE_REACHABILITY_CAP:
            raise ValueError(
                "NEW_ACCOUNT_REACHABILITY_CAP must be >= BASE_REACHABILITY_CAP"
            )
        if self.STORE_RETRY_LIMIT < 1:
            raise ValueError("STORE_RETRY_LIMIT must be at least 1")
        return self


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Global settings instance
settings = get_settings()
