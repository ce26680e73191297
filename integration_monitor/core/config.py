from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application configuration settings"""

    # Application Configuration
    APP_NAME: str = "Integration Monitor"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # API Configuration
    API_V1_STR: str = "/api/v1"

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FILE_PATH: Optional[str] = None
    LOG_MAX_SIZE: int = 10485760  # 10MB
    LOG_BACKUP_COUNT: int = 5

    # Event Store Configuration
    EVENT_STORE_MAX_EVENTS: int = 1000
    EVENTS_DEFAULT_LIMIT: int = 50
    EVENTS_PAGE_SIZE: int = 25
    EVENTS_MAX_PAGE_SIZE: int = 100

    # Classifier Configuration
    OPENAI_API_KEY: Optional[str] = None
    CLASSIFIER_BASE_URL: str = "https://api.openai.com/v1"
    CLASSIFIER_MODEL: str = "gpt-4o-mini"
    CLASSIFIER_TIMEOUT_SECONDS: float = 10.0
    CLASSIFIER_TEMPERATURE: float = 0.3
    CLASSIFIER_MAX_TOKENS: int = 500

    # Sync Simulation Configuration
    SYNC_DEFAULT_CLIENT_COUNT: int = 5
    SYNC_INTRODUCE_FAILURES: bool = True
    SYNC_RANDOM_SEED: Optional[int] = None
    SYNC_GENERATE_ON_STARTUP: bool = True

    # Monitoring Configuration
    PROMETHEUS_ENABLED: bool = True

    @field_validator("OPENAI_API_KEY", mode="before")
    @classmethod
    def blank_api_key_is_none(cls, v):
        """Treat an empty or whitespace-only key as not configured"""
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("CLASSIFIER_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance
settings = Settings()
