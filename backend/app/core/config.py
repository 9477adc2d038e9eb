"""
Application Configuration
"""
from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings
from pydantic import model_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Triage Desk"
    APP_ENV: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False  # Secure default
    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Database
    DATABASE_URL: str = "sqlite:///./triage_desk.db"
    DATABASE_ECHO: bool = False
    SEED_DEMO_DATA: bool = False

    # ServiceNow case management
    SERVICENOW_INSTANCE: str = ""
    SERVICENOW_CASE_TABLE: str = "x_dxcis_loans_wi_0_loans_withdrawals"
    SERVICENOW_TIMEOUT_SECONDS: float = 15.0
    SERVICENOW_WRITEBACK_ENABLED: bool = False

    # Triage
    IDP_CONFIDENCE_THRESHOLD: float = 90.0

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate critical settings for non-development environments."""
        if self.APP_ENV != "development":
            if self.SERVICENOW_WRITEBACK_ENABLED and not self.SERVICENOW_INSTANCE:
                raise ValueError(
                    "SERVICENOW_INSTANCE is required when SERVICENOW_WRITEBACK_ENABLED is set "
                    "in staging/production. Set it in your .env file or environment variables."
                )

            if self.DEBUG:
                import warnings
                warnings.warn(
                    "DEBUG mode is enabled in a non-development environment. "
                    "This is not recommended for production.",
                    UserWarning,
                )

        if not 0 <= self.IDP_CONFIDENCE_THRESHOLD <= 100:
            raise ValueError("IDP_CONFIDENCE_THRESHOLD must be between 0 and 100")

        return self

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


settings = get_settings()
