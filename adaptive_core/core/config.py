"""
Application configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Literal, Self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Adaptive Assessment Core"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5000",
    ]

    # Database
    DATABASE_URL: str = "sqlite:///./adaptive_core.db"

    # Admin endpoints (blueprint registration, calibration overrides)
    ADMIN_TOKEN: str = Field(
        default="",
        description="Admin API token for calibration and blueprint endpoints",
    )

    # CAT (Computerized Adaptive Testing)
    # "stepwise" is the bounded-step heuristic; "eap" swaps in posterior-mean
    # estimation without changing the selector or session contracts.
    CAT_ESTIMATION_STRATEGY: Literal["stepwise", "eap"] = "stepwise"
    # Share of max_questions a session may spend on pilot items when a
    # blueprint does not set pilot_item_cap explicitly.
    CAT_PILOT_EXPOSURE_FRACTION: float = Field(
        default=0.10,
        ge=0.0,
        le=1.0,
        description="Fraction of a session's max questions available to pilot items",
    )

    # Difficulty calibration
    CALIBRATION_PILOT_THRESHOLD: int = Field(
        default=30,
        ge=1,
        description="Responses required before a pilot item is validated",
    )
    CALIBRATION_MIN_RESPONSES: int = Field(
        default=5,
        ge=1,
        description="Responses required before difficulty is re-derived from accuracy",
    )
    CALIBRATION_MAX_RETRIES: int = Field(
        default=10,
        ge=1,
        description="Optimistic-concurrency retries per calibration write",
    )
    CALIBRATION_CONFIDENCE_HALF_SATURATION: float = Field(
        default=10.0,
        gt=0.0,
        description="Response count at which confidence_score reaches 0.5",
    )
    CALIBRATION_WORKERS: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Worker threads applying calibration updates",
    )

    # Reference ability distribution used for percentile ranks
    REFERENCE_THETA_MEAN: float = 0.0
    REFERENCE_THETA_SD: float = Field(default=1.0, gt=0.0)

    @model_validator(mode="after")
    def validate_calibration_thresholds(self) -> Self:
        """Difficulty must be re-derivable by the time an item is validated."""
        if self.CALIBRATION_MIN_RESPONSES > self.CALIBRATION_PILOT_THRESHOLD:
            raise ValueError(
                f"CALIBRATION_MIN_RESPONSES ({self.CALIBRATION_MIN_RESPONSES}) must "
                f"not exceed CALIBRATION_PILOT_THRESHOLD "
                f"({self.CALIBRATION_PILOT_THRESHOLD})"
            )
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
