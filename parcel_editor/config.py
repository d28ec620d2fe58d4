"""
Application configuration using Pydantic settings.
"""
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Parcel API Configuration
    parcels_api_base_url: str = Field(
        default="http://localhost:8080/api",
        description="Base URL for the parcel persistence API"
    )
    parcels_api_token: str = Field(
        default="",
        description="Bearer token sent to the parcel persistence API"
    )
    parcels_api_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for parcel API requests"
    )

    # Retry Configuration (applies to parcel listing only)
    max_retry_attempts: int = Field(
        default=3,
        description="Maximum number of attempts when listing parcels"
    )
    retry_backoff_multiplier: int = Field(
        default=1,
        description="Multiplier for exponential backoff"
    )
    retry_min_wait: int = Field(
        default=1,
        description="Minimum wait time in seconds between retries"
    )
    retry_max_wait: int = Field(
        default=5,
        description="Maximum wait time in seconds between retries"
    )

    # Geometry Parameters
    ring_epsilon: float = Field(
        default=1e-10,
        description="Distance below which consecutive ring points are merged"
    )
    shrink_start_factor: float = Field(
        default=0.98,
        description="First scale factor tried when shrinking a ring toward its centroid"
    )
    shrink_step: float = Field(
        default=0.01,
        description="Decrease of the scale factor between shrink attempts"
    )
    shrink_min_factor: float = Field(
        default=0.10,
        description="Last scale factor tried before the hard fallback"
    )
    shrink_fallback_factor: float = Field(
        default=0.05,
        description="Scale factor of the last-resort ring"
    )

    # Editing
    live_sync_interval_ms: float = Field(
        default=16.0,
        description="Minimum interval between live ring updates while dragging vertices"
    )
    default_parcel_name: str = Field(
        default="New parcel",
        description="Name given to a new parcel when none is provided"
    )
    default_parcel_color: str = Field(
        default="#3388ff",
        description="Color given to new parcels"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # CORS Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (use specific origins in production)"
    )

    # Rate Limiting
    rate_limit_requests: int = Field(
        default=100,
        description="Maximum requests per minute per client"
    )

    # Application Settings
    app_name: str = Field(
        default="Parcel Editor",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    debug: bool = Field(
        default=False,
        description="Debug mode"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
