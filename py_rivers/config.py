"""Configuration management."""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings pulled from PY_RIVERS_* environment variables or .env."""

    # Generation
    seed: str = Field(default="default", description="Seed for reproducible generation")
    resolve_depressions_steps: int = Field(
        default=250, description="Iteration budget for depression resolution"
    )
    allow_erosion: bool = Field(
        default=True, description="Commit resolved heights back as base heights"
    )

    # Lakes
    lake_elevation_limit: float = Field(
        default=20, description="Depth of depressions still able to hold open lakes"
    )
    height_exponent: float = Field(default=2.0, description="Height to meters exponent")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (plain or json)")

    class Config:
        env_prefix = "PY_RIVERS_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
