"""Runtime settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings pulled from MAPGEN_* environment variables or a .env file."""

    model_config = SettingsConfigDict(env_prefix="MAPGEN_", env_file=".env", extra="ignore")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (json or console)")

    # Map Generation Configuration
    default_seed: str = Field(default="default", description="Seed used when none is given")
    default_map_width: float = Field(default=800, description="Default map width")
    default_map_height: float = Field(default=600, description="Default map height")
    default_min_distance: float = Field(default=10.0, description="Default Poisson-disc spacing")
    default_engine: str = Field(default="blob", description="Default elevation engine")


settings = Settings()
