"""
Configuration for the registry HTTP API.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP API configuration loaded from environment."""

    title: str = Field(default="Larder", description="OpenAPI title")

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    # Submission defaults (overridable per request)
    default_wait_applied: bool = Field(
        default=True, description="Wait for the applier before answering a submitted call"
    )

    model_config = {"env_prefix": "LARDER_HTTP_"}
