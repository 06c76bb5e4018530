"""
Configuration for the Mall Core HTTP surface.

Uses pydantic-settings for environment variable loading. Store, cache and
logging settings stay in mall_core.config; this only covers the HTTP layer.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP surface configuration loaded from environment."""

    # Identity is asserted by the upstream auth proxy
    user_header: str = Field(default="X-User-ID", description="Header carrying the user id")

    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    model_config = {"env_prefix": "MALL_API_"}
