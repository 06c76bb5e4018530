"""
HTTP surface for Mall Core.

An optional FastAPI layer over MallService. Run with any ASGI server
against ``storefront.mall_core.api.app:create_app`` (factory mode).
"""

from .app import create_app, error_status
from .config import Settings
from .routes import router

__all__ = [
    "create_app",
    "error_status",
    "Settings",
    "router",
]
