"""Core app configuration and database."""

from app.core.config import get_settings, settings
from app.core.database import Store

__all__ = ["get_settings", "settings", "Store"]
