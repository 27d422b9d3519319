"""Core configuration, database, security primitives and the role model."""

from steward.core.config import get_settings, settings
from steward.core.database import get_db

__all__ = ["get_settings", "settings", "get_db"]
