"""
stackwire configuration.

Pydantic-based settings loaded from environment variables (STACKWIRE_ prefix)
and an optional .env file.
"""

from stackwire.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
