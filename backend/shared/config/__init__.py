"""
Unified configuration access point

    from shared.config import get_settings
"""

from .settings import ApplicationSettings, Environment, get_settings, reload_settings

__all__ = ["ApplicationSettings", "Environment", "get_settings", "reload_settings"]
