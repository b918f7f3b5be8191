"""
Utility functions for the mirror-template service
"""

from .app_logger import configure_logging, get_logger, get_mirror_logger

__all__ = ["configure_logging", "get_logger", "get_mirror_logger"]
