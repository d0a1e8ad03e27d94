"""Application configuration and observability helpers."""

from .config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
