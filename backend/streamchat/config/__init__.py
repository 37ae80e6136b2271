"""Configuration module for streamchat."""

from streamchat.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
