"""Configuration package for the Folio snapshot service."""

from .settings import AppSettings, get_settings

__all__ = ["AppSettings", "get_settings"]
