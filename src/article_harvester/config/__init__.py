"""Configuration package for Article Harvester.

Re-exports the settings symbols so that callers can write::

    from article_harvester.config import get_settings
"""

from __future__ import annotations

from article_harvester.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
