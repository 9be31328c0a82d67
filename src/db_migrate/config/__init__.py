"""Configuration management: environment loading and settings models.

Usage:
    >>> from db_migrate.config import load_settings, MigrationSettings, DuplicateStrategy
"""

from db_migrate.config.loader import load_settings
from db_migrate.config.models import (
    DestinationSettings,
    DuplicateStrategy,
    MigrationSettings,
    SourceSettings,
)

__all__ = [
    "load_settings",
    "MigrationSettings",
    "SourceSettings",
    "DestinationSettings",
    "DuplicateStrategy",
]
