# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package.

This package provides centralized configuration management:
- Settings: Pydantic-based settings loaded from environment variables
- YAML loader: Utilities for loading YAML catalog files

Example:
    >>> from src.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'

    >>> from src.core.config import load_yaml
    >>> catalog = load_yaml(Path("config/catalog.yaml"))
"""

from src.core.config.settings import (
    APISettings,
    CORSSettings,
    DatabaseSettings,
    PairMatchingSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)
from src.core.config.yaml_loader import (
    YAMLLoadError,
    load_yaml,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "PairMatchingSettings",
    "CORSSettings",
    "APISettings",
    # YAML utilities
    "load_yaml",
    "YAMLLoadError",
]
