# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""YAML file loader used for catalog seed files.

Example:
    >>> from src.core.config.yaml_loader import load_yaml
    >>> catalog = load_yaml("config/catalog.yaml", required_keys=("games",))
"""

from collections.abc import Iterable
from pathlib import Path
from typing import Any

import yaml


class YAMLLoadError(Exception):
    """Raised when YAML file cannot be loaded or parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load YAML file '{path}': {reason}")


def load_yaml(path: Path | str, required_keys: Iterable[str] = ()) -> dict[str, Any]:
    """Load a YAML mapping.

    Args:
        path: Path to the YAML file to load.
        required_keys: Top-level keys that must be present.

    Returns:
        Dictionary containing the parsed YAML contents.
        Empty dict if file is empty and no keys are required.

    Raises:
        YAMLLoadError: If the file is missing or unreadable, is not a
            mapping, or lacks a required key.
    """
    path = Path(path)
    if not path.is_file():
        raise YAMLLoadError(path, "File does not exist")

    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise YAMLLoadError(path, f"Cannot read file: {e}") from e
    except yaml.YAMLError as e:
        raise YAMLLoadError(path, f"Invalid YAML syntax: {e}") from e

    if parsed is None:
        parsed = {}
    if not isinstance(parsed, dict):
        raise YAMLLoadError(path, f"YAML root must be a mapping, got {type(parsed).__name__}")

    missing = [key for key in required_keys if key not in parsed]
    if missing:
        raise YAMLLoadError(path, f"Missing required keys: {', '.join(missing)}")

    return parsed
