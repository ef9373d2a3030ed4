# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database seed package.

This package loads authored pair-matching catalogs (YAML) into the
relational store.
"""

from src.infrastructure.database.seeds.pair_matching import (
    CatalogSeed,
    GameSeed,
    PairSeed,
    parse_catalog,
    seed_catalog,
    seed_catalog_from_yaml,
)

__all__ = [
    "CatalogSeed",
    "GameSeed",
    "PairSeed",
    "parse_catalog",
    "seed_catalog",
    "seed_catalog_from_yaml",
]
