# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    pair_matching: Pair-matching games, sessions and progression.
"""

from fastapi import APIRouter

from src.api.v1 import pair_matching

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

# Include domain routers
router.include_router(pair_matching.router, prefix="/pair-matching", tags=["Pair Matching"])

__all__ = ["router"]
