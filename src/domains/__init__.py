# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer.

This package contains domain services that encapsulate business logic.
Each domain module provides services that orchestrate operations
across stores and the event bus.

Domains:
    pair_matching: Timed pair-matching games and progression unlocking.
"""
