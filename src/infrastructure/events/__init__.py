# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event infrastructure module.

This module provides an in-memory event bus used as the change-notification
channel between the pair-matching core and its observers (UI, other tabs).

Components:
- EventBus: In-memory pub/sub with pattern matching
- EventTypes: Centralized event type constants
- EventPatterns: Wildcard patterns for group subscriptions

The bus is injected where it is needed; the API layer owns the instance.
"""

from src.infrastructure.events.bus import (
    EventBus,
    EventData,
    EventHandler,
)
from src.infrastructure.events.types import (
    EventPatterns,
    EventTypes,
)

__all__ = [
    "EventBus",
    "EventData",
    "EventHandler",
    "EventTypes",
    "EventPatterns",
]
