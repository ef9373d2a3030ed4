"""Pair-matching game service.

Timed term/definition matching games organised in levels and stages,
with per-player progression unlocking.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
