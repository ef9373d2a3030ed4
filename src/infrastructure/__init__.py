# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer.

This package contains:
- database: SQLAlchemy async connections, ORM models, migrations, seeds
- events: In-memory event bus used for change notification
"""
