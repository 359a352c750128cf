"""SQLite schema migrations for runtime state."""

from smart_delivery.core.migrations.runner import apply_migrations

__all__ = ["apply_migrations"]
