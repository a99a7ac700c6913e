"""Key/value application settings stored in app_config."""

import logging
from typing import Dict, Optional

from wealthledger.db.connection import get_db

logger = logging.getLogger(__name__)

__all__ = ["get_config", "set_config", "get_config_prefixed"]


def get_config(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get a config value by key."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT value FROM app_config WHERE key = ?", (key,)
        ).fetchone()
        return row['value'] if row else default


def set_config(key: str, value: str) -> bool:
    """Set a config value (insert or update)."""
    with get_db() as conn:
        conn.execute(
            "INSERT INTO app_config (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
            (key, str(value))
        )
        return True


def get_config_prefixed(prefix: str) -> Dict[str, str]:
    """All config values whose key starts with prefix."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT key, value FROM app_config WHERE key LIKE ?", (prefix + '%',)
        ).fetchall()
        return {r['key']: r['value'] for r in rows}
