"""Shared helpers for models loaded from either database backend."""

import json
from typing import Any


def parse_json_column(value: Any) -> Any:
    """SQLite hands JSON columns back as text; PostgreSQL JSONB arrives decoded."""
    if isinstance(value, str):
        return json.loads(value)
    return value
