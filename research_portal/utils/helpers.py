"""Shared utility functions for blueprints and services.

get_json_body:   request body as dict (never None)
require_fields:  400-style check for missing keys
ensure_utc:      normalise naive / aware datetimes to aware UTC
"""
from datetime import datetime, timezone

from flask import request


def get_json_body() -> dict:
    """Return the request JSON body, or an empty dict when absent/invalid."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def require_fields(data: dict, *fields: str) -> list[str]:
    """Return the names of *fields* that are missing or blank in *data*."""
    missing = []
    for name in fields:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime.

    SQLite hands back naive datetimes even for timezone=True columns;
    those are stored in UTC, so they are tagged rather than converted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
