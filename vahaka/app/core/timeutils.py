"""
Server-side timestamps.

Documents carry ISO-8601 UTC strings so both store backends persist them
identically.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    return utcnow().isoformat()
