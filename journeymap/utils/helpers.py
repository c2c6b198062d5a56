"""Shared identifier and clock helpers used by every entity constructor."""

import re
import uuid
from datetime import datetime, timezone
from urllib.parse import urlparse


def generate_id() -> str:
    """Return a new opaque entity id (uuid4 string)."""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision.

    Matches the ``2024-05-01T09:30:00.000Z`` shape already found in
    persisted snapshots, so old and new timestamps sort together.
    """
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def extract_domain(url: str | None) -> str | None:
    """Extract the bare host of a website URL (``https://www.airbnb.com`` → ``airbnb.com``).

    Returns None for empty or unparseable input.
    """
    trimmed = (url or "").strip()
    if not trimmed:
        return None
    href = trimmed if re.match(r"^https?://", trimmed, re.IGNORECASE) else "https://" + trimmed
    try:
        hostname = urlparse(href).hostname or ""
    except ValueError:
        return None
    hostname = re.sub(r"^www\.", "", hostname)
    return hostname or None
