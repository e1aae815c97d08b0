"""Content fingerprint used to detect unchanged title content."""
from __future__ import annotations

import hashlib


def fingerprint(content: str | bytes) -> str:
    """SHA-256 hex digest of the raw content (UTF-8 for text)."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()
