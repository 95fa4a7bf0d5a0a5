"""
Security helpers for permastore.

- Redacting URLs and secrets before they reach the logs
- Locator shape validation for read-path requests
- Bounded JSON parsing for caller-supplied tag maps
"""

from __future__ import annotations

import json
import re
from typing import Any
from urllib.parse import urlsplit, urlunsplit

# Arweave transaction ids: 32 bytes, base64url without padding
LOCATOR_PATTERN = re.compile(r"^[A-Za-z0-9_-]{43}$")

# Dangerous keys that should never appear in parsed JSON
DANGEROUS_KEYS = frozenset({"__proto__", "constructor", "prototype"})


def sanitize_for_logging(url: str) -> str:
    """
    Strip credentials, query string and fragment from a URL.

    Example:
        >>> sanitize_for_logging("https://user:pw@node1.irys.xyz/tx?key=abc")
        'https://node1.irys.xyz/tx'
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, host, parts.path, "", ""))


def is_valid_locator(locator: str) -> bool:
    """Check whether a string looks like a network transaction id."""
    return bool(LOCATOR_PATTERN.match(locator or ""))


def safe_json_parse(json_string: str, max_depth: int = 20) -> Any:
    """
    Parse JSON, rejecting deep nesting and prototype-pollution keys.

    Raises:
        ValueError: If the document is malformed, too deep or unsafe.
    """
    try:
        data = json.loads(json_string)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e.msg}") from e

    def check(obj: Any, depth: int = 0) -> None:
        if depth > max_depth:
            raise ValueError(f"JSON nesting exceeds {max_depth} levels")
        if isinstance(obj, dict):
            for key, value in obj.items():
                if key in DANGEROUS_KEYS:
                    raise ValueError(f"Forbidden JSON key: {key}")
                check(value, depth + 1)
        elif isinstance(obj, list):
            for item in obj:
                check(item, depth + 1)

    check(data)
    return data
