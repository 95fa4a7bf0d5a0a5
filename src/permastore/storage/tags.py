"""
Tag construction for stored objects.

Tags are an ordered sequence of (name, value) string pairs. Mandatory tags
always come first; caller tags are appended afterwards and may not reuse a
reserved name.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Mapping, Optional, Sequence, Tuple

from permastore.errors.storage import InvalidTagError
from permastore.storage.types import Tag, TagInput

APP_NAME = "Chronos-Vault"
APP_VERSION = "1.0.0"

TAG_APP_NAME = "App-Name"
TAG_APP_VERSION = "App-Version"
TAG_CONTENT_TYPE = "Content-Type"
TAG_VAULT_ID = "Vault-Id"
TAG_USER_ID = "User-Id"
TAG_TIMESTAMP = "Timestamp"
TAG_SECURITY_LEVEL = "Security-Level"
TAG_ENCRYPTION = "Encryption"

RESERVED_TAG_NAMES = frozenset(
    name.lower()
    for name in (
        TAG_APP_NAME,
        TAG_APP_VERSION,
        TAG_CONTENT_TYPE,
        TAG_VAULT_ID,
        TAG_USER_ID,
        TAG_TIMESTAMP,
        TAG_SECURITY_LEVEL,
        TAG_ENCRYPTION,
    )
)

# Limits enforced by the bundler for data item tags
MAX_TAGS = 128
MAX_TAG_NAME_BYTES = 1024
MAX_TAG_VALUE_BYTES = 3072


def _normalize(tags: Optional[TagInput]) -> List[Tuple[str, str]]:
    if not tags:
        return []
    if isinstance(tags, Mapping):
        return [(name, value) for name, value in tags.items()]
    return [(name, value) for name, value in tags]


def validate_custom_tags(tags: Optional[TagInput]) -> List[Tag]:
    """
    Validate caller tags and return them as ordered pairs.

    Raises:
        InvalidTagError: On non-string or empty names, oversized or
            non-ASCII tags, duplicate names, or a reserved name.
    """
    pairs = _normalize(tags)
    seen = set()
    validated: List[Tag] = []

    for name, value in pairs:
        if not isinstance(name, str) or not name.strip():
            raise InvalidTagError(str(name), reason="tag name must be a non-empty string")
        if not isinstance(value, str):
            raise InvalidTagError(name, reason="tag value must be a string")
        if name.lower() in RESERVED_TAG_NAMES:
            raise InvalidTagError(name, reason="reserved tag name")
        if name.lower() in seen:
            raise InvalidTagError(name, reason="duplicate tag name")
        # Sent as HTTP headers
        if not (name.isascii() and value.isascii()):
            raise InvalidTagError(name, reason="tag must be ASCII")
        if len(name.encode("utf-8")) > MAX_TAG_NAME_BYTES:
            raise InvalidTagError(name, reason=f"name exceeds {MAX_TAG_NAME_BYTES} bytes")
        if len(value.encode("utf-8")) > MAX_TAG_VALUE_BYTES:
            raise InvalidTagError(name, reason=f"value exceeds {MAX_TAG_VALUE_BYTES} bytes")
        seen.add(name.lower())
        validated.append((name, value))

    return validated


def validate_owner_tags(user_id: str, vault_id: str) -> None:
    """Reject owner ids that cannot travel as tag headers."""
    for name, value in ((TAG_USER_ID, str(user_id)), (TAG_VAULT_ID, str(vault_id))):
        if not value or not value.isascii():
            raise InvalidTagError(name, reason="tag must be non-empty ASCII")


def build_tags(
    *,
    content_type: str,
    vault_id: str,
    user_id: str,
    security_tier: str,
    encryption_type: str = "none",
    custom_tags: Optional[TagInput] = None,
    timestamp: Optional[datetime] = None,
) -> List[Tag]:
    """
    Build the full tag list for an upload.

    Example:
        >>> build_tags(content_type="text/plain", vault_id="v1", user_id="u1",
        ...            security_tier="standard")[0]
        ('App-Name', 'Chronos-Vault')
    """
    ts = timestamp or datetime.now(timezone.utc)
    mandatory: List[Tag] = [
        (TAG_APP_NAME, APP_NAME),
        (TAG_APP_VERSION, APP_VERSION),
        (TAG_CONTENT_TYPE, content_type),
        (TAG_VAULT_ID, str(vault_id)),
        (TAG_USER_ID, str(user_id)),
        (TAG_TIMESTAMP, str(int(ts.timestamp() * 1000))),
        (TAG_SECURITY_LEVEL, security_tier),
        (TAG_ENCRYPTION, encryption_type),
    ]
    custom = validate_custom_tags(custom_tags)

    tags = mandatory + custom
    if len(tags) > MAX_TAGS:
        raise InvalidTagError(
            custom[-1][0] if custom else TAG_ENCRYPTION,
            reason=f"at most {MAX_TAGS} tags allowed",
        )
    return tags


def tags_to_headers(tags: Sequence[Tag]) -> dict:
    """Encode tags as ``x-tag-{i}-name`` / ``x-tag-{i}-value`` headers."""
    headers = {}
    for i, (name, value) in enumerate(tags):
        headers[f"x-tag-{i}-name"] = name
        headers[f"x-tag-{i}-value"] = value
    return headers
