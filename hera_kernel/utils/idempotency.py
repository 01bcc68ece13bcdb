"""
Idempotency key handling for transaction emits.

The key is caller-chosen and unique per organization.  Alongside it the engine
stores a fingerprint of the emit payload so a retry that reuses a key with a
different body can be detected and logged.
"""

from typing import Any

from hera_kernel.exceptions import InvalidPayloadError
from hera_kernel.utils.hashing import hash_payload

MAX_IDEMPOTENCY_KEY_LENGTH = 255


def normalize_idempotency_key(key: Any) -> str | None:
    """
    Validate a caller-supplied idempotency key.

    Returns:
        The stripped key, or None when no key was supplied.

    Raises:
        InvalidPayloadError: key is not a string or is too long.
    """
    if key is None:
        return None
    if not isinstance(key, str):
        raise InvalidPayloadError(
            "idempotency_key must be a string", field="idempotency_key"
        )
    stripped = key.strip()
    if not stripped:
        return None
    if len(stripped) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise InvalidPayloadError(
            f"idempotency_key exceeds {MAX_IDEMPOTENCY_KEY_LENGTH} characters",
            field="idempotency_key",
        )
    return stripped


def emit_fingerprint(header: dict[str, Any], lines: list[dict[str, Any]]) -> str:
    """SHA-256 over the header and lines exactly as the caller sent them."""
    return hash_payload({"header": header, "lines": lines})
