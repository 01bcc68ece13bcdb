"""Utility functions for the data engine."""

from hera_kernel.utils.hashing import canonicalize_json, hash_payload
from hera_kernel.utils.idempotency import emit_fingerprint, normalize_idempotency_key

__all__ = [
    "canonicalize_json",
    "emit_fingerprint",
    "hash_payload",
    "normalize_idempotency_key",
]
