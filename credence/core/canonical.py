"""
Credence: Canonical JSON Encoding — RFC 8785 (JCS)

This is the ONLY canonicalization permitted in Credence.
Evaluation hashes, challenge hashes, settlement hashes and registry
chain hashes MUST all be computed through this module.

Object keys are sorted recursively by JCS, so two logically equal
records with differently ordered fields produce identical bytes.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib
from typing import Any

try:
    import jcs as _jcs
except ImportError as exc:
    raise ImportError(
        "Credence requires the 'jcs' package for RFC 8785 compliance.\n"
        "Install with: pip install jcs\n"
        f"Original error: {exc}"
    ) from exc


def canonicalize(obj: Any) -> bytes:
    """
    Encode a JSON value to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    All values must be JSON-primitive (str, int, float, bool, None, list, dict).
    Do NOT pass datetime objects or dataclasses — convert them first
    (every model exposes to_dict() / to_record() for this).

    Returns:
        UTF-8 encoded canonical JSON bytes.
    """
    return _jcs.canonicalize(obj)


def canonical_hash(obj: Any) -> str:
    """
    SHA-256 of the RFC 8785 canonical form.

    Returns:
        Lowercase hex-encoded SHA-256 digest (64 characters).
    """
    return hashlib.sha256(canonicalize(obj)).hexdigest()


def digest(value: Any) -> str:
    """
    Content address of a published value.

    Accepts plain JSON values, or any object with a to_dict() method.
    Same logical record → same digest, on any implementation that
    reproduces the field names and JCS.
    """
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    return canonical_hash(value)


def is_digest(value: Any) -> bool:
    """True if value looks like a digest() output: 64 lowercase hex chars."""
    if not isinstance(value, str) or len(value) != 64:
        return False
    return all(c in "0123456789abcdef" for c in value)
