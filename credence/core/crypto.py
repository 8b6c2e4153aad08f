"""
credence/core/crypto.py

Registry signing keys.

The settlement registry signs every entry it appends with the operator's
Ed25519 key, so a published registry file can be checked offline by
anyone holding only the public key hex embedded in each entry.

Key contracts:
    public_key_hex          : @property → 64-char lowercase hex
    sign(data)              : bytes → base64url str, no padding
    verify_detached(...)    : @staticmethod — needs only a public key hex string
"""

import base64
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)


class Ed25519KeyManager:
    """Holds one registry operator key."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_key_hex: str = (
            private_key.public_key()
            .public_bytes(Encoding.Raw, PublicFormat.Raw)
            .hex()
        )

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path) -> "Ed25519KeyManager":
        """
        Load a PEM private key.
        Raises FileNotFoundError if missing, ValueError if not Ed25519.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        try:
            private_key = load_pem_private_key(path.read_bytes(), password=None)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Failed to load Ed25519 key from {path}: {exc}") from exc
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(f"Key file {path} does not contain an Ed25519 private key")
        return cls(private_key)

    @classmethod
    def load_or_generate(cls, path) -> "Ed25519KeyManager":
        """Load the key at path, creating and saving a new one if absent."""
        path = Path(path)
        if path.exists():
            return cls.from_file(path)
        key = cls.generate()
        key.save(path)
        return key

    # ── Public Key ────────────────────────────────────────────

    @property
    def public_key_hex(self) -> str:
        """64-character lowercase hex of the raw public key. A property."""
        return self._public_key_hex

    # ── Signing / Verification ────────────────────────────────

    def sign(self, data: bytes) -> str:
        """Sign data. Returns base64url without '=' padding (86 chars)."""
        raw_sig = self._private_key.sign(data)
        return base64.urlsafe_b64encode(raw_sig).rstrip(b"=").decode("ascii")

    def verify(self, data: bytes, signature_b64: str) -> bool:
        return Ed25519KeyManager.verify_detached(data, signature_b64, self._public_key_hex)

    @staticmethod
    def verify_detached(data: bytes, signature_b64: str, public_key_hex: str) -> bool:
        """
        Verify with ONLY a public key hex string.
        True if valid. False for ANY failure. Never raises.
        """
        if not isinstance(public_key_hex, str) or len(public_key_hex) != 64:
            return False
        if not isinstance(signature_b64, str) or not signature_b64:
            return False
        try:
            pub = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
            padded = signature_b64 + "=" * (-len(signature_b64) % 4)
            raw_sig = base64.urlsafe_b64decode(padded)
        except ValueError:
            return False
        if len(raw_sig) != 64:
            return False
        try:
            pub.verify(raw_sig, data)
        except InvalidSignature:
            return False
        return True

    # ── Persistence ───────────────────────────────────────────

    def save(self, path) -> None:
        """Write the private key as PKCS8 PEM. Creates parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        pem = self._private_key.private_bytes(
            encoding=             Encoding.PEM,
            format=               PrivateFormat.PKCS8,
            encryption_algorithm= NoEncryption(),
        )
        try:
            path.write_bytes(pem)
        except OSError as exc:
            raise RuntimeError(f"Failed to save Ed25519 key to {path}: {exc}") from exc

    def __repr__(self) -> str:
        return f"Ed25519KeyManager(public_key_hex={self._public_key_hex[:16]}...)"
