"""
credence/ledger/registry.py

Settlement Registry — append-only, signed, hash-chained record log.

append() MUST, in this exact order:
  1. Acquire lock
  2. Reject a record_hash that is already registered
  3. Build RegistryEntry.create(..., prev=last_entry)
  4. Sign it
  5. Append to JSONL — state does not advance if the write fails
  6. Advance sequence / last entry / hash index

Chain rule:
    causal_hash = SHA-256(JCS(prev.to_signing_dict()))     first = GENESIS_HASH

Entry kinds:
    evaluation   payload = Evaluation.to_record()     record_hash = evaluation_hash
    challenge    payload = RefutationChallenge.to_dict()  record_hash = challenge_hash
    settlement   payload = Settlement.to_record()     record_hash = settlement_hash
"""

import json
import logging
import threading
import uuid
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from credence.core.canonical import canonical_hash, canonicalize, digest, is_digest
from credence.core.crypto import Ed25519KeyManager
from credence.core.exceptions import LedgerError, RecordNotFound
from credence.core.models import (
    SchemaValidationResult,
    Settlement,
    compute_evaluation_hash,
    Source,
)
from credence.core.time import is_wire_timestamp, wire_timestamp


logger = logging.getLogger(__name__)


REGISTRY_VERSION = "1.0"
GENESIS_HASH     = "0" * 64


class RecordKind:
    EVALUATION = "evaluation"
    CHALLENGE  = "challenge"
    SETTLEMENT = "settlement"


_VALID_KINDS = {RecordKind.EVALUATION, RecordKind.CHALLENGE, RecordKind.SETTLEMENT}

_HASH_FIELD = {
    RecordKind.EVALUATION: "evaluation_hash",
    RecordKind.CHALLENGE:  "challenge_hash",
    RecordKind.SETTLEMENT: "settlement_hash",
}


def record_hash_of(kind: str, payload: Dict[str, Any]) -> str:
    """The content address a payload declares for itself."""
    declared = payload.get(_HASH_FIELD.get(kind, ""))
    return declared if declared else digest(payload)


def rederive_record_hash(kind: str, payload: Dict[str, Any]) -> str:
    """Recompute a payload's hash from its content alone, as an auditor would."""
    if kind == RecordKind.EVALUATION:
        return compute_evaluation_hash(
            payload["question"],
            [Source.from_dict(s) for s in payload.get("sources", [])],
            payload["answer"],
        )
    if kind == RecordKind.CHALLENGE:
        return digest({k: v for k, v in payload.items() if k != "challenge_hash"})
    if kind == RecordKind.SETTLEMENT:
        return Settlement.from_record(payload).compute_hash()
    raise ValueError(f"unknown record kind {kind!r}")


# ─────────────────────────────────────────────────────────────
# RegistryEntry
# ─────────────────────────────────────────────────────────────

@dataclass
class RegistryEntry:
    registry_version:  str
    entry_id:          str
    kind:              str
    record_hash:       str
    stake:             str
    sequence:          int
    timestamp:         str
    causal_hash:       str
    signer_public_key: str
    payload:           Dict[str, Any] = field(default_factory=dict)
    signature:         Optional[str] = None

    @classmethod
    def create(
        cls,
        kind:              str,
        payload:           Dict[str, Any],
        stake:             int,
        sequence:          int,
        signer_public_key: str,
        prev:              Optional["RegistryEntry"] = None,
    ) -> "RegistryEntry":
        if kind not in _VALID_KINDS:
            raise ValueError(f"Invalid record kind '{kind}'. Valid: {sorted(_VALID_KINDS)}")
        if not isinstance(payload, dict):
            raise TypeError(f"payload must be dict, got {type(payload).__name__}")
        if not isinstance(stake, int) or isinstance(stake, bool) or stake < 0:
            raise ValueError(f"stake must be non-negative int, got {stake!r}")
        return cls(
            registry_version=  REGISTRY_VERSION,
            entry_id=          f"rec-{uuid.uuid4()}",
            kind=              kind,
            record_hash=       record_hash_of(kind, payload),
            stake=             str(stake),
            sequence=          sequence,
            timestamp=         wire_timestamp(),
            causal_hash=       cls.chain_hash(prev),
            signer_public_key= signer_public_key,
            payload=           payload,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryEntry":
        """Trusts persisted data. Callers MUST call validate_schema()."""
        return cls(
            registry_version=  data["registry_version"],
            entry_id=          data["entry_id"],
            kind=              data["kind"],
            record_hash=       data["record_hash"],
            stake=             data["stake"],
            sequence=          data["sequence"],
            timestamp=         data["timestamp"],
            causal_hash=       data["causal_hash"],
            signer_public_key= data["signer_public_key"],
            payload=           data.get("payload", {}),
            signature=         data.get("signature"),
        )

    def to_signing_dict(self) -> Dict[str, Any]:
        """Everything except the signature. Also the chain dict."""
        return {
            "registry_version":  self.registry_version,
            "entry_id":          self.entry_id,
            "kind":              self.kind,
            "record_hash":       self.record_hash,
            "stake":             self.stake,
            "sequence":          self.sequence,
            "timestamp":         self.timestamp,
            "causal_hash":       self.causal_hash,
            "signer_public_key": self.signer_public_key,
            "payload":           self.payload,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_signing_dict()
        d["signature"] = self.signature
        return d

    @staticmethod
    def chain_hash(prev: Optional["RegistryEntry"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return canonical_hash(prev.to_signing_dict())

    def sign(self, key_manager: Ed25519KeyManager) -> "RegistryEntry":
        self.signature = key_manager.sign(canonicalize(self.to_signing_dict()))
        return self

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return Ed25519KeyManager.verify_detached(
            canonicalize(self.to_signing_dict()), self.signature, self.signer_public_key,
        )

    def verify_chain(self, prev: Optional["RegistryEntry"]) -> bool:
        return self.causal_hash == RegistryEntry.chain_hash(prev)

    def validate_schema(self) -> SchemaValidationResult:
        errors: List[str] = []
        if self.registry_version != REGISTRY_VERSION:
            errors.append(
                f"registry_version: expected '{REGISTRY_VERSION}', got '{self.registry_version}'"
            )
        if self.kind not in _VALID_KINDS:
            errors.append(f"kind '{self.kind}' not in valid set: {sorted(_VALID_KINDS)}")
        if not isinstance(self.entry_id, str) or not self.entry_id.startswith("rec-"):
            errors.append(f"entry_id must start with 'rec-', got {self.entry_id!r}")
        if not isinstance(self.sequence, int) or self.sequence < 0:
            errors.append(f"sequence must be non-negative int, got {self.sequence!r}")
        if not isinstance(self.stake, str) or not self.stake.isdigit():
            errors.append(f"stake must be a non-negative integer string, got {self.stake!r}")
        if not is_wire_timestamp(self.timestamp):
            errors.append(f"timestamp {self.timestamp!r} is not wire format")
        for name in ("record_hash", "causal_hash"):
            if not is_digest(getattr(self, name)):
                errors.append(f"{name} must be 64 lowercase hex chars")
        if not is_digest(self.signer_public_key):
            errors.append("signer_public_key must be 64 lowercase hex chars")
        if not isinstance(self.payload, dict):
            errors.append(f"payload must be dict, got {type(self.payload).__name__}")
        return SchemaValidationResult(valid=not errors, errors=errors)


# ─────────────────────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────────────────────

class SettlementRegistry:
    """
    Append-only record registry backed by <registry_dir>/registry.jsonl.

    Thread-safe via internal lock (single-process only).
    State survives restart by reloading the file on __init__.
    """

    def __init__(
        self,
        key_manager:  Ed25519KeyManager,
        registry_dir: str = ".credence/registry",
    ) -> None:
        self.key_manager = key_manager

        self._lock = threading.Lock()
        self._entries: List[RegistryEntry] = []
        self._by_hash: Dict[str, RegistryEntry] = {}

        self._dir = Path(registry_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self.path = self._dir / "registry.jsonl"

        self._restore_state()

    # ── Public API ────────────────────────────────────────────

    def append(self, kind: str, payload: Dict[str, Any], stake: int = 0) -> RegistryEntry:
        """Sign and append one record. Raises LedgerError on duplicate or I/O failure."""
        with self._lock:
            entry = RegistryEntry.create(
                kind=              kind,
                payload=           payload,
                stake=             stake,
                sequence=          len(self._entries),
                signer_public_key= self.key_manager.public_key_hex,
                prev=              self._entries[-1] if self._entries else None,
            )
            if entry.record_hash in self._by_hash:
                raise LedgerError(
                    "record already registered",
                    {"kind": kind, "record_hash": entry.record_hash},
                )
            entry.sign(self.key_manager)
            self._write(entry)
            self._entries.append(entry)
            self._by_hash[entry.record_hash] = entry
            logger.debug("Registered %s %s at #%d", kind, entry.record_hash[:12], entry.sequence)
            return entry

    def get(self, record_hash: str) -> RegistryEntry:
        entry = self._by_hash.get(record_hash)
        if entry is None:
            raise RecordNotFound("no record with this hash", {"record_hash": record_hash})
        return entry

    def __contains__(self, record_hash: str) -> bool:
        return record_hash in self._by_hash

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def entries_of_kind(self, kind: str) -> List[RegistryEntry]:
        return [e for e in self._entries if e.kind == kind]

    def verify_chain(self):
        """Audit the in-memory entries. Returns an AuditReport; never raises."""
        from credence.ledger.audit import audit_entries
        return audit_entries(list(self._entries))

    def get_stats(self) -> Dict[str, Any]:
        counts: Dict[str, int] = {}
        for entry in self._entries:
            counts[entry.kind] = counts.get(entry.kind, 0) + 1
        last = self._entries[-1] if self._entries else None
        return {
            "total_entries":  len(self._entries),
            "by_kind":        counts,
            "head_hash":      RegistryEntry.chain_hash(last),
            "registry_file":  str(self.path),
            "signer":         self.key_manager.public_key_hex,
        }

    # ── Internal ──────────────────────────────────────────────

    def _restore_state(self) -> None:
        """
        Reload entries from disk. A corrupt line stops the reload and issues
        a RuntimeWarning; run `credence verify` before appending further.
        """
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = RegistryEntry.from_dict(json.loads(line))
                except (json.JSONDecodeError, KeyError, TypeError) as exc:
                    warnings.warn(
                        f"SettlementRegistry: could not restore line {line_num} "
                        f"of {self.path}: {exc}. Run `credence verify` before appending.",
                        RuntimeWarning,
                        stacklevel=3,
                    )
                    return
                self._entries.append(entry)
                self._by_hash[entry.record_hash] = entry

    def _write(self, entry: RegistryEntry) -> None:
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict()) + "\n")
        except OSError as exc:
            raise LedgerError(f"registry write failed — {exc}") from exc
