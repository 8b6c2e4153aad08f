"""
credence/ledger/audit.py

Registry Auditor — offline verification of a registry.jsonl file.

Checks, per entry:
    1. Schema     → entry.validate_schema()
    2. Sequence   → sequence == position in file
    3. Chain      → entry.verify_chain(prev)
    4. Signature  → entry.verify_signature()
    5. Content    → record_hash re-derived from the payload alone
    6. Reference  → challenges and settlements point at an earlier evaluation
    7. Amounts    → settlement passes the same conservation check as at emit time

Violations are collected, never raised: the auditor reports every problem
in one pass. Only an unreadable file raises (ValueError / FileNotFoundError).
"""

import json
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from credence.core.exceptions import CredenceError, SettlementInvariantViolation
from credence.core.models import SchemaValidationResult, Stakes, Winner
from credence.ledger.registry import (
    RecordKind,
    RegistryEntry,
    rederive_record_hash,
)
from credence.settlement.calculator import check_conservation


@dataclass
class RegistryViolation:
    """A single detected violation in the registry."""
    at_sequence:    int
    entry_id:       str
    violation_type: str   # "schema" | "sequence_gap" | "chain_break" | "invalid_signature"
                          # | "record_hash" | "dangling_reference" | "conservation"
    detail:         str


@dataclass
class AuditReport:
    """Aggregate result of a full registry audit."""
    total_entries:      int
    violations:         List[RegistryViolation] = field(default_factory=list)
    valid_signatures:   int = 0
    invalid_signatures: int = 0
    kind_counts:        Dict[str, int] = field(default_factory=dict)
    head_hash:          Optional[str] = None
    first_timestamp:    Optional[str] = None
    last_timestamp:     Optional[str] = None

    @property
    def valid(self) -> bool:
        return not self.violations

    @property
    def chain_valid(self) -> bool:
        return not any(v.violation_type == "chain_break" for v in self.violations)

    def of_type(self, violation_type: str) -> List[RegistryViolation]:
        return [v for v in self.violations if v.violation_type == violation_type]

    def to_dict(self) -> Dict:
        return {
            "total_entries":      self.total_entries,
            "valid":              self.valid,
            "chain_valid":        self.chain_valid,
            "head_hash":          self.head_hash,
            "valid_signatures":   self.valid_signatures,
            "invalid_signatures": self.invalid_signatures,
            "kind_counts":        self.kind_counts,
            "first_timestamp":    self.first_timestamp,
            "last_timestamp":     self.last_timestamp,
            "violation_count":    len(self.violations),
            "violations": [
                {
                    "at_sequence":    v.at_sequence,
                    "entry_id":       v.entry_id,
                    "violation_type": v.violation_type,
                    "detail":         v.detail,
                }
                for v in self.violations
            ],
        }


def load_entries(path) -> List[RegistryEntry]:
    """
    Parse a registry file. Raises FileNotFoundError if missing and
    ValueError on a line that is not a registry entry.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Registry not found: {path}")
    entries: List[RegistryEntry] = []
    with open(path, "r", encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(RegistryEntry.from_dict(json.loads(line)))
            except json.JSONDecodeError as exc:
                raise ValueError(f"line {line_num}: malformed JSON ({exc})") from exc
            except (KeyError, TypeError) as exc:
                raise ValueError(f"line {line_num}: not a registry entry ({exc})") from exc
    return entries


def audit_entries(entries: List[RegistryEntry]) -> AuditReport:
    report = AuditReport(total_entries=len(entries))
    evaluations_seen = set()
    prev: Optional[RegistryEntry] = None

    def flag(entry: RegistryEntry, kind: str, detail: str) -> None:
        report.violations.append(RegistryViolation(
            at_sequence=    entry.sequence if isinstance(entry.sequence, int) else -1,
            entry_id=       str(entry.entry_id),
            violation_type= kind,
            detail=         detail,
        ))

    for position, entry in enumerate(entries):
        schema: SchemaValidationResult = entry.validate_schema()
        if not schema:
            flag(entry, "schema", "; ".join(schema.errors))

        if entry.sequence != position:
            flag(entry, "sequence_gap", f"expected sequence {position}, got {entry.sequence}")

        if not entry.verify_chain(prev):
            flag(entry, "chain_break", "causal_hash does not commit to the previous entry")

        if entry.verify_signature():
            report.valid_signatures += 1
        else:
            report.invalid_signatures += 1
            flag(entry, "invalid_signature", "Ed25519 signature does not verify")

        if schema:
            _check_content(entry, evaluations_seen, flag)

        if entry.kind == RecordKind.EVALUATION:
            evaluations_seen.add(entry.record_hash)
        prev = entry

    report.kind_counts = dict(Counter(e.kind for e in entries))
    report.head_hash = RegistryEntry.chain_hash(prev)
    if entries:
        report.first_timestamp = entries[0].timestamp
        report.last_timestamp = entries[-1].timestamp
    return report


def audit_file(path) -> AuditReport:
    return audit_entries(load_entries(path))


# ── Internal ──────────────────────────────────────────────────

def _check_content(entry: RegistryEntry, evaluations_seen: set, flag) -> None:
    payload = entry.payload
    try:
        derived = rederive_record_hash(entry.kind, payload)
    except (KeyError, TypeError, ValueError, CredenceError) as exc:
        flag(entry, "record_hash", f"payload cannot be re-hashed ({exc})")
        return
    if derived != entry.record_hash:
        flag(entry, "record_hash", f"re-derived {derived[:16]}… != recorded {entry.record_hash[:16]}…")

    if entry.kind in (RecordKind.CHALLENGE, RecordKind.SETTLEMENT):
        ref = payload.get("evaluation_hash")
        if ref not in evaluations_seen:
            flag(entry, "dangling_reference", f"evaluation {str(ref)[:16]}… not registered earlier")

    if entry.kind == RecordKind.SETTLEMENT:
        try:
            rewards = {k: int(v) for k, v in payload.get("reward_distribution", {}).items()}
            slashing = {k: int(v) for k, v in payload.get("slashing_distribution", {}).items()}
        except (AttributeError, TypeError, ValueError) as exc:
            flag(entry, "conservation", f"non-integer amount ({exc})")
            return
        # A decided settlement pays the slashed stake to the winner; a tie forfeits nothing.
        forfeited = sum(slashing.values()) if payload.get("winner") != Winner.TIE.value else 0
        try:
            check_conservation(
                rewards, slashing, Stakes(reward=int(entry.stake), evaluator_stake=0), forfeited,
            )
        except SettlementInvariantViolation as exc:
            flag(entry, "conservation", str(exc))
