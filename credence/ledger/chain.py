"""
Chain client interface and the local registry-backed implementation.

The lifecycle publishes evaluations, accepted challenges and settlements
through a ChainClient. Transport and transaction format belong to the
implementation; the lifecycle only sees Receipt / ChainSubmissionError /
RecordNotFound.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Protocol, runtime_checkable

from credence.core.exceptions import ChainSubmissionError, LedgerError
from credence.ledger.registry import SettlementRegistry


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Receipt:
    """Proof that a record was accepted."""
    record_hash: str
    kind:        str
    sequence:    int
    entry_id:    str
    timestamp:   str


@runtime_checkable
class ChainClient(Protocol):
    def submit_record(self, kind: str, payload: Dict[str, Any], stake: int = 0) -> Receipt:
        """Publish one record. Raises ChainSubmissionError on failure."""
        ...

    def query_record(self, record_hash: str) -> Dict[str, Any]:
        """Return the published payload. Raises RecordNotFound."""
        ...


class LedgerChainClient:
    """ChainClient over a local SettlementRegistry."""

    def __init__(self, registry: SettlementRegistry):
        self.registry = registry

    def submit_record(self, kind: str, payload: Dict[str, Any], stake: int = 0) -> Receipt:
        try:
            entry = self.registry.append(kind, payload, stake)
        except (LedgerError, ValueError, TypeError) as exc:
            logger.error("Submitting %s record failed: %s", kind, exc)
            raise ChainSubmissionError(
                f"could not submit {kind} record",
                {"error": str(exc)},
            ) from exc
        return Receipt(
            record_hash= entry.record_hash,
            kind=        entry.kind,
            sequence=    entry.sequence,
            entry_id=    entry.entry_id,
            timestamp=   entry.timestamp,
        )

    def query_record(self, record_hash: str) -> Dict[str, Any]:
        return dict(self.registry.get(record_hash).payload)
