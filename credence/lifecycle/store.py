"""
Intent state, owned by the lifecycle.

IntentStore is an explicit store passed by reference: no module-level
registries. Its RLock is the lock the lifecycle holds across every
transition, so reads here are consistent with in-progress transitions.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from credence.core.exceptions import IntentNotFound, ValidationError
from credence.core.models import (
    CredibilityEvaluationIntent,
    Evaluation,
    FailureKind,
    IntentStatus,
    RefutationChallenge,
    Settlement,
)


@dataclass
class IntentRecord:
    """Mutable per-intent state. Only IntentLifecycle writes to it."""
    intent_id:            str
    intent:               CredibilityEvaluationIntent
    required_sources:     int
    confidence_threshold: float
    algorithm:            str
    deadline:             datetime
    reward:               int
    created_at:           datetime
    status:               IntentStatus = IntentStatus.PENDING
    evaluation:           Optional[Evaluation] = None
    challenge:            Optional[RefutationChallenge] = None
    settlement:           Optional[Settlement] = None
    failure:              Optional[FailureKind] = None
    failure_detail:       str = ""
    published:            List[str] = field(default_factory=list)

    @property
    def question(self) -> str:
        return self.intent.question

    @property
    def evaluation_hash(self) -> Optional[str]:
        return self.evaluation.hash if self.evaluation else None

    def to_dict(self) -> Dict:
        return {
            "intent_id":            self.intent_id,
            "question":             self.question,
            "status":               self.status.value,
            "required_sources":     self.required_sources,
            "confidence_threshold": self.confidence_threshold,
            "algorithm":            self.algorithm,
            "reward":               str(self.reward),
            "evaluation":           self.evaluation.to_dict() if self.evaluation else None,
            "challenge":            self.challenge.to_dict() if self.challenge else None,
            "settlement":           self.settlement.to_record() if self.settlement else None,
            "failure":              self.failure.value if self.failure else None,
            "failure_detail":       self.failure_detail,
        }


class IntentStore:
    """In-memory intents keyed by id, indexed by evaluation hash."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._records: Dict[str, IntentRecord] = {}
        self._by_evaluation: Dict[str, str] = {}

    def add(self, record: IntentRecord) -> IntentRecord:
        with self.lock:
            if record.intent_id in self._records:
                raise ValidationError("duplicate intent id", {"intent_id": record.intent_id})
            self._records[record.intent_id] = record
            return record

    def get(self, intent_id: str) -> IntentRecord:
        with self.lock:
            record = self._records.get(intent_id)
        if record is None:
            raise IntentNotFound("unknown intent", {"intent_id": intent_id})
        return record

    def index_evaluation(self, record: IntentRecord) -> None:
        if record.evaluation_hash is None:
            return
        with self.lock:
            self._by_evaluation[record.evaluation_hash] = record.intent_id

    def find_by_evaluation_hash(self, evaluation_hash: str) -> IntentRecord:
        with self.lock:
            intent_id = self._by_evaluation.get(evaluation_hash)
        if intent_id is None:
            raise IntentNotFound(
                "no intent holds this evaluation",
                {"evaluation_hash": evaluation_hash},
            )
        return self.get(intent_id)

    def with_status(self, *statuses: IntentStatus) -> List[IntentRecord]:
        with self.lock:
            return [r for r in self._records.values() if r.status in statuses]

    def __iter__(self) -> Iterator[IntentRecord]:
        with self.lock:
            return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, intent_id: str) -> bool:
        return intent_id in self._records
