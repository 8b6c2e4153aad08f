"""
credence/core/models.py

Credence Data Model

═══════════════════════════════════════════════════════════════════
PUBLISHED RECORD CONTRACTS — changes require a record version bump.
═══════════════════════════════════════════════════════════════════

CONTRACT 1 — Evaluation hash
    evaluation_hash = digest({question, sources (sorted by url, title), answer})
    assigned once, when status becomes "evaluated"

CONTRACT 2 — Challenge hash
    challenge_hash  = digest(challenge.to_hash_dict())   (all fields but the hash)

CONTRACT 3 — Settlement hash
    settlement_hash = digest(settlement.to_hash_dict())  (all fields but the hash)

CONTRACT 4 — Amounts
    integers in the ledger's smallest unit, published as decimal strings

CONTRACT 5 — Timestamp
    format = YYYY-MM-DDTHH:MM:SS.mmmZ   source = credence/core/time.py

═══════════════════════════════════════════════════════════════════
CROSS-LANGUAGE GUARANTEE
═══════════════════════════════════════════════════════════════════
Any implementation that reproduces the to_hash_dict() field names and
values and passes them through RFC 8785 JCS + SHA-256 re-derives the
same evaluation, challenge and settlement hashes from published records.
═══════════════════════════════════════════════════════════════════
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from credence.core.canonical import digest
from credence.core.exceptions import (
    InconclusiveVote,
    InsufficientSources,
    LowConfidence,
    ValidationError,
)
from credence.core.time import wire_timestamp


# ─────────────────────────────────────────────────────────────
# Vocabulary
# ─────────────────────────────────────────────────────────────

class EvaluationStatus(str, Enum):
    PENDING   = "pending"
    EVALUATED = "evaluated"
    ERROR     = "error"


class IntentStatus(str, Enum):
    PENDING    = "pending"
    EVALUATED  = "evaluated"
    CHALLENGED = "challenged"
    SETTLED    = "settled"
    ERROR      = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (IntentStatus.SETTLED, IntentStatus.ERROR)


class IntentType(str, Enum):
    CREDIBILITY_EVALUATION = "credibility_evaluation"
    REFUTATION_CHALLENGE   = "refutation_challenge"
    ORACLE_SETTLEMENT      = "oracle_settlement"


class Algorithm(str, Enum):
    MEDIAN           = "median"
    WEIGHTED_AVERAGE = "weighted_average"
    MAJORITY_VOTE    = "majority_vote"


class FailureKind(str, Enum):
    """Why an evaluation or intent ended in error. Callers render these."""
    INSUFFICIENT_SOURCES = "insufficient_sources"
    LOW_CONFIDENCE       = "low_confidence"
    TIED_VOTE            = "tied_vote"
    DEADLINE_ELAPSED     = "deadline_elapsed"


class Winner(str, Enum):
    EVALUATOR  = "evaluator"
    CHALLENGER = "challenger"
    TIE        = "tie"


# ─────────────────────────────────────────────────────────────
# Evidence
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Source:
    """A piece of evidence: a titled http(s) URL."""
    title: str
    url:   str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "url": self.url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Source":
        return cls(title=data.get("title", ""), url=data.get("url", ""))


@dataclass(frozen=True)
class ProviderAnswer:
    """
    One provider's verdict backed by one source.

    rank is the provider's priority (lower wins first-seen deduplication).
    It is assigned by the collector, not by the provider.
    """
    source:      Source
    answer:      bool
    confidence:  float
    provider_id: str = ""
    rank:        int = 0

    def has_valid_confidence(self) -> bool:
        return (
            isinstance(self.confidence, (int, float))
            and not isinstance(self.confidence, bool)
            and math.isfinite(self.confidence)
            and 0.0 <= self.confidence <= 1.0
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source":      self.source.to_dict(),
            "answer":      self.answer,
            "confidence":  self.confidence,
            "provider_id": self.provider_id,
            "rank":        self.rank,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderAnswer":
        source = data.get("source")
        if source is None:
            source = {"title": data.get("title", ""), "url": data.get("url", "")}
        answer = data["answer"]
        if not isinstance(answer, bool):
            raise ValueError(f"answer must be true or false, got {answer!r}")
        return cls(
            source=      Source.from_dict(source),
            answer=      answer,
            confidence=  float(data["confidence"]),
            provider_id= str(data.get("provider_id", "")),
            rank=        int(data.get("rank", 0)),
        )


def _sorted_source_dicts(sources) -> List[Dict[str, str]]:
    return sorted(
        (s.to_dict() for s in sources),
        key=lambda d: (d["url"], d["title"]),
    )


def compute_evaluation_hash(question: str, sources, answer: bool) -> str:
    """CONTRACT 1. Source order does not affect the hash."""
    return digest({
        "question": question,
        "sources":  _sorted_source_dicts(sources),
        "answer":   answer,
    })


# ─────────────────────────────────────────────────────────────
# Evaluation
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Evaluation:
    """
    A consensus verdict plus its supporting evidence.

    Build through evaluated() / failed() / pending() only. evaluated() is
    the single place a hash is assigned; the dataclass is frozen so it
    never changes afterwards.
    """

    question:       str
    sources:        Tuple[Source, ...]
    answer:         Optional[bool]
    status:         EvaluationStatus
    confidence:     float = 0.0
    algorithm:      Optional[str] = None
    failure:        Optional[FailureKind] = None
    detail:         str = ""
    hash:           Optional[str] = None
    solver_id:      str = ""
    stake:          int = 0
    execution_time: int = 0
    timestamp:      str = ""
    reliability:    Dict[str, int] = field(default_factory=dict, compare=False)

    # ── Constructors ──────────────────────────────────────────

    @classmethod
    def pending(cls, question: str) -> "Evaluation":
        return cls(
            question=question,
            sources=(),
            answer=None,
            status=EvaluationStatus.PENDING,
        )

    @classmethod
    def evaluated(
        cls,
        question:    str,
        sources,
        answer:      bool,
        confidence:  float,
        algorithm:   str,
        reliability: Optional[Dict[str, int]] = None,
        detail:      str = "",
    ) -> "Evaluation":
        sources = tuple(sources)
        return cls(
            question=    question,
            sources=     sources,
            answer=      answer,
            status=      EvaluationStatus.EVALUATED,
            confidence=  confidence,
            algorithm=   algorithm,
            detail=      detail,
            hash=        compute_evaluation_hash(question, sources, answer),
            timestamp=   wire_timestamp(),
            reliability= dict(reliability or {}),
        )

    @classmethod
    def failed(
        cls,
        question:    str,
        sources,
        failure:     FailureKind,
        detail:      str,
        algorithm:   Optional[str] = None,
        confidence:  float = 0.0,
        answer:      Optional[bool] = None,
        reliability: Optional[Dict[str, int]] = None,
    ) -> "Evaluation":
        return cls(
            question=    question,
            sources=     tuple(sources),
            answer=      answer,
            status=      EvaluationStatus.ERROR,
            confidence=  confidence,
            algorithm=   algorithm,
            failure=     failure,
            detail=      detail,
            timestamp=   wire_timestamp(),
            reliability= dict(reliability or {}),
        )

    def with_submission(
        self,
        solver_id:      str,
        stake:          int,
        execution_time: int = 0,
    ) -> "Evaluation":
        """Attach submitter metadata. The hash does not cover these fields."""
        return replace(
            self,
            solver_id=solver_id,
            stake=stake,
            execution_time=execution_time,
        )

    # ── Status ────────────────────────────────────────────────

    @property
    def is_evaluated(self) -> bool:
        return self.status is EvaluationStatus.EVALUATED

    def raise_for_status(self) -> "Evaluation":
        """Raise the typed ConsensusError for a failed evaluation; else return self."""
        if self.status is not EvaluationStatus.ERROR:
            return self
        details = {"question": self.question, "sources": len(self.sources)}
        if self.failure is FailureKind.INSUFFICIENT_SOURCES:
            raise InsufficientSources(self.detail or "not enough evidence", details)
        if self.failure is FailureKind.LOW_CONFIDENCE:
            details["confidence"] = round(self.confidence, 6)
            raise LowConfidence(self.detail or "evidence inconclusive", details)
        raise InconclusiveVote(self.detail or "evidence split evenly", details)

    # ── Serialization ─────────────────────────────────────────

    def to_record(self) -> Dict[str, Any]:
        """The published Evaluation shape. Only valid once evaluated."""
        if not self.is_evaluated:
            raise ValidationError(
                "only evaluated evaluations are published",
                {"status": self.status.value},
            )
        return {
            "evaluation_hash": self.hash,
            "question":        self.question,
            "answer":          self.answer,
            "confidence":      self.confidence,
            "sources":         [s.to_dict() for s in self.sources],
            "execution_time":  self.execution_time,
            "solver_id":       self.solver_id,
            "timestamp":       self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question":       self.question,
            "sources":        [s.to_dict() for s in self.sources],
            "answer":         self.answer,
            "status":         self.status.value,
            "confidence":     self.confidence,
            "algorithm":      self.algorithm,
            "failure":        self.failure.value if self.failure else None,
            "detail":         self.detail,
            "hash":           self.hash,
            "solver_id":      self.solver_id,
            "stake":          str(self.stake),
            "execution_time": self.execution_time,
            "timestamp":      self.timestamp,
            "reliability":    dict(self.reliability),
        }


# ─────────────────────────────────────────────────────────────
# Refutation Challenge
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RefutationChallenge:
    """An accepted, staked dispute of an evaluation. Built by create()."""

    evaluation_hash:  str
    challenger:       str
    challenge_stake:  int
    counter_evidence: Tuple[ProviderAnswer, ...]
    timestamp:        str
    challenge_hash:   Optional[str] = None

    @classmethod
    def create(
        cls,
        evaluation_hash:  str,
        challenger:       str,
        challenge_stake:  int,
        counter_evidence,
    ) -> "RefutationChallenge":
        unhashed = cls(
            evaluation_hash=  evaluation_hash,
            challenger=       challenger,
            challenge_stake=  challenge_stake,
            counter_evidence= tuple(counter_evidence),
            timestamp=        wire_timestamp(),
        )
        return replace(unhashed, challenge_hash=digest(unhashed.to_hash_dict()))

    @property
    def sources(self) -> Tuple[Source, ...]:
        return tuple(a.source for a in self.counter_evidence)

    def to_hash_dict(self) -> Dict[str, Any]:
        """CONTRACT 2 — everything except challenge_hash."""
        return {
            "evaluation_hash":  self.evaluation_hash,
            "challenger":       self.challenger,
            "challenge_stake":  str(self.challenge_stake),
            "counter_evidence": [a.to_dict() for a in self.counter_evidence],
            "timestamp":        self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_hash_dict()
        d["challenge_hash"] = self.challenge_hash
        return d


# ─────────────────────────────────────────────────────────────
# Settlement
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Settlement:
    """Final reward/slashing outcome for one resolved intent. Immutable."""

    evaluation_hash:       str
    winner:                Winner
    reward_distribution:   Dict[str, int]
    slashing_distribution: Dict[str, int]
    timestamp:             str
    challenge_hash:        Optional[str] = None
    settlement_hash:       Optional[str] = None

    def to_hash_dict(self) -> Dict[str, Any]:
        """CONTRACT 3 — the published record minus settlement_hash."""
        d: Dict[str, Any] = {
            "evaluation_hash":       self.evaluation_hash,
            "winner":                self.winner.value,
            "reward_distribution":   {k: str(v) for k, v in self.reward_distribution.items()},
            "slashing_distribution": {k: str(v) for k, v in self.slashing_distribution.items()},
            "timestamp":             self.timestamp,
        }
        if self.challenge_hash is not None:
            d["challenge_hash"] = self.challenge_hash
        return d

    def compute_hash(self) -> str:
        return digest(self.to_hash_dict())

    def with_hash(self) -> "Settlement":
        return replace(self, settlement_hash=self.compute_hash())

    def verify_hash(self) -> bool:
        return self.settlement_hash is not None and self.settlement_hash == self.compute_hash()

    def to_record(self) -> Dict[str, Any]:
        """The published Settlement shape."""
        d = self.to_hash_dict()
        d["settlement_hash"] = self.settlement_hash
        return d

    to_dict = to_record

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Settlement":
        return cls(
            evaluation_hash=       data["evaluation_hash"],
            winner=                Winner(data["winner"]),
            reward_distribution=   {k: int(v) for k, v in data.get("reward_distribution", {}).items()},
            slashing_distribution= {k: int(v) for k, v in data.get("slashing_distribution", {}).items()},
            timestamp=             data["timestamp"],
            challenge_hash=        data.get("challenge_hash"),
            settlement_hash=       data.get("settlement_hash"),
        )


@dataclass(frozen=True)
class Stakes:
    """Value under dispute for one settlement, in the smallest ledger unit."""
    reward:           int
    evaluator_stake:  int
    challenger_stake: int = 0

    @property
    def total(self) -> int:
        return self.reward + self.evaluator_stake + self.challenger_stake


# ─────────────────────────────────────────────────────────────
# Intents: tagged variant, one dataclass per intent type
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CredibilityEvaluationIntent:
    """Ask the protocol for a verdict on a yes/no question."""
    kind: ClassVar[IntentType] = IntentType.CREDIBILITY_EVALUATION

    question:             str
    reward:               int = 0
    deadline:             Optional[datetime] = None
    required_sources:     Optional[int] = None
    confidence_threshold: Optional[float] = None
    algorithm:            Optional[str] = None
    initiator:            str = ""

    def validate(self) -> None:
        if not isinstance(self.question, str) or not self.question.strip():
            raise ValidationError("question cannot be empty")
        if not isinstance(self.reward, int) or isinstance(self.reward, bool) or self.reward < 0:
            raise ValidationError("reward must be a non-negative int", {"reward": self.reward})
        if self.required_sources is not None and (
            not isinstance(self.required_sources, int) or self.required_sources < 1
        ):
            raise ValidationError(
                "required_sources must be an int >= 1",
                {"required_sources": self.required_sources},
            )
        if self.confidence_threshold is not None and not (
            0.0 <= self.confidence_threshold <= 1.0
        ):
            raise ValidationError(
                "confidence_threshold must be within [0, 1]",
                {"confidence_threshold": self.confidence_threshold},
            )
        if self.algorithm is not None:
            try:
                Algorithm(self.algorithm)
            except ValueError:
                raise ValidationError(
                    f"unknown algorithm {self.algorithm!r}",
                    {"valid": [a.value for a in Algorithm]},
                )


@dataclass(frozen=True)
class RefutationChallengeIntent:
    """Dispute an evaluation with staked, disjoint counter-evidence."""
    kind: ClassVar[IntentType] = IntentType.REFUTATION_CHALLENGE

    evaluation_hash:  str
    challenger:       str
    challenge_stake:  int
    counter_evidence: Tuple[ProviderAnswer, ...] = ()


@dataclass(frozen=True)
class OracleSettlementIntent:
    """Request settlement of the intent owning an evaluation."""
    kind: ClassVar[IntentType] = IntentType.ORACLE_SETTLEMENT

    evaluation_hash: str


Intent = Union[
    CredibilityEvaluationIntent,
    RefutationChallengeIntent,
    OracleSettlementIntent,
]


# ─────────────────────────────────────────────────────────────
# SchemaValidationResult
# ─────────────────────────────────────────────────────────────

@dataclass
class SchemaValidationResult:
    """
    Returned — not raised — so callers can choose hard fail vs report.
    bool(result) is True iff valid.
    """
    valid:  bool
    errors: List[str]

    def __bool__(self) -> bool:
        return self.valid

    def __repr__(self) -> str:
        if self.valid:
            return "SchemaValidationResult(VALID)"
        return f"SchemaValidationResult(INVALID, errors={self.errors})"
