"""
credence/__init__.py

Credence: Intent Lifecycle & Consensus Settlement Engine

A question is posed as an intent, providers answer it with sourced
evidence, consensus produces a hashed Evaluation, a staked challenger may
refute it with disjoint counter-evidence, and every resolved intent ends
in exactly one conservation-checked Settlement.
"""

__version__ = "0.1.0"

from credence.core.canonical import digest
from credence.core.config import EngineConfig
from credence.core.crypto import Ed25519KeyManager
from credence.core.exceptions import (
    ChainSubmissionError,
    ChallengeConflict,
    ChallengeRejected,
    ConsensusError,
    CredenceError,
    InconclusiveVote,
    InsufficientSources,
    IntentNotFound,
    IntentStateError,
    LowConfidence,
    SettlementInvariantViolation,
)
from credence.core.models import (
    Algorithm,
    CredibilityEvaluationIntent,
    Evaluation,
    FailureKind,
    IntentStatus,
    OracleSettlementIntent,
    ProviderAnswer,
    RefutationChallenge,
    RefutationChallengeIntent,
    Settlement,
    Source,
    Stakes,
    Winner,
)
from credence.consensus.engine import ConsensusEngine
from credence.settlement.calculator import SettlementCalculator
from credence.lifecycle.machine import IntentLifecycle
from credence.lifecycle.store import IntentRecord, IntentStore
from credence.ledger.registry import SettlementRegistry
from credence.ledger.chain import LedgerChainClient

__all__ = [
    # Engine
    "ConsensusEngine",
    "SettlementCalculator",
    "IntentLifecycle",
    "IntentStore",
    "IntentRecord",
    "EngineConfig",
    # Records
    "Source",
    "ProviderAnswer",
    "Evaluation",
    "RefutationChallenge",
    "Settlement",
    "Stakes",
    # Intents
    "CredibilityEvaluationIntent",
    "RefutationChallengeIntent",
    "OracleSettlementIntent",
    # Vocabulary
    "Algorithm",
    "FailureKind",
    "IntentStatus",
    "Winner",
    # Ledger
    "SettlementRegistry",
    "LedgerChainClient",
    "Ed25519KeyManager",
    "digest",
    # Errors
    "CredenceError",
    "ConsensusError",
    "InsufficientSources",
    "LowConfidence",
    "InconclusiveVote",
    "ChallengeRejected",
    "ChallengeConflict",
    "SettlementInvariantViolation",
    "IntentStateError",
    "IntentNotFound",
    "ChainSubmissionError",
]
