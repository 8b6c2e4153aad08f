"""
Credence Exception Hierarchy

All exceptions inherit from CredenceError for easy catching.
Each leaf maps to one user-facing message class ("not enough evidence",
"evidence inconclusive", "challenge window closed", ...).
"""


class CredenceError(Exception):
    """Base exception for all Credence errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ValidationError(CredenceError):
    """Raised when data validation fails"""
    pass


class InvalidSource(ValidationError):
    """Malformed source URL or title. Recovered locally by filtering."""
    pass


class ConfigError(ValidationError):
    """Raised when engine configuration is invalid"""
    pass


class ConsensusError(CredenceError):
    """Raised by Evaluation.raise_for_status() for failed evaluations"""
    pass


class InsufficientSources(ConsensusError):
    """Fewer distinct valid sources than required"""
    pass


class LowConfidence(ConsensusError):
    """Aggregate confidence below the intent's threshold"""
    pass


class InconclusiveVote(ConsensusError):
    """Surviving evidence split exactly evenly"""
    pass


class ChallengeRejected(CredenceError):
    """Raised when a refutation challenge is not accepted"""

    STAKE_TOO_LOW   = "stake_too_low"
    NOT_DISJOINT    = "not_disjoint"
    EMPTY_EVIDENCE  = "empty_evidence"
    DEADLINE_PASSED = "deadline_passed"
    DUPLICATE       = "duplicate"
    WRONG_STATE     = "wrong_state"

    def __init__(self, message: str, reason: str, details: dict = None):
        super().__init__(message, details)
        self.reason = reason


class ChallengeConflict(ChallengeRejected):
    """A challenge was already accepted for this evaluation_hash"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, ChallengeRejected.DUPLICATE, details)


class SettlementError(CredenceError):
    """Raised when settlement fails"""
    pass


class SettlementInvariantViolation(SettlementError):
    """Distribution sums fail the conservation check. Internal bug signal."""
    pass


class IntentStateError(CredenceError):
    """Raised when a transition is not valid from the intent's current state"""
    pass


class IntentNotFound(CredenceError):
    """Raised when an intent id or evaluation hash is unknown"""
    pass


class LedgerError(CredenceError):
    """Raised when registry operations fail"""
    pass


class ChainSubmissionError(LedgerError):
    """Submitting a record failed. Retryable at the caller's discretion."""
    pass


class RecordNotFound(LedgerError):
    """No record with the requested hash"""
    pass
