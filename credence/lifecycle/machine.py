"""
credence/lifecycle/machine.py

Intent Lifecycle — the only writer of IntentRecord state.

    pending ──submit_evaluation──▶ evaluated ──submit_challenge──▶ challenged
       │                              │                               │
       │ consensus failure /          │ deadline, no challenge        │ settle()
       │ deadline                     ▼                               ▼
       └──────────▶ error          settled ◀──────────────────────────┘

Rules:
  1. Every transition runs under IntentStore.lock (an RLock).
  2. error and settled are terminal; nothing here retries.
  3. A challenge is accepted only while evaluated and before the deadline,
     with a stake strictly above the evaluation stake and non-empty
     counter-evidence disjoint from the evaluation's sources.
     First valid challenge wins; later ones raise ChallengeConflict.
  4. Settling a challenge re-runs consensus over the counter-evidence only:
         rerun disagrees  → challenger
         rerun agrees     → evaluator
         rerun fails      → tie
  5. Records are published AFTER the transition commits. A publish
     failure raises ChainSubmissionError; republish() retries it.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from credence.consensus.engine import ConsensusEngine
from credence.core.config import EngineConfig
from credence.core.exceptions import (
    ChainSubmissionError,
    ChallengeConflict,
    ChallengeRejected,
    IntentNotFound,
    IntentStateError,
    ValidationError,
)
from credence.core.models import (
    CredibilityEvaluationIntent,
    FailureKind,
    Intent,
    IntentStatus,
    OracleSettlementIntent,
    ProviderAnswer,
    RefutationChallenge,
    RefutationChallengeIntent,
    Settlement,
    Stakes,
    Winner,
)
from credence.core.time import utc_now
from credence.ledger.registry import RecordKind
from credence.lifecycle.solvers import SolverRegistry
from credence.lifecycle.store import IntentRecord, IntentStore
from credence.settlement.calculator import SettlementCalculator
from credence.sources import validator


logger = logging.getLogger(__name__)


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class IntentLifecycle:
    """
    Drives intents from submission to settlement.

    Usage:
        lifecycle = IntentLifecycle(IntentStore())
        record = lifecycle.submit(CredibilityEvaluationIntent(question="...", reward=100))
        lifecycle.submit_evaluation(record.intent_id, answers, "solver-1", stake=50)
        settlement = lifecycle.settle(record.intent_id)   # after the deadline

    clock is injectable so deadline behaviour can be tested without sleeping.
    """

    def __init__(
        self,
        store:        Optional[IntentStore] = None,
        engine:       Optional[ConsensusEngine] = None,
        calculator:   Optional[SettlementCalculator] = None,
        config:       Optional[EngineConfig] = None,
        clock:        Callable[[], datetime] = utc_now,
        chain_client = None,
        solvers:      Optional[SolverRegistry] = None,
    ):
        self.config       = config or EngineConfig()
        self.store        = store if store is not None else IntentStore()
        self.engine       = engine or ConsensusEngine(self.config)
        self.calculator   = calculator or SettlementCalculator()
        self.clock        = clock
        self.chain_client = chain_client
        self.solvers      = solvers if solvers is not None else SolverRegistry(self.config.min_stake)
        self._inflight: Dict[str, asyncio.Future] = {}

    # ── Intake ────────────────────────────────────────────────

    def submit(self, intent: Intent):
        """
        Route an intent to its handler.

            CredibilityEvaluationIntent → IntentRecord
            RefutationChallengeIntent   → RefutationChallenge
            OracleSettlementIntent      → Settlement
        """
        if isinstance(intent, CredibilityEvaluationIntent):
            return self.open_intent(intent)
        if isinstance(intent, RefutationChallengeIntent):
            return self.submit_challenge(intent)
        if isinstance(intent, OracleSettlementIntent):
            record = self.store.find_by_evaluation_hash(intent.evaluation_hash)
            return self.settle(record.intent_id)
        raise TypeError(f"unsupported intent type {type(intent).__name__}")

    def open_intent(self, intent: CredibilityEvaluationIntent) -> IntentRecord:
        intent.validate()
        now = _aware(self.clock())
        if intent.deadline is not None:
            deadline = _aware(intent.deadline)
        else:
            deadline = now + timedelta(minutes=self.config.default_deadline_minutes)
        if deadline <= now:
            raise ValidationError("deadline must be in the future", {"deadline": str(deadline)})

        record = IntentRecord(
            intent_id=            f"intent-{uuid.uuid4()}",
            intent=               intent,
            required_sources=     intent.required_sources or self.config.required_sources,
            confidence_threshold= (
                intent.confidence_threshold if intent.confidence_threshold is not None
                else self.config.confidence_threshold
            ),
            algorithm=            intent.algorithm or self.config.algorithm,
            deadline=             deadline,
            reward=               intent.reward,
            created_at=           now,
        )
        self.store.add(record)
        logger.info("Opened %s: %r (deadline %s)", record.intent_id, intent.question, deadline)
        return record

    # ── Evaluation ────────────────────────────────────────────

    def submit_evaluation(
        self,
        intent_id:      str,
        answers:        Sequence[ProviderAnswer],
        solver_id:      str,
        stake:          int,
        execution_time: int = 0,
    ) -> IntentRecord:
        """
        pending → evaluated, or pending → error on a consensus failure or a
        missed deadline. Returns the record; inspect record.status.
        """
        with self.store.lock:
            record = self.store.get(intent_id)
            if record.status is not IntentStatus.PENDING:
                raise IntentStateError(
                    "evaluation only accepted while pending",
                    {"intent_id": intent_id, "status": record.status.value},
                )
            self.solvers.register(solver_id, stake)

            if _aware(self.clock()) >= record.deadline:
                self._fail(record, FailureKind.DEADLINE_ELAPSED, "evaluation arrived after the deadline")
                return record

            evaluation = self.engine.evaluate(
                record.question,
                answers,
                required_sources=     record.required_sources,
                confidence_threshold= record.confidence_threshold,
                algorithm=            record.algorithm,
            ).with_submission(solver_id, stake, execution_time)

            if not evaluation.is_evaluated:
                record.evaluation = evaluation
                self._fail(record, evaluation.failure, evaluation.detail)
                return record

            try:
                holder = self.store.find_by_evaluation_hash(evaluation.hash)
            except IntentNotFound:
                holder = None
            if holder is not None and holder.intent_id != intent_id:
                raise ValidationError(
                    "identical evaluation already recorded by another intent",
                    {"evaluation_hash": evaluation.hash, "intent_id": holder.intent_id},
                )

            record.evaluation = evaluation
            record.status = IntentStatus.EVALUATED
            self.store.index_evaluation(record)
            self._cancel_inflight(intent_id)
            logger.info(
                "%s evaluated: answer=%s confidence=%.4f hash=%s",
                intent_id, evaluation.answer, evaluation.confidence, evaluation.hash[:12],
            )

        self._publish(record, RecordKind.EVALUATION, evaluation.to_record(), stake)
        return record

    async def gather_evidence(self, intent_id: str, collector, solver_id: str, stake: int) -> IntentRecord:
        """
        Fan out to providers through `collector` and submit the result.

        The gathering task is registered as in-flight: expire_overdue()
        cancels it, and results arriving after the intent left pending are
        discarded.
        """
        record = self.store.get(intent_id)
        if record.status is not IntentStatus.PENDING:
            raise IntentStateError(
                "evidence only gathered while pending",
                {"intent_id": intent_id, "status": record.status.value},
            )
        started = time.monotonic()
        task = asyncio.ensure_future(collector.collect(record.question))
        self._inflight[intent_id] = task
        try:
            await asyncio.wait({task})
        finally:
            if self._inflight.get(intent_id) is task:
                del self._inflight[intent_id]
            if not task.done():
                task.cancel()

        if task.cancelled():
            logger.info("Evidence gathering for %s cancelled", intent_id)
            return record
        answers = task.result()
        elapsed_ms = int((time.monotonic() - started) * 1000)

        with self.store.lock:
            if record.status is not IntentStatus.PENDING:
                logger.info(
                    "Discarding late evidence for %s (now %s)", intent_id, record.status.value,
                )
                return record
            return self.submit_evaluation(intent_id, answers, solver_id, stake, elapsed_ms)

    # ── Challenge ─────────────────────────────────────────────

    def submit_challenge(self, challenge_intent: RefutationChallengeIntent) -> RefutationChallenge:
        evidence = tuple(challenge_intent.counter_evidence)
        stake = challenge_intent.challenge_stake

        with self.store.lock:
            record = self.store.find_by_evaluation_hash(challenge_intent.evaluation_hash)
            details = {"intent_id": record.intent_id, "challenger": challenge_intent.challenger}

            if record.challenge is not None:
                raise ChallengeConflict(
                    "a challenge was already accepted for this evaluation",
                    {**details, "accepted": record.challenge.challenge_hash},
                )
            if record.status is not IntentStatus.EVALUATED:
                raise ChallengeRejected(
                    "only evaluated intents can be challenged",
                    ChallengeRejected.WRONG_STATE,
                    {**details, "status": record.status.value},
                )
            if _aware(self.clock()) >= record.deadline:
                raise ChallengeRejected(
                    "challenge window closed", ChallengeRejected.DEADLINE_PASSED, details,
                )
            evaluator_stake = record.evaluation.stake
            if not isinstance(stake, int) or isinstance(stake, bool) or stake <= evaluator_stake:
                raise ChallengeRejected(
                    "challenge stake must exceed the evaluation stake",
                    ChallengeRejected.STAKE_TOO_LOW,
                    {**details, "challenge_stake": stake, "evaluation_stake": evaluator_stake},
                )
            if not validator.filter_valid(a.source for a in evidence):
                raise ChallengeRejected(
                    "counter-evidence cannot be empty", ChallengeRejected.EMPTY_EVIDENCE, details,
                )
            if not validator.disjoint(record.evaluation.sources, (a.source for a in evidence)):
                raise ChallengeRejected(
                    "counter-evidence must not reuse the evaluation's sources",
                    ChallengeRejected.NOT_DISJOINT,
                    details,
                )

            self.solvers.register(challenge_intent.challenger, stake)
            challenge = RefutationChallenge.create(
                evaluation_hash=  record.evaluation_hash,
                challenger=       challenge_intent.challenger,
                challenge_stake=  stake,
                counter_evidence= evidence,
            )
            record.challenge = challenge
            record.status = IntentStatus.CHALLENGED
            logger.info(
                "%s challenged by %s with stake %d", record.intent_id, challenge.challenger, stake,
            )

        self._publish(record, RecordKind.CHALLENGE, challenge.to_dict(), stake)
        return challenge

    # ── Settlement ────────────────────────────────────────────

    def settle(self, intent_id: str) -> Settlement:
        with self.store.lock:
            record = self.store.get(intent_id)
            settlement, stakes = self._settle_locked(record)
        self._publish(record, RecordKind.SETTLEMENT, settlement.to_record(), stakes.total)
        return settlement

    def expire_overdue(self) -> List[IntentRecord]:
        """
        Apply deadlines:
            pending past deadline            → error (in-flight gathering cancelled)
            evaluated past deadline          → settled, evaluator wins

        Returns the records that changed. Publish failures are raised as one
        ChainSubmissionError after every record has been processed.
        """
        changed: List[IntentRecord] = []
        to_publish: List[Tuple[IntentRecord, Settlement, Stakes]] = []
        with self.store.lock:
            now = _aware(self.clock())
            for record in self.store.with_status(IntentStatus.PENDING):
                if now >= record.deadline:
                    self._fail(record, FailureKind.DEADLINE_ELAPSED, "no evaluation before the deadline")
                    self._cancel_inflight(record.intent_id)
                    changed.append(record)
            for record in self.store.with_status(IntentStatus.EVALUATED):
                if now >= record.deadline:
                    settlement, stakes = self._settle_locked(record)
                    to_publish.append((record, settlement, stakes))
                    changed.append(record)

        failed: List[str] = []
        for record, settlement, stakes in to_publish:
            try:
                self._publish(record, RecordKind.SETTLEMENT, settlement.to_record(), stakes.total)
            except ChainSubmissionError:
                failed.append(record.intent_id)
        if failed:
            raise ChainSubmissionError(
                "settlements committed but not published; call republish()",
                {"intent_ids": failed},
            )
        return changed

    # ── Queries ───────────────────────────────────────────────

    def get(self, intent_id: str) -> IntentRecord:
        return self.store.get(intent_id)

    def find_by_evaluation_hash(self, evaluation_hash: str) -> IntentRecord:
        return self.store.find_by_evaluation_hash(evaluation_hash)

    def pending_intents(self) -> List[IntentRecord]:
        return self.store.with_status(IntentStatus.PENDING)

    # ── Publication ───────────────────────────────────────────

    def republish(self, intent_id: str) -> list:
        """Submit whatever this intent has committed but not yet published, in order."""
        record = self.store.get(intent_id)
        receipts = []
        if record.evaluation is not None and record.evaluation.is_evaluated:
            receipts += self._publish(
                record, RecordKind.EVALUATION, record.evaluation.to_record(), record.evaluation.stake,
            )
        if record.challenge is not None:
            receipts += self._publish(
                record, RecordKind.CHALLENGE, record.challenge.to_dict(), record.challenge.challenge_stake,
            )
        if record.settlement is not None:
            receipts += self._publish(
                record, RecordKind.SETTLEMENT, record.settlement.to_record(), self._stakes(record).total,
            )
        return receipts

    # ── Internal ──────────────────────────────────────────────

    def _settle_locked(self, record: IntentRecord) -> Tuple[Settlement, Stakes]:
        if record.status is IntentStatus.CHALLENGED:
            winner = self._adjudicate(record)
        elif record.status is IntentStatus.EVALUATED:
            if _aware(self.clock()) < record.deadline:
                raise IntentStateError(
                    "challenge window still open",
                    {"intent_id": record.intent_id, "deadline": record.deadline.isoformat()},
                )
            winner = Winner.EVALUATOR
        else:
            raise IntentStateError(
                "only evaluated or challenged intents can be settled",
                {"intent_id": record.intent_id, "status": record.status.value},
            )

        stakes = self._stakes(record)
        settlement = self.calculator.settle(record.evaluation, record.challenge, winner, stakes)
        record.settlement = settlement
        record.status = IntentStatus.SETTLED
        self._record_outcomes(record, winner)
        self.solvers.apply_settlement(settlement)
        return settlement, stakes

    def _adjudicate(self, record: IntentRecord) -> Winner:
        rerun = self.engine.evaluate(
            record.question,
            record.challenge.counter_evidence,
            required_sources=     record.required_sources,
            confidence_threshold= record.confidence_threshold,
            algorithm=            record.algorithm,
        )
        if not rerun.is_evaluated:
            logger.info(
                "Counter-evidence for %s inconclusive (%s): tie",
                record.intent_id, rerun.failure.value if rerun.failure else "error",
            )
            return Winner.TIE
        if rerun.answer != record.evaluation.answer:
            return Winner.CHALLENGER
        return Winner.EVALUATOR

    @staticmethod
    def _stakes(record: IntentRecord) -> Stakes:
        return Stakes(
            reward=           record.reward,
            evaluator_stake=  record.evaluation.stake,
            challenger_stake= record.challenge.challenge_stake if record.challenge else 0,
        )

    def _record_outcomes(self, record: IntentRecord, winner: Winner) -> None:
        if winner is Winner.TIE:
            return
        evaluator = record.evaluation.solver_id
        self.solvers.record_outcome(evaluator, winner is Winner.EVALUATOR)
        if record.challenge is not None:
            self.solvers.record_outcome(record.challenge.challenger, winner is Winner.CHALLENGER)

    def _fail(self, record: IntentRecord, failure: FailureKind, detail: str) -> None:
        record.status = IntentStatus.ERROR
        record.failure = failure
        record.failure_detail = detail
        logger.warning("%s failed: %s (%s)", record.intent_id, failure.value, detail)

    def _cancel_inflight(self, intent_id: str) -> None:
        task = self._inflight.pop(intent_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _publish(self, record: IntentRecord, kind: str, payload: dict, stake: int) -> list:
        if self.chain_client is None or kind in record.published:
            return []
        try:
            receipt = self.chain_client.submit_record(kind, payload, stake)
        except ChainSubmissionError:
            logger.error("Publishing %s for %s failed", kind, record.intent_id)
            raise
        record.published.append(kind)
        return [receipt]
