"""
credence/consensus/engine.py

Consensus Engine — turns per-source provider answers into one Evaluation.

Pipeline, in this exact order:
  1. Filter   — invalid sources / out-of-range confidences dropped
  2. Order    — canonical order: provider rank, provider id, normalized url,
                answer, confidence
  3. Dedup    — first-seen per normalized URL (in canonical order)
  4. Count    — fewer distinct sources than required → insufficient_sources
  5. Outliers — 3-sigma rejection, skipped if it would starve the run
  6. Vote     — median | weighted_average | majority_vote
  7. Gate     — confidence below threshold → low_confidence

Steps 2-3 make the result independent of the order answers arrived in.
Failures are RETURNED as Evaluation(status=error, failure=...), never raised.
Hashing is done by Evaluation.evaluated() via credence.core.canonical.
"""

import logging
import math
import statistics
from collections import Counter
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from credence.consensus.outliers import reject_outliers
from credence.core.config import EngineConfig
from credence.core.models import (
    Algorithm,
    Evaluation,
    FailureKind,
    ProviderAnswer,
    Source,
)
from credence.sources import validator


logger = logging.getLogger(__name__)


# (answer, confidence) → verdict, aggregate confidence, failure detail
_Verdict = Tuple[Optional[bool], float, Optional[str]]


def _support(answer: ProviderAnswer, verdict: bool) -> float:
    """How strongly one source backs the verdict: c if it agrees, 1 - c if not."""
    return answer.confidence if answer.answer == verdict else 1.0 - answer.confidence


def _mass_verdict(answers: Sequence[ProviderAnswer]) -> Optional[bool]:
    """The answer backed by more total confidence, or None on an exact tie."""
    mass_true = math.fsum(a.confidence for a in answers if a.answer)
    mass_false = math.fsum(a.confidence for a in answers if not a.answer)
    if mass_true == mass_false:
        return None
    return mass_true > mass_false


def _median(answers: Sequence[ProviderAnswer]) -> _Verdict:
    verdict = _mass_verdict(answers)
    if verdict is None:
        return None, 0.0, "confidence mass split evenly between yes and no"
    return verdict, statistics.median(_support(a, verdict) for a in answers), None


def _weighted_average(answers: Sequence[ProviderAnswer]) -> _Verdict:
    verdict = _mass_verdict(answers)
    if verdict is None:
        return None, 0.0, "confidence mass split evenly between yes and no"
    total_weight = math.fsum(a.confidence for a in answers)
    if total_weight == 0:
        return verdict, 0.0, None
    weighted = math.fsum(a.confidence * _support(a, verdict) for a in answers)
    return verdict, weighted / total_weight, None


def _majority_vote(answers: Sequence[ProviderAnswer]) -> _Verdict:
    votes = Counter(a.answer for a in answers)
    yes, no = votes[True], votes[False]
    if yes == no:
        return None, 0.0, f"vote split evenly ({yes} yes / {no} no)"
    verdict = yes > no
    return verdict, max(yes, no) / (yes + no), None


_ALGORITHMS: Dict[Algorithm, Callable[[Sequence[ProviderAnswer]], _Verdict]] = {
    Algorithm.MEDIAN:           _median,
    Algorithm.WEIGHTED_AVERAGE: _weighted_average,
    Algorithm.MAJORITY_VOTE:    _majority_vote,
}


def _canonical_key(answer: ProviderAnswer):
    return (
        answer.rank,
        answer.provider_id,
        validator.normalize(answer.source.url),
        answer.source.title,
        answer.answer,
        answer.confidence,
    )


class ConsensusEngine:
    """
    Stateless aggregator. Configuration supplies defaults; every call may
    override required_sources, confidence_threshold and algorithm.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def evaluate(
        self,
        question:             str,
        answers:              Sequence[ProviderAnswer],
        required_sources:     Optional[int] = None,
        confidence_threshold: Optional[float] = None,
        algorithm:            Optional[str] = None,
    ) -> Evaluation:
        """
        Aggregate answers into an Evaluation with status evaluated or error.

        Never returns status pending. Never raises for evidence problems;
        an unknown algorithm name is a ValueError (a programming error).
        """
        required = required_sources if required_sources is not None else self.config.required_sources
        threshold = (
            confidence_threshold if confidence_threshold is not None
            else self.config.confidence_threshold
        )
        algo = Algorithm(algorithm or self.config.algorithm)

        distinct = self.prepare(answers)
        sources = [a.source for a in distinct]
        reliability = {tier: len(group) for tier, group in validator.classify(sources).items()}

        if len(distinct) < required:
            logger.info(
                "Insufficient sources for %r: %d distinct valid, %d required",
                question, len(distinct), required,
            )
            return Evaluation.failed(
                question, sources,
                failure=     FailureKind.INSUFFICIENT_SOURCES,
                detail=      f"{len(distinct)} distinct valid sources, {required} required",
                algorithm=   algo.value,
                reliability= reliability,
            )

        survivors, rejected = reject_outliers(
            distinct, key=lambda a: a.confidence, minimum=required,
        )
        for answer in rejected:
            logger.info(
                "Rejected outlier confidence %.4f from %s",
                answer.confidence, answer.source.url,
            )

        verdict, confidence, tie_detail = _ALGORITHMS[algo](survivors)
        kept_sources = [a.source for a in survivors]

        if verdict is None:
            return Evaluation.failed(
                question, kept_sources,
                failure=     FailureKind.TIED_VOTE,
                detail=      tie_detail,
                algorithm=   algo.value,
                reliability= reliability,
            )

        if confidence < threshold:
            logger.info(
                "Low confidence for %r: %.4f < %.4f", question, confidence, threshold,
            )
            return Evaluation.failed(
                question, kept_sources,
                failure=     FailureKind.LOW_CONFIDENCE,
                detail=      f"confidence {confidence:.4f} below threshold {threshold:.4f}",
                algorithm=   algo.value,
                confidence=  confidence,
                answer=      verdict,
                reliability= reliability,
            )

        detail = f"{len(rejected)} outlier(s) rejected" if rejected else ""
        return Evaluation.evaluated(
            question, kept_sources,
            answer=      verdict,
            confidence=  confidence,
            algorithm=   algo.value,
            reliability= reliability,
            detail=      detail,
        )

    @staticmethod
    def prepare(answers: Sequence[ProviderAnswer]) -> List[ProviderAnswer]:
        """
        Steps 1-3: valid, canonically ordered, one answer per normalized URL.
        Returned answers carry the normalized URL.
        """
        valid = []
        for answer in answers:
            if not validator.validate(answer.source):
                logger.debug("Invalid source filtered: %r", answer.source)
                continue
            if not answer.has_valid_confidence():
                logger.debug(
                    "Out-of-range confidence %r filtered for %s",
                    answer.confidence, answer.source.url,
                )
                continue
            valid.append(answer)

        ordered = sorted(valid, key=_canonical_key)
        return [
            ProviderAnswer(
                source=      Source(title=answer.source.title, url=validator.normalize(answer.source.url)),
                answer=      answer.answer,
                confidence=  float(answer.confidence),
                provider_id= answer.provider_id,
                rank=        answer.rank,
            )
            for answer in validator.deduplicate(ordered, url_of=lambda a: a.source.url)
        ]
