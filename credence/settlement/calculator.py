"""
Settlement calculator — converts a verdict and challenge outcome into a
reward / slashing distribution.

Critical Invariants:
- Settlement does NOT decide the winner (the lifecycle does)
- Settlement does NOT re-run consensus
- Every settlement is conservation-checked before it gets a hash
- A settlement that fails the check is never returned
"""

import logging
from collections import Counter
from typing import Dict, Optional

from credence.core.exceptions import SettlementError, SettlementInvariantViolation
from credence.core.models import (
    Evaluation,
    RefutationChallenge,
    Settlement,
    Stakes,
    Winner,
)
from credence.core.time import wire_timestamp


logger = logging.getLogger(__name__)


class SettlementCalculator:
    """
    Payout rules:

        evaluator, no challenge   evaluator  ← reward
        evaluator, challenged     evaluator  ← reward + challenger stake
                                  slashed:     challenger stake
        challenger                challenger ← reward + evaluator stake
                                  slashed:     evaluator stake
        tie                       each party ← own stake back

    A stake that is neither forfeited nor listed stays with its owner.
    """

    def settle(
        self,
        evaluation: Evaluation,
        challenge:  Optional[RefutationChallenge],
        winner:     Winner,
        stakes:     Stakes,
    ) -> Settlement:
        if not evaluation.is_evaluated or not evaluation.hash:
            raise SettlementError(
                "only evaluated evaluations can be settled",
                {"status": evaluation.status.value},
            )
        if challenge is not None and challenge.evaluation_hash != evaluation.hash:
            raise SettlementError(
                "challenge does not reference this evaluation",
                {
                    "evaluation_hash": evaluation.hash,
                    "challenge_ref":   challenge.evaluation_hash,
                },
            )
        if challenge is None and winner is not Winner.EVALUATOR:
            raise SettlementError(
                f"winner {winner.value!r} requires a challenge",
                {"evaluation_hash": evaluation.hash},
            )

        evaluator = evaluation.solver_id
        rewards: Counter = Counter()
        slashed: Counter = Counter()
        forfeited_to_winner = 0

        if winner is Winner.EVALUATOR:
            rewards[evaluator] += stakes.reward
            if challenge is not None:
                rewards[evaluator] += stakes.challenger_stake
                slashed[challenge.challenger] += stakes.challenger_stake
                forfeited_to_winner = stakes.challenger_stake
        elif winner is Winner.CHALLENGER:
            rewards[challenge.challenger] += stakes.reward + stakes.evaluator_stake
            slashed[evaluator] += stakes.evaluator_stake
            forfeited_to_winner = stakes.evaluator_stake
        elif winner is Winner.TIE:
            rewards[evaluator] += stakes.evaluator_stake
            rewards[challenge.challenger] += stakes.challenger_stake
        else:
            raise TypeError(f"unhandled winner {winner!r}")

        reward_distribution = {k: v for k, v in rewards.items() if v}
        slashing_distribution = {k: v for k, v in slashed.items() if v}

        check_conservation(reward_distribution, slashing_distribution, stakes, forfeited_to_winner)

        settlement = Settlement(
            evaluation_hash=       evaluation.hash,
            winner=                winner,
            reward_distribution=   reward_distribution,
            slashing_distribution= slashing_distribution,
            timestamp=             wire_timestamp(),
            challenge_hash=        challenge.challenge_hash if challenge else None,
        ).with_hash()

        logger.info(
            "Settled %s: winner=%s rewards=%s slashed=%s",
            evaluation.hash[:12], winner.value, reward_distribution, slashing_distribution,
        )
        return settlement


def check_conservation(
    reward_distribution:   Dict[str, int],
    slashing_distribution: Dict[str, int],
    stakes:                Stakes,
    forfeited_to_winner:   int = 0,
) -> None:
    """
    Raise SettlementInvariantViolation unless no value is created.

        every amount                                   >= 0
        sum(rewards)                                   <= total under dispute
        sum(slashing)                                  <= total under dispute
        sum(rewards) + sum(slashing) - forfeited_to_winner
                                                       <= total under dispute

    forfeited_to_winner is the slashed stake that reappears in the winner's
    reward; counting it on both sides would count the same value twice.
    """
    amounts = list(reward_distribution.values()) + list(slashing_distribution.values())
    if any((not isinstance(v, int)) or v < 0 for v in amounts):
        raise SettlementInvariantViolation(
            "distribution amounts must be non-negative integers",
            {"rewards": reward_distribution, "slashing": slashing_distribution},
        )
    total = stakes.total
    paid = sum(reward_distribution.values())
    slashed = sum(slashing_distribution.values())
    if forfeited_to_winner < 0 or forfeited_to_winner > slashed:
        raise SettlementInvariantViolation(
            "forfeited amount exceeds slashed amount",
            {"forfeited": forfeited_to_winner, "slashed": slashed},
        )
    if paid > total or slashed > total or paid + slashed - forfeited_to_winner > total:
        raise SettlementInvariantViolation(
            "settlement creates value",
            {"paid": paid, "slashed": slashed, "total_under_dispute": total},
        )
