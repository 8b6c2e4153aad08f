"""
Solver registry: stake floor, reputation and running payout totals.

reputation = successful settlements / total settlements (1.0 before the
first). A tie is not an outcome for either party.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List

from credence.core.exceptions import IntentNotFound, ValidationError
from credence.core.models import Settlement, Winner


logger = logging.getLogger(__name__)


@dataclass
class SolverStats:
    solver_id:       str
    stake:           int
    total:           int = 0
    successful:      int = 0
    total_earnings:  int = 0
    total_slashed:   int = 0

    @property
    def reputation(self) -> float:
        if self.total == 0:
            return 1.0
        return self.successful / self.total

    def to_dict(self) -> Dict:
        return {
            "solver_id":      self.solver_id,
            "stake":          str(self.stake),
            "total":          self.total,
            "successful":     self.successful,
            "reputation":     self.reputation,
            "total_earnings": str(self.total_earnings),
            "total_slashed":  str(self.total_slashed),
        }


class SolverRegistry:
    """Thread-safe registry of solvers known to one lifecycle."""

    def __init__(self, min_stake: int = 0):
        if min_stake < 0:
            raise ValidationError("min_stake must be >= 0", {"min_stake": min_stake})
        self.min_stake = min_stake
        self._lock = threading.Lock()
        self._solvers: Dict[str, SolverStats] = {}

    def register(self, solver_id: str, stake: int) -> SolverStats:
        """Register (or top up) a solver. Raises ValidationError below min_stake."""
        if not solver_id:
            raise ValidationError("solver_id cannot be empty")
        self.check_stake(solver_id, stake)
        with self._lock:
            stats = self._solvers.get(solver_id)
            if stats is None:
                stats = SolverStats(solver_id=solver_id, stake=stake)
                self._solvers[solver_id] = stats
                logger.info("Registered solver %s with stake %d", solver_id, stake)
            else:
                stats.stake = max(stats.stake, stake)
            return stats

    def check_stake(self, solver_id: str, stake: int) -> None:
        if not isinstance(stake, int) or isinstance(stake, bool) or stake < self.min_stake:
            raise ValidationError(
                "stake below minimum",
                {"solver_id": solver_id, "stake": stake, "min_stake": self.min_stake},
            )

    def get(self, solver_id: str) -> SolverStats:
        with self._lock:
            stats = self._solvers.get(solver_id)
        if stats is None:
            raise IntentNotFound("unknown solver", {"solver_id": solver_id})
        return stats

    def reputation(self, solver_id: str) -> float:
        return self.get(solver_id).reputation

    def record_outcome(self, solver_id: str, success: bool) -> None:
        with self._lock:
            stats = self._solvers.get(solver_id)
            if stats is None:
                logger.warning("Outcome for unregistered solver %s ignored", solver_id)
                return
            stats.total += 1
            if success:
                stats.successful += 1

    def apply_settlement(self, settlement: Settlement) -> None:
        """Add a settlement's rewards and slashing to the running totals."""
        if settlement.winner is Winner.TIE:
            return
        with self._lock:
            for party, amount in settlement.reward_distribution.items():
                if party in self._solvers:
                    self._solvers[party].total_earnings += amount
            for party, amount in settlement.slashing_distribution.items():
                if party in self._solvers:
                    self._solvers[party].total_slashed += amount

    def all(self) -> List[SolverStats]:
        with self._lock:
            return sorted(self._solvers.values(), key=lambda s: s.solver_id)

    def __contains__(self, solver_id: str) -> bool:
        return solver_id in self._solvers
