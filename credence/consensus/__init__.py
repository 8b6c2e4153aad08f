"""
Credence Consensus - many sourced answers in, one Evaluation out.
"""

from credence.consensus.engine import ConsensusEngine

__all__ = ["ConsensusEngine"]
