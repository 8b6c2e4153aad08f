"""
Credence Settlement - reward and slashing distribution.
"""

from credence.settlement.calculator import SettlementCalculator, check_conservation

__all__ = ["SettlementCalculator", "check_conservation"]
