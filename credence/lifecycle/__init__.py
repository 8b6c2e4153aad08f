"""
Credence Lifecycle - intent state, transitions and solver reputation.
"""

from credence.lifecycle.machine import IntentLifecycle
from credence.lifecycle.solvers import SolverRegistry
from credence.lifecycle.store import IntentRecord, IntentStore

__all__ = ["IntentLifecycle", "IntentRecord", "IntentStore", "SolverRegistry"]
