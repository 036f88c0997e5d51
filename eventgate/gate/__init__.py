"""
Gate Module
===========
Pure admission decision for repeated occurrences of one alerting condition.

Features:
- Threshold confirmation (min_count within a counting window)
- Cooldown suppression after an admitted occurrence
- Window expiry discarding stale below-threshold bursts
"""

from .models import GateKey, GateState, Policy, GateDecision, DecisionReason
from .evaluator import evaluate, first_occurrence

__all__ = [
    "GateKey",
    "GateState",
    "Policy",
    "GateDecision",
    "DecisionReason",
    "evaluate",
    "first_occurrence",
]
