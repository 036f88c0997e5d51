"""
Gate Evaluator
==============
Threshold-confirm-then-mute admission for repeated occurrences.

An occurrence is admitted once ``min_count`` deliveries have been seen
inside the counting window; after that a cooldown of ``backoff`` mutes the
key. A cooldown still in force always wins over an expired window.

The evaluator is pure: it never reads the clock or the store. Stores call it
inside their atomic section with the prior state they hold for the key.
"""

from datetime import datetime
from typing import Optional

from ..clock import ensure_utc
from .models import GateKey, GateState, Policy, GateDecision, DecisionReason


def first_occurrence(now: datetime, policy: Policy) -> GateDecision:
    """Decision for a key that has never been seen"""
    allowed = policy.min_count <= 1
    suppressed_until = None
    if allowed and policy.backoff:
        suppressed_until = now + policy.backoff

    state = GateState(first_seen=now, last_seen=now, count=1, suppressed_until=suppressed_until)
    reason = DecisionReason.ADMITTED if allowed else DecisionReason.BELOW_THRESHOLD
    return GateDecision(allowed=allowed, state=state, reason=reason)


def evaluate(
    key: GateKey,
    now: datetime,
    policy: Policy,
    prior: Optional[GateState] = None
) -> GateDecision:
    """
    Decide whether the occurrence of ``key`` at ``now`` is admitted.

    Returns:
        GateDecision with the verdict and the next state for the key
    """
    now = ensure_utc(now)

    if prior is None:
        return first_occurrence(now, policy)

    # Decisions use the delivery's own time; a late delivery never moves last_seen back
    last_seen = max(prior.last_seen, now)

    # Inside an active cooldown: count it, keep the cooldown as it is
    if prior.is_suppressed(now):
        state = prior.evolve(last_seen=last_seen, count=prior.count + 1)
        return GateDecision(allowed=False, state=state, reason=DecisionReason.COOLDOWN)

    first_seen = prior.first_seen
    count = prior.count
    suppressed_until = prior.suppressed_until

    # Stale below-threshold burst is discarded, never fires later
    if policy.window and now - first_seen > policy.window:
        first_seen = now
        count = 0
        suppressed_until = None

    count += 1
    allowed = policy.min_count <= 1 or count >= policy.min_count
    if allowed and policy.backoff:
        # suppressed_until never precedes last_seen
        suppressed_until = last_seen + policy.backoff

    state = GateState(
        first_seen=first_seen,
        last_seen=last_seen,
        count=count,
        suppressed_until=suppressed_until,
    )
    reason = DecisionReason.ADMITTED if allowed else DecisionReason.BELOW_THRESHOLD
    return GateDecision(allowed=allowed, state=state, reason=reason)
