"""
Admission
=========
Entry point invoked once per inbound occurrence.

``AdmissionFacade.admit`` records the alert (status "firing") and then runs
the gate evaluator inside the store's atomic section for (source,
fingerprint). Both halves are idempotent; when one fails the caller retries
the whole call and no compensation is needed.

``EventGate`` is the configured wrapper used by ingestion handlers: it
applies the severity allowlist, derives a fingerprint when the producer sent
none, and admits with the configured policy.

A denial is returned as ``allowed=False``. Every failure is raised, so
a storage outage is never mistaken for suppression.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from . import constants
from .alerts.fingerprint import event_fingerprint, extract_severity
from .alerts.lifecycle import AlertLifecycleTracker, AlertStatus
from .clock import Clock, Deadline, SystemClock, ensure_utc
from .errors import StoreUnavailable
from .gate.evaluator import evaluate
from .gate.models import GateKey, GateState, Policy, GateDecision
from .logging_config import get_logger, log_fields
from .metrics import ADMISSIONS, ADMIT_LATENCY, increment_counter, timed_operation
from .store.base import GateStateStore

logger = get_logger(__name__)

SEVERITY_FILTERED = "severity_filtered"


@dataclass
class AdmissionResult:
    """What the caller needs to decide whether to build a remediation plan"""
    allowed: bool
    alert_id: str
    gate_state: Optional[GateState]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "alert_id": self.alert_id,
            "reason": self.reason,
            "gate_state": self.gate_state.to_dict() if self.gate_state else None,
        }


@dataclass
class GateSettings:
    """Runtime gate configuration"""
    window_seconds: int = 0
    backoff_seconds: int = 0
    min_count: int = 1
    allow_severities: List[str] = field(default_factory=list)
    admit_timeout_seconds: Optional[float] = constants.EVENT_GATE_ADMIT_TIMEOUT_SECONDS

    def __post_init__(self):
        self.min_count = max(1, self.min_count)
        self.allow_severities = [s.strip().lower() for s in self.allow_severities if s and s.strip()]

    @classmethod
    def from_env(cls) -> "GateSettings":
        return cls(
            window_seconds=constants.EVENT_GATE_WINDOW_SECONDS,
            backoff_seconds=constants.EVENT_GATE_BACKOFF_SECONDS,
            min_count=constants.EVENT_GATE_MIN_COUNT,
            allow_severities=list(constants.EVENT_GATE_SEVERITIES),
            admit_timeout_seconds=constants.EVENT_GATE_ADMIT_TIMEOUT_SECONDS,
        )

    @property
    def policy(self) -> Policy:
        return Policy.from_seconds(
            window=self.window_seconds,
            backoff=self.backoff_seconds,
            min_count=self.min_count,
        )


class AdmissionFacade:
    """Composes the lifecycle tracker and the gate store"""

    def __init__(
        self,
        store: GateStateStore,
        tracker: AlertLifecycleTracker,
        clock: Optional[Clock] = None,
        default_policy: Optional[Policy] = None,
        default_timeout: Optional[float] = constants.EVENT_GATE_ADMIT_TIMEOUT_SECONDS
    ):
        self.store = store
        self.tracker = tracker
        self.clock = clock or SystemClock()
        self.default_policy = default_policy or Policy()
        self.default_timeout = default_timeout

    def admit(
        self,
        source: str,
        fingerprint: str,
        now: Optional[datetime] = None,
        policy: Optional[Policy] = None,
        payload: Any = None,
        timeout: Optional[float] = None
    ) -> AdmissionResult:
        """
        Decide whether one occurrence may trigger downstream remediation.

        Args:
            source: producer integration name
            fingerprint: producer-assigned identity of the condition
            now: occurrence time, defaults to the clock
            policy: per-call policy, defaults to the facade's
            payload: stored on the alert record as-is
            timeout: seconds before the call fails with StoreUnavailable

        Raises:
            InvalidKey: source or fingerprint empty after trimming
            StoreUnavailable: store or database failure, or deadline expired
            NotInitialized: store or database never configured
        """
        key = GateKey.create(source, fingerprint)
        now = ensure_utc(now) if now else self.clock.now()
        policy = policy or self.default_policy
        deadline = Deadline.after(self.default_timeout if timeout is None else timeout)

        with timed_operation(ADMIT_LATENCY, {"backend": self.store.backend}):
            try:
                deadline.check("admission")
                alert_id = self.tracker.upsert(key.fingerprint, AlertStatus.FIRING, now, payload)
                deadline.check("alert upsert")

                def decide(prior: Optional[GateState]) -> Tuple[GateDecision, GateState]:
                    decision = evaluate(key, now, policy, prior)
                    return decision, decision.state

                decision = self.store.get_and_update(key, decide, deadline)
            except StoreUnavailable as e:
                increment_counter(ADMISSIONS, {"source": key.source, "outcome": "error"})
                logger.warning(
                    f"[GATE] Admission for {key} indeterminate: {e}",
                    extra=log_fields(source=key.source, fingerprint=key.fingerprint),
                )
                raise

        outcome = decision.reason.value
        increment_counter(ADMISSIONS, {"source": key.source, "outcome": outcome})
        logger.info(
            f"[GATE] {key} {outcome} (count={decision.state.count})",
            extra=log_fields(
                source=key.source,
                fingerprint=key.fingerprint,
                allowed=decision.allowed,
                count=decision.state.count,
            ),
        )

        return AdmissionResult(
            allowed=decision.allowed,
            alert_id=alert_id,
            gate_state=decision.state,
            reason=outcome,
        )


class EventGate:
    """
    Configured admission for raw webhook payloads.

    Usage:
        gate = EventGate(facade, GateSettings.from_env())
        result, fingerprint = gate.accept("alertmanager", payload)
        if result is not None and result.allowed:
            build_plan(payload)
    """

    def __init__(self, facade: AdmissionFacade, settings: Optional[GateSettings] = None):
        self.facade = facade
        self.settings = settings or GateSettings()

    def severity_allowed(self, payload: Optional[Dict]) -> bool:
        if not self.settings.allow_severities:
            return True
        severity = extract_severity(payload)
        return bool(severity) and severity in self.settings.allow_severities

    def accept(
        self,
        source: str,
        payload: Optional[Dict],
        now: Optional[datetime] = None
    ) -> Tuple[Optional[AdmissionResult], str]:
        """
        Returns:
            (result, fingerprint); result is None when the severity allowlist
            rejected the event before it reached the store
        """
        source = (source or "").strip()
        fingerprint = event_fingerprint(source, payload)

        if not self.severity_allowed(payload):
            increment_counter(ADMISSIONS, {"source": source or "unknown", "outcome": SEVERITY_FILTERED})
            logger.info(f"[GATE] {source}:{fingerprint} filtered by severity allowlist")
            return None, fingerprint

        result = self.facade.admit(
            source,
            fingerprint,
            now=now,
            policy=self.settings.policy,
            payload=payload,
            timeout=self.settings.admit_timeout_seconds,
        )
        return result, fingerprint
