"""
eventgate package initialization

Admission gate and alert-lifecycle tracking for inbound operational events.
"""

__version__ = "0.1.0"

from .errors import (
    EventGateError,
    InvalidKey,
    InvalidFingerprint,
    StoreUnavailable,
    NotInitialized,
)
from .clock import Clock, SystemClock, FrozenClock, Deadline
from .gate import GateKey, GateState, Policy, GateDecision, evaluate
from .store import GateStateStore, InMemoryGateStore, RedisGateStore, SQLGateStore
from .alerts import AlertLifecycleTracker, AlertRecord, AlertStatus
from .admission import AdmissionFacade, AdmissionResult, EventGate, GateSettings

__all__ = [
    # Errors
    'EventGateError',
    'InvalidKey',
    'InvalidFingerprint',
    'StoreUnavailable',
    'NotInitialized',

    # Time
    'Clock',
    'SystemClock',
    'FrozenClock',
    'Deadline',

    # Gate
    'GateKey',
    'GateState',
    'Policy',
    'GateDecision',
    'evaluate',

    # Stores
    'GateStateStore',
    'InMemoryGateStore',
    'RedisGateStore',
    'SQLGateStore',

    # Lifecycle
    'AlertLifecycleTracker',
    'AlertRecord',
    'AlertStatus',

    # Admission
    'AdmissionFacade',
    'AdmissionResult',
    'EventGate',
    'GateSettings',
]
