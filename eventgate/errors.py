"""
Event Gate Errors

Every failure surfaces to the immediate caller as one of these. A denied
occurrence is never an error: ``admit`` returns ``allowed=False`` for it.
"""


class EventGateError(Exception):
    """Base class for all gate errors"""
    retryable = False


class InvalidKey(EventGateError, ValueError):
    """Source or fingerprint empty after trimming"""


class InvalidFingerprint(EventGateError, ValueError):
    """Alert fingerprint empty after trimming"""


class StoreUnavailable(EventGateError):
    """Backing store unreachable, timed out, or the caller's deadline expired"""
    retryable = True


class NotInitialized(EventGateError):
    """Store handle or database used before it was configured"""
