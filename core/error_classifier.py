"""
File: core/error_classifier.py
Purpose: Map free-text transport failure reasons onto FaultKind

Transports should report a structured FaultKind themselves; this is the
fallback for events that only carry a reason string.
"""

from core.models import FaultKind, TransportFault

# Credentials rejected - restarting will not help, re-authenticate instead
LOGOUT_PATTERNS = (
    'logout',
    'logged out',
    'invalid token',
    'unauthorized',
    'token was rejected',
    'session expired',
)

# Recoverable session / connection faults
TRANSIENT_PATTERNS = (
    'target closed',
    'session closed',
    'protocol error',
    'navigation',
    'browser disconnected',
    'econnreset',
    'connection reset',
    'connection closed',
    'connection refused',
    'conflict',
    'timed out',
    'timeout',
    'network error',
    'bad gateway',
    'service unavailable',
)


def classify_reason(reason) -> FaultKind:
    """
    Classify a failure reason

    Returns:
        FaultKind.LOGOUT - credentials/session rejected (DON'T restart)
        FaultKind.TRANSIENT - recoverable session fault (restart)
        FaultKind.UNKNOWN - anything else (log only)
    """
    text = str(reason or '').lower()

    # Logout wins over transient matches, e.g. "LOGOUT (connection closed)"
    if any(pattern in text for pattern in LOGOUT_PATTERNS):
        return FaultKind.LOGOUT

    if any(pattern in text for pattern in TRANSIENT_PATTERNS):
        return FaultKind.TRANSIENT

    return FaultKind.UNKNOWN


def resolve_kind(fault: TransportFault) -> FaultKind:
    """Use the transport's own kind when given, else classify the reason"""
    if fault.kind is not FaultKind.UNKNOWN:
        return fault.kind
    return classify_reason(fault.reason)
