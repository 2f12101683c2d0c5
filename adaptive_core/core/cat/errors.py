"""
Error taxonomy for the adaptive assessment core.

Every error raised by the session state machine, the item selector and the
calibration engine derives from ``AssessmentError``. The API layer maps these
onto HTTP responses; ``retryable`` tells callers whether repeating the same
request can succeed.

Estimation divergence has no error type: a theta update that leaves the
valid range is clamped and logged, never raised.
"""
from typing import Any, Dict, Optional


class AssessmentError(Exception):
    """Base class for adaptive assessment errors."""

    retryable = False

    def __init__(  # noqa: D107
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            msg = f"{msg} (context: {ctx_str})"
        return msg


class BlueprintInvalid(AssessmentError):
    """Blueprint violates allocation or settings invariants."""


class BlueprintNotFound(AssessmentError):
    """No blueprint is registered under the requested id."""


class InsufficientItemPool(AssessmentError):
    """A bank quota cannot be met from the items currently available."""


class SessionNotFound(AssessmentError):
    """No session is registered under the requested id."""


class SessionAlreadyCompleted(AssessmentError):
    """The session is no longer in progress."""


class SessionIncomplete(AssessmentError):
    """Completion was requested before any stopping rule was met."""


class ItemMismatch(AssessmentError):
    """The submitted item is not the session's pending item."""


class SessionBusy(AssessmentError):
    """Another call for the same session is still in flight."""

    retryable = True


class ItemNotFound(AssessmentError):
    """The item repository has no item with the requested id."""


class ConcurrentCalibrationConflict(AssessmentError):
    """A calibration write lost an optimistic-concurrency race."""

    retryable = True
