"""
Error taxonomy for the admission flow.

SourceUnavailable and EvaluatorUnavailable are always recovered locally
(static question bank / length-based scorer).  PersistenceUnavailable and
DispatchFailure propagate to the caller.
"""

from __future__ import annotations


class AdmissionError(Exception):
    """Base class for every error raised by the admission package."""


class SourceUnavailable(AdmissionError):
    """The question generator could not supply questions."""


class EvaluatorUnavailable(AdmissionError):
    """The answer evaluator failed, timed out, or returned unusable scores."""


class PersistenceUnavailable(AdmissionError):
    """A ledger read or write could not be completed."""


class DispatchFailure(AdmissionError):
    """The result e-mail could not be delivered.  Always safe to resend."""

    retryable = True


class TierLocked(AdmissionError, ValueError):
    """A level was requested before the level below it was passed."""


class IllegalTransition(AdmissionError, ValueError):
    """The requested action is not legal in the current flow state."""


class RegistrationRejected(AdmissionError, ValueError):
    """Registration form failed one or more blocking guardrails."""

    def __init__(self, message: str, violations: list | None = None) -> None:
        super().__init__(message)
        self.violations = violations or []
