"""Exception types for the Supra threshold agent."""

from typing import Optional


class AgentError(Exception):
    """Base class for agent errors."""


class TransientFetchError(AgentError):
    """Oracle or analyzer unreachable; the round can be retried later."""


class LedgerRequestError(AgentError):
    """Ledger RPC returned a non-success response."""

    def __init__(self, status_code: int, body: str, url: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"Ledger RPC error {status_code}: {body}")


class AutomationError(AgentError):
    """Base class for automation registration failures."""


class InsufficientBalanceError(AutomationError):
    """Account balance cannot cover the automation budget and fees."""

    def __init__(self, required: float, available: float, message: Optional[str] = None):
        self.required = required
        self.available = available
        if message is None:
            message = f"Insufficient balance. Required: {required} SUPRA, Available: {available:.2f} SUPRA"
        super().__init__(message)


class SequenceConflictExhaustedError(AutomationError):
    """Every submission attempt hit a stale account sequence number."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Sequence number conflicts after {attempts} attempts")


class SubmissionFailedError(AutomationError):
    """Submission failed for a reason other than a sequence conflict."""
