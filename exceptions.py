"""
Exception hierarchy for the SpendWise tracker.

Pure budget logic never raises; these errors belong to the edges of the
system (configuration, the relational store and the chat collaborator).
"""

from typing import Optional


class FinanceTrackerError(Exception):
    """
    Base class for all tracker errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg


class ConfigError(FinanceTrackerError):
    """Raised when an environment setting cannot be parsed."""
    pass


class StorageUnavailableError(FinanceTrackerError):
    """Raised when a store cannot read or write the relational database."""
    pass


class ChatCompletionError(FinanceTrackerError):
    """Raised by completion collaborators; the assistant turns it into an apology."""
    pass
