"""
Error taxonomy for the uptime goat service.

Only startup failures are fatal; everything raised below the scheduler is
caught, logged and turned into "skip this unit of work".
"""

import asyncio
from typing import Optional


class GoatError(Exception):
    """Base error for the service."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class CredentialValidationError(GoatError):
    """Raised when a credential is missing or badly formatted."""

    def __init__(self, name: str, message: Optional[str] = None):
        super().__init__(
            message or f"{name} must be a valid 32-character hexadecimal value",
            recoverable=False
        )
        self.name = name


class EndpointFetchError(GoatError):
    """Raised when the endpoint mapping cannot be fetched or parsed."""


class ReportExchangeError(GoatError):
    """Raised when a report exchange with a single target fails."""

    def __init__(self, target_name: str, message: str):
        super().__init__(message, recoverable=True)
        self.target_name = target_name


class ContinuationStateError(GoatError):
    """Raised when the persisted continuation state cannot be written."""


def describe_error(error: BaseException) -> str:
    """
    Produce a readable one-line description of an exception.

    Timeouts and some connection errors stringify to an empty message,
    so fall back to the exception type name.
    """
    if isinstance(error, asyncio.TimeoutError):
        return "Request timeout"

    message = str(error).strip()
    if not message:
        return error.__class__.__name__
    return message
