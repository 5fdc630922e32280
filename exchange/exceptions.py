"""
Exception hierarchy for the authenticated client.

Two failure channels:
- ValidationError is raised locally, before any request is built.
- TransportError (and LoopAbortError) only ever surface from an awaited
  call or through a completion callback.
"""

from __future__ import annotations
from typing import Any, Optional


class ExchangeError(Exception):
    """Base class for all client errors."""


class ValidationError(ExchangeError):
    """Missing or invalid request parameters. Never sent to the exchange."""


class SignatureError(ExchangeError):
    """The request could not be signed."""


class InvalidCredentialsError(SignatureError):
    """Secret is empty or not valid for the configured encoding."""


class TransportError(ExchangeError):
    """Failure reported by the HTTP layer (network error or non-2xx status)."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.status = status
        self.body = body


class LoopAbortError(TransportError):
    """A transport failure that stopped a bulk cancel midway."""

    def __init__(self, cause: TransportError, pages_completed: int):
        super().__init__(
            f"cancel_all_orders aborted after {pages_completed} page(s): {cause}",
            status=cause.status,
            body=cause.body,
        )
        self.pages_completed = pages_completed
