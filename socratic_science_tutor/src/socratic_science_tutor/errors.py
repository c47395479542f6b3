"""
Tutor Error Taxonomy

Exceptions raised by the tutoring core. Gateway adapters translate provider
SDK errors into these so callers never depend on a specific provider.
"""

from typing import Optional


class TutorError(Exception):
    """Base class for all tutoring errors."""


class CredentialError(TutorError):
    """Missing or rejected API credential. Blocks the turn until setup is fixed."""


class TransportError(TutorError):
    """Upstream returned a non-success status or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"[{self.status_code}] {self.message}"
        return self.message


class MalformedResponseError(TransportError):
    """Success response that is missing the expected text field."""


class ParseError(TutorError):
    """Score, concept or JSON extraction failed. Never shown to the student."""


class SessionError(TutorError):
    """Operation not valid for the session's current phase."""


class SessionNotActiveError(SessionError):
    """A turn was attempted outside the chatting phase."""


class TurnInProgressError(SessionError):
    """A second turn was submitted while the previous one is still in flight."""


class TopicNotFoundError(TutorError, KeyError):
    """Unknown topic key."""

    def __str__(self) -> str:
        return Exception.__str__(self)


# Names used by the gateway contract
AuthError = CredentialError
RateLimitOrServerError = TransportError
