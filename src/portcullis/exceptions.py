"""Framework exception types."""

from __future__ import annotations

from typing import Any, Mapping

from .http import reason_phrase
from .serialization import json_encode


class PortcullisError(Exception):
    """Base error type."""


class HTTPError(PortcullisError):
    """Structured HTTP error that is msgspec serializable."""

    def __init__(self, status: int, detail: Any) -> None:
        super().__init__(status, detail)
        self.status = int(status)
        self.detail = detail

    def to_response_body(self) -> bytes:
        return json_encode(
            {"error": {"status": self.status, "reason": reason_phrase(self.status), "detail": self.detail}}
        )


class StateError(PortcullisError):
    """Raised when an authentication state cannot be loaded."""

    code = "NOSTATE"

    def __init__(self, message: str, *, state_id: str | None = None) -> None:
        super().__init__(message)
        self.state_id = state_id


class NoStateError(StateError):
    """The state id is unknown to the store or its TTL elapsed."""


class StageMismatchError(StateError):
    """The state was saved under a different stage than the one requested."""

    code = "BADREQUEST"

    def __init__(self, message: str, *, state_id: str | None = None, expected: str, actual: str) -> None:
        super().__init__(message, state_id=state_id)
        self.expected = expected
        self.actual = actual


class StateTamperedError(StateError):
    """The state id carries a signature that does not verify."""

    code = "BADREQUEST"


class ConfigurationError(PortcullisError):
    """Raised when configuration refers to something that does not exist."""


class LoginFailure(PortcullisError):
    """Typed authentication failure reported by a credential backend.

    ``code`` is an opaque key into :class:`~portcullis.error_codes.ErrorCodes`;
    ``params`` carries display parameters for the message.
    """

    def __init__(self, code: str, params: Mapping[str, Any] | None = None) -> None:
        super().__init__(code)
        self.code = code
        self.params: dict[str, Any] = dict(params or {})


__all__ = [
    "ConfigurationError",
    "HTTPError",
    "LoginFailure",
    "NoStateError",
    "PortcullisError",
    "StageMismatchError",
    "StateError",
    "StateTamperedError",
]
