"""Status codes emitted by the login endpoints."""

from __future__ import annotations

from enum import IntEnum
from http import HTTPStatus as _HTTPStatus


class Status(IntEnum):
    OK = 200
    SEE_OTHER = 303
    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    PAYLOAD_TOO_LARGE = 413
    INTERNAL_SERVER_ERROR = 500


def ensure_status(status: int | Status) -> int:
    """Return ``status`` as an ``int``, rejecting anything outside 100-599."""

    code = int(status)
    if not 100 <= code <= 599:
        raise ValueError(f"Invalid HTTP status code: {status}")
    return code


def status_class(status: int | Status) -> int:
    """Leading digit of ``status``: 3 for redirects, 4 for client errors and so on."""

    return ensure_status(status) // 100


def reason_phrase(status: int | Status) -> str:
    try:
        return _HTTPStatus(ensure_status(status)).phrase
    except ValueError:
        return "Unknown Status"


def is_redirect(status: int | Status) -> bool:
    return status_class(status) == 3


def is_client_error(status: int | Status) -> bool:
    return status_class(status) == 4


def is_server_error(status: int | Status) -> bool:
    return status_class(status) == 5


__all__ = [
    "Status",
    "ensure_status",
    "is_client_error",
    "is_redirect",
    "is_server_error",
    "reason_phrase",
    "status_class",
]
