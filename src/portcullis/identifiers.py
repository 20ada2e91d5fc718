"""Opaque, signed identifiers for persisted authentication state.

A state id has the shape ``<id57>.<tag>``.  The ``id57`` part is a
lexicographically sortable base57 value made of a microsecond timestamp and a
random UUID; the tag is a truncated HMAC-SHA256 over that value so ids that
were never issued by this process (or were edited in transit) are rejected
before the store is consulted.
"""

from __future__ import annotations

import base64
import datetime as dt
import hashlib
import hmac
import uuid
from typing import Callable

__all__ = [
    "ALPHABET",
    "base57_encode",
    "generate_id57",
    "sign_state_id",
    "split_state_id",
    "verify_state_id",
]


# Ordered by ASCII code point so lexicographic order matches numeric order once
# values are padded.
ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE = len(ALPHABET)
_TIMESTAMP_WIDTH = 11
_RANDOM_WIDTH = 22
_TAG_BYTES = 12


def base57_encode(value: int, *, pad_to: int | None = None) -> str:
    """Encode ``value`` as a base57 string."""

    if value < 0:
        raise ValueError("id57 only supports unsigned integers")
    if value == 0:
        encoded = ALPHABET[0]
    else:
        digits: list[str] = []
        number = value
        while number:
            number, remainder = divmod(number, _BASE)
            digits.append(ALPHABET[remainder])
        encoded = "".join(reversed(digits))
    if pad_to is not None and pad_to > len(encoded):
        encoded = ALPHABET[0] * (pad_to - len(encoded)) + encoded
    return encoded


def generate_id57(
    *,
    timestamp: dt.datetime | None = None,
    random_source: Callable[[], uuid.UUID] | None = None,
) -> str:
    """Generate a new lexicographically sortable identifier."""

    ts = timestamp or dt.datetime.now(dt.timezone.utc)
    uuid_factory = random_source or uuid.uuid4
    return base57_encode(int(ts.timestamp() * 1_000_000), pad_to=_TIMESTAMP_WIDTH) + base57_encode(
        uuid_factory().int, pad_to=_RANDOM_WIDTH
    )


def _tag(value: str, secret_key: bytes) -> str:
    digest = hmac.new(secret_key, value.encode("ascii"), hashlib.sha256).digest()[:_TAG_BYTES]
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")


def sign_state_id(value: str, secret_key: bytes) -> str:
    """Append the HMAC tag for ``value``."""

    return f"{value}.{_tag(value, secret_key)}"


def split_state_id(state_id: str) -> tuple[str, str] | None:
    """Return ``(id57, tag)`` or ``None`` when ``state_id`` is malformed."""

    value, sep, tag = state_id.partition(".")
    if not sep or not value or not tag:
        return None
    if len(value) != _TIMESTAMP_WIDTH + _RANDOM_WIDTH:
        return None
    if any(char not in ALPHABET for char in value):
        return None
    return value, tag


def verify_state_id(state_id: str, secret_key: bytes) -> bool:
    """Return ``True`` when ``state_id`` is well formed and its tag verifies."""

    parts = split_state_id(state_id)
    if parts is None:
        return False
    value, tag = parts
    return hmac.compare_digest(tag, _tag(value, secret_key))
